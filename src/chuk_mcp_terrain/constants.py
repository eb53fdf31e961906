"""
Constants for chuk-mcp-terrain server.

All magic strings, provider endpoints, plan tiers, and configuration values live here.
"""


class ServerConfig:
    NAME = "chuk-mcp-terrain"
    VERSION = "0.1.0"
    DESCRIPTION = "Metric Terrain Acquisition & Resampling MCP Server"


class StorageProvider:
    MEMORY = "memory"
    S3 = "s3"
    FILESYSTEM = "filesystem"


class SessionProvider:
    MEMORY = "memory"
    REDIS = "redis"


class EnvVar:
    ARTIFACTS_PROVIDER = "CHUK_ARTIFACTS_PROVIDER"
    BUCKET_NAME = "BUCKET_NAME"
    REDIS_URL = "REDIS_URL"
    ARTIFACTS_PATH = "CHUK_ARTIFACTS_PATH"
    AWS_ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
    AWS_SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"
    AWS_ENDPOINT_URL_S3 = "AWS_ENDPOINT_URL_S3"
    MCP_STDIO = "MCP_STDIO"
    GPXZ_API_KEY = "GPXZ_API_KEY"
    GPXZ_BASE_URL = "GPXZ_BASE_URL"


class ElevationSource:
    GPXZ = "gpxz"
    USGS = "usgs"
    GLOBAL = "global"


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

TILE_SIZE = 256
MAX_LATITUDE = 85.05112878
METERS_PER_DEG_LAT = 111320.0

TERRAIN_ZOOM = 15  # Terrarium elevation tiles (~4.8 m/px at the equator)
SATELLITE_ZOOM = 17  # ArcGIS imagery (~1.2 m/px at the equator)

# Distinguishes "no elevation sample" from a real height of 0 m
NO_DATA_VALUE = -99999.0

# ---------------------------------------------------------------------------
# Global baseline tiles
# ---------------------------------------------------------------------------

TERRARIUM_URL = "https://s3.amazonaws.com/elevation-tiles-prod/terrarium"
SATELLITE_URL = "https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile"

TILE_FETCH_CONCURRENCY = 20
TILE_TIMEOUT_S = 30.0

# Terrarium encoding of 0 m: 128 * 256 - 32768 == 0
ELEVATION_FILL_RGBA = (128, 0, 0, 255)
SATELLITE_FILL_RGBA = (0x1A, 0x1A, 0x1A, 255)
MISSING_COLOR = (0, 0, 0, 255)

# ---------------------------------------------------------------------------
# GPXZ
# ---------------------------------------------------------------------------

GPXZ_BASE_URL = "https://api.gpxz.io"
GPXZ_PROBE_PATH = "/v1/elevation/point"
GPXZ_POINTS_PATH = "/v1/elevation/points"
GPXZ_RASTER_PATH = "/v1/elevation/hires-raster"

GPXZ_MAX_AREA_KM2 = 10.0
GPXZ_SAFE_AREA_KM2 = 9.5
GPXZ_CHUNK_BUFFER_M = 220.0
GPXZ_SMOOTH_RESOLUTION_M = 2.0
GPXZ_FREE_TIER_MIN_DELAY_S = 1.2

GPXZ_MAX_ATTEMPTS = 5
GPXZ_BACKOFF_BASE_S = 2.0
GPXZ_BACKOFF_MAX_S = 32.0
GPXZ_RETRY_AFTER_BUFFER_S = 0.2


class PlanTier:
    FREE = "free"
    SMALL = "small"
    LARGE = "large"


# Daily request ceiling -> (plan, requests_per_second, concurrency)
GPXZ_PLAN_TIERS: list[tuple[int | None, str, int, int]] = [
    (100, PlanTier.FREE, 1, 1),
    (2500, PlanTier.SMALL, 10, 8),
    (None, PlanTier.LARGE, 25, 20),
]

# ---------------------------------------------------------------------------
# USGS National Map
# ---------------------------------------------------------------------------

USGS_PRODUCT_API = "https://tnmaccess.nationalmap.gov/api/v1/products"
USGS_DATASET = "Digital Elevation Model (DEM) 1 meter"
USGS_MAX_PRODUCTS = 4
USGS_QUERY_TIMEOUT_S = 15.0
USGS_STATUS_TIMEOUT_S = 5.0
USGS_QUERY_ATTEMPTS = 3
USGS_QUERY_BACKOFF_S = 1.0

# name -> [west, south, east, north]; a box must lie strictly inside one
USGS_REGIONS: dict[str, list[float]] = {
    "conus": [-125.0, 24.0, -66.0, 50.0],
    "alaska": [-170.0, 50.0, -129.0, 72.0],
    "hawaii": [-161.0, 18.0, -154.0, 23.0],
}

# ---------------------------------------------------------------------------
# Resampling
# ---------------------------------------------------------------------------

SMOOTHING_RADIUS = 8
SMOOTHING_PASSES = 2
MAX_RESOLUTION_M = 10000
SATELLITE_JPEG_QUALITY = 90

# Recent datasets kept in memory so OSM can be attached later
DATASET_CACHE_MAX_ITEMS = 8

PROVIDERS: dict[str, dict] = {
    ElevationSource.GPXZ: {
        "id": ElevationSource.GPXZ,
        "name": "GPXZ hi-res raster",
        "kind": "premium",
        "coverage": "global (1 m where available)",
        "requires_api_key": True,
        "access_url": GPXZ_BASE_URL,
        "llm_guidance": (
            "Highest priority when an API key is supplied. Requests are split into "
            "~9.5 km² chunks and rate-limited according to the account plan."
        ),
    },
    ElevationSource.USGS: {
        "id": ElevationSource.USGS,
        "name": "USGS 3DEP 1 m",
        "kind": "regional",
        "coverage": "CONUS, Alaska, Hawaii",
        "requires_api_key": False,
        "access_url": USGS_PRODUCT_API,
        "llm_guidance": (
            "Used when GPXZ is unavailable and the area lies inside the US "
            "regions. Falls back to global tiles when no product covers the area."
        ),
    },
    ElevationSource.GLOBAL: {
        "id": ElevationSource.GLOBAL,
        "name": "Terrarium tiles + ArcGIS World Imagery",
        "kind": "baseline",
        "coverage": "global",
        "requires_api_key": False,
        "access_url": TERRARIUM_URL,
        "llm_guidance": (
            "Always fetched. Supplies satellite colour, fills gaps in premium "
            "sources, and is the sole elevation source otherwise."
        ),
    },
}

ALL_PROVIDER_IDS = list(PROVIDERS.keys())

TEXTURE_KINDS = ["satellite", "segmented", "osm", "hybrid", "segmented_hybrid"]


class ErrorMessages:
    INVALID_LATITUDE = "Invalid latitude {}: must be between -90 and 90"
    INVALID_RESOLUTION = "Invalid resolution {}: must be between 1 and {}"
    INVALID_BOUNDS = "Invalid bounds: north ({}) must be > south ({})"
    OUTSIDE_MERCATOR_RANGE = (
        "Invalid latitude {}: a {}m extent reaches past the Mercator limit of {} degrees"
    )
    BASELINE_UNAVAILABLE = "Global elevation tiles unavailable ({} of {} tiles failed)"
    CANCELLED = "Terrain request cancelled"
    NO_ARTIFACT_STORE = (
        "No artifact store available. Configure CHUK_ARTIFACTS_PROVIDER "
        "environment variable (memory, filesystem, or s3)."
    )
    MISSING_API_KEY = "GPXZ API key required (pass gpxz_api_key or set GPXZ_API_KEY)"
    GEOTIFF_DECODE = "Failed to decode GeoTIFF: {}"
    DATASET_NOT_FOUND = "Terrain dataset '{}' not found (it may have been evicted)"


class SuccessMessages:
    PROVIDERS_LIST = "{} elevation providers available"
    STATUS = "Terrain MCP Server v{} ({} providers, storage: {})"
    FETCH_COMPLETE = "Terrain {}x{} m from {} ({:.1f}m to {:.1f}m)"
    OSM_ADDED = "Attached {} OSM features"
    USGS_REACHABLE = "USGS National Map API is reachable"
    USGS_UNREACHABLE = "USGS National Map API is not reachable"
    GPXZ_LIMITS = "GPXZ plan: {} ({} of {} requests remaining today)"
