"""
Terrain Manager: central orchestrator for terrain acquisition.

Chooses the best elevation source (GPXZ, then USGS, then the global
Terrarium tiles), always fetches the global elevation and satellite tiles,
resamples everything onto a 1 m grid, and hands the result to the optional
OSM and texture collaborators. CPU-bound resampling runs via
asyncio.to_thread().
"""

import asyncio
import dataclasses
import io
import logging
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..constants import (
    DATASET_CACHE_MAX_ITEMS,
    MAX_LATITUDE,
    MAX_RESOLUTION_M,
    METERS_PER_DEG_LAT,
    NO_DATA_VALUE,
    PROVIDERS,
    SATELLITE_JPEG_QUALITY,
    SATELLITE_ZOOM,
    TERRAIN_ZOOM,
    ElevationSource,
    ErrorMessages,
)
from .cancellation import CancellationToken, TerrainCancelledError
from .collaborators import OSMFeature, OSMFetcher, TextureGenerators
from .geo import GeoBounds, LatLng, bounds_around, normalize_lng
from .geotiff import heightmap_to_geotiff
from .gpxz import GPXZAdapter, RateLimitState
from .resampler import height_range, resample_heightmap, resample_image
from .samplers import (
    AbsentHeightSampler,
    CanvasColorSampler,
    GeoTiffHeightSampler,
    HeightSampler,
    TerrariumHeightSampler,
)
from .sources import SourceFetchResult
from .tiles import TileFetcher, TileKind
from .usgs import USGSAdapter, check_usgs_status, in_usgs_coverage

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str], None]


class BaselineUnavailableError(RuntimeError):
    """No global elevation tile could be fetched and no premium source succeeded."""


class PipelineState(str, Enum):
    IDLE = "idle"
    COMPUTING_BOUNDS = "computing_bounds"
    FETCHING_PREMIUM_SOURCE = "fetching_premium_source"
    FETCHING_BASELINE = "fetching_baseline"
    RESAMPLING = "resampling"
    FETCHING_OSM = "fetching_osm"
    GENERATING_TEXTURES = "generating_textures"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class PipelineRun:
    """State history of one fetch_terrain() call."""

    states: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    error: str | None = None

    @property
    def state(self) -> PipelineState:
        return self.states[-1]

    def advance(self, state: PipelineState, cancel: CancellationToken) -> None:
        cancel.raise_if_cancelled()
        logger.debug(f"Pipeline: {self.state.value} -> {state.value}")
        self.states.append(state)

    def finish(self, state: PipelineState, error: str | None = None) -> None:
        self.states.append(state)
        self.error = error


@dataclass
class SourceGeoTiffs:
    """Untouched provider GeoTIFFs, kept for passthrough export."""

    raw_geotiffs: list[bytes]
    source: str


@dataclass
class TerrainDataset:
    """Result of a terrain request: a 1 m heightmap plus textures and vectors."""

    height_map: NDArray[np.float32]
    width: int
    height: int
    min_height: float
    max_height: float
    bounds: GeoBounds
    elevation_source: str
    dataset_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    satellite_texture: bytes | None = None
    satellite_texture_url: str | None = None
    heightmap_url: str | None = None
    osm_features: list[OSMFeature] = field(default_factory=list)
    usgs_fallback: bool = False
    source_geotiffs: SourceGeoTiffs | None = None
    smoothed: bool = False
    segmented_texture: bytes | None = None
    segmented_texture_url: str | None = None
    osm_texture: bytes | None = None
    osm_texture_url: str | None = None
    hybrid_texture: bytes | None = None
    hybrid_texture_url: str | None = None
    segmented_hybrid_texture: bytes | None = None
    segmented_hybrid_texture_url: str | None = None

    def height_grid(self) -> NDArray[np.float32]:
        """2-D (height, width) view of height_map."""
        return self.height_map.reshape(self.height, self.width)

    @property
    def nodata_cells(self) -> int:
        return int(np.count_nonzero(self.height_map == NO_DATA_VALUE))


class TerrainManager:
    """Central manager for terrain requests."""

    def __init__(
        self,
        tile_fetcher: TileFetcher | None = None,
        gpxz: GPXZAdapter | None = None,
        usgs: USGSAdapter | None = None,
        osm_fetcher: OSMFetcher | None = None,
        textures: TextureGenerators | None = None,
        default_gpxz_api_key: str = "",
        store_artifacts: bool = True,
    ) -> None:
        self.tiles = tile_fetcher or TileFetcher()
        self.gpxz = gpxz or GPXZAdapter()
        self.usgs = usgs or USGSAdapter()
        self.osm_fetcher = osm_fetcher
        self.textures = textures or TextureGenerators()
        self.default_gpxz_api_key = default_gpxz_api_key
        self.store_artifacts = store_artifacts
        self.last_run: PipelineRun | None = None

        self._datasets: OrderedDict[str, TerrainDataset] = OrderedDict()

    # ------------------------------------------------------------------
    # Discovery (no I/O unless noted)
    # ------------------------------------------------------------------

    def list_providers(self) -> list[dict]:
        """List the elevation providers in priority order."""
        return [dict(p) for p in PROVIDERS.values()]

    async def check_usgs_status(self) -> bool:
        return await check_usgs_status()

    async def gpxz_limits(self, api_key: str = "") -> RateLimitState:
        """Known limits for the key, probing the API if it has not been seen yet."""
        key = api_key or self.default_gpxz_api_key
        if not key:
            raise ValueError(ErrorMessages.MISSING_API_KEY)
        state = self.gpxz.rate_limit_info(key)
        if state is None:
            state = await self.gpxz.probe_limits(key)
        return state

    def get_dataset(self, dataset_id: str) -> TerrainDataset:
        dataset = self._datasets.get(dataset_id)
        if dataset is None:
            raise ValueError(ErrorMessages.DATASET_NOT_FOUND.format(dataset_id))
        self._datasets.move_to_end(dataset_id)
        return dataset

    # ------------------------------------------------------------------
    # Terrain pipeline
    # ------------------------------------------------------------------

    async def fetch_terrain(
        self,
        center: LatLng,
        resolution: int,
        include_osm: bool = False,
        use_usgs: bool = False,
        use_gpxz: bool = False,
        gpxz_api_key: str = "",
        base_color: str | None = None,
        on_progress: ProgressFn | None = None,
        cancel: CancellationToken | None = None,
    ) -> TerrainDataset:
        """
        Build a resolution x resolution metre terrain dataset around center.

        Args:
            center: Centre point (longitude is normalised)
            resolution: Grid side in metres (= pixels)
            include_osm: Fetch OSM features for the final bounds
            use_usgs: Try USGS 1 m data inside the US regions
            use_gpxz: Try GPXZ first (needs an API key)
            gpxz_api_key: GPXZ key; falls back to the manager default
            base_color: Passed through to texture generators
            on_progress: Progress callback
            cancel: Cancellation token

        Returns:
            TerrainDataset

        Raises:
            TerrainCancelledError: if cancelled at any stage
            BaselineUnavailableError: if no elevation data at all could be fetched
        """
        cancel = cancel or CancellationToken()
        run = PipelineRun()
        self.last_run = run

        try:
            run.advance(PipelineState.COMPUTING_BOUNDS, cancel)
            self._validate_request(center, resolution)
            center = LatLng(lat=center.lat, lng=normalize_lng(center.lng))
            fetch_bounds = bounds_around(center, resolution, resolution)
            logger.info(
                f"Terrain request {resolution}m at ({center.lat:.5f}, {center.lng:.5f}), "
                f"crosses antimeridian: {fetch_bounds.crosses_antimeridian}"
            )

            run.advance(PipelineState.FETCHING_PREMIUM_SOURCE, cancel)
            premium, usgs_fallback = await self._fetch_premium(
                fetch_bounds,
                use_gpxz=use_gpxz,
                use_usgs=use_usgs,
                gpxz_api_key=gpxz_api_key or self.default_gpxz_api_key,
                on_progress=on_progress,
                cancel=cancel,
            )

            run.advance(PipelineState.FETCHING_BASELINE, cancel)
            _notify(on_progress, "Fetching global tiles...")
            elevation_canvas, satellite_canvas = await asyncio.gather(
                self.tiles.fetch_stitched(
                    fetch_bounds, TERRAIN_ZOOM, TileKind.ELEVATION, cancel=cancel
                ),
                self.tiles.fetch_stitched(
                    fetch_bounds, SATELLITE_ZOOM, TileKind.SATELLITE, cancel=cancel
                ),
            )

            if elevation_canvas.tiles_ok == 0 and premium is None:
                raise BaselineUnavailableError(
                    ErrorMessages.BASELINE_UNAVAILABLE.format(
                        elevation_canvas.tiles_failed, elevation_canvas.tiles_total
                    )
                )

            baseline: HeightSampler
            if elevation_canvas.tiles_ok > 0:
                baseline = TerrariumHeightSampler(elevation_canvas)
            else:
                logger.warning("Global elevation tiles unavailable; gaps stay empty")
                baseline = AbsentHeightSampler()

            if premium is not None:
                primary: HeightSampler = GeoTiffHeightSampler(premium.rasters)
                fallback: HeightSampler | None = baseline
                source = premium.source
                smooth = premium.smooth
            else:
                primary = baseline
                fallback = None
                source = ElevationSource.GLOBAL
                smooth = False

            run.advance(PipelineState.RESAMPLING, cancel)
            _notify(on_progress, "Resampling heightmap to 1m/px...")
            resampled, image = await asyncio.gather(
                asyncio.to_thread(
                    resample_heightmap, primary, center, resolution, resolution, smooth, fallback
                ),
                asyncio.to_thread(
                    resample_image,
                    CanvasColorSampler(satellite_canvas),
                    center,
                    resolution,
                    resolution,
                ),
            )
            cancel.raise_if_cancelled()

            min_height, max_height = height_range(resampled.height_map)
            satellite_jpeg = await asyncio.to_thread(encode_jpeg, image)

            dataset = TerrainDataset(
                height_map=resampled.height_map,
                width=resampled.width,
                height=resampled.height,
                min_height=min_height,
                max_height=max_height,
                bounds=resampled.bounds,
                elevation_source=source,
                satellite_texture=satellite_jpeg,
                usgs_fallback=usgs_fallback,
                source_geotiffs=(
                    SourceGeoTiffs(raw_geotiffs=premium.raw_geotiffs, source=premium.source)
                    if premium is not None
                    else None
                ),
                smoothed=smooth,
            )
            await self._store_dataset_artifacts(dataset)

            if include_osm:
                run.advance(PipelineState.FETCHING_OSM, cancel)
                _notify(on_progress, "Fetching OpenStreetMap data...")
                dataset.osm_features = await self._fetch_osm(dataset.bounds, cancel)

            run.advance(PipelineState.GENERATING_TEXTURES, cancel)
            _notify(on_progress, "Finalizing terrain data...")
            await self._segment(dataset, on_progress, cancel)
            if include_osm and dataset.osm_features:
                await self._generate_osm_textures(dataset, base_color, on_progress, cancel)

            run.advance(PipelineState.DONE, cancel)
        except TerrainCancelledError:
            run.finish(PipelineState.CANCELLED)
            logger.info("Terrain request cancelled")
            raise
        except Exception as e:
            run.finish(PipelineState.FAILED, str(e))
            raise

        self._remember(dataset)
        logger.info(
            f"Terrain ready: {dataset.width}x{dataset.height} from {dataset.elevation_source} "
            f"({dataset.min_height:.1f}m to {dataset.max_height:.1f}m)"
        )
        return dataset

    async def add_osm_to_terrain(
        self,
        dataset: TerrainDataset,
        base_color: str | None = None,
        on_progress: ProgressFn | None = None,
        cancel: CancellationToken | None = None,
    ) -> TerrainDataset:
        """Attach OSM features to an existing dataset and regenerate OSM textures.

        Returns a new dataset; the input is left unchanged.
        """
        cancel = cancel or CancellationToken()
        _notify(on_progress, "Fetching OpenStreetMap data...")
        features = await self._fetch_osm(dataset.bounds, cancel)

        updated = dataclasses.replace(
            dataset, dataset_id=uuid.uuid4().hex[:12], osm_features=features
        )
        if features:
            await self._generate_osm_textures(updated, base_color, on_progress, cancel)

        self._remember(updated)
        return updated

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def _fetch_premium(
        self,
        bounds: GeoBounds,
        use_gpxz: bool,
        use_usgs: bool,
        gpxz_api_key: str,
        on_progress: ProgressFn | None,
        cancel: CancellationToken,
    ) -> tuple[SourceFetchResult | None, bool]:
        """Try GPXZ, then USGS. Returns (successful result or None, usgs_fallback)."""
        if use_gpxz and gpxz_api_key:
            _notify(on_progress, "Fetching high-res GPXZ elevation data...")
            result = await self._try_source(
                self.gpxz.fetch(bounds, gpxz_api_key, on_progress, cancel), ElevationSource.GPXZ
            )
            if result.ok:
                return result, False
            logger.warning(f"[GPXZ] Unavailable ({result.reason}); trying next source")

        if not use_usgs:
            return None, False

        if not in_usgs_coverage(bounds):
            logger.info("[USGS] Area outside USGS coverage; using global tiles")
            return None, True

        _notify(on_progress, "Fetching USGS 1m elevation data...")
        result = await self._try_source(
            self.usgs.fetch(bounds, on_progress, cancel), ElevationSource.USGS
        )
        if result.ok:
            return result, False
        logger.warning(f"[USGS] Failed to fetch raw data ({result.reason}), falling back to global tiles")
        return None, True

    async def _try_source(self, fetch: Any, source: str) -> SourceFetchResult:
        try:
            return await fetch
        except TerrainCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to load {source} terrain: {e}")
            return SourceFetchResult.failure(source, str(e))

    async def _fetch_osm(self, bounds: GeoBounds, cancel: CancellationToken) -> list[OSMFeature]:
        if self.osm_fetcher is None:
            logger.warning("No OSM fetcher configured; skipping OSM features")
            return []
        features = await cancel.guard(self.osm_fetcher(bounds))
        logger.info(f"Fetched {len(features)} OSM features")
        return list(features)

    async def _segment(
        self,
        dataset: TerrainDataset,
        on_progress: ProgressFn | None,
        cancel: CancellationToken,
    ) -> None:
        generator = self.textures.segment_satellite
        if generator is None or dataset.satellite_texture is None:
            return
        _notify(on_progress, "Generating segmented satellite texture...")
        try:
            result = await cancel.guard(
                generator(dataset.satellite_texture, {"on_progress": on_progress})
            )
        except TerrainCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Segmentation failed, skipping: {e}")
            return
        dataset.segmented_texture = result.image
        dataset.segmented_texture_url = result.url

    async def _generate_osm_textures(
        self,
        dataset: TerrainDataset,
        base_color: str | None,
        on_progress: ProgressFn | None,
        cancel: CancellationToken,
    ) -> None:
        options: dict[str, Any] = {"roads": True, "base_color": base_color, "on_progress": on_progress}

        if self.textures.osm_texture is not None:
            _notify(on_progress, "Generating OSM texture...")
            result = await cancel.guard(self.textures.osm_texture(dataset, options))
            dataset.osm_texture, dataset.osm_texture_url = result.image, result.url

        if self.textures.hybrid_texture is not None:
            _notify(on_progress, "Generating Hybrid texture...")
            result = await cancel.guard(self.textures.hybrid_texture(dataset, options))
            dataset.hybrid_texture, dataset.hybrid_texture_url = result.image, result.url

        if self.textures.segmented_hybrid_texture is not None and dataset.segmented_texture:
            _notify(on_progress, "Generating Segmented Hybrid texture...")
            result = await cancel.guard(self.textures.segmented_hybrid_texture(dataset, options))
            dataset.segmented_hybrid_texture = result.image
            dataset.segmented_hybrid_texture_url = result.url

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_request(self, center: LatLng, resolution: int) -> None:
        if not -90.0 <= center.lat <= 90.0:
            raise ValueError(ErrorMessages.INVALID_LATITUDE.format(center.lat))
        if not 1 <= resolution <= MAX_RESOLUTION_M:
            raise ValueError(ErrorMessages.INVALID_RESOLUTION.format(resolution, MAX_RESOLUTION_M))
        if abs(center.lat) + resolution / 2.0 / METERS_PER_DEG_LAT > MAX_LATITUDE:
            raise ValueError(
                ErrorMessages.OUTSIDE_MERCATOR_RANGE.format(center.lat, resolution, MAX_LATITUDE)
            )

    def _remember(self, dataset: TerrainDataset) -> None:
        self._datasets[dataset.dataset_id] = dataset
        self._datasets.move_to_end(dataset.dataset_id)
        while len(self._datasets) > DATASET_CACHE_MAX_ITEMS:
            self._datasets.popitem(last=False)

    async def _store_dataset_artifacts(self, dataset: TerrainDataset) -> None:
        """Store the satellite JPEG and heightmap GeoTIFF; failures leave the refs None."""
        if not self.store_artifacts:
            return

        bounds = dataset.bounds
        metadata = {
            "schema_version": "1.0",
            "dataset_id": dataset.dataset_id,
            "bbox": bounds.as_bbox(),
            "shape": [dataset.height, dataset.width],
            "elevation_source": dataset.elevation_source,
        }

        if dataset.satellite_texture is not None:
            try:
                dataset.satellite_texture_url = await self._store_raster(
                    dataset.satellite_texture,
                    {**metadata, "type": "satellite_texture", "format": "jpeg"},
                    suffix="_satellite.jpg",
                )
            except Exception as e:
                logger.warning(f"Failed to store satellite texture: {e}")

        try:
            geotiff_bytes = await asyncio.to_thread(
                heightmap_to_geotiff,
                dataset.height_map,
                dataset.width,
                dataset.height,
                bounds.as_bbox(),
            )
            dataset.heightmap_url = await self._store_raster(
                geotiff_bytes,
                {
                    **metadata,
                    "type": "terrain_heightmap",
                    "crs": "EPSG:4326",
                    "dtype": "float32",
                    "nodata_value": NO_DATA_VALUE,
                    "elevation_range": [dataset.min_height, dataset.max_height],
                },
                suffix=".tif",
            )
        except Exception as e:
            logger.warning(f"Failed to store heightmap GeoTIFF: {e}")

    def _get_store(self) -> Any:
        """Get the artifact store instance."""
        from chuk_mcp_server import get_artifact_store

        store = get_artifact_store()
        if store is None:
            raise RuntimeError(ErrorMessages.NO_ARTIFACT_STORE)
        return store

    async def _store_raster(
        self,
        data: bytes,
        metadata: dict,
        suffix: str = ".tif",
    ) -> str:
        """Store raster data in the artifact store."""
        try:
            store = self._get_store()
            ref = f"terrain/{uuid.uuid4().hex[:12]}{suffix}"
            if suffix.endswith(".tif"):
                mime = "image/tiff"
            elif suffix.endswith(".jpg"):
                mime = "image/jpeg"
            else:
                mime = "image/png"

            await store.store(
                ref,
                data,
                mime_type=mime,
                metadata=metadata,
                summary=f"Terrain data ({metadata.get('type', 'unknown')})",
            )
            return ref
        except Exception as e:
            logger.error(f"Failed to store raster: {e}")
            raise


def encode_jpeg(image: NDArray[np.uint8], quality: int = SATELLITE_JPEG_QUALITY) -> bytes:
    """Encode an (H, W, 4) RGBA array as JPEG bytes (alpha dropped)."""
    from PIL import Image

    buf = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(image[..., :3])).save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def _notify(on_progress: ProgressFn | None, message: str) -> None:
    if on_progress is not None:
        on_progress(message)
