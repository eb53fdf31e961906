"""
Terrain tools: build a metric terrain dataset and attach OSM features.

These tools perform network I/O against the elevation and imagery
providers and store the heightmap and satellite texture in the artifact store.
"""

import logging
from collections import Counter

from ...constants import ErrorMessages, SuccessMessages
from ...core.cancellation import TerrainCancelledError
from ...core.geo import LatLng
from ...models.responses import (
    ErrorResponse,
    OsmAttachResponse,
    TerrainFetchResponse,
    format_response,
)

logger = logging.getLogger(__name__)


def _texture_kinds(dataset) -> list[str]:
    kinds = []
    if dataset.satellite_texture is not None:
        kinds.append("satellite")
    if dataset.segmented_texture is not None:
        kinds.append("segmented")
    if dataset.osm_texture is not None:
        kinds.append("osm")
    if dataset.hybrid_texture is not None:
        kinds.append("hybrid")
    if dataset.segmented_hybrid_texture is not None:
        kinds.append("segmented_hybrid")
    return kinds


def _log_progress(message: str) -> None:
    logger.info(message)


def register_terrain_tools(mcp, manager):
    """Register terrain tools with the MCP server."""

    @mcp.tool()
    async def terrain_fetch(
        lat: float,
        lng: float,
        resolution: int = 1000,
        include_osm: bool = False,
        use_usgs: bool = False,
        use_gpxz: bool = False,
        gpxz_api_key: str = "",
        base_color: str | None = None,
        output_mode: str = "json",
    ) -> str:
        """Build a square 1 m/pixel terrain dataset around a point.

        Produces a heightmap (GeoTIFF artifact) and a matching satellite
        texture (JPEG artifact). Premium sources are tried in order GPXZ,
        then USGS; the global Terrarium tiles fill any gaps.

        Args:
            lat: Centre latitude (-90 to 90)
            lng: Centre longitude (any value, normalised to [-180, 180))
            resolution: Side length in metres, which is also the pixel count
            include_osm: Attach OpenStreetMap features for the final bounds
            use_usgs: Try USGS 3DEP 1 m data (CONUS, Alaska, Hawaii)
            use_gpxz: Try GPXZ hi-res data first (requires an API key)
            gpxz_api_key: GPXZ key (defaults to the server's GPXZ_API_KEY)
            base_color: Base colour passed to OSM texture generation
            output_mode: "json" or "text"

        Returns:
            Dataset id, bounds, elevation range, source and artifact references
        """
        try:
            dataset = await manager.fetch_terrain(
                center=LatLng(lat=lat, lng=lng),
                resolution=resolution,
                include_osm=include_osm,
                use_usgs=use_usgs,
                use_gpxz=use_gpxz,
                gpxz_api_key=gpxz_api_key,
                base_color=base_color,
                on_progress=_log_progress,
            )

            center = dataset.bounds.center
            response = TerrainFetchResponse(
                dataset_id=dataset.dataset_id,
                center=[center.lat, center.lng],
                width=dataset.width,
                height=dataset.height,
                bounds=dataset.bounds.as_bbox(),
                elevation_source=dataset.elevation_source,
                elevation_range=[dataset.min_height, dataset.max_height],
                nodata_cells=dataset.nodata_cells,
                smoothed=dataset.smoothed,
                usgs_fallback=dataset.usgs_fallback,
                heightmap_ref=dataset.heightmap_url,
                satellite_texture_ref=dataset.satellite_texture_url,
                osm_feature_count=len(dataset.osm_features),
                textures=_texture_kinds(dataset),
                message=SuccessMessages.FETCH_COMPLETE.format(
                    dataset.width,
                    dataset.height,
                    dataset.elevation_source,
                    dataset.min_height,
                    dataset.max_height,
                ),
            )
            return format_response(response, output_mode)

        except TerrainCancelledError:
            logger.info("terrain_fetch cancelled")
            return format_response(ErrorResponse(error=ErrorMessages.CANCELLED), output_mode)
        except Exception as e:
            logger.error(f"terrain_fetch failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def terrain_add_osm(
        dataset_id: str,
        base_color: str | None = None,
        output_mode: str = "json",
    ) -> str:
        """Attach OpenStreetMap features to a terrain dataset built earlier.

        Features are fetched for the dataset's final bounds and OSM-dependent
        textures are regenerated. The result is a new dataset; the original
        is unchanged.

        Args:
            dataset_id: Identifier returned by terrain_fetch
            base_color: Base colour passed to OSM texture generation
            output_mode: "json" or "text"

        Returns:
            New dataset id with feature counts per type
        """
        try:
            dataset = manager.get_dataset(dataset_id)
            updated = await manager.add_osm_to_terrain(
                dataset, base_color=base_color, on_progress=_log_progress
            )

            counts = Counter(f.type for f in updated.osm_features)
            response = OsmAttachResponse(
                source_dataset_id=dataset_id,
                dataset_id=updated.dataset_id,
                osm_feature_count=len(updated.osm_features),
                feature_types=dict(counts),
                textures=_texture_kinds(updated),
                message=SuccessMessages.OSM_ADDED.format(len(updated.osm_features)),
            )
            return format_response(response, output_mode)

        except TerrainCancelledError:
            logger.info("terrain_add_osm cancelled")
            return format_response(ErrorResponse(error=ErrorMessages.CANCELLED), output_mode)
        except Exception as e:
            logger.error(f"terrain_add_osm failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)
