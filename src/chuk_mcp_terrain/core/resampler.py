"""
Metric resampling of elevation and colour sources onto a 1 m grid.

All functions are synchronous and CPU-bound; the orchestrator runs them in
asyncio.to_thread(). Grids are walked in row blocks so large extents do not
materialise full coordinate arrays at once.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray

from ..constants import METERS_PER_DEG_LAT, NO_DATA_VALUE, SMOOTHING_PASSES, SMOOTHING_RADIUS
from .geo import GeoBounds, LatLng, bounds_around, meters_per_deg_lng

logger = logging.getLogger(__name__)

ROW_BLOCK = 256


class PointSampler(Protocol):
    def sample_many(self, lats: NDArray[Any], lngs: NDArray[Any]) -> NDArray[Any]: ...


@dataclass
class ResampledHeightmap:
    height_map: NDArray[np.float32]  # flat, row-major, width * height
    width: int
    height: int
    bounds: GeoBounds


def grid_coordinates(
    center: LatLng,
    width: int,
    height: int,
    row_start: int = 0,
    row_stop: int | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Latitude/longitude of each grid cell in rows [row_start, row_stop).

    Cell (col, row) sits at local metres (col - width/2, height/2 - row) from
    center, converted with the equirectangular approximation. Longitudes are
    normalised after offsetting, so a grid spanning the antimeridian has
    continuous columns.

    Returns:
        (lats, lngs), each shaped (rows, width)
    """
    row_stop = height if row_stop is None else row_stop
    x_m = np.arange(width, dtype=np.float64) - width / 2.0
    y_m = height / 2.0 - np.arange(row_start, row_stop, dtype=np.float64)

    lat_row = center.lat + y_m / METERS_PER_DEG_LAT
    lng_col = center.lng + x_m / meters_per_deg_lng(center.lat)
    lng_col = np.mod(np.mod(lng_col + 180.0, 360.0) + 360.0, 360.0) - 180.0

    lngs, lats = np.meshgrid(lng_col, lat_row)
    return lats, lngs


def resample_heightmap(
    sampler: PointSampler,
    center: LatLng,
    width: int,
    height: int,
    smooth: bool = False,
    fallback: PointSampler | None = None,
) -> ResampledHeightmap:
    """
    Sample elevations onto a width x height metre grid around center.

    Args:
        sampler: Primary height sampler
        center: Grid centre
        width: Columns (metres)
        height: Rows (metres)
        smooth: Apply the sentinel-aware box blur after filling
        fallback: Sampler consulted wherever the primary has no data

    Returns:
        ResampledHeightmap with NO_DATA_VALUE where neither source has data
    """
    grid = np.empty((height, width), dtype=np.float64)
    filled = 0

    for start in range(0, height, ROW_BLOCK):
        stop = min(start + ROW_BLOCK, height)
        lats, lngs = grid_coordinates(center, width, height, start, stop)
        block = np.asarray(sampler.sample_many(lats, lngs), dtype=np.float64)

        if fallback is not None:
            missing = block == NO_DATA_VALUE
            if missing.any():
                block[missing] = fallback.sample_many(lats[missing], lngs[missing])
                filled += int(missing.sum())

        grid[start:stop] = block

    if filled:
        logger.info(f"Filled {filled} cells from the fallback source")

    if smooth:
        grid = smooth_heightmap(grid)

    return ResampledHeightmap(
        height_map=grid.astype(np.float32).ravel(),
        width=width,
        height=height,
        bounds=bounds_around(center, width, height),
    )


def smooth_heightmap(
    grid: NDArray[Any],
    radius: int = SMOOTHING_RADIUS,
    passes: int = SMOOTHING_PASSES,
) -> NDArray[np.float64]:
    """
    Separable box blur that ignores NO_DATA_VALUE cells.

    Each pass averages a horizontal then a vertical window of 2*radius+1
    cells, counting only valid neighbours; a cell with no valid neighbour
    stays NO_DATA_VALUE.
    """
    from scipy.ndimage import uniform_filter1d

    size = 2 * radius + 1
    result = np.asarray(grid, dtype=np.float64).copy()

    for _ in range(passes):
        for axis in (1, 0):
            mask = (result != NO_DATA_VALUE).astype(np.float64)
            values = np.where(mask > 0, result, 0.0)
            total = uniform_filter1d(values, size=size, axis=axis, mode="constant", cval=0.0)
            count = uniform_filter1d(mask, size=size, axis=axis, mode="constant", cval=0.0)

            has_data = count > 0.5 / size
            result = np.full_like(result, NO_DATA_VALUE)
            result[has_data] = total[has_data] / count[has_data]

    return result


def resample_image(
    sampler: PointSampler,
    center: LatLng,
    width: int,
    height: int,
) -> NDArray[np.uint8]:
    """Sample an RGBA colour source onto the same grid as resample_heightmap()."""
    image = np.empty((height, width, 4), dtype=np.uint8)
    for start in range(0, height, ROW_BLOCK):
        stop = min(start + ROW_BLOCK, height)
        lats, lngs = grid_coordinates(center, width, height, start, stop)
        image[start:stop] = sampler.sample_many(lats, lngs)
    return image


def height_range(height_map: NDArray[Any]) -> tuple[float, float]:
    """(min, max) over non-sentinel cells; (0, 0) when every cell is NO_DATA_VALUE."""
    values = np.asarray(height_map)
    valid = values[values != NO_DATA_VALUE]
    if valid.size == 0:
        return 0.0, 0.0
    return float(valid.min()), float(valid.max())
