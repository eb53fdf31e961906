"""
GeoTIFF decode/encode for premium elevation sources and heightmap artifacts.

All functions are synchronous; callers wrap them in asyncio.to_thread() when
they run on the event loop.
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..constants import NO_DATA_VALUE, ErrorMessages

logger = logging.getLogger(__name__)

FloatArray = NDArray[np.floating[Any]]
Transform = Any  # rasterio.Affine


class GeoTiffDecodeError(ValueError):
    """Payload could not be read as a single-band GeoTIFF."""


@dataclass
class GeoTiffRaster:
    """A decoded elevation raster with its own georeferencing."""

    array: FloatArray
    transform: Transform
    crs: str | None
    nodata: float | None
    raw: bytes = b""

    @property
    def width(self) -> int:
        return int(self.array.shape[1])

    @property
    def height(self) -> int:
        return int(self.array.shape[0])

    @property
    def is_geographic(self) -> bool:
        """True when the raster is in lat/lng degrees (or carries no CRS)."""
        if self.crs is None:
            return True
        from pyproj import CRS
        from pyproj.exceptions import CRSError

        try:
            return bool(CRS.from_user_input(self.crs).is_geographic)
        except CRSError:
            logger.warning(f"Unrecognised raster CRS {self.crs!r}; treating as projected")
            return False


def decode_geotiff(data: bytes) -> GeoTiffRaster:
    """
    Decode GeoTIFF bytes into a float32 array plus transform, CRS and nodata.

    Args:
        data: Raw GeoTIFF bytes

    Returns:
        GeoTiffRaster holding band 1

    Raises:
        GeoTiffDecodeError: if the bytes are empty or not a readable raster
    """
    from rasterio.io import MemoryFile

    if not data:
        raise GeoTiffDecodeError(ErrorMessages.GEOTIFF_DECODE.format("empty payload"))

    try:
        with MemoryFile(data) as memfile:
            with memfile.open() as src:
                array = src.read(1).astype(np.float32)
                transform = src.transform
                crs = src.crs.to_string() if src.crs is not None else None
                nodata = src.nodata
    except Exception as e:
        raise GeoTiffDecodeError(ErrorMessages.GEOTIFF_DECODE.format(e)) from e

    if array.size == 0:
        raise GeoTiffDecodeError(ErrorMessages.GEOTIFF_DECODE.format("zero-sized raster"))

    return GeoTiffRaster(array=array, transform=transform, crs=crs, nodata=nodata, raw=data)


def heightmap_to_geotiff(
    height_map: FloatArray,
    width: int,
    height: int,
    bounds_wsen: list[float],
) -> bytes:
    """
    Encode a resampled heightmap as a float32 EPSG:4326 GeoTIFF.

    Args:
        height_map: Flat or (height, width) array of elevations
        width: Grid width in pixels
        height: Grid height in pixels
        bounds_wsen: [west, south, east, north]; east may be below west
            for a grid that crosses the antimeridian

    Returns:
        GeoTIFF bytes with NO_DATA_VALUE declared as nodata
    """
    from rasterio.io import MemoryFile
    from rasterio.transform import from_bounds

    west, south, east, north = bounds_wsen
    if east <= west:
        east += 360.0
    transform = from_bounds(west, south, east, north, width, height)
    grid = np.asarray(height_map, dtype=np.float32).reshape(height, width)

    memfile = MemoryFile()
    with memfile.open(
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype="float32",
        crs="EPSG:4326",
        transform=transform,
        nodata=NO_DATA_VALUE,
    ) as dst:
        dst.write(grid[np.newaxis, :])

    return memfile.read()
