"""
Point samplers over the raster sources a terrain request can produce.

Height samplers answer "elevation in metres at (lat, lng)" and return
NO_DATA_VALUE where their source has no coverage. The colour sampler answers
"RGBA at (lat, lng)". Every sampler has a scalar sample() and a vectorised
sample_many() used by the resampler.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..constants import MISSING_COLOR, NO_DATA_VALUE
from .geotiff import GeoTiffRaster
from .tiles import StitchedCanvas, decode_terrarium

logger = logging.getLogger(__name__)

FloatArray = NDArray[np.float64]


class HeightSampler:
    """Base class: subclasses implement sample_many()."""

    def sample(self, lat: float, lng: float) -> float:
        return float(self.sample_many(np.array([lat]), np.array([lng]))[0])

    def sample_many(self, lats: NDArray[Any], lngs: NDArray[Any]) -> FloatArray:
        raise NotImplementedError


class AbsentHeightSampler(HeightSampler):
    """No elevation source at all."""

    def sample_many(self, lats: NDArray[Any], lngs: NDArray[Any]) -> FloatArray:
        return np.full(np.shape(lats), NO_DATA_VALUE, dtype=np.float64)


class CallbackHeightSampler(HeightSampler):
    """Wrap any (lat, lng) -> metres callable; non-finite results become NO_DATA_VALUE."""

    def __init__(self, fn: Callable[[float, float], float]) -> None:
        self.fn = fn

    def sample_many(self, lats: NDArray[Any], lngs: NDArray[Any]) -> FloatArray:
        lats = np.asarray(lats, dtype=np.float64)
        lngs = np.asarray(lngs, dtype=np.float64)
        out = np.empty(lats.shape, dtype=np.float64)
        for idx in np.ndindex(lats.shape):
            value = self.fn(float(lats[idx]), float(lngs[idx]))
            out[idx] = value if value is not None and np.isfinite(value) else NO_DATA_VALUE
        return out


class TerrariumHeightSampler(HeightSampler):
    """Bilinear sampler over a stitched Terrarium canvas.

    Neighbours are clamped at the canvas edges; points that fall outside the
    canvas entirely return NO_DATA_VALUE.
    """

    def __init__(self, canvas: StitchedCanvas) -> None:
        self.canvas = canvas
        self.heights = decode_terrarium(canvas.pixels)

    def sample_many(self, lats: NDArray[Any], lngs: NDArray[Any]) -> FloatArray:
        h, w = self.heights.shape
        x, y = self.canvas.pixel_coords(lats, lngs)
        outside = (x < 0) | (x >= w) | (y < 0) | (y >= h)

        x0 = np.floor(x)
        y0 = np.floor(y)
        dx = x - x0
        dy = y - y0
        x0 = x0.astype(np.int64)
        y0 = y0.astype(np.int64)
        xa = np.clip(x0, 0, w - 1)
        xb = np.clip(x0 + 1, 0, w - 1)
        ya = np.clip(y0, 0, h - 1)
        yb = np.clip(y0 + 1, 0, h - 1)

        top = (1 - dx) * self.heights[ya, xa] + dx * self.heights[ya, xb]
        bottom = (1 - dx) * self.heights[yb, xa] + dx * self.heights[yb, xb]
        result = (1 - dy) * top + dy * bottom
        result[outside] = NO_DATA_VALUE
        return result


class GeoTiffHeightSampler(HeightSampler):
    """Sample a list of GeoTIFF rasters in order; the first valid value wins."""

    def __init__(self, rasters: Sequence[GeoTiffRaster]) -> None:
        self.rasters = list(rasters)
        self._transformers: dict[int, Any] = {}

    def sample_many(self, lats: NDArray[Any], lngs: NDArray[Any]) -> FloatArray:
        shape = np.shape(lats)
        flat_lats = np.asarray(lats, dtype=np.float64).ravel()
        flat_lngs = np.asarray(lngs, dtype=np.float64).ravel()
        result = np.full(flat_lats.shape, NO_DATA_VALUE, dtype=np.float64)
        pending = np.arange(flat_lats.size)

        for index, raster in enumerate(self.rasters):
            if pending.size == 0:
                break
            xs, ys = self._to_raster_crs(index, raster, flat_lats[pending], flat_lngs[pending])
            values = _bilinear(raster, xs, ys)
            found = values != NO_DATA_VALUE
            result[pending[found]] = values[found]
            pending = pending[~found]

        return result.reshape(shape)

    def _to_raster_crs(
        self, index: int, raster: GeoTiffRaster, lats: FloatArray, lngs: FloatArray
    ) -> tuple[FloatArray, FloatArray]:
        if raster.is_geographic:
            # Shift longitudes by whole turns towards the raster centre
            center_lng = raster.transform.c + raster.transform.a * raster.width / 2.0
            shifted = lngs + 360.0 * np.round((center_lng - lngs) / 360.0)
            return shifted, lats

        transformer = self._transformers.get(index)
        if transformer is None:
            from pyproj import Transformer

            transformer = Transformer.from_crs("EPSG:4326", raster.crs, always_xy=True)
            self._transformers[index] = transformer
        xs, ys = transformer.transform(lngs, lats)
        return np.asarray(xs, dtype=np.float64), np.asarray(ys, dtype=np.float64)


def _bilinear(raster: GeoTiffRaster, xs: FloatArray, ys: FloatArray) -> FloatArray:
    """Bilinear interpolation in raster pixel space; any invalid corner yields NO_DATA_VALUE."""
    array = raster.array
    h, w = array.shape
    inv = ~raster.transform
    cols = inv.a * xs + inv.b * ys + inv.c
    rows = inv.d * xs + inv.e * ys + inv.f

    c0 = np.floor(cols)
    r0 = np.floor(rows)
    dc = cols - c0
    dr = rows - r0
    c0 = c0.astype(np.int64)
    r0 = r0.astype(np.int64)

    valid = (c0 >= 0) & (r0 >= 0) & (c0 + 1 < w) & (r0 + 1 < h)
    result = np.full(xs.shape, NO_DATA_VALUE, dtype=np.float64)
    if not valid.any():
        return result

    c0, r0, dc, dr = c0[valid], r0[valid], dc[valid], dr[valid]
    v00 = array[r0, c0]
    v01 = array[r0, c0 + 1]
    v10 = array[r0 + 1, c0]
    v11 = array[r0 + 1, c0 + 1]

    corners = np.stack([v00, v01, v10, v11])
    bad = np.isnan(corners).any(axis=0) | (corners == NO_DATA_VALUE).any(axis=0)
    if raster.nodata is not None and not np.isnan(raster.nodata):
        bad |= (corners == raster.nodata).any(axis=0)

    values = (1 - dr) * ((1 - dc) * v00 + dc * v01) + dr * ((1 - dc) * v10 + dc * v11)
    values[bad] = NO_DATA_VALUE
    result[valid] = values
    return result


class CanvasColorSampler:
    """Nearest-pixel RGBA sampler over a stitched satellite canvas."""

    def __init__(self, canvas: StitchedCanvas) -> None:
        self.canvas = canvas

    def sample(self, lat: float, lng: float) -> tuple[int, int, int, int]:
        rgba = self.sample_many(np.array([lat]), np.array([lng]))[0]
        return (int(rgba[0]), int(rgba[1]), int(rgba[2]), int(rgba[3]))

    def sample_many(self, lats: NDArray[Any], lngs: NDArray[Any]) -> NDArray[np.uint8]:
        pixels = self.canvas.pixels
        h, w = pixels.shape[:2]
        x, y = self.canvas.pixel_coords(lats, lngs)
        xi = np.floor(x).astype(np.int64)
        yi = np.floor(y).astype(np.int64)
        inside = (xi >= 0) & (xi < w) & (yi >= 0) & (yi < h)

        out = np.empty(np.shape(x) + (4,), dtype=np.uint8)
        out[...] = MISSING_COLOR
        out[inside] = pixels[yi[inside], xi[inside]]
        return out
