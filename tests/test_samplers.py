"""Tests for the height and colour samplers."""

import math

import numpy as np
import pytest
from rasterio.transform import from_origin

from chuk_mcp_terrain.constants import MISSING_COLOR, NO_DATA_VALUE
from chuk_mcp_terrain.core.geo import unproject
from chuk_mcp_terrain.core.geotiff import GeoTiffRaster, decode_geotiff
from chuk_mcp_terrain.core.samplers import (
    AbsentHeightSampler,
    CallbackHeightSampler,
    CanvasColorSampler,
    GeoTiffHeightSampler,
    TerrariumHeightSampler,
)
from chuk_mcp_terrain.core.tiles import StitchedCanvas

from conftest import geotiff_bytes

ZOOM = 10
TILE_X, TILE_Y = 500, 300


def ramp_canvas():
    """One tile whose Terrarium height equals the pixel column."""
    pixels = np.zeros((256, 256, 4), dtype=np.uint8)
    pixels[..., 0] = 128
    pixels[..., 1] = np.arange(256, dtype=np.uint8)[np.newaxis, :]
    pixels[..., 3] = 255
    return StitchedCanvas(pixels=pixels, min_tile_x=TILE_X, min_tile_y=TILE_Y, zoom=ZOOM)


def canvas_point(px, py):
    return unproject(TILE_X * 256 + px, TILE_Y * 256 + py, ZOOM)


def raster(array, west, north, step, nodata=None):
    return GeoTiffRaster(
        array=np.asarray(array, dtype=np.float32),
        transform=from_origin(west, north, step, step),
        crs="EPSG:4326",
        nodata=nodata,
    )


class TestAbsentHeightSampler:
    def test_always_missing(self):
        sampler = AbsentHeightSampler()
        assert sampler.sample(1.0, 2.0) == NO_DATA_VALUE
        assert sampler.sample_many(np.zeros((2, 3)), np.zeros((2, 3))).shape == (2, 3)


class TestCallbackHeightSampler:
    def test_wraps_callable(self):
        sampler = CallbackHeightSampler(lambda lat, lng: lat + lng)
        assert sampler.sample(1.0, 2.0) == 3.0
        out = sampler.sample_many(np.array([[1.0, 2.0]]), np.array([[10.0, 20.0]]))
        assert out.tolist() == [[11.0, 22.0]]

    @pytest.mark.parametrize("bad", [math.nan, math.inf, None])
    def test_non_finite_becomes_sentinel(self, bad):
        assert CallbackHeightSampler(lambda lat, lng: bad).sample(0.0, 0.0) == NO_DATA_VALUE


class TestTerrariumHeightSampler:
    def test_pixel_centre_value(self):
        point = canvas_point(10.0, 5.0)
        assert TerrariumHeightSampler(ramp_canvas()).sample(point.lat, point.lng) == pytest.approx(
            10.0, abs=1e-6
        )

    def test_bilinear_between_columns(self):
        point = canvas_point(10.5, 5.25)
        assert TerrariumHeightSampler(ramp_canvas()).sample(point.lat, point.lng) == pytest.approx(
            10.5, abs=1e-6
        )

    def test_right_edge_clamped(self):
        point = canvas_point(255.5, 5.0)
        assert TerrariumHeightSampler(ramp_canvas()).sample(point.lat, point.lng) == pytest.approx(
            255.0, abs=1e-6
        )

    def test_outside_canvas_is_missing(self):
        point = canvas_point(300.0, 5.0)
        assert TerrariumHeightSampler(ramp_canvas()).sample(point.lat, point.lng) == NO_DATA_VALUE

    def test_vectorised_shape(self):
        a, b = canvas_point(1.0, 1.0), canvas_point(2.0, 1.0)
        lats = np.array([[a.lat, b.lat]])
        lngs = np.array([[a.lng, b.lng]])
        out = TerrariumHeightSampler(ramp_canvas()).sample_many(lats, lngs)
        assert out.shape == (1, 2)
        assert out[0].tolist() == pytest.approx([1.0, 2.0], abs=1e-6)


class TestGeoTiffHeightSampler:
    def test_bilinear_in_geographic_raster(self):
        # Sample i sits at lng 10.0 + 0.1 * i and holds the value i
        grid = np.tile(np.arange(10, dtype=np.float64), (10, 1))
        sampler = GeoTiffHeightSampler([raster(grid, 10.0, 1.0, 0.1)])
        assert sampler.sample(0.5, 10.3) == pytest.approx(3.0)
        assert sampler.sample(0.5, 10.35) == pytest.approx(3.5)

    def test_float32_raster_interpolates_in_float64(self):
        grid = np.tile(np.arange(10, dtype=np.float64) * 1000.0 + 0.125, (10, 1))
        sampler = GeoTiffHeightSampler([raster(grid, 10.0, 1.0, 0.1)])
        out = sampler.sample_many(np.array([0.5]), np.array([10.35]))
        assert out.dtype == np.float64
        assert out[0] == pytest.approx(3500.125)

    def test_outside_is_missing(self):
        sampler = GeoTiffHeightSampler([raster(np.ones((4, 4)), 10.0, 1.0, 0.1)])
        assert sampler.sample(5.0, 10.2) == NO_DATA_VALUE

    def test_nodata_corner_invalidates_sample(self):
        grid = np.ones((4, 4))
        grid[1, 1] = -9999.0
        sampler = GeoTiffHeightSampler([raster(grid, 0.0, 4.0, 1.0, nodata=-9999.0)])
        assert sampler.sample(2.6, 1.2) == NO_DATA_VALUE
        assert sampler.sample(1.5, 2.5) == pytest.approx(1.0)

    def test_nan_corner_invalidates_sample(self):
        grid = np.ones((4, 4))
        grid[2, 2] = np.nan
        sampler = GeoTiffHeightSampler([raster(grid, 0.0, 4.0, 1.0)])
        assert sampler.sample(1.7, 2.2) == NO_DATA_VALUE

    def test_first_valid_raster_wins(self):
        first = np.full((4, 4), 10.0)
        first[:, :2] = -9999.0
        second = np.full((4, 4), 20.0)
        sampler = GeoTiffHeightSampler(
            [raster(first, 0.0, 4.0, 1.0, nodata=-9999.0), raster(second, 0.0, 4.0, 1.0)]
        )
        lats = np.array([2.0, 2.0])
        lngs = np.array([0.9, 2.5])
        assert sampler.sample_many(lats, lngs).tolist() == [20.0, 10.0]

    def test_raster_beyond_antimeridian(self):
        # Raster spans 179.9 to 180.1 with unwrapped longitudes
        grid = np.full((10, 20), 7.0)
        sampler = GeoTiffHeightSampler([raster(grid, 179.9, 0.1, 0.01)])
        assert sampler.sample(0.05, -179.95) == pytest.approx(7.0)
        assert sampler.sample(0.05, 179.95) == pytest.approx(7.0)

    def test_projected_raster(self):
        from pyproj import Transformer

        to_utm = Transformer.from_crs("EPSG:4326", "EPSG:32632", always_xy=True)
        x, y = to_utm.transform(9.0, 45.0)
        data = geotiff_bytes(
            np.full((20, 20), 123.0), x - 100, y - 100, x + 100, y + 100, crs="EPSG:32632"
        )
        sampler = GeoTiffHeightSampler([decode_geotiff(data)])
        assert sampler.sample(45.0, 9.0) == pytest.approx(123.0)
        assert sampler.sample(45.1, 9.0) == NO_DATA_VALUE

    def test_no_rasters(self):
        assert GeoTiffHeightSampler([]).sample(0.0, 0.0) == NO_DATA_VALUE


class TestCanvasColorSampler:
    def test_nearest_pixel(self):
        pixels = np.zeros((256, 256, 4), dtype=np.uint8)
        pixels[5, 10] = (200, 100, 50, 255)
        canvas = StitchedCanvas(pixels=pixels, min_tile_x=TILE_X, min_tile_y=TILE_Y, zoom=ZOOM)
        point = canvas_point(10.6, 5.4)
        assert CanvasColorSampler(canvas).sample(point.lat, point.lng) == (200, 100, 50, 255)

    def test_outside_is_missing_colour(self):
        canvas = ramp_canvas()
        point = canvas_point(-20.0, 5.0)
        assert CanvasColorSampler(canvas).sample(point.lat, point.lng) == MISSING_COLOR

    def test_vectorised_shape(self):
        canvas = ramp_canvas()
        out = CanvasColorSampler(canvas).sample_many(np.zeros((3, 2)), np.zeros((3, 2)))
        assert out.shape == (3, 2, 4)
        assert out.dtype == np.uint8
