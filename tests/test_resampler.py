"""Tests for chuk_mcp_terrain.core.resampler."""

import numpy as np
import pytest

from chuk_mcp_terrain.constants import METERS_PER_DEG_LAT, NO_DATA_VALUE
from chuk_mcp_terrain.core.geo import LatLng, bounds_around, meters_per_deg_lng
from chuk_mcp_terrain.core.resampler import (
    ROW_BLOCK,
    grid_coordinates,
    height_range,
    resample_heightmap,
    resample_image,
    smooth_heightmap,
)
from chuk_mcp_terrain.core.samplers import AbsentHeightSampler, CallbackHeightSampler

CENTER = LatLng(lat=46.5, lng=7.0)


class ConstantColor:
    def __init__(self, rgba):
        self.rgba = rgba

    def sample_many(self, lats, lngs):
        out = np.empty(np.shape(lats) + (4,), dtype=np.uint8)
        out[...] = self.rgba
        return out


class TestGridCoordinates:
    def test_shape_and_centre(self):
        lats, lngs = grid_coordinates(CENTER, 10, 6)
        assert lats.shape == lngs.shape == (6, 10)
        assert lats[3, 5] == pytest.approx(CENTER.lat)
        assert lngs[3, 5] == pytest.approx(CENTER.lng)

    def test_one_metre_spacing(self):
        lats, lngs = grid_coordinates(CENTER, 4, 4)
        assert (lats[0, 0] - lats[1, 0]) * METERS_PER_DEG_LAT == pytest.approx(1.0)
        assert (lngs[0, 1] - lngs[0, 0]) * meters_per_deg_lng(CENTER.lat) == pytest.approx(1.0)

    def test_north_is_row_zero(self):
        lats, _ = grid_coordinates(CENTER, 2, 5)
        assert np.all(np.diff(lats[:, 0]) < 0)

    def test_row_window(self):
        full_lats, full_lngs = grid_coordinates(CENTER, 5, 8)
        lats, lngs = grid_coordinates(CENTER, 5, 8, 3, 6)
        np.testing.assert_allclose(lats, full_lats[3:6])
        np.testing.assert_allclose(lngs, full_lngs[3:6])

    def test_longitudes_normalised_across_antimeridian(self):
        center = LatLng(lat=-16.5, lng=179.9995)
        _, lngs = grid_coordinates(center, 200, 2)
        assert lngs.max() < 180.0
        assert lngs.min() >= -180.0
        assert (lngs > 0).any() and (lngs < 0).any()


class TestResampleHeightmap:
    def test_constant_sampler(self):
        result = resample_heightmap(CallbackHeightSampler(lambda lat, lng: 42.0), CENTER, 8, 5)
        assert result.height_map.dtype == np.float32
        assert result.height_map.shape == (40,)
        assert (result.height_map == 42.0).all()
        assert (result.width, result.height) == (8, 5)
        assert result.bounds == bounds_around(CENTER, 8, 5)

    def test_row_major_layout(self):
        sampler = CallbackHeightSampler(lambda lat, lng: (lat - CENTER.lat) * METERS_PER_DEG_LAT)
        result = resample_heightmap(sampler, CENTER, 3, 4)
        grid = result.height_map.reshape(4, 3)
        np.testing.assert_allclose(grid[:, 0], [2.0, 1.0, 0.0, -1.0], atol=1e-3)

    def test_multiple_row_blocks(self):
        rows = ROW_BLOCK + 7
        sampler = CallbackHeightSampler(lambda lat, lng: (lat - CENTER.lat) * METERS_PER_DEG_LAT)
        result = resample_heightmap(sampler, CENTER, 2, rows)
        grid = result.height_map.reshape(rows, 2)
        np.testing.assert_allclose(np.diff(grid[:, 0]), -1.0, atol=1e-3)

    def test_fallback_fills_gaps(self):
        primary = CallbackHeightSampler(
            lambda lat, lng: 500.0 if lng >= CENTER.lng else NO_DATA_VALUE
        )
        fallback = CallbackHeightSampler(lambda lat, lng: 7.0)
        grid = resample_heightmap(primary, CENTER, 10, 4, fallback=fallback).height_map.reshape(4, 10)
        assert (grid[:, :5] == 7.0).all()
        assert (grid[:, 5:] == 500.0).all()

    def test_missing_everywhere_keeps_sentinel(self):
        result = resample_heightmap(AbsentHeightSampler(), CENTER, 4, 4, fallback=AbsentHeightSampler())
        assert (result.height_map == NO_DATA_VALUE).all()

    def test_smoothing_applied_after_fallback(self):
        primary = CallbackHeightSampler(
            lambda lat, lng: 100.0 if lng >= CENTER.lng else NO_DATA_VALUE
        )
        fallback = CallbackHeightSampler(lambda lat, lng: 0.0)
        grid = resample_heightmap(
            primary, CENTER, 40, 20, smooth=True, fallback=fallback
        ).height_map.reshape(20, 40)

        assert (grid != NO_DATA_VALUE).all()
        assert 0.0 < grid[10, 20] < 100.0
        assert grid[10, 0] == pytest.approx(0.0)
        assert grid[10, 39] == pytest.approx(100.0)

    def test_dateline_grid_is_continuous(self):
        center = LatLng(lat=-16.5, lng=179.9995)

        def unwrapped(lat, lng):
            return ((lng if lng >= 0 else lng + 360.0) - 179.99) * 1e6

        grid = resample_heightmap(CallbackHeightSampler(unwrapped), center, 200, 2).height_map
        row = grid.reshape(2, 200)[0].astype(np.float64)
        steps = np.diff(row)
        expected = 1e6 / meters_per_deg_lng(center.lat)
        np.testing.assert_allclose(steps, expected, rtol=0.05)


class TestSmoothHeightmap:
    def test_uniform_unchanged(self):
        grid = np.full((20, 20), 12.5)
        np.testing.assert_allclose(smooth_heightmap(grid), 12.5)

    def test_step_is_blurred(self):
        grid = np.zeros((30, 60))
        grid[:, 30:] = 100.0
        out = smooth_heightmap(grid)
        assert 0.0 < out[15, 29] < 100.0
        assert 0.0 < out[15, 30] < 100.0
        assert out[15, 0] == pytest.approx(0.0)

    def test_sentinel_not_averaged_in(self):
        grid = np.full((20, 20), 50.0)
        grid[:, :3] = NO_DATA_VALUE
        out = smooth_heightmap(grid)
        valid = out[out != NO_DATA_VALUE]
        np.testing.assert_allclose(valid, 50.0)

    def test_isolated_gap_filled(self):
        grid = np.full((20, 20), 50.0)
        grid[10, 10] = NO_DATA_VALUE
        assert smooth_heightmap(grid)[10, 10] == pytest.approx(50.0)

    def test_all_missing_stays_missing(self):
        grid = np.full((5, 5), NO_DATA_VALUE)
        assert (smooth_heightmap(grid) == NO_DATA_VALUE).all()


class TestResampleImage:
    def test_shape_and_colour(self):
        image = resample_image(ConstantColor((1, 2, 3, 255)), CENTER, 7, 3)
        assert image.shape == (3, 7, 4)
        assert image.dtype == np.uint8
        assert (image == (1, 2, 3, 255)).all()


class TestHeightRange:
    def test_excludes_sentinel(self):
        assert height_range(np.array([NO_DATA_VALUE, -5.0, 20.0])) == (-5.0, 20.0)

    def test_all_missing(self):
        assert height_range(np.full(4, NO_DATA_VALUE)) == (0.0, 0.0)
