"""Shared test fixtures for chuk-mcp-terrain."""

import io
import math

import httpx
import numpy as np
import pytest
from unittest.mock import AsyncMock, MagicMock


# ── Raster builders ────────────────────────────────────────────────


def terrarium_rgb(elevation: float) -> tuple[int, int, int]:
    """Encode one elevation in metres as a Terrarium (r, g, b) triple."""
    v = elevation + 32768.0
    r = int(v // 256)
    g = int(v - r * 256)
    b = int(round((v - math.floor(v)) * 256))
    return r, g, b


def png_tile(rgb: tuple[int, int, int], size: int = 256) -> bytes:
    """Solid-colour PNG tile."""
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGBA", (size, size), (*rgb, 255)).save(buf, format="PNG")
    return buf.getvalue()


def geotiff_bytes(
    array,
    west: float,
    south: float,
    east: float,
    north: float,
    crs: str = "EPSG:4326",
    nodata: float | None = None,
) -> bytes:
    """Single-band float32 GeoTIFF spanning [west, south, east, north] in `crs` units."""
    from rasterio.io import MemoryFile
    from rasterio.transform import from_bounds

    data = np.asarray(array, dtype=np.float32)
    height, width = data.shape
    memfile = MemoryFile()
    with memfile.open(
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype="float32",
        crs=crs,
        transform=from_bounds(west, south, east, north, width, height),
        nodata=nodata,
    ) as dst:
        dst.write(data[np.newaxis, :])
    return memfile.read()


def constant_geotiff(value: float, west: float, south: float, east: float, north: float) -> bytes:
    return geotiff_bytes(np.full((16, 16), value), west, south, east, north)


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by `handler(request) -> httpx.Response`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── Fixtures ───────────────────────────────────────────────────────


@pytest.fixture
def flat_terrarium_png():
    """PNG tile encoding a constant 100 m elevation."""
    return png_tile(terrarium_rgb(100.0))


@pytest.fixture
def satellite_png():
    return png_tile((10, 120, 30))


@pytest.fixture
def mock_artifact_store():
    """Mock artifact store."""
    store = AsyncMock()
    store.store = AsyncMock(return_value=None)
    store.retrieve = AsyncMock(return_value=b"fake-geotiff-bytes")
    return store


@pytest.fixture
def mock_manager(mock_artifact_store):
    """TerrainManager with mocked store."""
    from chuk_mcp_terrain.core.terrain_manager import TerrainManager

    manager = TerrainManager()
    manager._get_store = MagicMock(return_value=mock_artifact_store)
    return manager


@pytest.fixture
def mock_mcp():
    """Mock ChukMCPServer."""
    mcp = MagicMock()
    mcp.tool = MagicMock(return_value=lambda fn: fn)
    return mcp
