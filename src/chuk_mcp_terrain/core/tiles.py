"""
Slippy-map tile fetching and stitching.

Fetches every tile covering a GeoBounds at one zoom level with bounded
concurrency and pastes them into a single RGBA canvas. A tile that cannot be
fetched or decoded is painted with a flat fill colour and counted; it never
fails the whole stitch.
"""

import io
import logging
from dataclasses import dataclass
from typing import Any

import httpx
import numpy as np
from numpy.typing import NDArray
from PIL import Image

from ..constants import (
    ELEVATION_FILL_RGBA,
    MAX_LATITUDE,
    SATELLITE_FILL_RGBA,
    SATELLITE_URL,
    TERRARIUM_URL,
    TILE_FETCH_CONCURRENCY,
    TILE_SIZE,
    TILE_TIMEOUT_S,
)
from .cancellation import CancellationToken
from .concurrency import bounded_map
from .geo import GeoBounds, TileCoordinate, tile_range, world_size

logger = logging.getLogger(__name__)

RGBAArray = NDArray[np.uint8]


class TileKind:
    ELEVATION = "elevation"
    SATELLITE = "satellite"


def tile_url(kind: str, coord: TileCoordinate) -> str:
    """Build the provider URL for a tile; x is wrapped into the valid column range."""
    tile = coord.wrapped()
    if kind == TileKind.ELEVATION:
        return f"{TERRARIUM_URL}/{tile.zoom}/{tile.x}/{tile.y}.png"
    if kind == TileKind.SATELLITE:
        return f"{SATELLITE_URL}/{tile.zoom}/{tile.y}/{tile.x}"
    raise ValueError(f"Unknown tile kind: {kind}")


def fill_color(kind: str) -> tuple[int, int, int, int]:
    return ELEVATION_FILL_RGBA if kind == TileKind.ELEVATION else SATELLITE_FILL_RGBA


def decode_terrarium(rgb: NDArray[Any]) -> NDArray[np.float64]:
    """Decode Terrarium-encoded pixels (..., 3+) to metres: r*256 + g + b/256 - 32768."""
    arr = np.asarray(rgb, dtype=np.float64)
    return arr[..., 0] * 256.0 + arr[..., 1] + arr[..., 2] / 256.0 - 32768.0


@dataclass
class StitchedCanvas:
    """RGBA mosaic of tiles plus the tile origin needed to map lat/lng onto it."""

    pixels: RGBAArray
    min_tile_x: int
    min_tile_y: int
    zoom: int
    tiles_total: int = 0
    tiles_failed: int = 0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def tiles_ok(self) -> int:
        return self.tiles_total - self.tiles_failed

    def pixel_coords(
        self, lats: NDArray[Any], lngs: NDArray[Any]
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Continuous canvas pixel coordinates for arrays of lat/lng.

        The x offset is taken modulo the world width, so a normalised longitude
        just east of the antimeridian lands on the right of a canvas whose
        origin lies just west of it.
        """
        lats = np.clip(np.asarray(lats, dtype=np.float64), -MAX_LATITUDE, MAX_LATITUDE)
        lngs = np.asarray(lngs, dtype=np.float64)
        z = world_size(self.zoom)

        sin = np.sin(np.radians(lats))
        px = z * (lngs + 180.0) / 360.0
        py = z * (0.5 - 0.25 * np.log((1 + sin) / (1 - sin)) / np.pi)

        local_x = np.mod(px - self.min_tile_x * TILE_SIZE, z)
        local_y = py - self.min_tile_y * TILE_SIZE
        return local_x, local_y


class TileFetcher:
    """Fetches and stitches Terrarium elevation or ArcGIS satellite tiles."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def fetch_stitched(
        self,
        bounds: GeoBounds,
        zoom: int,
        kind: str,
        concurrency: int = TILE_FETCH_CONCURRENCY,
        cancel: CancellationToken | None = None,
    ) -> StitchedCanvas:
        """
        Fetch all tiles covering bounds and paste them into one canvas.

        Args:
            bounds: Area to cover (may cross the antimeridian)
            zoom: Tile zoom level
            kind: TileKind.ELEVATION or TileKind.SATELLITE
            concurrency: Maximum tile requests in flight
            cancel: Optional cancellation token

        Returns:
            StitchedCanvas with failed tiles painted in the kind's fill colour
        """
        nw, se = tile_range(bounds, zoom)
        max_y = 2**zoom - 1
        min_y = max(0, min(nw.y, max_y))
        bottom_y = max(0, min(se.y, max_y))

        cols = se.x - nw.x + 1
        rows = bottom_y - min_y + 1
        pixels = np.empty((rows * TILE_SIZE, cols * TILE_SIZE, 4), dtype=np.uint8)
        pixels[:, :] = fill_color(kind)

        coords = [
            TileCoordinate(x=x, y=y, zoom=zoom)
            for y in range(min_y, bottom_y + 1)
            for x in range(nw.x, se.x + 1)
        ]
        logger.info(f"Fetching {len(coords)} {kind} tiles at zoom {zoom} ({cols}x{rows})")

        async def fetch_one(client: httpx.AsyncClient, coord: TileCoordinate) -> bool:
            url = tile_url(kind, coord)
            request = client.get(url)
            response = await (cancel.guard(request) if cancel is not None else request)
            response.raise_for_status()
            tile = _decode_tile(response.content)

            top = (coord.y - min_y) * TILE_SIZE
            left = (coord.x - nw.x) * TILE_SIZE
            pixels[top : top + TILE_SIZE, left : left + TILE_SIZE] = tile
            return True

        if self._client is not None:
            results = await bounded_map(
                coords, lambda c: fetch_one(self._client, c), concurrency, cancel
            )
        else:
            async with httpx.AsyncClient(timeout=TILE_TIMEOUT_S) as client:
                results = await bounded_map(
                    coords, lambda c: fetch_one(client, c), concurrency, cancel
                )

        failed = sum(1 for ok in results if not ok)
        if failed:
            logger.warning(f"{failed} of {len(coords)} {kind} tiles failed; filled with flat colour")

        return StitchedCanvas(
            pixels=pixels,
            min_tile_x=nw.x,
            min_tile_y=min_y,
            zoom=zoom,
            tiles_total=len(coords),
            tiles_failed=failed,
        )


def _decode_tile(data: bytes) -> RGBAArray:
    """Decode a PNG/JPEG tile into a (256, 256, 4) uint8 array."""
    with Image.open(io.BytesIO(data)) as img:
        rgba = img.convert("RGBA")
        if rgba.size != (TILE_SIZE, TILE_SIZE):
            rgba = rgba.resize((TILE_SIZE, TILE_SIZE))
        return np.asarray(rgba, dtype=np.uint8)
