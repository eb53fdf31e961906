"""
Geographic primitives and Web Mercator math.

Pure functions only. Longitudes are normalised to [-180, 180); a GeoBounds
whose west edge is greater than its east edge crosses the antimeridian.
"""

import math
from dataclasses import dataclass

from ..constants import MAX_LATITUDE, METERS_PER_DEG_LAT, TILE_SIZE, ErrorMessages


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True)
class TileCoordinate:
    """Integer Mercator tile index for a 256x256-px tile scheme."""

    x: int
    y: int
    zoom: int

    def wrapped(self) -> "TileCoordinate":
        """Wrap x modulo 2**zoom so tiles past the antimeridian address valid columns."""
        n = 2**self.zoom
        return TileCoordinate(x=self.x % n, y=self.y, zoom=self.zoom)


@dataclass(frozen=True)
class GeoBounds:
    north: float
    south: float
    east: float
    west: float

    def __post_init__(self) -> None:
        if not self.north > self.south:
            raise ValueError(ErrorMessages.INVALID_BOUNDS.format(self.north, self.south))

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    @property
    def lat_span(self) -> float:
        return self.north - self.south

    @property
    def lng_span(self) -> float:
        """Longitudinal width in degrees, always positive."""
        span = self.east - self.west
        if span <= 0:
            span += 360.0
        return span

    @property
    def center(self) -> LatLng:
        return LatLng(
            lat=(self.north + self.south) / 2.0,
            lng=normalize_lng(self.west + self.lng_span / 2.0),
        )

    @property
    def unwrapped_east(self) -> float:
        """East edge expressed relative to west, so that east > west always holds."""
        return self.west + self.lng_span

    def area_km2(self) -> float:
        """Approximate area using the cosine of the mid latitude."""
        mid_lat = (self.north + self.south) / 2.0
        lat_km = self.lat_span * METERS_PER_DEG_LAT / 1000.0
        lng_km = self.lng_span * meters_per_deg_lng(mid_lat) / 1000.0
        return lat_km * lng_km

    def as_bbox(self) -> list[float]:
        """[west, south, east, north] ordering used by most HTTP APIs."""
        return [self.west, self.south, self.east, self.north]


def normalize_lng(lng: float) -> float:
    """Wrap any longitude into [-180, 180)."""
    return ((lng + 180.0) % 360.0 + 360.0) % 360.0 - 180.0


def meters_per_deg_lng(lat: float) -> float:
    return METERS_PER_DEG_LAT * math.cos(math.radians(lat))


def world_size(zoom: int) -> float:
    return TILE_SIZE * 2.0**zoom


def project(lat: float, lng: float, zoom: int) -> tuple[float, float]:
    """Project lat/lng to pixel coordinates in a 256 * 2**zoom world image.

    Latitude is clamped to the Web Mercator cutoff so y stays finite at the poles.
    """
    lat_clamped = max(min(MAX_LATITUDE, lat), -MAX_LATITUDE)
    sin = math.sin(math.radians(lat_clamped))
    z = world_size(zoom)

    x = z * (lng + 180.0) / 360.0
    y = z * (0.5 - 0.25 * math.log((1 + sin) / (1 - sin)) / math.pi)
    return x, y


def unproject(x: float, y: float, zoom: int) -> LatLng:
    """Inverse of project() for points inside the clamped latitude range."""
    z = world_size(zoom)
    lng = x / z * 360.0 - 180.0
    n = math.pi * (1.0 - 2.0 * y / z)
    lat = math.degrees(math.atan(math.sinh(n)))
    return LatLng(lat=lat, lng=lng)


def lat_lng_to_tile(lat: float, lng: float, zoom: int) -> TileCoordinate:
    x, y = project(lat, lng, zoom)
    return TileCoordinate(x=math.floor(x / TILE_SIZE), y=math.floor(y / TILE_SIZE), zoom=zoom)


def tile_range(bounds: GeoBounds, zoom: int) -> tuple[TileCoordinate, TileCoordinate]:
    """Top-left and bottom-right tiles covering bounds (x may exceed 2**zoom - 1)."""
    nw = lat_lng_to_tile(bounds.north, bounds.west, zoom)
    se = lat_lng_to_tile(bounds.south, bounds.unwrapped_east, zoom)
    return nw, se


def bounds_around(center: LatLng, width_m: float, height_m: float) -> GeoBounds:
    """Bounding box covering width_m x height_m metres around center.

    North and south are clamped to the Web Mercator cutoff.
    """
    lat_span = height_m / METERS_PER_DEG_LAT
    lng_span = width_m / meters_per_deg_lng(center.lat)
    return GeoBounds(
        north=min(center.lat + lat_span / 2.0, MAX_LATITUDE),
        south=max(center.lat - lat_span / 2.0, -MAX_LATITUDE),
        east=normalize_lng(center.lng + lng_span / 2.0),
        west=normalize_lng(center.lng - lng_span / 2.0),
    )
