"""
Interfaces for the services a terrain request delegates to.

OpenStreetMap retrieval and texture generation live outside this package;
the TerrainManager only depends on the call shapes declared here.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .geo import GeoBounds, LatLng


@dataclass
class OSMFeature:
    """One OpenStreetMap way or relation reduced to a polyline/polygon."""

    id: str
    type: str  # road | building | vegetation | water | barrier
    geometry: list[LatLng]
    holes: list[list[LatLng]] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class TextureResult:
    url: str | None = None
    image: bytes | None = None


OSMFetcher = Callable[[GeoBounds], Awaitable[list[OSMFeature]]]

# (dataset or satellite JPEG bytes, options) -> TextureResult
TextureFn = Callable[[Any, dict[str, Any]], Awaitable[TextureResult]]


@dataclass
class TextureGenerators:
    """Optional texture producers; a missing one is simply skipped."""

    segment_satellite: TextureFn | None = None
    osm_texture: TextureFn | None = None
    hybrid_texture: TextureFn | None = None
    segmented_hybrid_texture: TextureFn | None = None
