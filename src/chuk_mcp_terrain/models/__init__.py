"""Response models for chuk-mcp-terrain."""

from .responses import (
    CapabilitiesResponse,
    ErrorResponse,
    GpxzLimitsResponse,
    OsmAttachResponse,
    ProviderInfo,
    ProvidersResponse,
    StatusResponse,
    TerrainFetchResponse,
    UsgsStatusResponse,
    format_response,
)

__all__ = [
    "ErrorResponse",
    "ProviderInfo",
    "ProvidersResponse",
    "StatusResponse",
    "CapabilitiesResponse",
    "UsgsStatusResponse",
    "GpxzLimitsResponse",
    "TerrainFetchResponse",
    "OsmAttachResponse",
    "format_response",
]
