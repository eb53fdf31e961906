"""
Response models for chuk-mcp-terrain tools.

All tool responses are Pydantic models for type safety and consistent API.
"""

from pydantic import BaseModel, ConfigDict, Field


def format_response(model: BaseModel, output_mode: str = "json") -> str:
    """Format a response model as JSON or human-readable text.

    Args:
        model: Pydantic response model instance
        output_mode: "json" (default) or "text"

    Returns:
        Formatted string
    """
    if output_mode == "text" and hasattr(model, "to_text"):
        return str(model.to_text())
    return str(model.model_dump_json())


class ErrorResponse(BaseModel):
    """Error response model for tool failures."""

    model_config = ConfigDict(extra="forbid")

    error: str = Field(..., description="Error message describing what went wrong")

    def to_text(self) -> str:
        return f"Error: {self.error}"


class ProviderInfo(BaseModel):
    """Summary information about an elevation provider."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Provider identifier (gpxz, usgs, global)")
    name: str = Field(..., description="Human-readable provider name")
    kind: str = Field(..., description="premium, regional or baseline")
    coverage: str = Field(..., description="Coverage description")
    requires_api_key: bool = Field(..., description="Whether an API key is needed")
    access_url: str = Field(..., description="Provider endpoint")
    llm_guidance: str = Field(..., description="LLM-friendly usage guidance")

    def to_text(self) -> str:
        key = ", API key" if self.requires_api_key else ""
        return f"{self.id}: {self.name} ({self.kind}, {self.coverage}{key})"


class ProvidersResponse(BaseModel):
    """Response model for listing elevation providers."""

    model_config = ConfigDict(extra="forbid")

    providers: list[ProviderInfo] = Field(..., description="Providers in priority order")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [self.message, ""]
        for p in self.providers:
            lines.append(f"  {p.to_text()}")
        return "\n".join(lines)


class StatusResponse(BaseModel):
    """Response model for server status queries."""

    model_config = ConfigDict(extra="forbid")

    server: str = Field(default="chuk-mcp-terrain", description="Server name")
    version: str = Field(default="0.1.0", description="Server version")
    available_providers: list[str] = Field(..., description="Elevation provider identifiers")
    storage_provider: str = Field(..., description="Active storage provider (memory/filesystem/s3)")
    artifact_store_available: bool = Field(
        default=False, description="Whether artifact store is available"
    )
    gpxz_key_configured: bool = Field(
        default=False, description="Whether a default GPXZ API key is configured"
    )
    cached_datasets: int = Field(default=0, description="Terrain datasets held in memory", ge=0)

    def to_text(self) -> str:
        store_status = "available" if self.artifact_store_available else "not available"
        gpxz = "configured" if self.gpxz_key_configured else "not configured"
        lines = [
            f"{self.server} v{self.version}",
            f"Providers: {', '.join(self.available_providers)}",
            f"Storage: {self.storage_provider}",
            f"Artifact store: {store_status}",
            f"GPXZ key: {gpxz}",
            f"Cached datasets: {self.cached_datasets}",
        ]
        return "\n".join(lines)


class CapabilitiesResponse(BaseModel):
    """Response model for server capabilities listing."""

    model_config = ConfigDict(extra="forbid")

    server: str = Field(..., description="Server name")
    version: str = Field(..., description="Server version")
    providers: list[ProviderInfo] = Field(..., description="Elevation providers")
    texture_kinds: list[str] = Field(..., description="Texture outputs a dataset may carry")
    max_resolution_m: int = Field(..., description="Largest allowed grid side in metres")
    tool_count: int = Field(..., description="Number of available tools", ge=0)
    llm_guidance: str = Field(..., description="LLM-friendly usage guidance for the server")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [
            f"{self.server} v{self.version}",
            f"Tools: {self.tool_count}",
            f"Providers: {', '.join(p.id for p in self.providers)}",
            f"Textures: {', '.join(self.texture_kinds)}",
            f"Max resolution: {self.max_resolution_m}m",
            f"Guidance: {self.llm_guidance}",
        ]
        return "\n".join(lines)


class UsgsStatusResponse(BaseModel):
    """Response model for the USGS reachability probe."""

    model_config = ConfigDict(extra="forbid")

    reachable: bool = Field(..., description="Whether the TNM products API answered")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        return self.message


class GpxzLimitsResponse(BaseModel):
    """Response model for GPXZ plan and quota information."""

    model_config = ConfigDict(extra="forbid")

    plan: str = Field(..., description="Plan tier (free, small, large)")
    limit: int = Field(..., description="Daily request limit", ge=0)
    used: int = Field(..., description="Requests used today", ge=0)
    remaining: int = Field(..., description="Requests remaining today", ge=0)
    reset_seconds: int = Field(..., description="Seconds until the quota resets", ge=0)
    requests_per_second: int = Field(..., description="Plan request rate", ge=1)
    concurrency: int = Field(..., description="Parallel requests used for this plan", ge=1)
    key_valid: bool | None = Field(None, description="False if the key was rejected")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [
            self.message,
            f"Rate: {self.requests_per_second} req/s, {self.concurrency} concurrent",
            f"Resets in: {self.reset_seconds}s",
        ]
        if self.key_valid is False:
            lines.append("WARNING: API key was rejected")
        return "\n".join(lines)


class TerrainFetchResponse(BaseModel):
    """Response model for a terrain dataset."""

    model_config = ConfigDict(extra="forbid")

    dataset_id: str = Field(..., description="Identifier for follow-up tools (e.g. terrain_add_osm)")
    center: list[float] = Field(..., description="Normalised centre [lat, lng]")
    width: int = Field(..., description="Grid width in metres/pixels", ge=1)
    height: int = Field(..., description="Grid height in metres/pixels", ge=1)
    bounds: list[float] = Field(..., description="Grid bounds [west, south, east, north]")
    elevation_source: str = Field(..., description="gpxz, usgs or global")
    elevation_range: list[float] = Field(..., description="[min, max] elevation in metres")
    nodata_cells: int = Field(..., description="Cells without elevation data", ge=0)
    smoothed: bool = Field(..., description="Whether the heightmap was smoothed")
    usgs_fallback: bool = Field(..., description="USGS was requested but global data was used")
    heightmap_ref: str | None = Field(None, description="Heightmap GeoTIFF artifact reference")
    satellite_texture_ref: str | None = Field(
        None, description="Satellite JPEG artifact reference"
    )
    osm_feature_count: int = Field(0, description="Number of OSM features attached", ge=0)
    textures: list[str] = Field(default_factory=list, description="Texture kinds generated")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        elev_min, elev_max = self.elevation_range
        w, s, e, n = self.bounds
        lines = [
            f"Terrain {self.dataset_id}: {self.width}x{self.height} m from {self.elevation_source}",
            f"Bounds: W {w:.6f}, S {s:.6f}, E {e:.6f}, N {n:.6f}",
            f"Elevation range: {elev_min:.1f}m to {elev_max:.1f}m",
            f"NoData cells: {self.nodata_cells}",
        ]
        if self.smoothed:
            lines.append("Smoothed: yes")
        if self.usgs_fallback:
            lines.append("WARNING: USGS data unavailable, used global tiles")
        if self.heightmap_ref:
            lines.append(f"Heightmap: {self.heightmap_ref}")
        if self.satellite_texture_ref:
            lines.append(f"Satellite: {self.satellite_texture_ref}")
        if self.osm_feature_count:
            lines.append(f"OSM features: {self.osm_feature_count}")
        if self.textures:
            lines.append(f"Textures: {', '.join(self.textures)}")
        return "\n".join(lines)


class OsmAttachResponse(BaseModel):
    """Response model for attaching OSM features to an existing dataset."""

    model_config = ConfigDict(extra="forbid")

    source_dataset_id: str = Field(..., description="Dataset the features were attached to")
    dataset_id: str = Field(..., description="Identifier of the new dataset")
    osm_feature_count: int = Field(..., description="Number of OSM features", ge=0)
    feature_types: dict[str, int] = Field(
        default_factory=dict, description="Feature count per OSM type"
    )
    textures: list[str] = Field(default_factory=list, description="Texture kinds generated")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [self.message, f"New dataset: {self.dataset_id}"]
        for kind, count in sorted(self.feature_types.items()):
            lines.append(f"  {kind}: {count}")
        if self.textures:
            lines.append(f"Textures: {', '.join(self.textures)}")
        return "\n".join(lines)
