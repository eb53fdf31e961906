"""Tests for chuk_mcp_terrain.models.responses."""

import json

import pytest
from pydantic import ValidationError

from chuk_mcp_terrain.constants import PROVIDERS
from chuk_mcp_terrain.models import (
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


def fetch_response(**overrides):
    values = dict(
        dataset_id="abc123def456",
        center=[47.37, 8.54],
        width=1000,
        height=1000,
        bounds=[8.53, 47.36, 8.55, 47.38],
        elevation_source="gpxz",
        elevation_range=[400.0, 520.5],
        nodata_cells=0,
        smoothed=False,
        usgs_fallback=False,
        heightmap_ref="terrain/aaa.tif",
        satellite_texture_ref="terrain/bbb_satellite.jpg",
        message="Terrain 1000x1000 m from gpxz (400.0m to 520.5m)",
    )
    values.update(overrides)
    return TerrainFetchResponse(**values)


# ── format_response ────────────────────────────────────────────────


class TestFormatResponse:
    def test_json_default(self):
        out = format_response(ErrorResponse(error="boom"))
        assert json.loads(out) == {"error": "boom"}

    def test_text_mode(self):
        assert format_response(ErrorResponse(error="boom"), "text") == "Error: boom"

    def test_unknown_mode_falls_back_to_json(self):
        assert json.loads(format_response(ErrorResponse(error="x"), "yaml")) == {"error": "x"}


# ── ErrorResponse ──────────────────────────────────────────────────


class TestErrorResponse:
    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            ErrorResponse(error="x", detail="y")

    def test_error_required(self):
        with pytest.raises(ValidationError):
            ErrorResponse()


# ── Providers ──────────────────────────────────────────────────────


class TestProviders:
    def test_every_provider_constant_validates(self):
        for provider in PROVIDERS.values():
            ProviderInfo(**provider)

    def test_provider_text(self):
        info = ProviderInfo(**PROVIDERS["gpxz"])
        assert info.to_text().startswith("gpxz: GPXZ hi-res raster")
        assert "API key" in info.to_text()
        assert "API key" not in ProviderInfo(**PROVIDERS["global"]).to_text()

    def test_providers_response_text(self):
        resp = ProvidersResponse(
            providers=[ProviderInfo(**p) for p in PROVIDERS.values()],
            message="3 elevation providers available",
        )
        lines = resp.to_text().splitlines()
        assert lines[0] == "3 elevation providers available"
        assert len(lines) == 5


# ── Status / capabilities ──────────────────────────────────────────


class TestStatusResponse:
    def test_defaults(self):
        resp = StatusResponse(available_providers=["gpxz"], storage_provider="memory")
        assert resp.server == "chuk-mcp-terrain"
        assert resp.artifact_store_available is False
        assert resp.cached_datasets == 0

    def test_text(self):
        resp = StatusResponse(
            available_providers=["gpxz", "usgs", "global"],
            storage_provider="s3",
            artifact_store_available=True,
            gpxz_key_configured=True,
            cached_datasets=3,
        )
        text = resp.to_text()
        assert "Providers: gpxz, usgs, global" in text
        assert "Artifact store: available" in text
        assert "GPXZ key: configured" in text
        assert "Cached datasets: 3" in text

    def test_negative_cache_rejected(self):
        with pytest.raises(ValidationError):
            StatusResponse(available_providers=[], storage_provider="memory", cached_datasets=-1)


class TestCapabilitiesResponse:
    def test_text(self):
        resp = CapabilitiesResponse(
            server="chuk-mcp-terrain",
            version="0.1.0",
            providers=[ProviderInfo(**p) for p in PROVIDERS.values()],
            texture_kinds=["satellite", "osm"],
            max_resolution_m=10000,
            tool_count=7,
            llm_guidance="Use terrain_fetch",
            message="ok",
        )
        text = resp.to_text()
        assert "Tools: 7" in text
        assert "Providers: gpxz, usgs, global" in text
        assert "Max resolution: 10000m" in text


# ── Provider health ────────────────────────────────────────────────


class TestUsgsStatusResponse:
    def test_text_is_message(self):
        resp = UsgsStatusResponse(reachable=True, message="reachable")
        assert resp.to_text() == "reachable"


class TestGpxzLimitsResponse:
    def make(self, **overrides):
        values = dict(
            plan="small",
            limit=2500,
            used=100,
            remaining=2400,
            reset_seconds=3600,
            requests_per_second=10,
            concurrency=8,
            message="GPXZ plan: small (2400 of 2500 requests remaining today)",
        )
        values.update(overrides)
        return GpxzLimitsResponse(**values)

    def test_text(self):
        text = self.make().to_text()
        assert "10 req/s, 8 concurrent" in text
        assert "WARNING" not in text

    def test_rejected_key_warning(self):
        assert "WARNING: API key was rejected" in self.make(key_valid=False).to_text()

    def test_rate_must_be_positive(self):
        with pytest.raises(ValidationError):
            self.make(requests_per_second=0)


# ── Terrain ────────────────────────────────────────────────────────


class TestTerrainFetchResponse:
    def test_json_round_trip(self):
        data = json.loads(format_response(fetch_response()))
        assert data["dataset_id"] == "abc123def456"
        assert data["elevation_range"] == [400.0, 520.5]
        assert data["osm_feature_count"] == 0
        assert data["textures"] == []

    def test_text_flags(self):
        text = fetch_response(smoothed=True, usgs_fallback=True, textures=["satellite"]).to_text()
        assert "Smoothed: yes" in text
        assert "WARNING: USGS data unavailable" in text
        assert "Heightmap: terrain/aaa.tif" in text
        assert "Textures: satellite" in text

    def test_optional_refs(self):
        text = fetch_response(heightmap_ref=None, satellite_texture_ref=None).to_text()
        assert "Heightmap:" not in text
        assert "Satellite:" not in text

    def test_width_must_be_positive(self):
        with pytest.raises(ValidationError):
            fetch_response(width=0)


class TestOsmAttachResponse:
    def test_text_lists_types_sorted(self):
        resp = OsmAttachResponse(
            source_dataset_id="old",
            dataset_id="new",
            osm_feature_count=3,
            feature_types={"road": 2, "building": 1},
            textures=["osm"],
            message="Attached 3 OSM features",
        )
        lines = resp.to_text().splitlines()
        assert lines[:4] == [
            "Attached 3 OSM features",
            "New dataset: new",
            "  building: 1",
            "  road: 2",
        ]
        assert lines[-1] == "Textures: osm"
