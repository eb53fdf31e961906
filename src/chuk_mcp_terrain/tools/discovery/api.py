"""
Discovery tools: provider listing, status, capabilities, provider health.

terrain_list_providers, terrain_status and terrain_capabilities need no
network I/O. terrain_usgs_status and terrain_gpxz_limits each make one
lightweight request to the provider.
"""

import logging
import os

from ...constants import (
    ALL_PROVIDER_IDS,
    MAX_RESOLUTION_M,
    TEXTURE_KINDS,
    EnvVar,
    ServerConfig,
    StorageProvider,
    SuccessMessages,
)
from ...models.responses import (
    CapabilitiesResponse,
    ErrorResponse,
    GpxzLimitsResponse,
    ProviderInfo,
    ProvidersResponse,
    StatusResponse,
    UsgsStatusResponse,
    format_response,
)

logger = logging.getLogger(__name__)


def register_discovery_tools(mcp, manager):
    """Register discovery tools with the MCP server."""

    @mcp.tool()
    async def terrain_list_providers(output_mode: str = "json") -> str:
        """List the elevation providers in the order they are tried.

        GPXZ (1 m, API key) is tried first, then USGS 3DEP 1 m inside the US,
        and the global Terrarium tiles are always fetched as the baseline.

        Args:
            output_mode: "json" for structured data, "text" for human-readable summary

        Returns:
            Providers with coverage and usage guidance
        """
        try:
            providers = [ProviderInfo(**p) for p in manager.list_providers()]
            response = ProvidersResponse(
                providers=providers,
                message=SuccessMessages.PROVIDERS_LIST.format(len(providers)),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"terrain_list_providers failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def terrain_status(output_mode: str = "json") -> str:
        """Get server status including version, providers, and storage configuration.

        Args:
            output_mode: "json" for structured data, "text" for human-readable summary

        Returns:
            Server status information
        """
        try:
            provider = os.environ.get(EnvVar.ARTIFACTS_PROVIDER, StorageProvider.MEMORY)

            store_available = False
            try:
                manager._get_store()
                store_available = True
            except Exception:
                pass

            response = StatusResponse(
                server=ServerConfig.NAME,
                version=ServerConfig.VERSION,
                available_providers=ALL_PROVIDER_IDS,
                storage_provider=provider,
                artifact_store_available=store_available,
                gpxz_key_configured=bool(manager.default_gpxz_api_key),
                cached_datasets=len(manager._datasets),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"terrain_status failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def terrain_capabilities(output_mode: str = "json") -> str:
        """Get full server capabilities including providers, texture outputs and limits.

        Args:
            output_mode: "json" for structured data, "text" for human-readable summary

        Returns:
            Complete server capabilities
        """
        try:
            providers = [ProviderInfo(**p) for p in manager.list_providers()]

            response = CapabilitiesResponse(
                server=ServerConfig.NAME,
                version=ServerConfig.VERSION,
                providers=providers,
                texture_kinds=TEXTURE_KINDS,
                max_resolution_m=MAX_RESOLUTION_M,
                tool_count=7,
                llm_guidance=(
                    "Use terrain_fetch with a centre point and a resolution in metres to "
                    "build a 1 m heightmap and satellite texture. Set use_gpxz with an API "
                    "key for the best data, or use_usgs for US areas. Use terrain_add_osm "
                    "with the returned dataset_id to attach OpenStreetMap features later. "
                    "Use terrain_gpxz_limits to check remaining GPXZ quota."
                ),
                message=f"{ServerConfig.NAME} v{ServerConfig.VERSION} capabilities",
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"terrain_capabilities failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def terrain_usgs_status(output_mode: str = "json") -> str:
        """Check whether the USGS National Map products API is reachable.

        Args:
            output_mode: "json" for structured data, "text" for human-readable summary

        Returns:
            Reachability flag
        """
        try:
            reachable = await manager.check_usgs_status()
            response = UsgsStatusResponse(
                reachable=reachable,
                message=(
                    SuccessMessages.USGS_REACHABLE
                    if reachable
                    else SuccessMessages.USGS_UNREACHABLE
                ),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"terrain_usgs_status failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def terrain_gpxz_limits(gpxz_api_key: str = "", output_mode: str = "json") -> str:
        """Get the GPXZ plan tier and remaining daily quota for an API key.

        The key is probed once; later calls report the quota as updated by
        terrain fetches.

        Args:
            gpxz_api_key: GPXZ API key (defaults to the server's GPXZ_API_KEY)
            output_mode: "json" for structured data, "text" for human-readable summary

        Returns:
            Plan, limits and quota
        """
        try:
            state = await manager.gpxz_limits(gpxz_api_key)
            response = GpxzLimitsResponse(
                plan=state.plan,
                limit=state.limit,
                used=state.used,
                remaining=state.remaining,
                reset_seconds=state.reset_seconds,
                requests_per_second=state.requests_per_second,
                concurrency=state.concurrency,
                key_valid=state.key_valid,
                message=SuccessMessages.GPXZ_LIMITS.format(
                    state.plan, state.remaining, state.limit
                ),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"terrain_gpxz_limits failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)
