#!/usr/bin/env python3
"""
Async Terrain MCP Server using chuk-mcp-server

Builds 1 m/pixel terrain datasets from GPXZ, USGS 3DEP and global Terrarium
elevation tiles plus ArcGIS satellite imagery, and stores the heightmap and
texture in chuk-artifacts.

Storage is managed through chuk-mcp-server's built-in artifact store context.
"""

import logging
import os

from chuk_mcp_server import ChukMCPServer

from .constants import GPXZ_BASE_URL, EnvVar, ServerConfig
from .core.gpxz import GPXZAdapter
from .core.terrain_manager import TerrainManager
from .tools.discovery import register_discovery_tools
from .tools.terrain import register_terrain_tools

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create the MCP server instance
mcp = ChukMCPServer(ServerConfig.NAME)

# Create terrain manager instance
manager = TerrainManager(
    gpxz=GPXZAdapter(base_url=os.environ.get(EnvVar.GPXZ_BASE_URL, GPXZ_BASE_URL)),
    default_gpxz_api_key=os.environ.get(EnvVar.GPXZ_API_KEY, ""),
)

# Register all tool modules
register_discovery_tools(mcp, manager)
register_terrain_tools(mcp, manager)

# Run the server
if __name__ == "__main__":
    logger.info("Starting Terrain MCP Server...")
    logger.info("Storage: Using chuk-mcp-server artifact store context")
    mcp.run(stdio=True)
