"""
chuk-mcp-terrain: Metric Terrain Acquisition & Resampling MCP Server

Reconciles GPXZ, USGS 3DEP and global Terrarium elevation data into a
seam-free 1 m heightmap with a matching satellite texture, and stores
results in chuk-artifacts for downstream use.
"""
