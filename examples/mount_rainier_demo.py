#!/usr/bin/env python3
"""
Mount Rainier Terrain -- chuk-mcp-terrain Demo

Builds a 2 km 1 m/pixel terrain dataset on the south flank of Mount
Rainier and renders the heightmap next to the satellite texture:
    terrain_usgs_status -> terrain_fetch (use_usgs) -> render

USGS 3DEP 1 m data is tried first; if no product covers the area the
global Terrarium tiles are used and the response reports usgs_fallback.
Set GPXZ_API_KEY to try GPXZ first instead.

Usage:
    python examples/mount_rainier_demo.py

Output:
    examples/output/rainier_terrain.png

Requirements:
    pip install chuk-mcp-terrain[examples]
    (Requires network access)
"""

import asyncio
import io
import os
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import rasterio
from PIL import Image

from tool_runner import ToolRunner

# -- Configuration -----------------------------------------------------------

LAT, LNG = 46.786, -121.735  # Paradise, Mount Rainier, WA
RESOLUTION = 2000
NO_DATA_VALUE = -99999.0
OUTPUT_DIR = Path(__file__).parent / "output"


async def main() -> None:
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    runner = ToolRunner()
    use_gpxz = bool(os.environ.get("GPXZ_API_KEY"))

    print("=" * 60)
    print("Mount Rainier -- Metric Terrain")
    print("=" * 60)

    print("\nStep 1: Checking USGS availability...")
    usgs = await runner.run("terrain_usgs_status")
    print(f"  {usgs['message']}")

    print(f"\nStep 2: Fetching {RESOLUTION}x{RESOLUTION} m around ({LAT}, {LNG})...")
    fetch = await runner.run(
        "terrain_fetch",
        lat=LAT,
        lng=LNG,
        resolution=RESOLUTION,
        use_usgs=True,
        use_gpxz=use_gpxz,
    )
    if "error" in fetch:
        print(f"  ERROR: {fetch['error']}")
        sys.exit(1)

    elev_min, elev_max = fetch["elevation_range"]
    print(f"  Dataset: {fetch['dataset_id']}")
    print(f"  Source: {fetch['elevation_source']}")
    print(f"  Elevation: {elev_min:.0f}m to {elev_max:.0f}m")
    print(f"  NoData cells: {fetch['nodata_cells']}")
    if fetch["usgs_fallback"]:
        print("  WARNING: USGS had no coverage, global tiles used")

    print("\nStep 3: Retrieving artifacts...")
    store = runner.manager._get_store()
    with rasterio.open(io.BytesIO(await store.retrieve(fetch["heightmap_ref"]))) as src:
        elevation = src.read(1)
    elevation = np.where(elevation == NO_DATA_VALUE, np.nan, elevation)
    satellite = Image.open(io.BytesIO(await store.retrieve(fetch["satellite_texture_ref"])))
    print(f"  Heightmap: {elevation.shape[1]}x{elevation.shape[0]}")
    print(f"  Satellite: {satellite.size[0]}x{satellite.size[1]}")

    print("\nStep 4: Rendering...")
    fig, axes = plt.subplots(1, 2, figsize=(16, 8))

    ax = axes[0]
    im = ax.imshow(elevation, cmap="terrain", vmin=elev_min, vmax=elev_max)
    ax.set_title(f"Heightmap ({fetch['elevation_source']})", fontsize=13)
    ax.axis("off")
    fig.colorbar(im, ax=ax, label="Elevation (m)", shrink=0.7)

    ax = axes[1]
    ax.imshow(np.asarray(satellite))
    ax.set_title("Satellite texture", fontsize=13)
    ax.axis("off")

    fig.suptitle(
        f"Mount Rainier -- {RESOLUTION} m at 1 m/pixel\ncentre: ({LAT}, {LNG})",
        fontsize=15,
        fontweight="bold",
    )
    fig.tight_layout()
    output_path = OUTPUT_DIR / "rainier_terrain.png"
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"  Saved: {output_path}")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print(f"\nOutput: {output_path}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
