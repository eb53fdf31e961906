#!/usr/bin/env python3
"""
Capabilities Demo -- chuk-mcp-terrain

Quick-start script showing what the server can do without fetching any
terrain. Lists elevation providers, server status and capabilities, and
shows the dual output mode (JSON vs text). The USGS probe makes one small
request; the GPXZ quota check runs only when GPXZ_API_KEY is set.

Usage:
    python examples/capabilities_demo.py
"""

import asyncio
import os

from tool_runner import ToolRunner


async def main() -> None:
    runner = ToolRunner()

    print("=" * 60)
    print("chuk-mcp-terrain -- Server Capabilities")
    print("=" * 60)

    print(f"\nRegistered tools ({len(runner.tool_names)}):")
    for name in sorted(runner.tool_names):
        print(f"  - {name}")

    providers = await runner.run("terrain_list_providers")
    print(f"\nElevation providers, in priority order ({len(providers['providers'])}):")
    for p in providers["providers"]:
        key = "API key" if p["requires_api_key"] else "no key"
        print(f"  {p['id']:7s}  {p['name']:40s}  {p['kind']:9s}  {key}")
        print(f"           {p['llm_guidance']}")

    status = await runner.run("terrain_status")
    print("\nServer Status:")
    print(f"  {status['server']} v{status['version']}")
    print(f"  Storage: {status['storage_provider']}")
    print(f"  GPXZ key configured: {status['gpxz_key_configured']}")

    caps = await runner.run("terrain_capabilities")
    print("\nCapabilities:")
    print(f"  Tools: {caps['tool_count']}")
    print(f"  Textures: {', '.join(caps['texture_kinds'])}")
    print(f"  Max resolution: {caps['max_resolution_m']} m")

    print("\nterrain_usgs_status (output_mode='text'):")
    print(await runner.run_text("terrain_usgs_status"))

    if os.environ.get("GPXZ_API_KEY"):
        print("\nterrain_gpxz_limits (output_mode='text'):")
        print(await runner.run_text("terrain_gpxz_limits"))

    print("\n" + "-" * 60)
    print("terrain_capabilities (output_mode='text'):")
    print(await runner.run_text("terrain_capabilities"))
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
