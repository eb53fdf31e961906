"""Terrain acquisition core: providers, tiles, samplers, resampling, orchestration."""
