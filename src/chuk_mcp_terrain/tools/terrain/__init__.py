from .api import register_terrain_tools

__all__ = ["register_terrain_tools"]
