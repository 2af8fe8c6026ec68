from .adapter import MoonwellAdapter

__all__ = ["MoonwellAdapter"]
