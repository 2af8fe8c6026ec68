from .adapter import CompoundAdapter

__all__ = ["CompoundAdapter"]
