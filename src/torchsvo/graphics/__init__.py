"""Rendering and shading operators for sparse voxel grids."""

from . import rendering, shading

__all__ = [
    "rendering",
    "shading",
]
