"""Hypothesis strategies for sparse voxel grid testing."""

from ._grid_points import grid_points
from ._unit_vectors import unit_vectors

__all__ = [
    "grid_points",
    "unit_vectors",
]
