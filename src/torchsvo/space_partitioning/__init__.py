"""Sparse voxel trees with differentiable vertical queries.

This module provides an N³-tree (an octree when N = 2) stored as an arena of
N×N×N tiles linked by child indices, with:
- Root-to-leaf point queries with trilinear interpolation inside the leaf tile
- Autograd support with respect to the cell features
- Scatter-assignment of feature vectors into leaf cells
- Input validation that fails before any computation

Note: the link structure is NOT differentiable and is never modified by
these operations. Only ``data`` receives gradients.
"""

from ._assign_vertical import assign_vertical
from ._exceptions import (
    DomainClampWarning,
    PreconditionError,
    SparseVoxelError,
)
from ._query_vertical import query_vertical
from ._query_vertical_backward import query_vertical_backward
from ._sparse_voxel_grid import (
    SparseVoxelGrid,
    sparse_voxel_grid,
    sparse_voxel_grid_assign,
    sparse_voxel_grid_sample,
)
from ._world_to_grid import grid_to_world, world_to_grid

__all__ = [
    "DomainClampWarning",
    "PreconditionError",
    "SparseVoxelError",
    "SparseVoxelGrid",
    "assign_vertical",
    "grid_to_world",
    "query_vertical",
    "query_vertical_backward",
    "sparse_voxel_grid",
    "sparse_voxel_grid_assign",
    "sparse_voxel_grid_sample",
    "world_to_grid",
]
