"""torchsvo: PyTorch operators for sparse voxel octrees."""

from . import (
    graphics,
    space_partitioning,
)

__all__ = [
    "graphics",
    "space_partitioning",
]

__version__ = "0.1.0"
