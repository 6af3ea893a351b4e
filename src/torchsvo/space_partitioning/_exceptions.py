"""Sparse voxel grid exceptions and warnings."""


class SparseVoxelError(Exception):
    """Base exception for sparse voxel grid operations."""

    pass


class PreconditionError(SparseVoxelError, ValueError):
    """Input violates a device, layout, rank, shape, or dtype requirement."""

    pass


class DomainClampWarning(UserWarning):
    """Query coordinates fell outside [0, 1)³ and were clamped."""

    pass
