"""Sparse voxel grid container: N³ tiles linked by child indices."""

from __future__ import annotations

from typing import Optional, Sequence, Union

import torch
from tensordict import tensorclass
from torch import Tensor

from ._assign_vertical import assign_vertical
from ._exceptions import PreconditionError
from ._query_vertical import query_vertical
from ._validation import _check_tree


@tensorclass
class SparseVoxelGrid:
    """Sparse voxel tree stored as an arena of fixed-size tiles.

    Use :func:`sparse_voxel_grid` to construct instances.

    As a tensorclass, SparseVoxelGrid supports:
    - Device movement: ``grid.to("cuda")`` or ``grid.cuda()``
    - Serialization: ``torch.save(grid, path)`` / ``torch.load(path)``

    Attributes
    ----------
    data : Tensor, shape (M, N, N, N, K)
        Feature vector of every cell of every tile.
    child : Tensor, shape (M, N, N, N), integer dtype
        Index of the child tile of each cell. Values ``<= 0`` mark leaves.
    offset : Tensor, shape (3,)
        World-to-grid translation.
    invradius : Tensor, shape (3,) or (1,)
        World-to-grid scale.

    Notes
    -----
    **Arena layout:** tiles are addressed by integer index, tile 0 is the
    root, and every positive link is ``< M``. There are no pointers and no
    parent links; a tile is reached only through the cell that links to it.

    **Leaf data:** the feature vector of a leaf cell is authoritative. Cells
    that link to a child tile keep their own feature vector too; it takes
    part in interpolation inside its own tile only.

    **Mutation:** the link structure is fixed after construction. Features
    change through :func:`sparse_voxel_grid_assign` (or direct tensor
    writes), never through queries.
    """

    data: Tensor
    child: Tensor
    offset: Tensor
    invradius: Tensor


def sparse_voxel_grid(
    data: Tensor,
    child: Tensor,
    *,
    center: Optional[Union[Tensor, float, Sequence[float]]] = None,
    radius: Optional[Union[Tensor, float, Sequence[float]]] = None,
) -> SparseVoxelGrid:
    """Bundle tree buffers with the transform of a world-space box.

    Parameters
    ----------
    data : Tensor, shape (M, N, N, N, K)
        Per-cell features.
    child : Tensor, shape (M, N, N, N), integer dtype
        Child links.
    center : Tensor or float or sequence of float, optional
        Centre of the world-space box covered by the root tile.
        Default 0.5 on every axis.
    radius : Tensor or float or sequence of float, optional
        Half-extent of the box, uniform or per axis. Default 0.5.

    Returns
    -------
    SparseVoxelGrid
        Grid whose transform maps ``[center - radius, center + radius]``
        onto ``[0, 1]³``: ``offset = radius - center`` and
        ``invradius = 0.5 / radius``.

    Raises
    ------
    PreconditionError
        If the buffers are inconsistent, a link is out of range, or
        ``radius`` is not positive.

    Examples
    --------
    >>> data = torch.zeros(1, 2, 2, 2, 4)
    >>> child = torch.zeros(1, 2, 2, 2, dtype=torch.int32)
    >>> grid = sparse_voxel_grid(data, child, center=0.0, radius=1.0)
    >>> grid.offset, grid.invradius
    (tensor([1., 1., 1.]), tensor([0.5000]))
    """
    _check_tree(data, child)

    if center is None:
        center = 0.5
    if radius is None:
        radius = 0.5

    center = torch.as_tensor(
        center, dtype=data.dtype, device=data.device
    ).reshape(-1)
    radius = torch.as_tensor(
        radius, dtype=data.dtype, device=data.device
    ).reshape(-1)

    if center.numel() not in (1, 3):
        raise PreconditionError(
            f"center must have 1 or 3 elements, got {center.numel()}"
        )
    if radius.numel() not in (1, 3):
        raise PreconditionError(
            f"radius must have 1 or 3 elements, got {radius.numel()}"
        )
    if not bool((radius > 0).all()):
        raise PreconditionError(f"radius must be positive, got {radius}")

    offset = torch.broadcast_to(radius - center, (3,)).contiguous()
    invradius = (0.5 / radius).contiguous()

    return SparseVoxelGrid(
        data=data,
        child=child,
        offset=offset,
        invradius=invradius,
        batch_size=[],
    )


def sparse_voxel_grid_sample(grid: SparseVoxelGrid, points: Tensor) -> Tensor:
    """Trilinear query of ``grid`` at world-space ``points``.

    See :func:`query_vertical`.

    Returns
    -------
    Tensor, shape (Q, K)
    """
    return query_vertical(
        grid.data, grid.child, points, grid.offset, grid.invradius
    )


def sparse_voxel_grid_assign(
    grid: SparseVoxelGrid, points: Tensor, values: Tensor
) -> None:
    """Write ``values`` into the leaf cells of ``grid`` containing ``points``.

    See :func:`assign_vertical`.
    """
    assign_vertical(
        grid.data, grid.child, points, values, grid.offset, grid.invradius
    )
