"""Vertical (root-to-leaf) trilinear query."""

from __future__ import annotations

import warnings

import torch
from torch import Tensor

from ._exceptions import DomainClampWarning
from ._query_vertical_backward import _scatter_gradient
from ._validation import _check_rows, _check_transform, _check_tree
from ._vertical_traversal import (
    _descend,
    _outside_domain,
    _trilinear_stencil,
)
from ._world_to_grid import world_to_grid


def _interpolate(data: Tensor, child: Tensor, points: Tensor) -> Tensor:
    n, k = data.shape[1], data.shape[4]
    tiles, local = _descend(child, points)
    flat, weights = _trilinear_stencil(tiles, local, n)
    corners = data.reshape(-1, k)[flat]
    return (weights[:, :, None] * corners).sum(dim=1)


class _QueryVerticalFunction(torch.autograd.Function):
    """Trilinear query over grid-space points, differentiable in ``data``."""

    @staticmethod
    def forward(ctx, data: Tensor, child: Tensor, points: Tensor) -> Tensor:
        ctx.save_for_backward(child, points)
        return _interpolate(data, child, points)

    @staticmethod
    def backward(ctx, grad_output: Tensor) -> tuple:
        child, points = ctx.saved_tensors

        grad_data = None
        if ctx.needs_input_grad[0]:
            grad_data = _scatter_gradient(child, points, grad_output)

        return grad_data, None, None


def query_vertical(
    data: Tensor,
    child: Tensor,
    indices: Tensor,
    offset: Tensor,
    invradius: Tensor,
) -> Tensor:
    r"""Query a sparse voxel tree at world-space points.

    Each point is mapped to grid space, descends from the root tile until it
    reaches a leaf cell, and is then trilinearly interpolated from the eight
    nearest cell centres of that leaf's tile.

    Parameters
    ----------
    data : Tensor, shape (M, N, N, N, K)
        Per-cell feature vectors of the M tiles.
    child : Tensor, shape (M, N, N, N), integer dtype
        Child links. A positive value is the index of the child tile;
        zero or a negative sentinel marks a leaf.
    indices : Tensor, shape (Q, 3)
        World-space query points, same floating dtype as ``data``.
    offset : Tensor, shape (3,)
        World-to-grid translation.
    invradius : Tensor, shape (3,) or (1,)
        World-to-grid scale.

    Returns
    -------
    Tensor, shape (Q, K)
        Interpolated features. Differentiable with respect to ``data``;
        ``indices`` receive no gradient.

    Warns
    -----
    DomainClampWarning
        If any mapped point lies outside [0, 1)³. Such points are clamped
        onto the domain; forward and backward use the same clamped position.

    Raises
    ------
    PreconditionError
        On device, layout, rank, shape, or dtype violations.

    Notes
    -----
    **Descent:** at each level the cell is ``floor(u * N)`` clamped to
    ``[0, N - 1]``; when its link is positive the remainder
    ``u * N - cell`` becomes the tile-local coordinate of the next level.

    **Interpolation:** values sit at cell centres. Corners outside the tile
    are clamped to the boundary cells (no wraparound, no crossing into
    neighbouring tiles), and the weights always sum to one.

    Examples
    --------
    >>> data = torch.arange(8.0).reshape(1, 2, 2, 2, 1)
    >>> child = torch.zeros(1, 2, 2, 2, dtype=torch.int32)
    >>> offset, invradius = torch.zeros(3), torch.ones(1)
    >>> query_vertical(data, child, torch.tensor([[0.5, 0.5, 0.5]]),
    ...                offset, invradius)
    tensor([[3.5000]])
    """
    _check_tree(data, child)
    _check_rows("indices", indices, 3, data.dtype, data.device)
    _check_transform(offset, invradius, data.dtype, data.device)

    points = world_to_grid(indices, offset, invradius)
    if _outside_domain(points):
        warnings.warn(
            "query points outside [0, 1)^3 in grid space were clamped "
            "to the domain boundary",
            DomainClampWarning,
            stacklevel=2,
        )

    return _QueryVerticalFunction.apply(data, child, points)
