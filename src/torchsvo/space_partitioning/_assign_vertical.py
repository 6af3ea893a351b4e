"""In-place scatter-assignment into leaf cells."""

from __future__ import annotations

import warnings

import torch
from torch import Tensor

from ._exceptions import DomainClampWarning, PreconditionError
from ._validation import _check_rows, _check_transform, _check_tree
from ._vertical_traversal import _descend, _nearest_cell, _outside_domain
from ._world_to_grid import world_to_grid


def assign_vertical(
    data: Tensor,
    child: Tensor,
    indices: Tensor,
    values: Tensor,
    offset: Tensor,
    invradius: Tensor,
) -> None:
    """Overwrite the leaf cells containing the given world-space points.

    Parameters
    ----------
    data : Tensor, shape (M, N, N, N, K)
        Feature buffer, modified in place.
    child : Tensor, shape (M, N, N, N), integer dtype
        Child links.
    indices : Tensor, shape (Q, 3)
        World-space points, same floating dtype as ``data``.
    values : Tensor, shape (Q, K)
        Feature vectors to write, same floating dtype as ``data``.
    offset : Tensor, shape (3,)
        World-to-grid translation.
    invradius : Tensor, shape (3,) or (1,)
        World-to-grid scale.

    Warns
    -----
    DomainClampWarning
        If any mapped point lies outside [0, 1)³; it is written to the
        nearest boundary cell.

    Notes
    -----
    Each point resolves to the leaf cell that contains it, with no
    interpolation, and that cell's whole feature vector is replaced.

    When several points land in the same cell, exactly one of their rows
    is kept; which one is unspecified. Rows are never mixed.

    The write bypasses autograd: ``data`` may be a leaf tensor that
    requires grad.
    """
    _, n, k = _check_tree(data, child)
    _check_rows("indices", indices, 3, data.dtype, data.device)
    _check_rows("values", values, k, data.dtype, data.device)
    if indices.size(0) != values.size(0):
        raise PreconditionError(
            f"indices and values must have the same number of rows, "
            f"got {indices.size(0)} and {values.size(0)}"
        )
    _check_transform(offset, invradius, data.dtype, data.device)

    points = world_to_grid(indices, offset, invradius)
    if _outside_domain(points):
        warnings.warn(
            "assignment points outside [0, 1)^3 in grid space were clamped "
            "to the domain boundary",
            DomainClampWarning,
            stacklevel=2,
        )

    tiles, local = _descend(child, points)
    flat = _nearest_cell(tiles, local, n)

    with torch.no_grad():
        data.view(-1, k).index_put_((flat,), values.detach())
