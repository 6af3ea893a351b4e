"""Backward pass of the vertical trilinear query."""

from __future__ import annotations

import torch
from torch import Tensor

from ._exceptions import PreconditionError
from ._validation import (
    _check_child,
    _check_input,
    _check_rows,
    _check_transform,
)
from ._vertical_traversal import _descend, _trilinear_stencil
from ._world_to_grid import world_to_grid


def _scatter_gradient(
    child: Tensor, points: Tensor, grad_output: Tensor
) -> Tensor:
    m, n = child.shape[0], child.shape[1]
    k = grad_output.shape[1]

    tiles, local = _descend(child, points)
    flat, weights = _trilinear_stencil(tiles, local, n)

    # index_add_ sums duplicates in any order (atomic adds on CUDA)
    contributions = weights[:, :, None] * grad_output[:, None, :]
    grad_data = torch.zeros(
        m * n * n * n, k, dtype=grad_output.dtype, device=grad_output.device
    )
    grad_data.index_add_(0, flat.reshape(-1), contributions.reshape(-1, k))

    return grad_data.view(m, n, n, n, k)


def query_vertical_backward(
    child: Tensor,
    indices: Tensor,
    grad_output: Tensor,
    offset: Tensor,
    invradius: Tensor,
) -> Tensor:
    r"""Gradient of :func:`query_vertical` with respect to ``data``.

    Re-traverses the tree for every query, recomputes its eight trilinear
    weights, and scatter-adds ``weight * grad_output`` into the
    corresponding cells.

    Parameters
    ----------
    child : Tensor, shape (M, N, N, N)
        Child links of the tree that was queried.
    indices : Tensor, shape (Q, 3)
        World-space query points used in the forward pass.
    grad_output : Tensor, shape (Q, K)
        Gradient with respect to each query's output.
    offset : Tensor, shape (3,)
        World-to-grid translation.
    invradius : Tensor, shape (3,) or (1,)
        World-to-grid scale.

    Returns
    -------
    Tensor, shape (M, N, N, N, K)
        Gradient with respect to ``data``. Cells no query touched are zero.

    Notes
    -----
    Accumulation is a plain sum, so the result does not depend on the
    order in which queries are processed (up to floating-point rounding
    on CUDA, where additions are atomic).

    The adjoint identity holds exactly because the query is linear in
    ``data``:

    .. math::
        \langle g, \mathrm{query}(d) \rangle
        = \langle \mathrm{query\_backward}(g), d \rangle
    """
    if not isinstance(grad_output, Tensor):
        raise PreconditionError(
            f"grad_output must be a Tensor, got {type(grad_output).__name__}"
        )
    device = grad_output.device
    _check_child(child, device)
    _check_input("grad_output", grad_output, device)
    if grad_output.dim() != 2:
        raise PreconditionError(
            f"grad_output must be shape (Q, K), "
            f"got {tuple(grad_output.shape)}"
        )
    if not grad_output.is_floating_point():
        raise PreconditionError(
            f"grad_output must be floating point, got {grad_output.dtype}"
        )
    dtype = grad_output.dtype
    _check_rows("indices", indices, 3, dtype, device)
    if indices.size(0) != grad_output.size(0):
        raise PreconditionError(
            f"indices and grad_output must have the same number of rows, "
            f"got {indices.size(0)} and {grad_output.size(0)}"
        )
    _check_transform(offset, invradius, dtype, device)

    points = world_to_grid(indices, offset, invradius)
    return _scatter_gradient(child, points, grad_output)
