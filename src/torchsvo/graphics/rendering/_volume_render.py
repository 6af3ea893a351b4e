"""Ray-marched volume rendering through a sparse voxel tree."""

from __future__ import annotations

import math
from typing import Optional, Sequence, Union

import torch
from torch import Tensor

from torchsvo.graphics.shading import (
    SUPPORTED_BASIS_DIMS,
    spherical_harmonics_basis,
)
from torchsvo.space_partitioning import PreconditionError, world_to_grid
from torchsvo.space_partitioning._query_vertical import _QueryVerticalFunction
from torchsvo.space_partitioning._validation import (
    _check_rows,
    _check_transform,
    _check_tree,
)


def _unit_cube_intersect(
    origins: Tensor, directions: Tensor
) -> tuple[Tensor, Tensor]:
    """Slab test against [0, 1]³, returning ``(t_near, t_far)`` per ray.

    An axis the ray runs parallel to contributes an unbounded interval when
    the origin lies inside that slab and an empty one otherwise.
    """
    parallel = directions == 0
    safe = torch.where(parallel, torch.ones_like(directions), directions)

    t1 = -origins / safe
    t2 = (1.0 - origins) / safe
    near = torch.minimum(t1, t2)
    far = torch.maximum(t1, t2)

    inside = (origins >= 0) & (origins <= 1)
    inf = torch.full_like(near, math.inf)
    near = torch.where(parallel, torch.where(inside, -inf, inf), near)
    far = torch.where(parallel, torch.where(inside, inf, -inf), far)

    return near.amax(dim=-1), far.amin(dim=-1)


def volume_render(
    data: Tensor,
    child: Tensor,
    origins: Tensor,
    dirs: Tensor,
    vdirs: Tensor,
    offset: Tensor,
    invradius: Tensor,
    step_size: float,
    stop_thresh: float,
    background_brightness: Union[float, Sequence[float], Tensor],
    *,
    basis_dim: Optional[int] = None,
    return_alpha: bool = False,
) -> Tensor:
    r"""Render rays through a sparse voxel tree by front-to-back compositing.

    Parameters
    ----------
    data : Tensor, shape (M, N, N, N, K)
        Per-cell features, ``K >= 4``. Channel 0 is density; channels
        ``1 .. 3 * basis_dim`` are colour coefficients laid out as
        ``(3, basis_dim)``. Further channels are ignored.
    child : Tensor, shape (M, N, N, N), integer dtype
        Child links.
    origins : Tensor, shape (Q, 3)
        World-space ray origins.
    dirs : Tensor, shape (Q, 3)
        World-space ray directions (need not be normalized).
    vdirs : Tensor, shape (Q, 3)
        View directions used to evaluate view-dependent colour.
    offset : Tensor, shape (3,)
        World-to-grid translation.
    invradius : Tensor, shape (3,) or (1,)
        World-to-grid scale.
    step_size : float
        Marching step in grid-space units. Must be positive.
    stop_thresh : float
        Transmittance in [0, 1] below which a ray stops marching.
        ``0`` disables early termination.
    background_brightness : float or sequence of float or Tensor
        Background colour, a scalar or one value per colour channel.
    basis_dim : int, optional
        Spherical-harmonic coefficients per colour channel (1, 4, 9 or 16).
        Default: the largest supported value with ``3 * basis_dim <= K - 1``.
    return_alpha : bool, default=False
        Append the ray opacity ``1 - transmittance`` as a fourth channel.

    Returns
    -------
    Tensor, shape (Q, 3) or (Q, 4)
        Composited colour (and opacity). Differentiable with respect to
        ``data``.

    Raises
    ------
    PreconditionError
        On invalid inputs, including ``K < 4``.

    Notes
    -----
    **Marching:** each ray is mapped to grid space, clipped to [0, 1]³ by
    slab intersection (starting no earlier than its origin), and sampled at
    ``t_near + (i + 1/2) * step_size`` for as long as ``t < t_far``.

    **Compositing:** at every sample

    .. math::
        \alpha = 1 - e^{-\max(\sigma, 0)\,\Delta}, \qquad
        C \mathrel{+}= T \alpha c, \qquad
        T \mathrel{*}= 1 - \alpha

    where the colour is :math:`c = \max(\sum_b Y_b(v)\,k_b + 1/2, 0)`.

    **Early termination:** once :math:`T` falls below ``stop_thresh`` the
    ray takes no further samples and is treated as opaque: it receives no
    background contribution. Rays that leave the domain instead add
    :math:`T` times ``background_brightness``. Rays that miss the domain
    return the background with opacity zero.

    Examples
    --------
    >>> data = torch.zeros(1, 2, 2, 2, 4)
    >>> data[..., 0] = 1.0
    >>> child = torch.zeros(1, 2, 2, 2, dtype=torch.int32)
    >>> origins = torch.tensor([[-1.0, 0.5, 0.5]])
    >>> dirs = torch.tensor([[1.0, 0.0, 0.0]])
    >>> volume_render(data, child, origins, dirs, dirs, torch.zeros(3),
    ...               torch.ones(1), 0.01, 0.0, 0.0, return_alpha=True)
    tensor([[0.3161, 0.3161, 0.3161, 0.6321]])
    """
    _, _, k = _check_tree(data, child)
    if k < 4:
        raise PreconditionError(
            f"data must have at least 4 channels (density + RGB), got {k}"
        )

    device, dtype = data.device, data.dtype
    _check_rows("origins", origins, 3, dtype, device)
    _check_rows("dirs", dirs, 3, dtype, device)
    _check_rows("vdirs", vdirs, 3, dtype, device)
    if not origins.size(0) == dirs.size(0) == vdirs.size(0):
        raise PreconditionError(
            f"origins, dirs and vdirs must have the same number of rows, "
            f"got {origins.size(0)}, {dirs.size(0)} and {vdirs.size(0)}"
        )
    _check_transform(offset, invradius, dtype, device)

    if not step_size > 0:
        raise PreconditionError(
            f"step_size must be positive, got {step_size}"
        )
    if not 0 <= stop_thresh <= 1:
        raise PreconditionError(
            f"stop_thresh must be in [0, 1], got {stop_thresh}"
        )

    background = torch.as_tensor(
        background_brightness, dtype=dtype, device=device
    ).reshape(-1)
    if background.numel() not in (1, 3):
        raise PreconditionError(
            f"background_brightness must have 1 or 3 elements, "
            f"got {background.numel()}"
        )

    available = (k - 1) // 3
    if basis_dim is None:
        basis_dim = max(b for b in SUPPORTED_BASIS_DIMS if b <= available)
    elif basis_dim not in SUPPORTED_BASIS_DIMS or basis_dim > available:
        raise PreconditionError(
            f"basis_dim must be one of {SUPPORTED_BASIS_DIMS} with "
            f"3 * basis_dim <= {k - 1}, got {basis_dim}"
        )

    count = origins.size(0)

    grid_origins = world_to_grid(origins, offset, invradius)
    grid_dirs = dirs * invradius
    grid_dirs = grid_dirs / grid_dirs.norm(dim=-1, keepdim=True).clamp_min(
        1e-12
    )

    t_near, t_far = _unit_cube_intersect(grid_origins, grid_dirs)
    t_near = t_near.clamp_min(0.0)
    hit = (t_near < t_far) & torch.isfinite(t_far)

    basis = spherical_harmonics_basis(basis_dim, vdirs)

    transmittance = torch.ones(count, dtype=dtype, device=device)
    rgb = torch.zeros(count, 3, dtype=dtype, device=device)

    step = 0
    while True:
        t = t_near + (step + 0.5) * step_size
        active = hit & (t < t_far) & (transmittance >= stop_thresh)
        if not bool(active.any()):
            break

        ids = active.nonzero().squeeze(-1)
        points = grid_origins[ids] + t[ids, None] * grid_dirs[ids]
        features = _QueryVerticalFunction.apply(data, child, points)

        alpha = 1.0 - torch.exp(-torch.relu(features[:, 0]) * step_size)
        coefficients = features[:, 1 : 1 + 3 * basis_dim].reshape(
            -1, 3, basis_dim
        )
        color = torch.clamp_min(
            (coefficients * basis[ids, None, :]).sum(dim=-1) + 0.5, 0.0
        )

        weight = transmittance[ids] * alpha
        rgb = rgb.index_add(0, ids, weight[:, None] * color)
        transmittance = transmittance.index_put(
            (ids,), transmittance[ids] * (1.0 - alpha)
        )

        step += 1

    # Early-terminated rays count as opaque
    remaining = torch.where(
        transmittance < stop_thresh,
        torch.zeros_like(transmittance),
        transmittance,
    )
    rgb = rgb + remaining[:, None] * background

    if return_alpha:
        return torch.cat([rgb, (1.0 - transmittance)[:, None]], dim=-1)

    return rgb
