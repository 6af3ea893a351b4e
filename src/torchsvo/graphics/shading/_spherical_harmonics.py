"""Real spherical harmonics basis for view-dependent colour."""

from __future__ import annotations

import torch
from torch import Tensor

from torchsvo.space_partitioning import PreconditionError

SH_C0 = 0.28209479177387814
SH_C1 = 0.4886025119029199
SH_C2 = (
    1.0925484305920792,
    -1.0925484305920792,
    0.31539156525252005,
    -1.0925484305920792,
    0.5462742152960396,
)
SH_C3 = (
    -0.5900435899266435,
    2.890611442640554,
    -0.4570457994644658,
    0.3731763325901154,
    -0.4570457994644658,
    1.445305721320277,
    -0.5900435899266435,
)

SUPPORTED_BASIS_DIMS = (1, 4, 9, 16)


def spherical_harmonics_basis(basis_dim: int, directions: Tensor) -> Tensor:
    r"""Evaluate the real spherical harmonics basis.

    Parameters
    ----------
    basis_dim : int
        Number of basis functions, ``(degree + 1)^2`` for degree 0 to 3:
        one of 1, 4, 9, 16.
    directions : Tensor, shape (..., 3)
        Directions. Normalized internally; zero vectors evaluate to the
        constant term only.

    Returns
    -------
    Tensor, shape (..., basis_dim)

    Notes
    -----
    Uses the sign convention common to radiance-field codebases, e.g.

    .. math::
        Y_0 = \frac{1}{2\sqrt{\pi}}, \quad
        Y_1 = -\sqrt{\tfrac{3}{4\pi}}\, y, \quad
        Y_2 = \sqrt{\tfrac{3}{4\pi}}\, z, \quad
        Y_3 = -\sqrt{\tfrac{3}{4\pi}}\, x

    Examples
    --------
    >>> spherical_harmonics_basis(4, torch.tensor([[0.0, 0.0, 2.0]]))
    tensor([[ 0.2821, -0.0000,  0.4886, -0.0000]])
    """
    if basis_dim not in SUPPORTED_BASIS_DIMS:
        raise PreconditionError(
            f"basis_dim must be one of {SUPPORTED_BASIS_DIMS}, "
            f"got {basis_dim}"
        )
    if directions.shape[-1] != 3:
        raise PreconditionError(
            f"directions must have shape (..., 3), "
            f"got {tuple(directions.shape)}"
        )

    norm = directions.norm(dim=-1, keepdim=True)
    directions = directions / norm.clamp_min(1e-12)
    x, y, z = directions.unbind(-1)

    result = [torch.full_like(x, SH_C0)]

    if basis_dim > 1:
        result += [-SH_C1 * y, SH_C1 * z, -SH_C1 * x]

    if basis_dim > 4:
        xx, yy, zz = x * x, y * y, z * z
        xy, yz, xz = x * y, y * z, x * z
        result += [
            SH_C2[0] * xy,
            SH_C2[1] * yz,
            SH_C2[2] * (2.0 * zz - xx - yy),
            SH_C2[3] * xz,
            SH_C2[4] * (xx - yy),
        ]

        if basis_dim > 9:
            result += [
                SH_C3[0] * y * (3 * xx - yy),
                SH_C3[1] * xy * z,
                SH_C3[2] * y * (4 * zz - xx - yy),
                SH_C3[3] * z * (2 * zz - 3 * xx - 3 * yy),
                SH_C3[4] * x * (4 * zz - xx - yy),
                SH_C3[5] * z * (xx - yy),
                SH_C3[6] * x * (xx - 3 * yy),
            ]

    return torch.stack(result, dim=-1)
