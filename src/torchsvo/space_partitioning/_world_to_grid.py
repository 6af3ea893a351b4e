"""Affine mapping between world space and grid space."""

from __future__ import annotations

from torch import Tensor


def world_to_grid(points: Tensor, offset: Tensor, invradius: Tensor) -> Tensor:
    r"""Map world-space points into grid space.

    .. math::
        g = (x + \text{offset}) \cdot \text{invradius}

    Parameters
    ----------
    points : Tensor, shape (..., 3)
        World-space points.
    offset : Tensor, shape (3,)
        Translation applied before scaling.
    invradius : Tensor, shape (3,) or (1,)
        Per-axis (or uniform) scale.

    Returns
    -------
    Tensor, shape (..., 3)
        Grid-space points. The represented domain is [0, 1)³; no clamping
        is performed here.

    Examples
    --------
    >>> offset = torch.tensor([1.0, 1.0, 1.0])
    >>> invradius = torch.tensor([0.5])
    >>> world_to_grid(torch.tensor([[0.0, -1.0, 1.0]]), offset, invradius)
    tensor([[0.5000, 0.0000, 1.0000]])
    """
    return (points + offset) * invradius


def grid_to_world(points: Tensor, offset: Tensor, invradius: Tensor) -> Tensor:
    """Inverse of :func:`world_to_grid`."""
    return points / invradius - offset
