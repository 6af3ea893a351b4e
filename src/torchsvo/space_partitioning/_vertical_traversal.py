"""Root-to-leaf descent and leaf-tile stencils.

Forward query, backward scatter, and assignment all resolve points through
:func:`_descend`, so the clamping policy and the chosen leaf are identical
across the three paths.
"""

from __future__ import annotations

import torch
from torch import Tensor

from ._exceptions import SparseVoxelError

# Corner order of the trilinear stencil: bit set = upper neighbour on that axis
_CORNERS = (
    (False, False, False),
    (False, False, True),
    (False, True, False),
    (False, True, True),
    (True, False, False),
    (True, False, True),
    (True, True, False),
    (True, True, True),
)


def _outside_domain(points: Tensor) -> bool:
    return bool(((points < 0) | (points >= 1)).any().item())


def _descend(child: Tensor, points: Tensor) -> tuple[Tensor, Tensor]:
    """Resolve grid-space points to the tile holding their leaf cell.

    Parameters
    ----------
    child : Tensor, shape (M, N, N, N)
        Child links; ``> 0`` descends, ``<= 0`` is a leaf.
    points : Tensor, shape (Q, 3)
        Grid-space points. Clamped to [0, 1]³.

    Returns
    -------
    tiles : Tensor, shape (Q,), dtype=int64
        Tile containing each point's leaf cell.
    local : Tensor, shape (Q, 3)
        Point coordinates relative to that tile, in [0, 1]³.
    """
    m, n = child.shape[0], child.shape[1]
    count = points.shape[0]

    local = points.detach().clamp(0.0, 1.0)
    tiles = torch.zeros(count, dtype=torch.int64, device=points.device)
    remaining = torch.arange(count, device=points.device)

    # A terminating path visits each tile at most once
    for _ in range(m):
        if remaining.numel() == 0:
            break

        scaled = local[remaining] * n
        cells = scaled.floor().clamp(0, n - 1)
        ci = cells.long()
        links = child[tiles[remaining], ci[:, 0], ci[:, 1], ci[:, 2]]

        descend = links > 0
        moving = remaining[descend]
        local[moving] = scaled[descend] - cells[descend]
        tiles[moving] = links[descend].long()
        remaining = moving

    if remaining.numel() > 0:
        raise SparseVoxelError(
            f"child links do not terminate within {m} levels "
            f"({remaining.numel()} queries still descending)"
        )

    return tiles, local


def _flatten(tiles: Tensor, cells: Tensor, n: int) -> Tensor:
    """Row-major index into a ``(M * N * N * N, K)`` view."""
    return ((tiles * n + cells[..., 0]) * n + cells[..., 1]) * n + cells[
        ..., 2
    ]


def _trilinear_stencil(
    tiles: Tensor, local: Tensor, n: int
) -> tuple[Tensor, Tensor]:
    """Eight corner cells and trilinear weights inside the resolved tile.

    Features live at cell centres, so the lattice coordinate of a tile-local
    point ``u`` is ``u * N - 0.5``. Corner indices are clamped to
    ``[0, N - 1]``; a clamped pair collapses onto one cell and its weights
    add up, so the eight weights always sum to one.

    Returns
    -------
    flat : Tensor, shape (Q, 8), dtype=int64
    weights : Tensor, shape (Q, 8)
    """
    lattice = local * n - 0.5
    lower = lattice.floor()
    frac = lattice - lower

    lower = lower.long()
    low = lower.clamp(0, n - 1)
    high = (lower + 1).clamp(0, n - 1)

    bits = torch.tensor(_CORNERS, dtype=torch.bool, device=local.device)
    corners = torch.where(bits, high[:, None, :], low[:, None, :])
    weights = torch.where(
        bits, frac[:, None, :], 1.0 - frac[:, None, :]
    ).prod(dim=-1)

    return _flatten(tiles[:, None], corners, n), weights


def _nearest_cell(tiles: Tensor, local: Tensor, n: int) -> Tensor:
    """Flat index of the leaf cell containing each point."""
    cells = (local * n).floor().long().clamp(0, n - 1)
    return _flatten(tiles, cells, n)
