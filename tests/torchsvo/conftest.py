"""Test fixtures for sparse voxel tree tests."""

import pytest
import torch


def make_transform(dtype=torch.float64, device="cpu"):
    """Identity world-to-grid transform."""
    offset = torch.zeros(3, dtype=dtype, device=device)
    invradius = torch.ones(1, dtype=dtype, device=device)
    return offset, invradius


def make_tree(
    tiles: int,
    n: int,
    k: int,
    links=(),
    *,
    dtype=torch.float64,
    device="cpu",
    fill=None,
):
    """Test helper to construct ``(data, child)`` with explicit links.

    Parameters
    ----------
    tiles : int
        Number of tiles M.
    n : int
        Tile side N.
    k : int
        Channels per cell.
    links : iterable of (tile, x, y, z, target)
        Child links to set; every other cell is a leaf.
    fill : float, optional
        Constant feature value. Random normal features when None.

    Examples
    --------
    >>> # Root cell (0, 0, 0) subdivided into tile 1
    >>> data, child = make_tree(2, 2, 1, links=[(0, 0, 0, 0, 1)])
    """
    if fill is None:
        generator = torch.Generator().manual_seed(0)
        data = torch.randn(
            tiles, n, n, n, k, dtype=dtype, generator=generator
        )
    else:
        data = torch.full((tiles, n, n, n, k), fill, dtype=dtype)

    child = torch.zeros(tiles, n, n, n, dtype=torch.int32)
    for tile, x, y, z, target in links:
        child[tile, x, y, z] = target

    return data.to(device), child.to(device)


@pytest.fixture
def transform():
    """Fixture: identity transform in float64."""
    return make_transform()


@pytest.fixture
def single_tile_tree():
    """Fixture: one 4×4×4 tile, three random channels, no links."""
    return make_tree(1, 4, 3)


@pytest.fixture
def two_level_tree():
    """Fixture: N = 2 root whose min-corner cell links to tile 1.

    Tile 1 covers the grid-space octant [0, 0.5)³ and has cell side 0.25.
    """
    return make_tree(2, 2, 2, links=[(0, 0, 0, 0, 1)])


@pytest.fixture
def three_level_tree():
    """Fixture: chain root (0,0,0) -> tile 1, tile 1 (1,1,1) -> tile 2.

    Tile 2 covers [0.25, 0.5)³ with cell side 0.125.
    """
    return make_tree(3, 2, 2, links=[(0, 0, 0, 0, 1), (1, 1, 1, 1, 2)])


@pytest.fixture
def tree_factory():
    """Fixture: the :func:`make_tree` helper."""
    return make_tree
