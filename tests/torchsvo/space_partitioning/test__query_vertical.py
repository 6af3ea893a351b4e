"""Tests for the vertical trilinear query."""

import itertools
import math
import warnings

import hypothesis
import pytest
import torch
import torch.testing
from torch.autograd import gradcheck, gradgradcheck

from torchsvo.space_partitioning import (
    DomainClampWarning,
    SparseVoxelError,
    query_vertical,
)
from torchsvo.testing import grid_points


def _reference_blend(tile_data, point, n):
    """Direct trilinear blend of the eight cell centres around ``point``."""
    lattice = [c * n - 0.5 for c in point]
    lower = [math.floor(c) for c in lattice]
    frac = [c - f for c, f in zip(lattice, lower)]

    result = torch.zeros(tile_data.shape[-1], dtype=tile_data.dtype)
    for corner in itertools.product((0, 1), repeat=3):
        weight = 1.0
        cell = []
        for axis, bit in enumerate(corner):
            weight *= frac[axis] if bit else 1.0 - frac[axis]
            cell.append(min(max(lower[axis] + bit, 0), n - 1))
        result = result + weight * tile_data[cell[0], cell[1], cell[2]]
    return result


def _chain_child():
    """Links of a three-level chain: root (0,0,0) -> 1, tile 1 (1,1,1) -> 2."""
    child = torch.zeros(3, 2, 2, 2, dtype=torch.int32)
    child[0, 0, 0, 0] = 1
    child[1, 1, 1, 1] = 2
    return child


class TestQueryVerticalSingleTile:
    """Tests for a tree that is a single leaf tile."""

    def test_output_shape(self, single_tile_tree, transform):
        """Output has one K-vector per query."""
        data, child = single_tile_tree
        indices = torch.rand(17, 3, dtype=torch.float64)

        result = query_vertical(data, child, indices, *transform)

        assert result.shape == (17, 3)
        assert result.dtype == torch.float64

    def test_empty_batch(self, single_tile_tree, transform):
        """Zero queries produce a (0, K) result."""
        data, child = single_tile_tree
        indices = torch.zeros(0, 3, dtype=torch.float64)

        result = query_vertical(data, child, indices, *transform)

        assert result.shape == (0, 3)

    def test_cell_centres_return_cell_values(
        self, single_tile_tree, transform
    ):
        """A query at a cell centre returns that cell's features exactly."""
        data, child = single_tile_tree
        cells = torch.tensor(
            list(itertools.product(range(4), repeat=3)), dtype=torch.int64
        )
        indices = (cells.double() + 0.5) / 4

        result = query_vertical(data, child, indices, *transform)

        expected = data[0, cells[:, 0], cells[:, 1], cells[:, 2]]
        torch.testing.assert_close(result, expected, rtol=0, atol=0)

    def test_matches_hand_computed_blend(self, single_tile_tree, transform):
        """Interior points equal the direct blend of 8 corner values."""
        data, child = single_tile_tree
        points = [(0.3, 0.45, 0.6), (0.2, 0.7, 0.55), (0.51, 0.49, 0.33)]
        indices = torch.tensor(points, dtype=torch.float64)

        result = query_vertical(data, child, indices, *transform)

        for i, point in enumerate(points):
            expected = _reference_blend(data[0], point, 4)
            torch.testing.assert_close(result[i], expected)

    def test_boundary_corners_clamp(self, single_tile_tree, transform):
        """Near the domain faces, corners clamp onto the boundary cells."""
        data, child = single_tile_tree
        # lattice coordinate -0.38 on x: both x corners collapse to cell 0
        indices = torch.tensor([[0.03, 0.3, 0.6]], dtype=torch.float64)

        result = query_vertical(data, child, indices, *transform)

        expected = _reference_blend(data[0], (0.03, 0.3, 0.6), 4)
        torch.testing.assert_close(result[0], expected)

    def test_negative_sentinel_is_leaf(self, single_tile_tree, transform):
        """A negative child value is treated like zero (leaf)."""
        data, child = single_tile_tree
        sentinel = torch.full_like(child, -1)
        indices = torch.rand(10, 3, dtype=torch.float64)

        torch.testing.assert_close(
            query_vertical(data, sentinel, indices, *transform),
            query_vertical(data, child, indices, *transform),
        )


class TestQueryVerticalHierarchy:
    """Tests for descent through child links."""

    def test_subdivided_cell_uses_child_tile(self, tree_factory, transform):
        """Points in a subdivided cell interpolate only the child tile."""
        data, child = tree_factory(2, 2, 2, links=[(0, 0, 0, 0, 1)])
        data[1] = 7.0
        indices = torch.tensor(
            [[0.1, 0.1, 0.1], [0.49, 0.25, 0.0], [0.3, 0.2, 0.45]],
            dtype=torch.float64,
        )

        result = query_vertical(data, child, indices, *transform)

        torch.testing.assert_close(result, torch.full_like(result, 7.0))

    def test_leaf_cell_in_root(self, two_level_tree, transform):
        """Root cells without links interpolate in the root tile."""
        data, child = two_level_tree
        indices = torch.tensor([[0.75, 0.75, 0.75]], dtype=torch.float64)

        result = query_vertical(data, child, indices, *transform)

        torch.testing.assert_close(result[0], data[0, 1, 1, 1])

    def test_three_level_descent(self, three_level_tree, transform):
        """Descent follows the chain down to the deepest tile."""
        data, child = three_level_tree
        # root cell 0 -> tile 1 at 0.6, tile 1 cell 1 -> tile 2 at 0.2
        indices = torch.tensor([[0.3, 0.3, 0.3]], dtype=torch.float64)

        result = query_vertical(data, child, indices, *transform)

        torch.testing.assert_close(result[0], data[2, 0, 0, 0])

    def test_interpolation_in_child_tile(self, three_level_tree, transform):
        """Interpolation inside tile 1 uses tile-local coordinates."""
        data, child = three_level_tree
        point = (0.1, 0.2, 0.15)

        result = query_vertical(
            data,
            child,
            torch.tensor([point], dtype=torch.float64),
            *transform,
        )

        local = tuple(2 * c for c in point)
        expected = _reference_blend(data[1], local, 2)
        torch.testing.assert_close(result[0], expected)

    def test_cycle_raises(self, tree_factory, transform):
        """Links that never reach a leaf raise SparseVoxelError."""
        data, child = tree_factory(2, 2, 1, links=[(0, 0, 0, 0, 1)])
        child[1, 0, 0, 0] = 1
        indices = torch.tensor([[0.01, 0.01, 0.01]], dtype=torch.float64)

        with pytest.raises(SparseVoxelError, match="do not terminate"):
            query_vertical(data, child, indices, *transform)


class TestQueryVerticalDomain:
    """Tests for the out-of-domain clamping policy."""

    def test_out_of_domain_warns(self, single_tile_tree, transform):
        """Points outside [0, 1)³ emit DomainClampWarning."""
        data, child = single_tile_tree
        indices = torch.tensor([[-0.5, 0.2, 1.7]], dtype=torch.float64)

        with pytest.warns(DomainClampWarning):
            query_vertical(data, child, indices, *transform)

    def test_out_of_domain_equals_clamped(self, single_tile_tree, transform):
        """An outside point evaluates like its clamp onto the domain."""
        data, child = single_tile_tree
        outside = torch.tensor(
            [[-0.5, 0.2, 1.7], [2.0, -1.0, 0.4]], dtype=torch.float64
        )

        with pytest.warns(DomainClampWarning):
            result = query_vertical(data, child, outside, *transform)
        with pytest.warns(DomainClampWarning):
            expected = query_vertical(
                data, child, outside.clamp(0.0, 1.0), *transform
            )

        torch.testing.assert_close(result, expected)

    def test_upper_face_matches_last_cell(self, single_tile_tree, transform):
        """Clamping to the upper face returns the boundary cell value."""
        data, child = single_tile_tree
        indices = torch.tensor([[5.0, 5.0, 5.0]], dtype=torch.float64)

        with pytest.warns(DomainClampWarning):
            result = query_vertical(data, child, indices, *transform)

        torch.testing.assert_close(result[0], data[0, 3, 3, 3])

    def test_in_domain_does_not_warn(self, single_tile_tree, transform):
        """Points inside [0, 1)³ emit no warning."""
        data, child = single_tile_tree
        indices = torch.rand(32, 3, dtype=torch.float64)

        with warnings.catch_warnings():
            warnings.simplefilter("error", DomainClampWarning)
            query_vertical(data, child, indices, *transform)

    def test_world_space_transform(self, two_level_tree):
        """World points map through offset and invradius before descent."""
        data, child = two_level_tree
        offset = torch.tensor([1.0, 1.0, 1.0], dtype=torch.float64)
        invradius = torch.tensor([0.5], dtype=torch.float64)
        world = torch.tensor(
            [[-0.8, -0.6, 0.2], [0.5, 0.5, -0.9]], dtype=torch.float64
        )

        result = query_vertical(data, child, world, offset, invradius)

        grid = (world + 1.0) * 0.5
        expected = query_vertical(
            data,
            child,
            grid,
            torch.zeros(3, dtype=torch.float64),
            torch.ones(1, dtype=torch.float64),
        )
        torch.testing.assert_close(result, expected)


class TestQueryVerticalProperties:
    """Property-based tests over random grid points."""

    @hypothesis.given(points=grid_points(max_count=12))
    @hypothesis.settings(deadline=None, max_examples=50)
    def test_weights_sum_to_one(self, points):
        """Querying all-ones data returns ones, including faces/corners."""
        child = _chain_child()
        data = torch.ones(3, 2, 2, 2, 2, dtype=torch.float64)
        offset = torch.zeros(3, dtype=torch.float64)
        invradius = torch.ones(1, dtype=torch.float64)

        result = query_vertical(data, child, points, offset, invradius)

        torch.testing.assert_close(result, torch.ones_like(result))

    @hypothesis.given(points=grid_points(max_count=12))
    @hypothesis.settings(deadline=None, max_examples=50)
    def test_output_within_data_range(self, points):
        """Trilinear blends never leave the range of the stored values."""
        child = _chain_child()
        generator = torch.Generator().manual_seed(1)
        data = torch.randn(
            3, 2, 2, 2, 1, dtype=torch.float64, generator=generator
        )
        offset = torch.zeros(3, dtype=torch.float64)
        invradius = torch.ones(1, dtype=torch.float64)

        result = query_vertical(data, child, points, offset, invradius)

        assert (result >= data.min() - 1e-12).all()
        assert (result <= data.max() + 1e-12).all()


class TestQueryVerticalAutograd:
    """Tests for gradient support."""

    def test_gradient_exists(self, two_level_tree, transform):
        """Gradient flows to data."""
        data, child = two_level_tree
        data = data.clone().requires_grad_(True)
        indices = torch.rand(5, 3, dtype=torch.float64)

        query_vertical(data, child, indices, *transform).sum().backward()

        assert data.grad is not None
        assert data.grad.shape == data.shape
        assert torch.isfinite(data.grad).all()

    def test_gradcheck(self, two_level_tree, transform):
        """First-order gradient is numerically correct."""
        data, child = two_level_tree
        indices = torch.tensor(
            [[0.1, 0.2, 0.3], [0.7, 0.6, 0.9], [0.45, 0.05, 0.3]],
            dtype=torch.float64,
        )

        def fn(d):
            return query_vertical(d, child, indices, *transform)

        data = data.clone().requires_grad_(True)
        assert gradcheck(fn, (data,), raise_exception=True)

    def test_gradcheck_at_boundary(self, two_level_tree, transform):
        """Gradient stays consistent for clamped out-of-domain points."""
        data, child = two_level_tree
        indices = torch.tensor(
            [[-0.2, 0.3, 0.3], [1.0, 1.0, 1.0], [0.0, 0.5, 1.3]],
            dtype=torch.float64,
        )

        def fn(d):
            return query_vertical(d, child, indices, *transform)

        data = data.clone().requires_grad_(True)
        with pytest.warns(DomainClampWarning):
            assert gradcheck(fn, (data,), raise_exception=True)

    def test_gradgradcheck(self, two_level_tree, transform):
        """Second-order gradient is numerically correct."""
        data, child = two_level_tree
        indices = torch.tensor(
            [[0.1, 0.2, 0.3], [0.7, 0.6, 0.9]], dtype=torch.float64
        )

        def fn(d):
            return query_vertical(d, child, indices, *transform)

        data = data.clone().requires_grad_(True)
        assert gradgradcheck(fn, (data,), raise_exception=True)
