"""Testing utilities for torchsvo operators.

Example usage:

    import hypothesis

    from torchsvo.testing import grid_points

    @hypothesis.given(points=grid_points(max_count=8))
    def test_weights_sum_to_one(points):
        ...
"""

from .strategies import (
    grid_points,
    unit_vectors,
)

__all__ = [
    "grid_points",
    "unit_vectors",
]
