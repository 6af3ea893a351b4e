"""Benchmarks for sparse voxel grid operators.

This module benchmarks torchsvo tree queries, gradient scatter, leaf
assignment and volume rendering, and compares the query on a single tile
against a dense grid_sample baseline.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import numpy as np
import torch
import torch.nn.functional

# torchsvo imports
from torchsvo.graphics.rendering import volume_render
from torchsvo.space_partitioning import (
    assign_vertical,
    query_vertical,
    query_vertical_backward,
)


def benchmark(
    func: Callable,
    *args: Any,
    warmup: int = 3,
    iterations: int = 10,
    **kwargs: Any,
) -> dict[str, float]:
    """Run a simple benchmark on a function.

    Parameters
    ----------
    func : callable
        Function to benchmark.
    *args : Any
        Positional arguments to pass to func.
    warmup : int, optional
        Number of warmup iterations. Default is 3.
    iterations : int, optional
        Number of timed iterations. Default is 10.
    **kwargs : Any
        Keyword arguments to pass to func.

    Returns
    -------
    dict
        Dictionary with timing statistics:
        - 'mean': Mean time in seconds
        - 'std': Standard deviation in seconds
        - 'min': Minimum time in seconds
        - 'max': Maximum time in seconds
    """
    # Warmup
    for _ in range(warmup):
        func(*args, **kwargs)

    # Timed runs
    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        func(*args, **kwargs)
        if torch.cuda.is_available():
            torch.cuda.synchronize()
        times.append(time.perf_counter() - start)

    return {
        "mean": np.mean(times),
        "std": np.std(times),
        "min": np.min(times),
        "max": np.max(times),
    }


def format_time(seconds: float) -> str:
    """Format time in appropriate units."""
    if seconds < 1e-6:
        return f"{seconds * 1e9:.3f}ns"
    elif seconds < 1e-3:
        return f"{seconds * 1e6:.3f}us"
    elif seconds < 1:
        return f"{seconds * 1e3:.3f}ms"
    else:
        return f"{seconds:.3f}s"


def print_result(name: str, ts_time: dict[str, float]) -> None:
    """Print benchmark result."""
    print(f"\n{name}")
    print("-" * len(name))
    print(
        f"  Time: {format_time(ts_time['mean'])} "
        f"+/- {format_time(ts_time['std'])}"
    )


def print_comparison(
    name: str,
    times: dict[str, dict[str, float]],
) -> None:
    """Print benchmark comparison results for multiple methods."""
    print(f"\n{name}")
    print("-" * len(name))

    # Find fastest method
    fastest_name = min(times.keys(), key=lambda k: times[k]["mean"])
    fastest_time = times[fastest_name]["mean"]

    for method_name, ts_time in times.items():
        slowdown = ts_time["mean"] / fastest_time
        if slowdown > 1.01:
            suffix = f" ({slowdown:.2f}x slower)"
        else:
            suffix = " (fastest)"
        print(
            f"  {method_name}: {format_time(ts_time['mean'])} "
            f"+/- {format_time(ts_time['std'])}{suffix}"
        )


def generate_random_tree(
    n: int,
    tiles: int,
    channels: int,
    seed: int | None = None,
    dtype: torch.dtype = torch.float32,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Generate a tree by subdividing random leaf cells.

    Parameters
    ----------
    n : int
        Tile side.
    tiles : int
        Number of tiles, including the root.
    channels : int
        Features per cell.
    seed : int, optional
        Random seed for reproducibility.
    dtype : torch.dtype, optional
        Feature dtype. Default is float32.

    Returns
    -------
    data : Tensor
        Random normal features, shape (tiles, n, n, n, channels).
    child : Tensor
        Child links, shape (tiles, n, n, n).
    """
    generator = torch.Generator()
    if seed is not None:
        generator.manual_seed(seed)

    child = torch.zeros(tiles, n, n, n, dtype=torch.int32)
    for tile in range(1, tiles):
        leaves = (child[:tile] == 0).nonzero()
        pick = int(torch.randint(leaves.shape[0], (1,), generator=generator))
        child[tuple(leaves[pick])] = tile

    data = torch.randn(
        tiles, n, n, n, channels, dtype=dtype, generator=generator
    )
    return data, child


def identity_transform(
    dtype: torch.dtype = torch.float32,
) -> tuple[torch.Tensor, torch.Tensor]:
    return torch.zeros(3, dtype=dtype), torch.ones(1, dtype=dtype)


class BenchSparseVoxelGrid:
    """Benchmarks for sparse voxel grid operators."""

    def __init__(self, warmup: int = 3, iterations: int = 10):
        """Initialize benchmark runner.

        Parameters
        ----------
        warmup : int, optional
            Number of warmup iterations. Default is 3.
        iterations : int, optional
            Number of timed iterations. Default is 10.
        """
        self.warmup = warmup
        self.iterations = iterations

    def _bench(
        self, func: Callable, *args: Any, **kwargs: Any
    ) -> dict[str, float]:
        """Run benchmark with configured settings."""
        return benchmark(
            func,
            *args,
            warmup=self.warmup,
            iterations=self.iterations,
            **kwargs,
        )

    def bench_query(
        self, num_queries: int = 100000, tiles: int = 512, n: int = 2
    ) -> None:
        """Benchmark the trilinear tree query.

        Parameters
        ----------
        num_queries : int, optional
            Number of query points. Default is 100000.
        tiles : int, optional
            Number of tiles in the tree. Default is 512.
        n : int, optional
            Tile side. Default is 2.
        """
        data, child = generate_random_tree(n, tiles, 4, seed=42)
        points = torch.rand(num_queries, 3)

        ts_time = self._bench(
            query_vertical, data, child, points, *identity_transform()
        )

        print_result(
            f"query_vertical (queries={num_queries}, tiles={tiles}, N={n})",
            ts_time,
        )

    def bench_query_backward(
        self, num_queries: int = 100000, tiles: int = 512, n: int = 2
    ) -> None:
        """Benchmark the gradient scatter of the tree query."""
        _, child = generate_random_tree(n, tiles, 4, seed=42)
        points = torch.rand(num_queries, 3)
        grad_output = torch.randn(num_queries, 4)

        ts_time = self._bench(
            query_vertical_backward,
            child,
            points,
            grad_output,
            *identity_transform(),
        )

        print_result(
            f"query_vertical_backward "
            f"(queries={num_queries}, tiles={tiles}, N={n})",
            ts_time,
        )

    def bench_assign(
        self, num_queries: int = 100000, tiles: int = 512, n: int = 2
    ) -> None:
        """Benchmark leaf assignment."""
        data, child = generate_random_tree(n, tiles, 4, seed=42)
        points = torch.rand(num_queries, 3)
        values = torch.randn(num_queries, 4)

        ts_time = self._bench(
            assign_vertical,
            data,
            child,
            points,
            values,
            *identity_transform(),
        )

        print_result(
            f"assign_vertical (queries={num_queries}, tiles={tiles}, N={n})",
            ts_time,
        )

    def bench_dense_comparison(
        self, num_queries: int = 100000, n: int = 32
    ) -> None:
        """Compare a single-tile query against dense grid_sample.

        One tile with no links is a dense grid; ``grid_sample`` with
        ``align_corners=False`` and border padding evaluates the same
        cell-centred trilinear interpolation.
        """
        data, child = generate_random_tree(n, 1, 4, seed=42)
        points = torch.rand(num_queries, 3)

        # (x, y, z, K) -> (1, K, x, y, z); grid_sample indexes (z, y, x)
        volume = data[0].permute(3, 0, 1, 2).unsqueeze(0).contiguous()
        grid = (points[:, [2, 1, 0]] * 2.0 - 1.0).view(1, 1, 1, -1, 3)

        def dense():
            return torch.nn.functional.grid_sample(
                volume,
                grid,
                mode="bilinear",
                padding_mode="border",
                align_corners=False,
            )

        times = {
            "torchsvo": self._bench(
                query_vertical, data, child, points, *identity_transform()
            ),
            "grid_sample": self._bench(dense),
        }

        print_comparison(
            f"Single tile vs dense (queries={num_queries}, N={n})", times
        )

    def bench_volume_render(
        self,
        num_rays: int = 4096,
        tiles: int = 512,
        n: int = 2,
        step_size: float = 0.01,
    ) -> None:
        """Benchmark ray-marched rendering.

        Parameters
        ----------
        num_rays : int, optional
            Number of rays. Default is 4096.
        tiles : int, optional
            Number of tiles in the tree. Default is 512.
        n : int, optional
            Tile side. Default is 2.
        step_size : float, optional
            Marching step in grid units. Default is 0.01.
        """
        data, child = generate_random_tree(n, tiles, 28, seed=42)
        data[..., 0] = data[..., 0].abs()
        origins = torch.rand(num_rays, 3)
        origins[:, 2] = -0.5
        dirs = torch.nn.functional.normalize(
            torch.randn(num_rays, 3) * 0.1 + torch.tensor([0.0, 0.0, 1.0]),
            dim=-1,
        )

        ts_time = self._bench(
            volume_render,
            data,
            child,
            origins,
            dirs,
            dirs,
            *identity_transform(),
            step_size,
            1e-3,
            1.0,
        )

        print_result(
            f"volume_render (rays={num_rays}, tiles={tiles}, N={n}, "
            f"step={step_size})",
            ts_time,
        )

    def run_all(self) -> None:
        """Run all benchmarks."""
        print("=" * 60)
        print("SPARSE VOXEL GRID BENCHMARKS")
        print("=" * 60)

        self.bench_query()
        self.bench_query_backward()
        self.bench_assign()
        self.bench_dense_comparison()
        self.bench_volume_render()

    def run_scaling(self) -> None:
        """Run scaling benchmarks with varying parameters."""
        print("=" * 60)
        print("SCALING BENCHMARKS")
        print("=" * 60)

        # Query count scaling
        print("\n--- Query Count Scaling (query_vertical) ---")
        for num_queries in [1000, 10000, 100000, 1000000]:
            self.bench_query(num_queries=num_queries)

        # Tree depth scaling
        print("\n--- Tile Count Scaling (query_vertical) ---")
        for tiles in [1, 64, 512, 4096]:
            self.bench_query(tiles=tiles)

        # Step size scaling
        print("\n--- Step Size Scaling (volume_render) ---")
        for step_size in [0.04, 0.02, 0.01, 0.005]:
            self.bench_volume_render(step_size=step_size)


if __name__ == "__main__":
    bench = BenchSparseVoxelGrid(warmup=2, iterations=10)
    bench.run_all()
    print("\n")
    bench.run_scaling()
