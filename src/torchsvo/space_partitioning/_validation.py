"""Input checks shared by the vertical query and rendering operators.

Every check raises :class:`PreconditionError` before any computation is
dispatched. Nothing is coerced: a tensor on the wrong device, with the
wrong layout, or with the wrong dtype is rejected, never copied.
"""

from __future__ import annotations

import torch
from torch import Tensor

from ._exceptions import PreconditionError


def _check_input(name: str, tensor: Tensor, device: torch.device) -> None:
    if not isinstance(tensor, Tensor):
        raise PreconditionError(
            f"{name} must be a Tensor, got {type(tensor).__name__}"
        )
    if tensor.device != device:
        raise PreconditionError(
            f"{name} must be on device {device}, got {tensor.device}"
        )
    if not tensor.is_contiguous():
        raise PreconditionError(f"{name} must be contiguous")


def _check_floating(name: str, tensor: Tensor, dtype: torch.dtype) -> None:
    if not tensor.is_floating_point():
        raise PreconditionError(
            f"{name} must be floating point, got {tensor.dtype}"
        )
    if tensor.dtype != dtype:
        raise PreconditionError(
            f"{name} must have dtype {dtype}, got {tensor.dtype}"
        )


def _check_child(child: Tensor, device: torch.device) -> tuple[int, int]:
    """Validate child links and return ``(M, N)``."""
    _check_input("child", child, device)
    if child.dim() != 4:
        raise PreconditionError(
            f"child must be shape (M, N, N, N), got {tuple(child.shape)}"
        )
    if child.is_floating_point() or child.is_complex():
        raise PreconditionError(
            f"child must have an integer dtype, got {child.dtype}"
        )
    if child.dtype == torch.bool:
        raise PreconditionError("child must have an integer dtype, got bool")

    m, n = child.shape[0], child.shape[1]
    if m < 1 or n < 1:
        raise PreconditionError(
            f"child must have at least one tile of side >= 1, "
            f"got {tuple(child.shape)}"
        )
    if child.shape[2] != n or child.shape[3] != n:
        raise PreconditionError(
            f"child tiles must be cubes (M, N, N, N), got {tuple(child.shape)}"
        )

    largest = int(child.max().item())
    if largest >= m:
        raise PreconditionError(
            f"child links must refer to tiles < {m}, found link {largest}"
        )

    return m, n


def _check_tree(data: Tensor, child: Tensor) -> tuple[int, int, int]:
    """Validate a ``(data, child)`` pair and return ``(M, N, K)``."""
    if not isinstance(data, Tensor):
        raise PreconditionError(
            f"data must be a Tensor, got {type(data).__name__}"
        )
    device = data.device
    _check_input("data", data, device)
    if data.dim() != 5:
        raise PreconditionError(
            f"data must be shape (M, N, N, N, K), got {tuple(data.shape)}"
        )
    if not data.is_floating_point():
        raise PreconditionError(
            f"data must be floating point, got {data.dtype}"
        )

    m, n = _check_child(child, device)
    if tuple(data.shape[:4]) != tuple(child.shape):
        raise PreconditionError(
            f"data leading shape {tuple(data.shape[:4])} does not match "
            f"child shape {tuple(child.shape)}"
        )

    return m, n, data.shape[4]


def _check_rows(
    name: str,
    tensor: Tensor,
    width: int,
    dtype: torch.dtype,
    device: torch.device,
) -> None:
    """Validate a ``(Q, width)`` floating tensor."""
    _check_input(name, tensor, device)
    if tensor.dim() != 2:
        raise PreconditionError(
            f"{name} must be 2D, got {tensor.dim()}D "
            f"with shape {tuple(tensor.shape)}"
        )
    if tensor.size(-1) != width:
        raise PreconditionError(
            f"{name} must be shape (Q, {width}), got {tuple(tensor.shape)}"
        )
    _check_floating(name, tensor, dtype)


def _check_transform(
    offset: Tensor,
    invradius: Tensor,
    dtype: torch.dtype,
    device: torch.device,
) -> None:
    _check_input("offset", offset, device)
    _check_input("invradius", invradius, device)
    _check_floating("offset", offset, dtype)
    _check_floating("invradius", invradius, dtype)
    if offset.dim() > 1 or offset.numel() != 3:
        raise PreconditionError(
            f"offset must be shape (3,), got {tuple(offset.shape)}"
        )
    if invradius.dim() > 1 or invradius.numel() not in (1, 3):
        raise PreconditionError(
            f"invradius must be shape (3,) or (1,), "
            f"got {tuple(invradius.shape)}"
        )
