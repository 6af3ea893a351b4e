from ._spherical_harmonics import (
    SUPPORTED_BASIS_DIMS,
    spherical_harmonics_basis,
)

__all__ = [
    "SUPPORTED_BASIS_DIMS",
    "spherical_harmonics_basis",
]
