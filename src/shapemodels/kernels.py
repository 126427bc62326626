"""
Covariance kernels for Gaussian processes over 3D points.

Scalar kernels map pairs of points to a covariance value and can be scaled
and added. ``DiagonalKernel`` turns a scalar kernel into a matrix-valued
kernel for vector (deformation) fields with independent components.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from scipy.spatial.distance import cdist

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


class Kernel(abc.ABC):
    """Symmetric positive semi-definite scalar kernel."""

    @abc.abstractmethod
    def __call__(self, xs: ArrayLike, ys: ArrayLike) -> NDArray[np.floating]:
        """Kernel matrix between two point sets, shape (n_xs, n_ys)."""

    def __mul__(self, factor: float) -> Kernel:
        return ScaledKernel(self, float(factor))

    __rmul__ = __mul__

    def __add__(self, other: Kernel) -> Kernel:
        return SumKernel(self, other)


@dataclass(frozen=True)
class GaussianKernel(Kernel):
    """Squared exponential kernel ``exp(-|x - y|^2 / sigma^2)``."""

    sigma: float

    def __post_init__(self) -> None:
        if self.sigma <= 0:
            raise ValueError(f"Kernel width must be positive, got {self.sigma}")

    def __call__(self, xs: ArrayLike, ys: ArrayLike) -> NDArray[np.floating]:
        distances = cdist(np.atleast_2d(xs), np.atleast_2d(ys), "sqeuclidean")
        return np.exp(-distances / self.sigma**2)


@dataclass(frozen=True)
class ScaledKernel(Kernel):
    kernel: Kernel
    factor: float

    def __post_init__(self) -> None:
        if self.factor < 0:
            raise ValueError(f"Kernel scale must be non-negative, got {self.factor}")

    def __call__(self, xs: ArrayLike, ys: ArrayLike) -> NDArray[np.floating]:
        return self.factor * self.kernel(xs, ys)


@dataclass(frozen=True)
class SumKernel(Kernel):
    first: Kernel
    second: Kernel

    def __call__(self, xs: ArrayLike, ys: ArrayLike) -> NDArray[np.floating]:
        return self.first(xs, ys) + self.second(xs, ys)


class MatrixValuedKernel(abc.ABC):
    """Kernel whose values are (dim x dim) covariance matrices."""

    dim: int

    @abc.abstractmethod
    def matrix(self, xs: ArrayLike, ys: ArrayLike) -> NDArray[np.floating]:
        """Block kernel matrix, shape (dim * n_xs, dim * n_ys).

        Rows and columns are point-major: block (i, j) is ``k(xs[i], ys[j])``.
        """


@dataclass(frozen=True)
class DiagonalKernel(MatrixValuedKernel):
    """Matrix-valued kernel ``k(x, y) * I`` with independent components."""

    kernel: Kernel
    dim: int = 3

    def matrix(self, xs: ArrayLike, ys: ArrayLike) -> NDArray[np.floating]:
        return np.kron(self.kernel(xs, ys), np.eye(self.dim))
