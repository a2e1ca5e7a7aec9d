"""Normal-equation accumulator for rigid registration and a running mean/covariance."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass(eq=False, repr=False)
class Hess1:
    """Hessian of a single delta pose ``[rot, trans]`` for rigid ICP."""

    n: int = 0
    c: float = 0.0
    H: np.ndarray = field(default_factory=lambda: np.zeros((6, 6)))
    b: np.ndarray = field(default_factory=lambda: np.zeros(6))

    def __repr__(self) -> str:
        return f"Hess1(n={self.n}, c={self.c:.4f})"

    def add(self, J, W, r) -> None:
        """Add one cost with 3x6 Jacobian ``J``, 3x3 weight ``W`` and residual ``r``."""
        J = np.asarray(J, dtype=float)
        W = np.asarray(W, dtype=float)
        r = np.asarray(r, dtype=float)
        JtW = J.T @ W
        self.H += JtW @ J
        self.b -= JtW @ r
        self.c += float(r @ r)
        self.n += 1

    def __iadd__(self, other: Hess1) -> Hess1:
        if not isinstance(other, Hess1):
            return NotImplemented
        if other.n > 0:
            self.H += other.H
            self.b += other.b
            self.n += other.n
            self.c += other.c
        return self

    def __add__(self, other: Hess1) -> Hess1:
        if not isinstance(other, Hess1):
            return NotImplemented
        result = Hess1(self.n, self.c, self.H.copy(), self.b.copy())
        result += other
        return result

    def solve(self) -> np.ndarray:
        """Solve ``H x = b`` using the lower triangle of ``H``."""
        if self.n < 6:
            raise ValueError(f"need at least 6 costs to solve, got {self.n}")
        lower = np.tril(self.H)
        sym = lower + np.tril(self.H, -1).T
        chol = np.linalg.cholesky(sym)
        y = np.linalg.solve(chol, self.b)
        return np.linalg.solve(chol.T, y)


class MeanCovar:
    """Incrementally accumulated mean and covariance of points."""

    def __init__(self, dim: int = 3) -> None:
        self.dim = dim
        self.reset()

    def __repr__(self) -> str:
        return f"MeanCovar(n={self.n}, mean={self.mean.tolist()})"

    def reset(self) -> None:
        self.n = 0
        self.mean = np.zeros(self.dim)
        self.covar_sum = np.zeros((self.dim, self.dim))

    def add(self, point) -> None:
        x = np.asarray(point, dtype=float).reshape(self.dim)
        self.n += 1
        delta = x - self.mean
        self.mean += delta / self.n
        self.covar_sum += np.outer(delta, x - self.mean)

    def covar(self) -> np.ndarray:
        """Sample covariance; zero until at least two points are added."""
        if self.n < 2:
            return np.zeros((self.dim, self.dim))
        return self.covar_sum / (self.n - 1)

    def ok(self) -> bool:
        return self.n >= 3

    def copy(self) -> MeanCovar:
        other = MeanCovar(self.dim)
        other.n = self.n
        other.mean = self.mean.copy()
        other.covar_sum = self.covar_sum.copy()
        return other