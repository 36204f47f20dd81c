# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Diagonal Gaussian noise models.

A noise model describes the covariance of a factor's residual. Linear factors
only ever need two things from it: its dimension (checked against the number
of rows of the factor) and a way to *whiten* rows, i.e. pre-multiply them by
the square-root information matrix ``Σ^{-1/2}``.

Models are frozen dataclasses, so one instance can be shared by any number
of factors without copying.

    model = Diagonal.from_sigmas(jnp.array([0.1, 0.1, 0.5]))
    model.dim                 # 3
    model.whiten(r)           # r / sigmas

`Isotropic` and `Unit` are convenience subclasses.
"""

from __future__ import annotations
from dataclasses import dataclass

import jax.numpy as jnp


@dataclass(frozen=True, eq=False)
class Diagonal:
    """Independent per-row standard deviations."""
    sigmas: jnp.ndarray

    def __post_init__(self) -> None:
        sigmas = jnp.asarray(self.sigmas, dtype=float).reshape(-1)
        if bool(jnp.any(sigmas <= 0.0)):
            raise ValueError("Noise model sigmas must be strictly positive")
        object.__setattr__(self, "sigmas", sigmas)

    @classmethod
    def from_sigmas(cls, sigmas) -> "Diagonal":
        return cls(sigmas=jnp.asarray(sigmas, dtype=float))

    @classmethod
    def from_variances(cls, variances) -> "Diagonal":
        return cls(sigmas=jnp.sqrt(jnp.asarray(variances, dtype=float)))

    @classmethod
    def from_precisions(cls, precisions) -> "Diagonal":
        return cls(sigmas=1.0 / jnp.sqrt(jnp.asarray(precisions, dtype=float)))

    @property
    def dim(self) -> int:
        return int(self.sigmas.shape[0])

    @property
    def variances(self) -> jnp.ndarray:
        return self.sigmas ** 2

    @property
    def precisions(self) -> jnp.ndarray:
        return 1.0 / self.variances

    @property
    def sqrt_information(self) -> jnp.ndarray:
        return jnp.diag(1.0 / self.sigmas)

    def whiten(self, v: jnp.ndarray) -> jnp.ndarray:
        return v / self.sigmas

    def whiten_matrix(self, A: jnp.ndarray) -> jnp.ndarray:
        """Scale each row of ``A`` by the inverse sigma of that row."""
        return A / self.sigmas[:, None]

    def unwhiten(self, v: jnp.ndarray) -> jnp.ndarray:
        return v * self.sigmas

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dim={self.dim}, sigmas={self.sigmas.tolist()})"


@dataclass(frozen=True, eq=False, repr=False)
class Isotropic(Diagonal):
    """Same standard deviation on every row."""

    @classmethod
    def from_sigma(cls, dim: int, sigma: float) -> "Isotropic":
        return cls(sigmas=jnp.full((int(dim),), float(sigma)))

    @property
    def sigma(self) -> float:
        return float(self.sigmas[0])


@dataclass(frozen=True, eq=False, repr=False)
class Unit(Isotropic):
    """Identity covariance; whitening is a no-op."""

    @classmethod
    def create(cls, dim: int) -> "Unit":
        return cls(sigmas=jnp.ones((int(dim),)))

    def whiten(self, v: jnp.ndarray) -> jnp.ndarray:
        return v

    def whiten_matrix(self, A: jnp.ndarray) -> jnp.ndarray:
        return A
