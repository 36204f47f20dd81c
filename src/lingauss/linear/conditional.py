# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Gaussian conditionals produced by elimination.

Eliminating a variable ``x_f`` from the factors that touch it yields a density
``p(x_f | x_s)`` written as the square-root linear system

    R x_f + S x_s = d

where ``R`` is upper triangular. This is just a Jacobian factor with unit
noise whose leading blocks are the *frontal* variables, so
:class:`GaussianConditional` subclasses
:class:`~lingauss.linear.jacobian_factor.JacobianFactor` and adds the
frontal/parent split plus back-substitution.
"""

from __future__ import annotations
from typing import Hashable, Mapping, Sequence, Tuple

import jax.numpy as jnp
from jax.scipy.linalg import solve_triangular

from .block_matrix import VerticalBlockMatrix
from .errors import DimensionError, IndeterminantLinearSystem, KeyNotFound
from .jacobian_factor import JacobianFactor


class GaussianConditional(JacobianFactor):
    """``p(frontals | parents)`` as ``R x_f + S x_s = d`` with ``R`` upper triangular."""

    def __init__(
        self,
        keys: Sequence[Hashable],
        Ab: VerticalBlockMatrix,
        nr_frontals: int = 1,
    ) -> None:
        super().__init__(keys, Ab, None)
        nr_frontals = int(nr_frontals)
        if not 1 <= nr_frontals <= len(self.keys):
            raise ValueError(
                f"nr_frontals must be in [1, {len(self.keys)}], got {nr_frontals}"
            )
        frontal_dim = sum(Ab.block_widths[:nr_frontals])
        if Ab.rows != frontal_dim:
            raise DimensionError(
                f"Conditional R block must be square: {Ab.rows} rows for "
                f"{frontal_dim} frontal columns"
            )
        self._nr_frontals = nr_frontals

    @property
    def nr_frontals(self) -> int:
        return self._nr_frontals

    @property
    def frontals(self) -> Tuple[Hashable, ...]:
        return self.keys[:self._nr_frontals]

    @property
    def parents(self) -> Tuple[Hashable, ...]:
        return self.keys[self._nr_frontals:]

    def get_r(self) -> jnp.ndarray:
        return self.Ab.range(0, self._nr_frontals)

    def get_s(self) -> jnp.ndarray:
        return self.Ab.range(self._nr_frontals, self.size)

    def get_d(self) -> jnp.ndarray:
        return self.get_b()

    def solve(self, parent_values: Mapping[Hashable, jnp.ndarray]) -> jnp.ndarray:
        """
        Back-substitute ``x_f = R⁻¹ (d − S x_s)``.

        Returns the stacked frontal vector; use :meth:`split_frontals` to
        get it per variable.
        """
        rhs = self.get_d()
        for i, key in enumerate(self.parents, start=self._nr_frontals):
            if key not in parent_values:
                raise KeyNotFound(key, "parent values")
            rhs = rhs - self.get_a(i) @ jnp.asarray(parent_values[key]).reshape(-1)

        R = self.get_r()
        if not bool(jnp.all(jnp.abs(jnp.diag(R)) > 0.0)):
            raise IndeterminantLinearSystem(self.frontals[0], "zero pivot in R")
        return solve_triangular(R, rhs, lower=False)

    def split_frontals(self, x: jnp.ndarray) -> dict:
        out = {}
        offset = 0
        for key, d in zip(self.frontals, self.dims()[:self._nr_frontals]):
            out[key] = x[offset:offset + d]
            offset += d
        return out

    def __repr__(self) -> str:
        return (
            f"GaussianConditional(frontals={list(self.frontals)}, "
            f"parents={list(self.parents)})"
        )
