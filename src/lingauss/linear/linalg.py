# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Dense helpers shared by elimination and marginal queries.

JAX's ``cholesky`` does not raise on a matrix that is not positive
definite; it returns NaNs (or, for a nearly singular matrix in float32, tiny
pivots). These helpers turn both cases into
:class:`~lingauss.linear.errors.IndeterminantLinearSystem`.
"""

from __future__ import annotations
from typing import Hashable, Optional

import jax.numpy as jnp
from jax.scipy.linalg import cho_solve

from .errors import DimensionError, IndeterminantLinearSystem


def _pivot_tolerance(H: jnp.ndarray) -> float:
    # Relative to the largest diagonal entry; invariant under uniform rescaling of H.
    eps = float(jnp.finfo(H.dtype).eps)
    scale = float(jnp.max(jnp.abs(jnp.diag(H)))) if H.shape[0] else 0.0
    return eps * scale * H.shape[0]


def cholesky_lower(H: jnp.ndarray, key: Optional[Hashable] = None) -> jnp.ndarray:
    """Lower Cholesky factor of a symmetric positive-definite ``H``."""
    H = jnp.asarray(H, dtype=float)
    if H.ndim != 2 or H.shape[0] != H.shape[1]:
        raise DimensionError(f"Expected a square matrix, got shape {H.shape}")
    if H.shape[0] == 0:
        return H

    # Symmetrize; only one triangle is meaningful after accumulation.
    H = 0.5 * (H + H.T)
    L = jnp.linalg.cholesky(H)
    if not bool(jnp.all(jnp.isfinite(L))):
        raise IndeterminantLinearSystem(key, "matrix is not positive definite")
    if float(jnp.min(jnp.diag(L))) ** 2 <= _pivot_tolerance(H):
        raise IndeterminantLinearSystem(key, "matrix is numerically singular")
    return L


def spd_inverse(H: jnp.ndarray, key: Optional[Hashable] = None) -> jnp.ndarray:
    """Inverse of a symmetric positive-definite matrix, via Cholesky."""
    L = cholesky_lower(H, key)
    n = L.shape[0]
    inv = cho_solve((L, True), jnp.eye(n, dtype=L.dtype))
    return 0.5 * (inv + inv.T)
