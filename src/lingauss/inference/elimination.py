# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Variable elimination for linear Gaussian factor graphs.

Eliminating a variable ``x_f`` takes every factor that touches it, combines
them, and splits the result into

    • a :class:`GaussianConditional` ``p(x_f | x_s)`` over the separator
      ``x_s`` (every other variable those factors touched), and
    • a new factor on ``x_s`` alone: the marginal of what was eliminated.

Two numerical strategies are supported, selected with :class:`Factorization`:

QR (``eliminate_qr``)
    Stack the whitened Jacobian rows and take a QR decomposition. Works on
    the square-root form directly, which is the more stable option. Every
    input factor must be a :class:`JacobianFactor`.

Cholesky (``eliminate_prefer_cholesky``)
    Sum the factors into an augmented information matrix, take a partial
    Cholesky factorization of the frontal block and form the Schur
    complement. Faster, but squares the condition number. The new separator
    factor is a :class:`HessianFactor`.

``eliminate_partial`` runs either strategy over an ordering and returns the
conditionals together with whatever factors are left; this is the building
block for full elimination into a Bayes tree and for marginal queries.
"""

from __future__ import annotations
from enum import Enum
import logging
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple, Union

import jax.numpy as jnp
from jax.scipy.linalg import solve_triangular

from ..linear.block_matrix import VerticalBlockMatrix
from ..linear.conditional import GaussianConditional
from ..linear.errors import DimensionError, IndeterminantLinearSystem, KeyNotFound
from ..linear.hessian_factor import HessianFactor
from ..linear.jacobian_factor import JacobianFactor
from ..linear.linalg import cholesky_lower

logger = logging.getLogger(__name__)

GaussianFactor = Union[JacobianFactor, HessianFactor]
EliminationResult = Tuple[GaussianConditional, Optional[GaussianFactor]]


class Factorization(Enum):
    """Numerical strategy used when eliminating a variable."""
    CHOLESKY = "cholesky"
    QR = "qr"


def _layout(
    factors: Sequence[GaussianFactor],
    frontal: Hashable,
    rank: Callable[[Hashable], tuple],
) -> Tuple[List[Hashable], Dict[Hashable, int]]:
    """Frontal first, then the separator sorted by elimination rank."""
    dims: Dict[Hashable, int] = {}
    for f in factors:
        for key, d in zip(f.keys, f.dims()):
            if dims.setdefault(key, d) != d:
                raise DimensionError(
                    f"Variable {key!r} has inconsistent dimensions {dims[key]} and {d}"
                )
    if frontal not in dims:
        raise KeyNotFound(frontal, "factors being eliminated")
    separator = sorted((k for k in dims if k != frontal), key=rank)
    return [frontal] + separator, dims


def _default_rank(key: Hashable) -> tuple:
    return (0, key)


def eliminate_qr(
    factors: Sequence[GaussianFactor],
    frontal: Hashable,
    rank: Callable[[Hashable], tuple] = _default_rank,
) -> EliminationResult:
    """Eliminate ``frontal`` from Jacobian factors by QR."""
    for f in factors:
        if not isinstance(f, JacobianFactor):
            raise TypeError(
                f"QR elimination requires JacobianFactors, got {type(f).__name__}"
            )

    keys, dims = _layout(factors, frontal, rank)
    offsets: Dict[Hashable, int] = {}
    total = 0
    for key in keys:
        offsets[key] = total
        total += dims[key]

    # Scatter whitened rows of every factor into one stacked [A | b].
    row_blocks = []
    for f in factors:
        Abw = f.whitened()
        stacked = jnp.zeros((f.rows, total + 1), dtype=Abw.dtype)
        col = 0
        for key, d in zip(f.keys, f.dims()):
            stacked = stacked.at[:, offsets[key]:offsets[key] + d].set(Abw[:, col:col + d])
            col += d
        stacked = stacked.at[:, total].set(Abw[:, col])
        row_blocks.append(stacked)
    Ab = jnp.concatenate(row_blocks, axis=0)

    d_f = dims[frontal]
    if Ab.shape[0] < d_f:
        raise IndeterminantLinearSystem(frontal, f"only {Ab.shape[0]} rows for dimension {d_f}")

    R = jnp.linalg.qr(Ab, mode="r")

    # Make the frontal diagonal positive; row sign flips do not change RᵀR.
    signs = jnp.where(jnp.diag(R[:d_f, :d_f]) < 0.0, -1.0, 1.0)
    top = R[:d_f] * signs[:, None]

    eps = float(jnp.finfo(Ab.dtype).eps)
    # Largest frontal column norm; invariant under uniform rescaling of the rows.
    scale = float(jnp.max(jnp.linalg.norm(Ab[:, :d_f], axis=0)))
    if float(jnp.min(jnp.abs(jnp.diag(top[:, :d_f])))) <= eps * scale * Ab.shape[0]:
        raise IndeterminantLinearSystem(frontal, "rank-deficient frontal block")

    widths = [dims[k] for k in keys] + [1]
    conditional = GaussianConditional(keys, VerticalBlockMatrix.from_matrix(widths, top), 1)

    separator = keys[1:]
    if not separator:
        return conditional, None

    rest = R[d_f:, d_f:]
    rest_vbm = VerticalBlockMatrix.from_matrix(widths[1:], rest)
    return conditional, JacobianFactor(separator, rest_vbm, None)


def eliminate_prefer_cholesky(
    factors: Sequence[GaussianFactor],
    frontal: Hashable,
    rank: Callable[[Hashable], tuple] = _default_rank,
) -> EliminationResult:
    """Eliminate ``frontal`` by partial Cholesky on the summed information."""
    keys, dims = _layout(factors, frontal, rank)
    combined = HessianFactor.from_factors(factors, keys)
    info = combined.augmented_information()

    d_f = dims[frontal]
    L = cholesky_lower(info[:d_f, :d_f], frontal)

    # R = Lᵀ; [S | d] = R⁻ᵀ [H_fs | g_f]
    S_aug = solve_triangular(L, info[:d_f, d_f:], lower=True)
    top = jnp.concatenate([L.T, S_aug], axis=1)

    widths = [dims[k] for k in keys] + [1]
    conditional = GaussianConditional(keys, VerticalBlockMatrix.from_matrix(widths, top), 1)

    separator = keys[1:]
    if not separator:
        return conditional, None

    schur = info[d_f:, d_f:] - S_aug.T @ S_aug
    return conditional, HessianFactor(separator, [dims[k] for k in separator], schur)


def eliminate(
    factors: Sequence[GaussianFactor],
    frontal: Hashable,
    factorization: Factorization,
    rank: Callable[[Hashable], tuple] = _default_rank,
) -> EliminationResult:
    if factorization is Factorization.QR:
        return eliminate_qr(factors, frontal, rank)
    if factorization is Factorization.CHOLESKY:
        return eliminate_prefer_cholesky(factors, frontal, rank)
    raise ValueError(f"Unknown factorization {factorization!r}")


def eliminate_partial(
    factors: Sequence[GaussianFactor],
    ordering: Sequence[Hashable],
    factorization: Factorization,
) -> Tuple[List[GaussianConditional], List[GaussianFactor]]:
    """
    Eliminate the keys of ``ordering`` one at a time.

    Returns the conditionals (in elimination order) and the factors left
    over, which involve only keys not in ``ordering``.
    """
    position = {key: i for i, key in enumerate(ordering)}
    n = len(position)

    def rank(key: Hashable) -> tuple:
        # Keys outside the ordering sort after every ordered key.
        return (position.get(key, n), key)

    remaining: List[GaussianFactor] = list(factors)
    conditionals: List[GaussianConditional] = []
    for key in ordering:
        involved = [f for f in remaining if key in f.keys]
        if not involved:
            raise KeyNotFound(key, "factor graph")
        remaining = [f for f in remaining if key not in f.keys]
        conditional, new_factor = eliminate(involved, key, factorization, rank)
        conditionals.append(conditional)
        if new_factor is not None:
            remaining.append(new_factor)

    logger.debug(
        "Eliminated %d variables with %s; %d factors remain",
        len(conditionals), factorization.name, len(remaining),
    )
    return conditionals, remaining


def combine_factors(
    factors: Sequence[GaussianFactor],
    keys: Sequence[Hashable],
    factorization: Factorization,
) -> GaussianFactor:
    """
    Merge factors over exactly ``keys`` into one.

    QR keeps square-root form by stacking whitened rows; Cholesky sums the
    augmented information.
    """
    if factorization is Factorization.CHOLESKY or any(
        not isinstance(f, JacobianFactor) for f in factors
    ):
        return HessianFactor.from_factors(factors, keys)

    dims = {}
    for f in factors:
        for key, d in zip(f.keys, f.dims()):
            dims.setdefault(key, d)
    terms = []
    b_parts = []
    for f in factors:
        Abw = f.whitened()
        b_parts.append(Abw[:, -1])
        col = {}
        offset = 0
        for key, d in zip(f.keys, f.dims()):
            col[key] = Abw[:, offset:offset + d]
            offset += d
        terms.append(col)

    stacked_terms = []
    for key in keys:
        blocks = [
            t[key] if key in t else jnp.zeros((f.rows, dims[key]))
            for t, f in zip(terms, factors)
        ]
        stacked_terms.append((key, jnp.concatenate(blocks, axis=0)))
    return JacobianFactor.from_terms(stacked_terms, jnp.concatenate(b_parts), None)
