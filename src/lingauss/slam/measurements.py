# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Residual models (measurement factors) for lingauss.

Each function here implements a residual

    r(x; params) ∈ ℝᵏ

compatible with JAX differentiation. ``x`` is the concatenation of the
factor's variable values in ``var_ids`` order. Factor types in a
:class:`~lingauss.core.factor_graph.FactorGraph` are mapped to these
functions with ``FactorGraph.register_residual``.

Weighting
---------
There are two ways to weight a residual:

    • ``params["noise_model"]``: a diagonal noise model attached to the
      linearized factor. The residual itself stays unweighted, and marginal
      covariances come out in the measurement's units.

    • ``params["weight"]``: folded into the residual by ``_apply_weight``
      as information, either one scalar or one entry per component, so the
      residual is scaled by ``sqrt(weight)``. Use ``sigma_to_weight`` to
      convert standard deviations.

Use one or the other per factor, not both.

Available models
----------------
prior_residual
    r = x − target

odom_residual
    r = (x_j − x_i) − measurement

range_residual
    r = ‖x_j − x_i‖ − range   (nonlinear)
"""

from __future__ import annotations
from typing import Dict

import jax.numpy as jnp


def _apply_weight(residual: jnp.ndarray, params: dict, key: str = "weight") -> jnp.ndarray:
    """
    Optional weighting of residuals.

    If params[key] is:
      - missing: no change
      - scalar:  r' = sqrt(w) * r          (shared information)
      - vector:  r' = sqrt(w) * r          (per-component information)
    """
    w = params.get(key, None)
    if w is None:
        return residual

    return jnp.sqrt(jnp.asarray(w)) * residual


def sigma_to_weight(sigma):
    """
    Convert standard deviation sigma (or vector of sigmas) to an information
    weight w = 1 / sigma^2, so the weighted residual is r / sigma.
    """
    s = jnp.asarray(sigma)
    return 1.0 / (s * s)


def prior_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Prior on a single variable of any dimension:
        residual = x - target
    """
    target = jnp.asarray(params["target"])
    r = x - target
    return _apply_weight(r, params)


def odom_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Relative (between) constraint on two variables of equal dimension:

        x = [x_i, x_j]
        residual = (x_j - x_i) - measurement
    """
    dim = x.shape[0] // 2
    x_i = x[:dim]
    x_j = x[dim:]
    meas = jnp.asarray(params["measurement"])
    return _apply_weight((x_j - x_i) - meas, params)


def range_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Distance between two points of equal dimension:

        x = [p_i, p_j]
        residual = ||p_j - p_i|| - range

    The norm is smoothed near zero so the Jacobian stays finite.
    """
    dim = x.shape[0] // 2
    delta = x[dim:] - x[:dim]
    dist = jnp.sqrt(jnp.sum(delta ** 2) + 1e-12)
    r = jnp.reshape(dist - params["range"], (1,))
    return _apply_weight(r, params)
