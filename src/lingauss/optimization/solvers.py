# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Nonlinear least-squares solver for lingauss.

``gauss_newton(graph, values, cfg)`` repeats

    1. linearize the graph at the current values,
    2. eliminate the linear graph into a Bayes tree,
    3. back-substitute for the update δ and retract ``x ← x + δ``,

until the error stops decreasing. The elimination strategy is the same
:class:`~lingauss.inference.elimination.Factorization` used by marginal
queries, so a solve followed by ``Marginals(graph, x_opt, cfg.factorization)``
uses one numerical path throughout.

Variables are treated as Euclidean (additive retraction).
"""

from __future__ import annotations
from dataclasses import dataclass
import logging

from ..core.factor_graph import FactorGraph
from ..core.values import Values
from ..inference.elimination import Factorization

logger = logging.getLogger(__name__)


@dataclass
class GNConfig:
    max_iters: int = 20
    rel_tol: float = 1e-6      # stop when the relative error decrease falls below this
    abs_tol: float = 1e-9      # or when the error itself falls below this
    factorization: Factorization = Factorization.CHOLESKY


def gauss_newton(graph: FactorGraph, values: Values, cfg: GNConfig) -> Values:
    """
    Gauss-Newton on a nonlinear factor graph.

    Returns the optimized values; ``values`` is not modified.
    """
    x = values
    error = graph.error(x)
    logger.debug("Gauss-Newton: initial error %.6g", error)

    for it in range(cfg.max_iters):
        linear = graph.linearize(x)
        delta = linear.optimize(factorization=cfg.factorization)
        x_new = x.retract(delta)
        new_error = graph.error(x_new)
        logger.debug("Gauss-Newton: iteration %d error %.6g", it, new_error)

        decrease = error - new_error
        x, error = x_new, new_error
        if error <= cfg.abs_tol:
            break
        if abs(decrease) <= cfg.rel_tol * max(error, cfg.abs_tol):
            break

    return x
