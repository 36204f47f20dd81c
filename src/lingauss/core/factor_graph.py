# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Nonlinear factor graph and its linearization.

The FactorGraph stores:
    - Variables (nodes, each with an initial value)
    - Factors (constraints between variables)
    - Registered residual functions (by factor type)

A residual function has the signature ``r(x, params) -> (m,)`` where ``x``
is the concatenation of the factor's variable values in ``var_ids`` order.
Residuals are plain JAX code, so Jacobians come from autodiff.

Linearization
-------------
``linearize(values)`` evaluates every factor at ``values`` and produces one
:class:`~lingauss.linear.jacobian_factor.JacobianFactor` per factor:

    A_i = ∂r/∂x_i        (one block per variable, via ``jax.jacobian``)
    b   = −r(x)

so that ``A δ − b ≈ r(x + δ)``. If ``params`` carries a ``"noise_model"``
it is attached to the linear factor; otherwise any weighting must already be
folded into the residual (see ``slam.measurements``).

The result is a :class:`~lingauss.linear.factor_graph.GaussianFactorGraph`
ready for elimination or marginal queries.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Callable, Iterable, Optional

import jax
import jax.numpy as jnp

from ..linear.factor_graph import GaussianFactorGraph
from ..linear.jacobian_factor import JacobianFactor
from .types import NodeId, FactorId, Variable, Factor
from .values import Values


# Type aliases for clarity
ResidualFn = Callable[[jnp.ndarray, Dict[str, jnp.ndarray]], jnp.ndarray]


@dataclass
class FactorGraph:
    """
    Nonlinear factor graph.

    - variables: mapping from NodeId -> Variable
    - factors: mapping from FactorId -> Factor
    - residual_fns: mapping factor.type -> callable that computes residuals
    """
    variables: Dict[NodeId, Variable] = field(default_factory=dict)
    factors: Dict[FactorId, Factor] = field(default_factory=dict)
    residual_fns: Dict[str, ResidualFn] = field(default_factory=dict)

    def add_variable(self, var: Variable) -> None:
        if var.id in self.variables:
            raise ValueError(f"Variable {var.id!r} already exists")
        self.variables[var.id] = var

    def add_factor(self, factor: Factor) -> None:
        if factor.id in self.factors:
            raise ValueError(f"Factor {factor.id!r} already exists")
        for nid in factor.var_ids:
            if nid not in self.variables:
                raise ValueError(f"Factor {factor.id!r} references unknown variable {nid!r}")
        self.factors[factor.id] = factor

    def register_residual(self, factor_type: str, fn: ResidualFn) -> None:
        self.residual_fns[factor_type] = fn

    # --- Convenience builders ---

    def new_variable(self, var_type: str, value: jnp.ndarray) -> NodeId:
        """Allocate the next NodeId, add the variable and return the id."""
        nid = NodeId(len(self.variables))
        self.add_variable(Variable(id=nid, type=var_type, value=jnp.asarray(value, dtype=float)))
        return nid

    def new_factor(self, f_type: str, var_ids: Iterable, params: Dict) -> FactorId:
        """Allocate the next FactorId, add the factor and return the id."""
        fid = FactorId(len(self.factors))
        node_ids = tuple(NodeId(int(vid)) for vid in var_ids)
        self.add_factor(Factor(id=fid, type=f_type, var_ids=node_ids, params=params))
        return fid

    def initial_values(self) -> Values:
        return Values.from_factor_graph(self)

    # --- Evaluation ---

    def _residual_fn(self, factor: Factor) -> Callable[[jnp.ndarray], jnp.ndarray]:
        residual_fn = self.residual_fns.get(factor.type, None)
        if residual_fn is None:
            raise ValueError(f"No residual fn registered for factor type '{factor.type}'")
        params = factor.params

        def fn(x: jnp.ndarray) -> jnp.ndarray:
            return jnp.reshape(residual_fn(x, params), (-1,))

        return fn

    def residual(self, factor: Factor, values: Values) -> jnp.ndarray:
        stacked = jnp.concatenate([values.at(nid) for nid in factor.var_ids])
        return self._residual_fn(factor)(stacked)

    def error(self, values: Optional[Values] = None) -> float:
        """``½ Σ ‖whitened r‖²`` over all factors."""
        if values is None:
            values = self.initial_values()
        total = 0.0
        for factor in self.factors.values():
            r = self.residual(factor, values)
            model = factor.params.get("noise_model", None)
            if model is not None:
                r = model.whiten(r)
            total += 0.5 * float(jnp.sum(r ** 2))
        return total

    # --- Linearization ---

    def linearize_factor(self, factor: Factor, values: Values) -> JacobianFactor:
        fn = self._residual_fn(factor)
        parts = [values.at(nid) for nid in factor.var_ids]
        stacked = jnp.concatenate(parts)

        r = fn(stacked)
        J = jax.jacobian(fn)(stacked)  # (m, n)

        terms = []
        offset = 0
        for nid, part in zip(factor.var_ids, parts):
            dim = part.shape[0]
            terms.append((nid, J[:, offset:offset + dim]))
            offset += dim

        return JacobianFactor.from_terms(terms, -r, factor.params.get("noise_model", None))

    def linearize(self, values: Optional[Values] = None) -> GaussianFactorGraph:
        """Linearize every factor at ``values`` (defaults to the variables' current values)."""
        if values is None:
            values = self.initial_values()
        return GaussianFactorGraph(
            self.linearize_factor(factor, values) for factor in self.factors.values()
        )
