# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Linear Gaussian factor graph.

A :class:`GaussianFactorGraph` is an ordered list of linear factors
(:class:`JacobianFactor`, :class:`HessianFactor`, or conditionals). It is what
linearizing a nonlinear :class:`~lingauss.core.factor_graph.FactorGraph`
produces, what a Bayes tree flattens back into, and what marginal queries
turn into dense matrices.

Dense views
-----------
jacobian(ordering)
    Stacked whitened ``(A, b)`` over the given key order (Jacobian factors
    only).

augmented_hessian(ordering)
    ``[A b]ᵀ Σ⁻¹ [A b]`` summed over every factor, with the columns laid
    out in ``ordering`` and the RHS last. Dropping the last row and column
    leaves the information matrix.

Elimination
-----------
eliminate_multifrontal(ordering, factorization)
    Eliminate every variable and return a
    :class:`~lingauss.inference.bayes_tree.BayesTree`.

marginal_multifrontal_bayes_tree(variables, factorization)
    Eliminate everything *except* ``variables``, then eliminate what is
    left in exactly the order of ``variables`` into a fresh Bayes tree.
"""

from __future__ import annotations
from typing import Dict, Hashable, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import jax.numpy as jnp

from .errors import DimensionError, KeyNotFound
from .hessian_factor import HessianFactor
from .jacobian_factor import JacobianFactor


class GaussianFactorGraph:
    """Ordered collection of linear Gaussian factors."""

    def __init__(self, factors: Iterable = ()) -> None:
        self._factors: List = list(factors)

    def add(self, factor) -> None:
        self._factors.append(factor)

    def add_terms(self, terms, b, model=None) -> JacobianFactor:
        """Build a :class:`JacobianFactor` from ``(key, A)`` pairs and add it."""
        factor = JacobianFactor.from_terms(terms, b, model)
        self._factors.append(factor)
        return factor

    @property
    def factors(self) -> List:
        return list(self._factors)

    def __iter__(self) -> Iterator:
        return iter(self._factors)

    def __len__(self) -> int:
        return len(self._factors)

    def __getitem__(self, i: int):
        return self._factors[i]

    def keys(self) -> List[Hashable]:
        """Every variable touched by some factor, sorted."""
        return sorted({k for f in self._factors for k in f.keys})

    def dims(self) -> Dict[Hashable, int]:
        dims: Dict[Hashable, int] = {}
        for f in self._factors:
            for key, d in zip(f.keys, f.dims()):
                if dims.setdefault(key, d) != d:
                    raise DimensionError(
                        f"Variable {key!r} has inconsistent dimensions {dims[key]} and {d}"
                    )
        return dims

    def _resolve_ordering(self, ordering: Optional[Sequence[Hashable]]) -> List[Hashable]:
        if ordering is None:
            return self.keys()
        ordering = list(ordering)
        present = set(self.keys())
        for key in ordering:
            if key not in present:
                raise KeyNotFound(key, "factor graph")
        missing = present - set(ordering)
        if missing:
            raise ValueError(f"Ordering is missing keys {sorted(missing)}")
        return ordering

    # --- Dense views ---

    def augmented_hessian(self, ordering: Optional[Sequence[Hashable]] = None) -> jnp.ndarray:
        ordering = self._resolve_ordering(ordering)
        return HessianFactor.from_factors(self._factors, ordering).augmented_information()

    def hessian(self, ordering: Optional[Sequence[Hashable]] = None) -> Tuple[jnp.ndarray, jnp.ndarray]:
        """Information matrix and information vector ``(Aᵀ Σ⁻¹ A, Aᵀ Σ⁻¹ b)``."""
        aug = self.augmented_hessian(ordering)
        return aug[:-1, :-1], aug[:-1, -1]

    def jacobian(self, ordering: Optional[Sequence[Hashable]] = None) -> Tuple[jnp.ndarray, jnp.ndarray]:
        ordering = self._resolve_ordering(ordering)
        dims = self.dims()
        offsets: Dict[Hashable, int] = {}
        total = 0
        for key in ordering:
            offsets[key] = total
            total += dims[key]

        A_rows = []
        b_rows = []
        for f in self._factors:
            if not isinstance(f, JacobianFactor):
                raise TypeError(f"jacobian() requires JacobianFactors, got {type(f).__name__}")
            Abw = f.whitened()
            A = jnp.zeros((f.rows, total))
            col = 0
            for key, d in zip(f.keys, f.dims()):
                A = A.at[:, offsets[key]:offsets[key] + d].set(Abw[:, col:col + d])
                col += d
            A_rows.append(A)
            b_rows.append(Abw[:, -1])

        if not A_rows:
            return jnp.zeros((0, total)), jnp.zeros((0,))
        return jnp.concatenate(A_rows, axis=0), jnp.concatenate(b_rows)

    def error(self, values: Mapping[Hashable, jnp.ndarray]) -> float:
        return sum(f.error(values) for f in self._factors)

    # --- Elimination ---

    def eliminate_multifrontal(self, ordering: Optional[Sequence[Hashable]] = None, factorization=None):
        """Eliminate every variable into a Bayes tree."""
        from ..inference.bayes_tree import BayesTree
        from ..inference.elimination import Factorization, eliminate_partial
        from ..inference.ordering import minimum_degree_ordering

        if factorization is None:
            factorization = Factorization.CHOLESKY
        if ordering is None:
            ordering = minimum_degree_ordering(self._factors)
        else:
            ordering = self._resolve_ordering(ordering)

        conditionals, _ = eliminate_partial(self._factors, ordering, factorization)
        return BayesTree(conditionals)

    def marginal_multifrontal_bayes_tree(self, variables: Sequence[Hashable], factorization=None):
        """
        Bayes tree over exactly ``variables`` (in that elimination order),
        with every other variable marginalized out first.
        """
        from ..inference.bayes_tree import BayesTree
        from ..inference.elimination import Factorization, eliminate_partial
        from ..inference.ordering import constrained_last

        if factorization is None:
            factorization = Factorization.CHOLESKY
        variables = list(variables)
        ordering = constrained_last(self._factors, variables)
        others = ordering[:len(ordering) - len(variables)]

        _, remaining = eliminate_partial(self._factors, others, factorization)
        conditionals, _ = eliminate_partial(remaining, variables, factorization)
        return BayesTree(conditionals)

    def optimize(self, ordering: Optional[Sequence[Hashable]] = None, factorization=None) -> Dict[Hashable, jnp.ndarray]:
        """Solve the least-squares system by elimination and back-substitution."""
        return self.eliminate_multifrontal(ordering, factorization).optimize()

    def __repr__(self) -> str:
        return f"GaussianFactorGraph(factors={len(self)}, keys={self.keys()})"
