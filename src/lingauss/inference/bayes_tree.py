# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Gaussian Bayes tree.

Full elimination of a linear factor graph yields one
:class:`~lingauss.linear.conditional.GaussianConditional` per variable. We
arrange them in a tree of cliques: each clique holds the conditional of one
frontal variable, and its parent is the clique of the *first-eliminated*
variable in its separator. Every separator variable is then an ancestor of
the clique (this is the elimination tree), which gives the property marginal
queries rely on:

    the marginal on ``x`` only depends on the cliques on the path from
    ``x``'s clique to the root.

Queries
-------
marginal_factor(key, factorization)
    Eliminate everything on the root path except ``key``; the factor that is
    left is the marginal on ``key``.

joint(a, b, factorization)
    Same over the union of both root paths, keeping ``a`` and ``b``; returns
    the remaining factors as a :class:`GaussianFactorGraph`.

optimize()
    Back-substitution from the roots, giving the MAP solution of the linear
    system the tree was eliminated from.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging
from typing import Dict, Hashable, Iterator, List, Optional, Sequence

import jax.numpy as jnp

from ..linear.conditional import GaussianConditional
from ..linear.errors import KeyNotFound
from ..linear.factor_graph import GaussianFactorGraph
from .elimination import Factorization, GaussianFactor, combine_factors, eliminate_partial
from .ordering import constrained_last

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Clique:
    """Tree node holding the conditional of a single frontal variable."""
    conditional: GaussianConditional
    parent: Optional["Clique"] = None
    children: List["Clique"] = field(default_factory=list)

    @property
    def frontal(self) -> Hashable:
        return self.conditional.frontals[0]

    def __repr__(self) -> str:
        parent = None if self.parent is None else self.parent.frontal
        return f"Clique(frontal={self.frontal!r}, parent={parent!r})"


class BayesTree:
    """Cliques of single-frontal Gaussian conditionals, linked by separator."""

    def __init__(self, conditionals: Sequence[GaussianConditional]) -> None:
        """
        ``conditionals`` must be in elimination order: every parent of a
        conditional is a frontal of some later conditional.
        """
        self._conditionals: List[GaussianConditional] = list(conditionals)
        self._cliques: Dict[Hashable, Clique] = {}
        self._roots: List[Clique] = []

        # Walk backwards so each parent clique exists before its children.
        for conditional in reversed(self._conditionals):
            for frontal in conditional.frontals:
                if frontal in self._cliques:
                    raise ValueError(f"Variable {frontal!r} eliminated twice")
            clique = Clique(conditional)
            parents = conditional.parents
            if parents:
                if parents[0] not in self._cliques:
                    raise ValueError(
                        f"Parent {parents[0]!r} of {clique.frontal!r} was not eliminated after it"
                    )
                clique.parent = self._cliques[parents[0]]
                clique.parent.children.append(clique)
            else:
                self._roots.append(clique)
            for frontal in conditional.frontals:
                self._cliques[frontal] = clique

        logger.debug(
            "Built Bayes tree with %d cliques and %d roots",
            len(self._conditionals), len(self._roots),
        )

    # --- Structure ---

    @property
    def roots(self) -> List[Clique]:
        return list(self._roots)

    @property
    def conditionals(self) -> List[GaussianConditional]:
        return list(self._conditionals)

    def keys(self) -> List[Hashable]:
        """Frontal variables in elimination order."""
        return [k for c in self._conditionals for k in c.frontals]

    def __contains__(self, key: Hashable) -> bool:
        return key in self._cliques

    def __len__(self) -> int:
        return len(self._conditionals)

    def __iter__(self) -> Iterator[Clique]:
        seen = set()
        for conditional in self._conditionals:
            clique = self._cliques[conditional.frontals[0]]
            if id(clique) not in seen:
                seen.add(id(clique))
                yield clique

    def clique(self, key: Hashable) -> Clique:
        try:
            return self._cliques[key]
        except KeyError:
            raise KeyNotFound(key, "Bayes tree") from None

    def path_to_root(self, key: Hashable) -> List[Clique]:
        path = []
        clique: Optional[Clique] = self.clique(key)
        while clique is not None:
            path.append(clique)
            clique = clique.parent
        return path

    # --- Queries ---

    def _eliminate_all_but(
        self,
        cliques: Sequence[Clique],
        keep: Sequence[Hashable],
        factorization: Factorization,
    ) -> List[GaussianFactor]:
        factors = [c.conditional for c in cliques]
        ordering = constrained_last(factors, keep)
        _, remaining = eliminate_partial(factors, ordering[:-len(keep)], factorization)
        return remaining

    def marginal_factor(self, key: Hashable, factorization: Factorization) -> GaussianFactor:
        """Marginal density on ``key`` as a single Gaussian factor."""
        path = self.path_to_root(key)
        remaining = self._eliminate_all_but(path, [key], factorization)
        return combine_factors(remaining, [key], factorization)

    def joint(
        self,
        key_a: Hashable,
        key_b: Hashable,
        factorization: Factorization,
    ) -> GaussianFactorGraph:
        """Joint marginal on two variables, as a factor graph over exactly those two."""
        if key_a == key_b:
            raise ValueError(f"joint() needs two distinct variables, got {key_a!r} twice")
        cliques: List[Clique] = []
        seen = set()
        for clique in self.path_to_root(key_a) + self.path_to_root(key_b):
            if id(clique) not in seen:
                seen.add(id(clique))
                cliques.append(clique)
        remaining = self._eliminate_all_but(cliques, [key_a, key_b], factorization)
        return GaussianFactorGraph(remaining)

    def to_factor_graph(self) -> GaussianFactorGraph:
        """The conditionals of every clique, as plain factors."""
        return GaussianFactorGraph(self._conditionals)

    def optimize(self) -> Dict[Hashable, jnp.ndarray]:
        """Back-substitute from the roots down."""
        solution: Dict[Hashable, jnp.ndarray] = {}
        for conditional in reversed(self._conditionals):
            x = conditional.solve(solution)
            solution.update(conditional.split_frontals(x))
        return solution

    def __repr__(self) -> str:
        return f"BayesTree(cliques={len(self)}, roots={[r.frontal for r in self._roots]})"
