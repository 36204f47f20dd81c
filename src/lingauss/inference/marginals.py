# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Marginal covariance and information queries.

:class:`Marginals` linearizes a nonlinear factor graph at a solution point,
eliminates it once into a Bayes tree, and then answers queries about the
uncertainty of one or several variables.

Single variable
    ``marginal_information(key)`` asks the Bayes tree for the marginal factor
    on ``key``; ``marginal_covariance(key)`` inverts it.

Several variables
    ``joint_marginal_information(keys)`` picks a path by how many keys are
    asked for:

        1   the single-variable query above
        2   ``BayesTree.joint`` on the existing tree
        >2  re-eliminate the full linearized graph into a fresh Bayes tree
            over exactly ``keys`` (everything else marginalized first)

    In the two- and many-variable cases the resulting factor graph is turned
    into an augmented Hessian laid out in ``keys`` order and the trailing RHS
    row/column is dropped.

    ``joint_marginal_covariance(keys)`` inverts the joint information matrix
    as a whole. Inverting block by block would ignore the coupling between
    variables.

Results come back as a :class:`JointMarginal`, indexed by a pair of keys.

Example
-------
    marginals = Marginals(fg, values, Factorization.QR)
    cov = marginals.joint_marginal_covariance([x0, x1])
    cov.at(x0, x1)   # cross-covariance block

Nothing is cached between queries, and the Bayes tree is never modified
after construction.
"""

from __future__ import annotations
import logging
from typing import Hashable, List, Sequence, Tuple

import jax.numpy as jnp

from ..core.factor_graph import FactorGraph
from ..core.values import Values
from ..linear.errors import DimensionError, KeyNotFound
from ..linear.linalg import spd_inverse
from .elimination import Factorization

logger = logging.getLogger(__name__)


class JointMarginal:
    """
    Square covariance or information matrix over several variables.

    The rows and columns are partitioned by ``dims`` in the order of
    ``keys``; ``at(a, b)`` returns the block for that pair.
    """

    def __init__(self, matrix: jnp.ndarray, dims: Sequence[int], keys: Sequence[Hashable]) -> None:
        matrix = jnp.asarray(matrix)
        dims = tuple(int(d) for d in dims)
        keys = tuple(keys)
        if len(dims) != len(keys):
            raise ValueError(f"Got {len(keys)} keys but {len(dims)} dimensions")
        total = sum(dims)
        if matrix.ndim != 2 or matrix.shape != (total, total):
            raise DimensionError(
                f"Joint marginal over dims {list(dims)} must be {total}x{total}, got {matrix.shape}"
            )

        self._matrix = matrix
        self._dims = dims
        self._keys = keys
        self._slices = {}
        offset = 0
        for key, d in zip(keys, dims):
            self._slices[key] = slice(offset, offset + d)
            offset += d

    @property
    def keys(self) -> Tuple[Hashable, ...]:
        return self._keys

    @property
    def dims(self) -> Tuple[int, ...]:
        return self._dims

    def full_matrix(self) -> jnp.ndarray:
        return self._matrix

    def _slice(self, key: Hashable) -> slice:
        try:
            return self._slices[key]
        except KeyError:
            raise KeyNotFound(key, "joint marginal") from None

    def at(self, key_a: Hashable, key_b: Hashable) -> jnp.ndarray:
        """Row block of ``key_a`` by column block of ``key_b``."""
        return self._matrix[self._slice(key_a), self._slice(key_b)]

    def __getitem__(self, pair: Tuple[Hashable, Hashable]) -> jnp.ndarray:
        key_a, key_b = pair
        return self.at(key_a, key_b)

    def inverse(self) -> "JointMarginal":
        """Same partition, whole matrix inverted."""
        return JointMarginal(spd_inverse(self._matrix), self._dims, self._keys)

    def __repr__(self) -> str:
        return (
            f"Joint marginal on keys {', '.join(repr(k) for k in self._keys)}. "
            "Use 'at' or [a, b] to query matrix blocks."
        )


class Marginals:
    """Marginal covariances and information matrices at a solution point."""

    def __init__(
        self,
        graph: FactorGraph,
        solution: Values,
        factorization: Factorization = Factorization.CHOLESKY,
    ) -> None:
        if not isinstance(factorization, Factorization):
            raise ValueError(f"Unknown factorization {factorization!r}")

        self._graph = graph.linearize(solution)
        self._values = solution
        self._factorization = factorization
        self._bayes_tree = self._graph.eliminate_multifrontal(factorization=factorization)

        logger.debug(
            "Marginals: linearized %d factors over %d variables, eliminated with %s",
            len(self._graph), len(solution), factorization.name,
        )

    @property
    def factorization(self) -> Factorization:
        return self._factorization

    @property
    def linear_graph(self):
        return self._graph

    @property
    def bayes_tree(self):
        return self._bayes_tree

    # --- Single variable ---

    def marginal_information(self, key: Hashable) -> jnp.ndarray:
        """Information (inverse covariance) matrix of one variable."""
        factor = self._bayes_tree.marginal_factor(key, self._factorization)
        return factor.information()

    def marginal_covariance(self, key: Hashable) -> jnp.ndarray:
        return spd_inverse(self.marginal_information(key), key)

    # --- Several variables ---

    def _check_keys(self, keys: Sequence[Hashable]) -> List[Hashable]:
        keys = list(keys)
        if not keys:
            raise ValueError("Joint marginal requested over no variables")
        if len(set(keys)) != len(keys):
            raise ValueError(f"Joint marginal requested with duplicate variables: {keys}")
        return keys

    def joint_marginal_information(self, keys: Sequence[Hashable]) -> JointMarginal:
        keys = self._check_keys(keys)

        if len(keys) == 1:
            info = self.marginal_information(keys[0])
            return JointMarginal(info, [self._values.dim(keys[0])], keys)

        if len(keys) == 2:
            logger.debug("Joint marginal on %s via Bayes tree joint", keys)
            joint_graph = self._bayes_tree.joint(keys[0], keys[1], self._factorization)
        else:
            logger.debug("Joint marginal on %s via re-elimination", keys)
            tree = self._graph.marginal_multifrontal_bayes_tree(keys, self._factorization)
            joint_graph = tree.to_factor_graph()

        dims = [self._values.dim(key) for key in keys]

        augmented = joint_graph.augmented_hessian(ordering=keys)
        info = augmented[:-1, :-1]
        return JointMarginal(info, dims, keys)

    def joint_marginal_covariance(self, keys: Sequence[Hashable]) -> JointMarginal:
        return self.joint_marginal_information(keys).inverse()

    def __repr__(self) -> str:
        return (
            f"Marginals(factorization={self._factorization.name}, "
            f"variables={len(self._values)}, factors={len(self._graph)})"
        )
