# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Linear Gaussian factors in Jacobian (``A x - b``) form.

A :class:`JacobianFactor` encodes the Gaussian constraint

    ½ ‖ Σ^{-1/2} (A x − b) ‖²

over an ordered tuple of variables. ``A`` is stored column-partitioned in a
:class:`~lingauss.linear.block_matrix.VerticalBlockMatrix`: block ``i`` holds
the Jacobian with respect to ``keys[i]`` and the trailing single-column block
holds ``b``. ``Σ`` comes from an optional diagonal noise model; ``None``
means unit weighting.

Construction
------------
Two paths are supported and both enforce the same invariants:

    • ``JacobianFactor.from_terms(terms, b, model)``
        from ``(key, matrix)`` pairs plus the right-hand side. All blocks are
        validated before anything is copied, so a bad block never leaves a
        half-built factor behind.

    • ``JacobianFactor(keys, Ab, model)``
        from a key tuple and an already assembled augmented matrix. The
        matrix is adopted as-is.

Invariants
----------
    • ``Ab.rows == model.dim`` whenever a noise model is present
    • ``len(keys) == Ab.n_blocks - 1``
    • the last block of ``Ab`` is exactly one column wide
"""

from __future__ import annotations
from typing import Hashable, Iterable, Mapping, Optional, Sequence, Tuple

import jax.numpy as jnp

from .block_matrix import VerticalBlockMatrix
from .errors import DimensionError, InvalidMatrixBlock, InvalidNoiseModel, KeyNotFound
from .noise_model import Diagonal

Term = Tuple[Hashable, jnp.ndarray]


class JacobianFactor:
    """Block-structured linear factor ``A x = b`` with optional diagonal noise."""

    def __init__(
        self,
        keys: Sequence[Hashable],
        Ab: VerticalBlockMatrix,
        model: Optional[Diagonal] = None,
    ) -> None:
        keys = tuple(keys)

        if model is not None and model.dim != Ab.rows:
            raise InvalidNoiseModel(Ab.rows, model.dim)

        if len(keys) != Ab.n_blocks - 1:
            raise ValueError(
                "Error in JacobianFactor constructor input. Number of provided keys plus "
                "one for the RHS vector must equal the number of provided matrix blocks "
                f"(got {len(keys)} keys and {Ab.n_blocks} blocks)."
            )

        if Ab.block_widths[-1] != 1:
            raise ValueError(
                "Error in JacobianFactor constructor input. The last provided matrix block "
                "must be the RHS vector, but the last provided block had "
                f"{Ab.block_widths[-1]} columns."
            )

        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate keys in JacobianFactor: {keys}")

        self._keys: Tuple[Hashable, ...] = keys
        self._Ab = Ab
        self._model = model

    @classmethod
    def from_terms(
        cls,
        terms: Iterable[Term],
        b: jnp.ndarray,
        model: Optional[Diagonal] = None,
    ) -> "JacobianFactor":
        """
        Build a factor from ``(key, A_i)`` pairs and a right-hand side ``b``.

        Checks run in this order: noise model vs ``len(b)``, then every
        block's row count vs ``len(b)``. Only when everything is consistent
        are the blocks copied into a fresh augmented matrix.
        """
        b = jnp.asarray(b, dtype=float).reshape(-1)
        m = b.shape[0]

        if model is not None and model.dim != m:
            raise InvalidNoiseModel(m, model.dim)

        # First pass: widths and row checks. Nothing is allocated yet.
        keys = []
        blocks = []
        for key, A in terms:
            A = jnp.asarray(A, dtype=float)
            if A.ndim != 2:
                raise DimensionError(
                    f"Jacobian block for {key!r} must be 2-D, got shape {A.shape}"
                )
            if A.shape[0] != m:
                raise InvalidMatrixBlock(m, A.shape[0])
            keys.append(key)
            blocks.append(A)

        widths = [A.shape[1] for A in blocks] + [1]

        # Second pass: allocate and copy.
        Ab = VerticalBlockMatrix(widths, m)
        for i, A in enumerate(blocks):
            Ab.set_block(i, A)
        Ab.set_block(len(blocks), b)

        return cls(keys, Ab, model)

    # --- Accessors ---

    @property
    def keys(self) -> Tuple[Hashable, ...]:
        return self._keys

    @property
    def size(self) -> int:
        """Number of variables."""
        return len(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._keys

    @property
    def rows(self) -> int:
        return self._Ab.rows

    @property
    def model(self) -> Optional[Diagonal]:
        return self._model

    @property
    def Ab(self) -> VerticalBlockMatrix:
        return self._Ab

    def dims(self) -> Tuple[int, ...]:
        """Column width of each variable block, in key order."""
        return self._Ab.block_widths[:-1]

    def position(self, key: Hashable) -> int:
        try:
            return self._keys.index(key)
        except ValueError:
            raise KeyNotFound(key, "JacobianFactor") from None

    def get_a(self, i: int) -> jnp.ndarray:
        if not 0 <= i < self.size:
            raise IndexError(f"Variable block {i} out of range [0, {self.size})")
        return self._Ab.block(i)

    def get_a_by_key(self, key: Hashable) -> jnp.ndarray:
        return self._Ab.block(self.position(key))

    def get_b(self) -> jnp.ndarray:
        return self._Ab.block(self.size).reshape(-1)

    def set_block(self, key: Hashable, A: jnp.ndarray) -> None:
        """Replace the Jacobian of ``key``; the block's shape may not change."""
        self._Ab.set_block(self.position(key), A)

    # --- Linear algebra ---

    def whitened(self) -> jnp.ndarray:
        """Augmented matrix ``Σ^{-1/2} [A | b]``."""
        Ab = self._Ab.full()
        if self._model is None:
            return Ab
        return self._model.whiten_matrix(Ab)

    def augmented_information(self) -> jnp.ndarray:
        """``[A b]ᵀ Σ⁻¹ [A b]``, including the RHS row and column."""
        Abw = self.whitened()
        return Abw.T @ Abw

    def information(self) -> jnp.ndarray:
        """``Aᵀ Σ⁻¹ A``: the augmented information without the RHS."""
        return self.augmented_information()[:-1, :-1]

    def unweighted_error(self, values: Mapping[Hashable, jnp.ndarray]) -> jnp.ndarray:
        """``A x − b`` for the variables in ``values``."""
        r = -self.get_b()
        for i, key in enumerate(self._keys):
            if key not in values:
                raise KeyNotFound(key, "values")
            r = r + self.get_a(i) @ jnp.asarray(values[key]).reshape(-1)
        return r

    def error(self, values: Mapping[Hashable, jnp.ndarray]) -> float:
        r = self.unweighted_error(values)
        if self._model is not None:
            r = self._model.whiten(r)
        return 0.5 * float(jnp.sum(r ** 2))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(keys={list(self._keys)}, dims={list(self.dims())}, "
            f"rows={self.rows}, model={self._model!r})"
        )
