# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Linear Gaussian factors in information (Hessian) form.

A :class:`HessianFactor` stores the augmented information matrix

    [ G   g ]       G = Aᵀ Σ⁻¹ A
    [ gᵀ  f ]       g = Aᵀ Σ⁻¹ b,   f = bᵀ Σ⁻¹ b

over an ordered tuple of variables. It is what Cholesky-style elimination
produces when it marginalizes a variable out (a Schur complement has no
natural square-root form), and it is also a convenient way to sum many
Jacobian factors into one.
"""

from __future__ import annotations
from typing import Dict, Hashable, Iterable, Sequence, Tuple

import jax.numpy as jnp

from .errors import DimensionError, KeyNotFound


class HessianFactor:
    """Dense augmented information matrix over ``keys`` with block sizes ``dims``."""

    def __init__(
        self,
        keys: Sequence[Hashable],
        dims: Sequence[int],
        augmented_information: jnp.ndarray,
    ) -> None:
        keys = tuple(keys)
        dims = tuple(int(d) for d in dims)
        if len(keys) != len(dims):
            raise ValueError(f"Got {len(keys)} keys but {len(dims)} dimensions")
        n = sum(dims) + 1
        info = jnp.asarray(augmented_information, dtype=float)
        if info.shape != (n, n):
            raise DimensionError(
                f"Augmented information for dims {list(dims)} must be {n}x{n}, got {info.shape}"
            )
        self._keys = keys
        self._dims = dims
        self._info = info

        offsets = [0]
        for d in dims:
            offsets.append(offsets[-1] + d)
        self._offsets = tuple(offsets)

    @classmethod
    def from_factors(cls, factors: Iterable, ordering: Sequence[Hashable]) -> "HessianFactor":
        """
        Sum the augmented information of ``factors`` into one factor over
        ``ordering`` (which must cover every key any factor touches).
        """
        factors = list(factors)
        dims: Dict[Hashable, int] = {}
        for f in factors:
            for key, d in zip(f.keys, f.dims()):
                dims.setdefault(key, d)

        ordering = tuple(ordering)
        missing = set(dims) - set(ordering)
        if missing:
            raise ValueError(f"Ordering does not cover keys {sorted(missing)}")
        layout = [(key, dims[key]) for key in ordering if key in dims]

        offsets: Dict[Hashable, int] = {}
        total = 0
        for key, d in layout:
            offsets[key] = total
            total += d

        H = jnp.zeros((total + 1, total + 1))
        for f in factors:
            # Map each factor column into the combined layout; RHS goes last.
            cols = []
            for key, d in zip(f.keys, f.dims()):
                cols.extend(range(offsets[key], offsets[key] + d))
            cols.append(total)
            idx = jnp.array(cols, dtype=jnp.int32)
            H = H.at[jnp.ix_(idx, idx)].add(f.augmented_information())

        return cls([k for k, _ in layout], [d for _, d in layout], H)

    @property
    def keys(self) -> Tuple[Hashable, ...]:
        return self._keys

    @property
    def size(self) -> int:
        return len(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._keys

    def dims(self) -> Tuple[int, ...]:
        return self._dims

    def position(self, key: Hashable) -> int:
        try:
            return self._keys.index(key)
        except ValueError:
            raise KeyNotFound(key, "HessianFactor") from None

    def block_slice(self, key: Hashable) -> slice:
        i = self.position(key)
        return slice(self._offsets[i], self._offsets[i + 1])

    def augmented_information(self) -> jnp.ndarray:
        return self._info

    def information(self) -> jnp.ndarray:
        return self._info[:-1, :-1]

    def linear_term(self) -> jnp.ndarray:
        """``g = Aᵀ Σ⁻¹ b``."""
        return self._info[:-1, -1]

    def constant_term(self) -> float:
        """``f = bᵀ Σ⁻¹ b``."""
        return float(self._info[-1, -1])

    def error(self, values) -> float:
        x_parts = []
        for key in self._keys:
            if key not in values:
                raise KeyNotFound(key, "values")
            x_parts.append(jnp.asarray(values[key]).reshape(-1))
        x = jnp.concatenate(x_parts) if x_parts else jnp.zeros((0,))
        G = self.information()
        g = self.linear_term()
        return 0.5 * float(x @ G @ x - 2.0 * x @ g + self.constant_term())

    def __repr__(self) -> str:
        return f"HessianFactor(keys={list(self._keys)}, dims={list(self._dims)})"
