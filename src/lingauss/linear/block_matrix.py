# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Column-partitioned ("vertical block") matrix storage.

A :class:`VerticalBlockMatrix` holds one dense matrix whose columns are split
into contiguous blocks. In a linear factor the first ``k`` blocks are the
Jacobian columns of the ``k`` variables and the final single-column block is
the right-hand side ``b``:

    [ A_0 | A_1 | ... | A_{k-1} | b ]

Block widths are given once at construction and never change afterwards;
the cumulative column offsets are computed once from them. All blocks share
the same row count.

JAX arrays are immutable, so reads return sliced arrays and writes go through
:meth:`VerticalBlockMatrix.set_block` / :meth:`VerticalBlockMatrix.set_full`,
which replace the single owned buffer with a functional ``.at[...].set``
update.
"""

from __future__ import annotations
from typing import Iterable, List, Tuple

import jax.numpy as jnp

from .errors import DimensionError


class VerticalBlockMatrix:
    """Dense matrix partitioned into fixed-width column blocks."""

    def __init__(self, widths: Iterable[int], rows: int, dtype=None) -> None:
        widths = tuple(int(w) for w in widths)
        rows = int(rows)
        if rows < 0:
            raise DimensionError(f"Row count must be non-negative, got {rows}")
        for i, w in enumerate(widths):
            if w <= 0:
                raise DimensionError(f"Block {i} has non-positive width {w}")

        offsets: List[int] = [0]
        for w in widths:
            offsets.append(offsets[-1] + w)

        self._widths: Tuple[int, ...] = widths
        self._offsets: Tuple[int, ...] = tuple(offsets)
        self._rows = rows
        self._matrix = jnp.zeros((rows, offsets[-1]), dtype=dtype)

    @classmethod
    def from_matrix(cls, widths: Iterable[int], matrix: jnp.ndarray) -> "VerticalBlockMatrix":
        """Wrap an existing matrix; its column count must equal ``sum(widths)``."""
        matrix = jnp.asarray(matrix, dtype=float)
        if matrix.ndim != 2:
            raise DimensionError(f"Expected a 2-D matrix, got shape {matrix.shape}")
        vbm = cls(widths, matrix.shape[0], dtype=matrix.dtype)
        vbm.set_full(matrix)
        return vbm

    # --- Accessors ---

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._offsets[-1]

    @property
    def n_blocks(self) -> int:
        return len(self._widths)

    @property
    def block_widths(self) -> Tuple[int, ...]:
        return self._widths

    def offset(self, i: int) -> int:
        """First column of block ``i`` (``offset(n_blocks)`` is the total width)."""
        if not 0 <= i <= self.n_blocks:
            raise IndexError(f"Block offset {i} out of range [0, {self.n_blocks}]")
        return self._offsets[i]

    def _check_index(self, i: int) -> None:
        if not 0 <= i < self.n_blocks:
            raise IndexError(f"Block index {i} out of range [0, {self.n_blocks})")

    def block(self, i: int) -> jnp.ndarray:
        """All rows of the columns belonging to block ``i``."""
        self._check_index(i)
        return self._matrix[:, self._offsets[i]:self._offsets[i + 1]]

    def __getitem__(self, i: int) -> jnp.ndarray:
        return self.block(i)

    def range(self, start: int, stop: int) -> jnp.ndarray:
        """Columns spanning blocks ``start`` (inclusive) to ``stop`` (exclusive)."""
        if not 0 <= start <= stop <= self.n_blocks:
            raise IndexError(f"Block range [{start}, {stop}) out of range for {self.n_blocks} blocks")
        return self._matrix[:, self._offsets[start]:self._offsets[stop]]

    def full(self) -> jnp.ndarray:
        return self._matrix

    # --- Block replacement ---

    def set_block(self, i: int, value: jnp.ndarray) -> None:
        """Replace block ``i``; ``value`` must have exactly the block's shape."""
        self._check_index(i)
        value = jnp.asarray(value)
        if value.ndim == 1:
            value = value.reshape(-1, 1)
        expected = (self._rows, self._widths[i])
        if value.shape != expected:
            raise DimensionError(f"Block {i} has shape {expected}, got {value.shape}")
        sl = slice(self._offsets[i], self._offsets[i + 1])
        self._matrix = self._matrix.at[:, sl].set(value.astype(self._matrix.dtype))

    def __setitem__(self, i: int, value: jnp.ndarray) -> None:
        self.set_block(i, value)

    def set_full(self, value: jnp.ndarray) -> None:
        value = jnp.asarray(value)
        if value.shape != self._matrix.shape:
            raise DimensionError(f"Matrix has shape {self._matrix.shape}, got {value.shape}")
        self._matrix = value.astype(self._matrix.dtype)

    def copy(self) -> "VerticalBlockMatrix":
        return VerticalBlockMatrix.from_matrix(self._widths, self._matrix)

    def __repr__(self) -> str:
        return f"VerticalBlockMatrix(rows={self._rows}, widths={list(self._widths)})"
