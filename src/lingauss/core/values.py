# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Solution point: the current estimate of every variable.

:class:`Values` maps ``NodeId`` to a 1-D JAX array. It is the point a
nonlinear graph is linearized at, and the place marginal queries read each
variable's dimension from.
"""

from __future__ import annotations
from typing import Dict, Hashable, Iterator, Mapping, Optional

import jax.numpy as jnp

from ..linear.errors import DimensionError, KeyNotFound
from .types import NodeId


class Values:
    """Insertion-ordered ``NodeId -> array`` mapping."""

    def __init__(self, values: Optional[Mapping[NodeId, jnp.ndarray]] = None) -> None:
        self._values: Dict[NodeId, jnp.ndarray] = {}
        if values is not None:
            for key, value in values.items():
                self.insert(key, value)

    @classmethod
    def from_factor_graph(cls, fg) -> "Values":
        """Snapshot the current value of every variable in a :class:`FactorGraph`."""
        return cls({nid: var.value for nid, var in sorted(fg.variables.items())})

    def insert(self, key: NodeId, value: jnp.ndarray) -> None:
        if key in self._values:
            raise ValueError(f"Variable {key!r} already has a value")
        self._values[key] = jnp.atleast_1d(jnp.asarray(value, dtype=float)).reshape(-1)

    def update(self, key: NodeId, value: jnp.ndarray) -> None:
        old = self.at(key)
        value = jnp.atleast_1d(jnp.asarray(value, dtype=float)).reshape(-1)
        if value.shape != old.shape:
            raise DimensionError(
                f"Variable {key!r} has dimension {old.shape[0]}, got {value.shape[0]}"
            )
        self._values[key] = value

    def at(self, key: NodeId) -> jnp.ndarray:
        try:
            return self._values[key]
        except KeyError:
            raise KeyNotFound(key, "values") from None

    def dim(self, key: NodeId) -> int:
        return int(self.at(key).shape[0])

    def retract(self, delta: Mapping[Hashable, jnp.ndarray]) -> "Values":
        """New values with ``delta`` added; keys missing from ``delta`` are unchanged."""
        out = Values()
        for key, value in self._values.items():
            if key in delta:
                out.insert(key, value + jnp.asarray(delta[key]).reshape(-1))
            else:
                out.insert(key, value)
        return out

    def keys(self):
        return list(self._values.keys())

    def items(self):
        return self._values.items()

    def __getitem__(self, key: NodeId) -> jnp.ndarray:
        return self.at(key)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Values({ {k: v.tolist() for k, v in self._values.items()} })"
