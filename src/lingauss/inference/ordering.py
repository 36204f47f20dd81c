# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Elimination orderings.

The ordering decides how much fill-in elimination creates. We use the classic
greedy minimum-degree heuristic on the variable interaction graph (two
variables interact when some factor touches both). Ties are broken by key
order so the result is deterministic.

``constrained_last`` is the variant used for marginal queries: the queried
variables are held back and appended, in the order given, after everything
else has been eliminated.
"""

from __future__ import annotations
from typing import Dict, Hashable, Iterable, List, Sequence, Set

from ..linear.errors import KeyNotFound


def _adjacency(factors: Iterable) -> Dict[Hashable, Set[Hashable]]:
    adj: Dict[Hashable, Set[Hashable]] = {}
    for f in factors:
        keys = f.keys
        for k in keys:
            adj.setdefault(k, set()).update(kk for kk in keys if kk != k)
    return adj


def minimum_degree_ordering(
    factors: Iterable,
    constrained_last: Sequence[Hashable] = (),
) -> List[Hashable]:
    """
    Greedy minimum-degree ordering over every key in ``factors``.

    Keys in ``constrained_last`` are excluded from the greedy phase and
    appended at the end in the order given.
    """
    adj = _adjacency(factors)
    last = list(constrained_last)
    for k in last:
        if k not in adj:
            raise KeyNotFound(k, "factor graph")
    held = set(last)

    ordering: List[Hashable] = []
    candidates = set(adj) - held
    while candidates:
        key = min(candidates, key=lambda k: (len(adj[k]), k))
        neighbors = adj.pop(key)
        for n in neighbors:
            adj[n].discard(key)
            adj[n].update(m for m in neighbors if m != n)
        candidates.discard(key)
        ordering.append(key)

    return ordering + last


def constrained_last(factors: Iterable, keys: Sequence[Hashable]) -> List[Hashable]:
    """Minimum-degree ordering with ``keys`` eliminated last, in order."""
    return minimum_degree_ordering(factors, constrained_last=keys)
