# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Core typed data structures for lingauss.

These are the lightweight containers the nonlinear factor graph is built
from. They carry structure and initial values only; every numerical
operation happens in JAX functions (residuals, linearization) and in the
linear layer.

Classes
-------
Variable
    A node in the factor graph:
    - id: unique, totally ordered identifier (``NodeId``)
    - type: free-form tag, e.g. "point2", "scalar"
    - value: initial estimate, a 1-D JAX array whose length is the
      variable's dimension

Factor
    A constraint between one or more variables:
    - id: unique identifier (``FactorId``)
    - type: key selecting a registered residual function
    - var_ids: ordered variable ids the residual is evaluated on
    - params: measurement, weight and an optional ``"noise_model"``
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import NewType, Dict, Any

NodeId = NewType("NodeId", int)
FactorId = NewType("FactorId", int)


@dataclass
class Variable:
    """Optimization variable node in the factor graph."""
    id: NodeId
    type: str          # e.g. "scalar", "point2", "point3"
    value: Any         # 1-D JAX array


@dataclass
class Factor:
    """Factor connecting variables through a registered residual."""
    id: FactorId
    type: str          # e.g. "prior", "odom", "range"
    var_ids: tuple[NodeId, ...]
    params: Dict[str, Any]  # measurement, weight, noise_model
