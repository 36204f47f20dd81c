# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
Exception types raised by the linear-Gaussian layer.

Every condition is raised eagerly at the point it is detected, either at
factor construction time or when a query is answered. Nothing here is
retried: elimination and inversion are deterministic given their inputs.

Hierarchy
---------
LinearError
    Base class for everything below.

DimensionError (also a ValueError)
    A matrix or vector has the wrong shape for where it is being used.

InvalidNoiseModel / InvalidMatrixBlock (DimensionError)
    Construction-time mismatches between a noise model, a variable block
    and the right-hand-side vector. Both carry ``expected`` / ``actual``.

KeyNotFound (also a KeyError)
    A variable was requested from a Bayes tree, a set of values, or a
    joint marginal that does not contain it.

IndeterminantLinearSystem (also an ArithmeticError)
    A matrix that had to be factored or inverted is singular or not
    positive definite.
"""

from __future__ import annotations
from typing import Hashable, Optional


class LinearError(Exception):
    """Base class for errors raised by lingauss."""


class DimensionError(LinearError, ValueError):
    """A matrix or vector has an incompatible shape."""


class InvalidNoiseModel(DimensionError):
    """Noise-model dimension disagrees with the data it weights."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = int(expected)
        self.actual = int(actual)
        super().__init__(
            f"A noise model was given with dimension {self.actual}, "
            f"but the factor has {self.expected} rows."
        )


class InvalidMatrixBlock(DimensionError):
    """A variable block has a row count different from the RHS length."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = int(expected)
        self.actual = int(actual)
        super().__init__(
            f"A matrix block was given with {self.actual} rows, "
            f"but the right-hand-side vector has {self.expected} entries."
        )


class KeyNotFound(LinearError, KeyError):
    """Requested variable is not present."""

    def __init__(self, key: Hashable, where: str = "") -> None:
        self.key = key
        self.where = where
        msg = f"Variable {key!r} not found"
        if where:
            msg += f" in {where}"
        super().__init__(msg)

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class IndeterminantLinearSystem(LinearError, ArithmeticError):
    """Singular or non-positive-definite system."""

    def __init__(self, key: Optional[Hashable] = None, detail: str = "") -> None:
        self.key = key
        if key is not None:
            msg = (
                f"Indeterminant linear system detected while working near variable {key!r}: "
                "the problem is under-constrained or degenerate."
            )
        else:
            msg = "Indeterminant linear system: matrix is singular or not positive definite."
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)
