# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
"""
lingauss: linear Gaussian factors, Bayes-tree elimination and marginals in JAX.
"""

from .core.factor_graph import FactorGraph
from .core.types import NodeId, FactorId, Variable, Factor
from .core.values import Values
from .inference.bayes_tree import BayesTree
from .inference.elimination import Factorization
from .inference.marginals import JointMarginal, Marginals
from .linear.block_matrix import VerticalBlockMatrix
from .linear.conditional import GaussianConditional
from .linear.errors import (
    DimensionError,
    IndeterminantLinearSystem,
    InvalidMatrixBlock,
    InvalidNoiseModel,
    KeyNotFound,
    LinearError,
)
from .linear.factor_graph import GaussianFactorGraph
from .linear.hessian_factor import HessianFactor
from .linear.jacobian_factor import JacobianFactor
from .linear.noise_model import Diagonal, Isotropic, Unit

__version__ = "0.1.0"
