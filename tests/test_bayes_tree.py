from __future__ import annotations

import jax.numpy as jnp
import numpy as np
import pytest

from lingauss.core.types import NodeId
from lingauss.inference.bayes_tree import BayesTree
from lingauss.inference.elimination import Factorization
from lingauss.linear.errors import KeyNotFound
from lingauss.linear.factor_graph import GaussianFactorGraph
from lingauss.linear.noise_model import Diagonal

STRATEGIES = [Factorization.CHOLESKY, Factorization.QR]


def build_tree_graph() -> GaussianFactorGraph:
    """
    Scalar variables with a branching structure:

        x0 - x1 - x2
              |
              x3

    plus a prior on x0 and a weak prior on x3.
    """
    one = jnp.ones((1, 1))
    gfg = GaussianFactorGraph()
    gfg.add_terms([(NodeId(0), one)], jnp.array([0.0]), Diagonal.from_sigmas([0.5]))
    gfg.add_terms([(NodeId(0), -one), (NodeId(1), one)], jnp.array([1.0]))
    gfg.add_terms([(NodeId(1), -one), (NodeId(2), one)], jnp.array([1.0]), Diagonal.from_sigmas([2.0]))
    gfg.add_terms([(NodeId(1), -one), (NodeId(3), one)], jnp.array([0.5]))
    gfg.add_terms([(NodeId(3), one)], jnp.array([2.0]), Diagonal.from_sigmas([3.0]))
    return gfg


ORDER = [NodeId(0), NodeId(1), NodeId(2), NodeId(3)]


def dense_covariance(gfg: GaussianFactorGraph) -> np.ndarray:
    A, _ = gfg.jacobian(ORDER)
    A = np.asarray(A, dtype=np.float64)
    return np.linalg.inv(A.T @ A)


def test_tree_structure_follows_elimination_order():
    gfg = build_tree_graph()
    tree = gfg.eliminate_multifrontal([NodeId(0), NodeId(2), NodeId(1), NodeId(3)])

    assert len(tree) == 4
    assert tree.keys() == [NodeId(0), NodeId(2), NodeId(1), NodeId(3)]
    assert [r.frontal for r in tree.roots] == [NodeId(3)]
    assert tree.clique(NodeId(2)).parent.frontal == NodeId(1)
    assert tree.clique(NodeId(1)).parent.frontal == NodeId(3)
    assert [c.frontal for c in tree.path_to_root(NodeId(0))] == [NodeId(0), NodeId(1), NodeId(3)]
    assert {c.frontal for c in tree.clique(NodeId(1)).children} == {NodeId(0), NodeId(2)}
    assert NodeId(3) in tree
    assert NodeId(9) not in tree


def test_missing_key_raises():
    tree = build_tree_graph().eliminate_multifrontal()
    with pytest.raises(KeyNotFound):
        tree.clique(NodeId(9))
    with pytest.raises(KeyNotFound):
        tree.marginal_factor(NodeId(9), Factorization.QR)
    with pytest.raises(KeyNotFound):
        tree.joint(NodeId(0), NodeId(9), Factorization.QR)


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_marginal_factor_matches_dense_covariance(factorization):
    gfg = build_tree_graph()
    cov = dense_covariance(gfg)
    tree = gfg.eliminate_multifrontal(factorization=factorization)

    for i, key in enumerate(ORDER):
        info = np.asarray(tree.marginal_factor(key, factorization).information())
        assert info.shape == (1, 1)
        assert info[0, 0] == pytest.approx(1.0 / cov[i, i], rel=1e-4)


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_joint_matches_dense_covariance(factorization):
    gfg = build_tree_graph()
    cov = dense_covariance(gfg)
    tree = gfg.eliminate_multifrontal(factorization=factorization)

    joint = tree.joint(NodeId(2), NodeId(0), factorization)
    assert set(joint.keys()) == {NodeId(0), NodeId(2)}

    info = np.asarray(joint.hessian([NodeId(2), NodeId(0)])[0])
    expected = np.linalg.inv(cov[np.ix_([2, 0], [2, 0])])
    np.testing.assert_allclose(info, expected, rtol=1e-4, atol=1e-5)


def test_joint_requires_distinct_keys():
    tree = build_tree_graph().eliminate_multifrontal()
    with pytest.raises(ValueError):
        tree.joint(NodeId(1), NodeId(1), Factorization.CHOLESKY)


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_to_factor_graph_preserves_information(factorization):
    gfg = build_tree_graph()
    tree = gfg.eliminate_multifrontal(factorization=factorization)

    flat = tree.to_factor_graph()
    assert len(flat) == len(tree)

    H, eta = gfg.hessian(ORDER)
    H_flat, eta_flat = flat.hessian(ORDER)
    np.testing.assert_allclose(np.asarray(H_flat), np.asarray(H), rtol=1e-4, atol=1e-5)
    np.testing.assert_allclose(np.asarray(eta_flat), np.asarray(eta), rtol=1e-4, atol=1e-5)


def test_conditionals_must_be_in_elimination_order():
    tree = build_tree_graph().eliminate_multifrontal()
    with pytest.raises(ValueError):
        BayesTree(list(reversed(tree.conditionals)))
