from __future__ import annotations

import jax.numpy as jnp
import numpy as np
import pytest

from lingauss.core.factor_graph import FactorGraph
from lingauss.core.types import NodeId
from lingauss.inference.elimination import Factorization
from lingauss.inference.marginals import JointMarginal, Marginals
from lingauss.linear.errors import DimensionError, IndeterminantLinearSystem, KeyNotFound
from lingauss.linear.noise_model import Diagonal, Isotropic, Unit
from lingauss.slam.measurements import odom_residual, prior_residual

STRATEGIES = [Factorization.CHOLESKY, Factorization.QR]


def two_scalar_chain() -> FactorGraph:
    """
    x0, x1 scalars with unit-variance priors, linked by a unit-information
    between factor. Information [[2, -1], [-1, 2]], covariance 1/3 [[2, 1], [1, 2]].
    """
    fg = FactorGraph()
    fg.register_residual("prior", prior_residual)
    fg.register_residual("odom", odom_residual)

    x0 = fg.new_variable("scalar", jnp.array([0.3]))
    x1 = fg.new_variable("scalar", jnp.array([1.2]))

    fg.new_factor("prior", (x0,), {"target": jnp.array([0.0]), "noise_model": Unit.create(1)})
    fg.new_factor("prior", (x1,), {"target": jnp.array([1.0]), "noise_model": Unit.create(1)})
    fg.new_factor("odom", (x0, x1), {"measurement": jnp.array([1.0]), "noise_model": Unit.create(1)})
    return fg


def planar_loop(n: int = 5, scale: float = 1.0) -> FactorGraph:
    """2-D points in a loop with a prior on the first and mixed noise levels.

    Every sigma is multiplied by ``scale``.
    """
    fg = FactorGraph()
    fg.register_residual("prior", prior_residual)
    fg.register_residual("odom", odom_residual)

    ids = [fg.new_variable("point2", jnp.array([float(i), 0.1 * i])) for i in range(n)]
    prior_model = Diagonal.from_sigmas([0.1 * scale, 0.3 * scale])
    odom_model = Diagonal.from_sigmas([0.5 * scale, 0.2 * scale])
    loop_model = Isotropic.from_sigma(2, 1.0 * scale)

    fg.new_factor("prior", (ids[0],), {"target": jnp.zeros(2), "noise_model": prior_model})
    for i in range(n - 1):
        fg.new_factor(
            "odom",
            (ids[i], ids[i + 1]),
            {"measurement": jnp.array([1.0, 0.0]), "noise_model": odom_model},
        )
    fg.new_factor(
        "odom",
        (ids[-1], ids[0]),
        {"measurement": jnp.array([-float(n - 1), 0.0]), "noise_model": loop_model},
    )
    return fg


def dense_covariance(fg: FactorGraph, values, ordering) -> np.ndarray:
    A, _ = fg.linearize(values).jacobian(ordering)
    A = np.asarray(A, dtype=np.float64)
    return np.linalg.inv(A.T @ A)


def sub_block(cov: np.ndarray, positions, dim: int) -> np.ndarray:
    idx = np.concatenate([np.arange(p * dim, (p + 1) * dim) for p in positions])
    return cov[np.ix_(idx, idx)]


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_two_variable_chain_closed_form(factorization):
    fg = two_scalar_chain()
    x0, x1 = NodeId(0), NodeId(1)
    marginals = Marginals(fg, fg.initial_values(), factorization)

    cov = marginals.joint_marginal_covariance([x0, x1])
    expected = np.array([[2.0, 1.0], [1.0, 2.0]]) / 3.0

    np.testing.assert_allclose(np.asarray(cov.full_matrix()), expected, rtol=1e-5, atol=1e-6)
    assert float(cov.at(x0, x1)[0, 0]) == pytest.approx(1.0 / 3.0, rel=1e-5)

    info = marginals.joint_marginal_information([x0, x1])
    np.testing.assert_allclose(
        np.asarray(info.full_matrix()), [[2.0, -1.0], [-1.0, 2.0]], rtol=1e-5, atol=1e-6
    )

    assert float(marginals.marginal_covariance(x0)[0, 0]) == pytest.approx(2.0 / 3.0, rel=1e-5)
    assert float(marginals.marginal_information(x1)[0, 0]) == pytest.approx(1.5, rel=1e-5)


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_single_key_round_trip(factorization):
    fg = planar_loop()
    marginals = Marginals(fg, fg.initial_values(), factorization)

    for key in fg.variables:
        joint = marginals.joint_marginal_covariance([key])
        direct = np.linalg.inv(np.asarray(marginals.marginal_information(key), dtype=np.float64))
        assert joint.dims == (2,)
        np.testing.assert_allclose(np.asarray(joint.at(key, key)), direct, rtol=1e-4, atol=1e-6)


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_marginal_covariance_matches_dense(factorization):
    fg = planar_loop()
    values = fg.initial_values()
    ordering = sorted(fg.variables)
    cov = dense_covariance(fg, values, ordering)
    marginals = Marginals(fg, values, factorization)

    for pos, key in enumerate(ordering):
        np.testing.assert_allclose(
            np.asarray(marginals.marginal_covariance(key)),
            sub_block(cov, [pos], 2),
            rtol=1e-4,
            atol=1e-6,
        )


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_pairwise_information_is_symmetric(factorization):
    fg = planar_loop()
    marginals = Marginals(fg, fg.initial_values(), factorization)
    a, b = NodeId(1), NodeId(3)

    info = marginals.joint_marginal_information([a, b])

    np.testing.assert_allclose(
        np.asarray(info.at(a, b)), np.asarray(info.at(b, a)).T, rtol=1e-5, atol=1e-6
    )


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_pairwise_keeps_caller_order(factorization):
    fg = planar_loop()
    values = fg.initial_values()
    cov = dense_covariance(fg, values, sorted(fg.variables))
    marginals = Marginals(fg, values, factorization)

    joint = marginals.joint_marginal_covariance([NodeId(3), NodeId(1)])

    assert joint.keys == (NodeId(3), NodeId(1))
    np.testing.assert_allclose(
        np.asarray(joint.full_matrix()), sub_block(cov, [3, 1], 2), rtol=1e-4, atol=1e-6
    )


@pytest.mark.parametrize("factorization", STRATEGIES)
def test_many_variable_query_matches_dense(factorization):
    fg = planar_loop(6)
    values = fg.initial_values()
    cov = dense_covariance(fg, values, sorted(fg.variables))
    marginals = Marginals(fg, values, factorization)
    keys = [NodeId(4), NodeId(0), NodeId(2)]

    info = marginals.joint_marginal_information(keys)
    joint_cov = marginals.joint_marginal_covariance(keys)

    assert info.full_matrix().shape == (sum(info.dims), sum(info.dims)) == (6, 6)
    expected = sub_block(cov, [4, 0, 2], 2)
    np.testing.assert_allclose(np.asarray(joint_cov.full_matrix()), expected, rtol=1e-4, atol=1e-6)
    np.testing.assert_allclose(
        np.asarray(joint_cov.at(NodeId(0), NodeId(2))),
        sub_block(cov, [0, 2], 2)[:2, 2:],
        rtol=1e-4,
        atol=1e-6,
    )


def test_strategies_agree():
    fg = planar_loop()
    values = fg.initial_values()
    keys = [NodeId(0), NodeId(2), NodeId(4)]

    chol = Marginals(fg, values, Factorization.CHOLESKY).joint_marginal_covariance(keys)
    qr = Marginals(fg, values, Factorization.QR).joint_marginal_covariance(keys)

    np.testing.assert_allclose(
        np.asarray(chol.full_matrix()), np.asarray(qr.full_matrix()), rtol=1e-4, atol=1e-6
    )


@pytest.mark.parametrize("factorization", STRATEGIES)
@pytest.mark.parametrize("sigma", [1e4, 1e-4])
def test_very_weak_and_very_strong_priors(factorization, sigma):
    """
    A single scalar with a prior of standard deviation sigma, then a second
    scalar tied to it by a between factor with the same sigma. Well posed
    for any sigma:

        var(x0) = sigma^2,  var(x1) = 2 sigma^2,  cov(x0, x1) = sigma^2
    """
    fg = FactorGraph()
    fg.register_residual("prior", prior_residual)
    fg.register_residual("odom", odom_residual)
    x0 = fg.new_variable("scalar", jnp.array([0.0]))
    fg.new_factor("prior", (x0,), {"target": jnp.array([0.0]), "noise_model": Isotropic.from_sigma(1, sigma)})

    marginals = Marginals(fg, fg.initial_values(), factorization)
    assert float(marginals.marginal_covariance(x0)[0, 0]) == pytest.approx(sigma ** 2, rel=1e-4)
    assert float(marginals.marginal_information(x0)[0, 0]) == pytest.approx(sigma ** -2, rel=1e-4)

    x1 = fg.new_variable("scalar", jnp.array([1.0]))
    fg.new_factor("odom", (x0, x1), {"measurement": jnp.array([1.0]), "noise_model": Isotropic.from_sigma(1, sigma)})

    marginals = Marginals(fg, fg.initial_values(), factorization)
    cov = np.asarray(marginals.joint_marginal_covariance([x0, x1]).full_matrix())
    np.testing.assert_allclose(cov, sigma ** 2 * np.array([[1.0, 1.0], [1.0, 2.0]]), rtol=1e-3)


@pytest.mark.parametrize("factorization", STRATEGIES)
@pytest.mark.parametrize("k", [1e-2, 1e2, 1e3])
def test_uniform_noise_rescaling(factorization, k):
    """Scaling every sigma by k scales covariances by k^2 and information by 1/k^2."""
    base = planar_loop()
    scaled = planar_loop(scale=k)
    base_m = Marginals(base, base.initial_values(), factorization)
    scaled_m = Marginals(scaled, scaled.initial_values(), factorization)

    for key in sorted(base.variables):
        np.testing.assert_allclose(
            np.asarray(scaled_m.marginal_covariance(key)),
            k ** 2 * np.asarray(base_m.marginal_covariance(key)),
            rtol=1e-3,
            atol=1e-6 * k ** 2,
        )

    keys = [NodeId(1), NodeId(3)]
    np.testing.assert_allclose(
        np.asarray(scaled_m.joint_marginal_information(keys).full_matrix()),
        np.asarray(base_m.joint_marginal_information(keys).full_matrix()) / k ** 2,
        rtol=1e-3,
        atol=1e-6 / k ** 2,
    )


def test_missing_variable_raises_key_not_found():
    fg = two_scalar_chain()
    marginals = Marginals(fg, fg.initial_values())

    with pytest.raises(KeyNotFound):
        marginals.marginal_information(NodeId(7))
    with pytest.raises(KeyNotFound):
        marginals.joint_marginal_information([NodeId(0), NodeId(7)])

    joint = marginals.joint_marginal_covariance([NodeId(0)])
    with pytest.raises(KeyNotFound):
        joint.at(NodeId(0), NodeId(1))


def test_bad_key_lists_rejected():
    fg = two_scalar_chain()
    marginals = Marginals(fg, fg.initial_values())

    with pytest.raises(ValueError):
        marginals.joint_marginal_information([])
    with pytest.raises(ValueError):
        marginals.joint_marginal_information([NodeId(0), NodeId(0)])


def test_under_constrained_graph_is_indeterminant():
    fg = FactorGraph()
    fg.register_residual("odom", odom_residual)
    x0 = fg.new_variable("scalar", jnp.array([0.0]))
    x1 = fg.new_variable("scalar", jnp.array([1.0]))
    fg.new_factor("odom", (x0, x1), {"measurement": jnp.array([1.0])})

    with pytest.raises(IndeterminantLinearSystem):
        Marginals(fg, fg.initial_values())


def test_joint_marginal_block_indexing():
    M = jnp.arange(25.0).reshape(5, 5)
    jm = JointMarginal(M, [2, 3], ["a", "b"])

    np.testing.assert_array_equal(np.asarray(jm.at("a", "b")), np.asarray(M[0:2, 2:5]))
    np.testing.assert_array_equal(np.asarray(jm["b", "a"]), np.asarray(M[2:5, 0:2]))
    assert jm.keys == ("a", "b")
    assert "Joint marginal on keys" in repr(jm)


def test_joint_marginal_dimension_checks():
    with pytest.raises(DimensionError):
        JointMarginal(jnp.eye(4), [2, 3], ["a", "b"])
    with pytest.raises(ValueError):
        JointMarginal(jnp.eye(4), [2, 2], ["a"])


def test_singular_joint_information_cannot_be_inverted():
    jm = JointMarginal(jnp.array([[1.0, 1.0], [1.0, 1.0]]), [1, 1], ["a", "b"])
    with pytest.raises(IndeterminantLinearSystem):
        jm.inverse()
