from __future__ import annotations

import jax.numpy as jnp
import numpy as np
import pytest

from lingauss.linear.noise_model import Diagonal, Isotropic, Unit


def test_diagonal_whitening():
    model = Diagonal.from_sigmas([0.5, 2.0])

    assert model.dim == 2
    np.testing.assert_allclose(np.asarray(model.whiten(jnp.array([1.0, 1.0]))), [2.0, 0.5])
    np.testing.assert_allclose(
        np.asarray(model.whiten_matrix(jnp.ones((2, 3)))),
        [[2.0, 2.0, 2.0], [0.5, 0.5, 0.5]],
    )
    np.testing.assert_allclose(np.asarray(model.sqrt_information), np.diag([2.0, 0.5]))


def test_alternate_constructors_agree():
    a = Diagonal.from_variances([4.0, 0.25])
    b = Diagonal.from_precisions([0.25, 4.0])

    np.testing.assert_allclose(np.asarray(a.sigmas), [2.0, 0.5], rtol=1e-6)
    np.testing.assert_allclose(np.asarray(b.sigmas), [2.0, 0.5], rtol=1e-6)
    np.testing.assert_allclose(np.asarray(a.precisions), [0.25, 4.0], rtol=1e-6)


def test_isotropic_and_unit():
    iso = Isotropic.from_sigma(3, 0.1)
    assert iso.dim == 3
    assert iso.sigma == pytest.approx(0.1)

    unit = Unit.create(2)
    v = jnp.array([3.0, -1.0])
    np.testing.assert_allclose(np.asarray(unit.whiten(v)), np.asarray(v))
    assert isinstance(unit, Diagonal)


def test_non_positive_sigma_rejected():
    with pytest.raises(ValueError):
        Diagonal.from_sigmas([1.0, 0.0])


def test_models_are_immutable():
    model = Unit.create(2)
    with pytest.raises(Exception):
        model.sigmas = jnp.ones(3)
