import warnings

import pytest
import numpy as np
from mixedmargins.core import quadrature as qd
from mixedmargins.core.exceptions import DimensionMismatch

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def rng():
    return np.random.default_rng(42)

@pytest.fixture
def chol3():
    # Lower factor of a valid 3x3 correlation matrix
    R = np.array([[1.0, 0.3, -0.2], [0.3, 1.0, 0.5], [-0.2, 0.5, 1.0]])
    return np.linalg.cholesky(R)

# ---------------------------------------------------------------------
# Unit Tests: integratemvn
# ---------------------------------------------------------------------

def test_integratemvn_rowwise_definition(rng, chol3):
    X = rng.standard_normal((50, 3))
    sd = np.array([0.5, 2.0, 1.5])
    Y = qd.integratemvn(X, 3, sd, chol3)
    assert Y.shape == (50, 3)
    for i in range(X.shape[0]):
        assert np.allclose(Y[i], (chol3 @ X[i]) * sd)

def test_integratemvn_identity_is_scaling(rng):
    X = rng.standard_normal((10, 2))
    Y = qd.integratemvn(X, 2, [2.0, 3.0], np.eye(2))
    assert np.allclose(Y, X * np.array([2.0, 3.0]))

def test_integratemvn_accepts_upper_factor(rng, chol3):
    X = rng.standard_normal((5, 3))
    U = chol3.T
    Y = qd.integratemvn(X, 3, np.ones(3), U)
    assert np.allclose(Y, X @ U.T)

def test_integratemvn_covariance(rng, chol3):
    # Transformed standard normals carry covariance D R D
    X = rng.standard_normal((200000, 3))
    sd = np.array([0.5, 2.0, 1.5])
    Y = qd.integratemvn(X, 3, sd, chol3)
    target = np.diag(sd) @ (chol3 @ chol3.T) @ np.diag(sd)
    assert np.allclose(np.cov(Y, rowvar=False), target, atol=0.05)

def test_integratemvn_dimension_checks(rng, chol3):
    X = rng.standard_normal((4, 3))
    with pytest.raises(DimensionMismatch, match="columns"):
        qd.integratemvn(X[:, :2], 3, np.ones(3), chol3)
    with pytest.raises(DimensionMismatch, match="length 3"):
        qd.integratemvn(X, 3, np.ones(2), chol3)
    with pytest.raises(DimensionMismatch, match="3x3"):
        qd.integratemvn(X, 3, np.ones(3), np.eye(2))
    # Still a ValueError for callers using plain validation
    with pytest.raises(ValueError):
        qd.integratemvn(X, 3, np.ones(3), np.eye(4))

def test_integratemvn_rejects_invalid_factor_and_scale(rng):
    X = rng.standard_normal((4, 2))
    with pytest.raises(ValueError, match="triangular"):
        qd.integratemvn(X, 2, np.ones(2), np.array([[1.0, 0.5], [0.5, 1.0]]))
    with pytest.raises(ValueError, match="positive diagonal"):
        qd.integratemvn(X, 2, np.ones(2), np.array([[1.0, 0.0], [0.5, -1.0]]))
    with pytest.raises(ValueError, match="strictly positive"):
        qd.integratemvn(X, 2, np.array([1.0, 0.0]), np.eye(2))
    with pytest.raises(ValueError, match="positive integer"):
        qd.integratemvn(X, 0, np.ones(2), np.eye(2))

# ---------------------------------------------------------------------
# Unit Tests: node generation
# ---------------------------------------------------------------------

def test_standard_normal_nodes_reproducible():
    a = qd.standard_normal_nodes(20, 3, seed=7)
    b = qd.standard_normal_nodes(20, 3, rng=np.random.default_rng(7))
    assert a.shape == (20, 3)
    assert np.array_equal(a, b)

def test_gauss_hermite_moments():
    nodes, w = qd.gauss_hermite_nodes(2, 6)
    assert nodes.shape == (36, 2)
    assert np.isclose(w.sum(), 1.0)
    # E[Z] = 0, E[Z^2] = 1, E[Z1^2 Z2^2] = 1, E[Z^4] = 3
    assert np.allclose(w @ nodes, 0.0, atol=1e-12)
    assert np.allclose(w @ nodes**2, 1.0)
    assert np.isclose(w @ (nodes[:, 0] ** 2 * nodes[:, 1] ** 2), 1.0)
    assert np.isclose(w @ nodes[:, 0] ** 4, 3.0)

def test_gauss_hermite_warns_on_large_grid(monkeypatch):
    monkeypatch.setattr(qd, "GHQ_MAX_NODES", 10)
    with pytest.warns(UserWarning, match="Gauss-Hermite grid"):
        qd.gauss_hermite_nodes(2, 4)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        qd.gauss_hermite_nodes(1, 4)

def test_simulate_re_shapes_and_scale():
    Z = np.ones((6, 1))
    out = qd.simulate_re(Z, 50000, [0.7], seed=3)
    assert out.shape == (6, 50000)
    # every observation shares the group effect
    assert np.allclose(out, out[0])
    assert np.isclose(out[0].std(), 0.7, atol=0.02)

def test_simulate_re_correlated_block():
    x = np.linspace(-1.0, 1.0, 5)
    Z = np.column_stack([np.ones(5), x])
    L = np.linalg.cholesky(np.array([[1.0, 0.5], [0.5, 1.0]]))
    out = qd.simulate_re(Z, 100000, [1.0, 0.5], L, seed=11)
    Sigma = np.diag([1.0, 0.5]) @ (L @ L.T) @ np.diag([1.0, 0.5])
    expected_var = np.einsum("ij,jk,ik->i", Z, Sigma, Z)
    assert np.allclose(out.var(axis=1), expected_var, rtol=0.05)
