import pytest
import numpy as np
import pandas as pd
from mixedmargins.core import linalg as la
from mixedmargins.core.exceptions import DimensionMismatch, EmptyInput, NumericOverflow

# ---------------------------------------------------------------------
# Unit Tests: Shape coercion
# ---------------------------------------------------------------------

def test_as_matrix():
    assert la.as_matrix([[1, 2], [3, 4]]).dtype == np.float64
    df = pd.DataFrame({"a": [1.0, 2.0], "b": [3.0, 4.0]})
    assert np.array_equal(la.as_matrix(df), df.to_numpy())
    with pytest.raises(DimensionMismatch, match="2-D"):
        la.as_matrix(np.ones(3))

def test_as_vector():
    assert la.as_vector(2.0).shape == (1,)
    assert la.as_vector(np.ones((3, 1))).shape == (3,)
    assert la.as_vector(pd.Series([1.0, 2.0])).shape == (2,)
    with pytest.raises(DimensionMismatch):
        la.as_vector(np.ones((2, 2)))

# ---------------------------------------------------------------------
# Unit Tests: Finite Checks
# ---------------------------------------------------------------------

def test_check_array_finiteness():
    with pytest.raises(ValueError, match="NA/NaN/Inf"):
        la._check_array_finiteness(np.array([1.0, np.nan]))
    la._check_array_finiteness(np.array([1.0, 2.0]))

def test_assert_finite_result():
    with pytest.raises(NumericOverflow, match="Non-finite"):
        la.assert_finite_result(np.array([[1.0, np.inf]]))
    la.assert_finite_result(np.zeros((2, 2)))

# ---------------------------------------------------------------------
# Unit Tests: Factors and weights
# ---------------------------------------------------------------------

def test_is_triangular():
    assert la.is_triangular(np.tril(np.ones((3, 3))))
    assert la.is_triangular(np.triu(np.ones((3, 3))))
    assert not la.is_triangular(np.ones((3, 3)))

def test_check_cholesky_factor():
    L = la.check_cholesky_factor([[2.0, 0.0], [1.0, 1.0]], 2)
    assert L.shape == (2, 2)
    with pytest.raises(ValueError, match="NA/NaN/Inf"):
        la.check_cholesky_factor([[np.nan, 0.0], [0.0, 1.0]], 2)

def test_validate_weights():
    w = la._validate_weights([1, 2, 3], 3)
    assert w.dtype == np.float64
    with pytest.raises(DimensionMismatch):
        la._validate_weights([1, 2], 3)
    with pytest.raises(ValueError, match="finite"):
        la._validate_weights([1.0, np.inf], 2)

def test_row_means_empty():
    with pytest.raises(EmptyInput):
        la.row_means(np.zeros((2, 0)))

def test_dot_cpu():
    A = np.arange(6.0).reshape(2, 3)
    assert np.allclose(la.dot(A, A.T), A @ A.T)

# ---------------------------------------------------------------------
# Unit Tests: Cholesky
# ---------------------------------------------------------------------

def test_safe_cholesky_and_corr_to_chol():
    R = np.array([[1.0, 0.4], [0.4, 1.0]])
    L = la.corr_to_chol(R)
    assert np.allclose(L, np.tril(L))
    assert np.allclose(L @ L.T, R)
    U = la.safe_cholesky(R, lower=False)
    assert np.allclose(U.T @ U, R)

def test_cholesky_failures():
    with pytest.raises(np.linalg.LinAlgError, match="Cholesky factorization failed"):
        la.safe_cholesky(np.array([[1.0, 2.0], [2.0, 1.0]]))
    with pytest.raises(ValueError, match="unit diagonal"):
        la.corr_to_chol(np.array([[2.0, 0.0], [0.0, 1.0]]))
    with pytest.raises(DimensionMismatch):
        la.corr_to_chol(np.ones((2, 3)))
