"""Dense linear algebra helpers shared by the integration kernels.

This module validates matrix/vector arguments, checks Cholesky factors and
weight vectors, and routes dense products through the optional GPU backend.
Explicit matrix inversion is avoided.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray
else:
    Sequence = tuple  # type: ignore[assignment]
    NDArray = np.ndarray  # type: ignore[misc,assignment]

import scipy.linalg as sla

from . import backend as _bk
from .exceptions import DimensionMismatch, EmptyInput, NumericOverflow

# Matrix type alias
Matrix = Any


def as_matrix(X: Matrix, name: str = "X") -> NDArray[np.float64]:
    """Return ``X`` as a 2-D float64 array.

    DataFrames contribute their values; 1-D input is rejected so that row and
    column roles are never guessed.
    """
    if isinstance(X, (pd.DataFrame, pd.Series)):
        X = X.to_numpy()
    Xd = np.asarray(X, dtype=np.float64)
    if Xd.ndim != 2:
        msg = f"{name} must be a 2-D matrix; got ndim={Xd.ndim}."
        raise DimensionMismatch(msg)
    return Xd


def as_vector(v: Sequence[float] | NDArray[np.float64], name: str = "v") -> NDArray[np.float64]:
    """Return ``v`` as a 1-D float64 array (column/row matrices are flattened)."""
    if isinstance(v, (pd.DataFrame, pd.Series)):
        v = v.to_numpy()
    vd = np.asarray(v, dtype=np.float64)
    if vd.ndim == 0:
        return vd.reshape(1)
    if vd.ndim == 2 and 1 in vd.shape:
        return vd.reshape(-1)
    if vd.ndim != 1:
        msg = f"{name} must be a vector; got shape {vd.shape}."
        raise DimensionMismatch(msg)
    return vd


def _check_array_finiteness(arr: NDArray[np.float64], what: str = "Input") -> None:
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{what} contains NA/NaN/Inf.")


def assert_finite_result(arr: NDArray[np.float64], what: str = "result") -> None:
    """Raise NumericOverflow when ``arr`` holds NaN or Inf."""
    if not np.all(np.isfinite(arr)):
        bad = np.argwhere(~np.isfinite(np.atleast_1d(arr)))
        head = bad[:5].tolist()
        msg = f"Non-finite values in {what} (first positions: {head})."
        raise NumericOverflow(msg)


def is_triangular(A: NDArray[np.float64]) -> bool:
    """True when ``A`` is lower or upper triangular."""
    return bool(np.allclose(A, np.tril(A)) or np.allclose(A, np.triu(A)))


def check_cholesky_factor(chol: Matrix, k: int, name: str = "chol") -> NDArray[np.float64]:
    """Validate a ``k x k`` triangular factor with positive diagonal."""
    L = as_matrix(chol, name)
    if L.shape != (k, k):
        msg = f"{name} must be {k}x{k}; got {L.shape[0]}x{L.shape[1]}."
        raise DimensionMismatch(msg)
    _check_array_finiteness(L, name)
    if not is_triangular(L):
        raise ValueError(f"{name} must be lower or upper triangular.")
    if np.any(np.diag(L) <= 0.0):
        raise ValueError(f"{name} must have a strictly positive diagonal.")
    return L


def check_scale_vector(sd: Sequence[float], k: int, name: str = "sd") -> NDArray[np.float64]:
    """Validate a length-``k`` vector of positive, finite standard deviations."""
    s = as_vector(sd, name)
    if s.shape[0] != k:
        msg = f"{name} must have length {k}; got {s.shape[0]}."
        raise DimensionMismatch(msg)
    _check_array_finiteness(s, name)
    if np.any(s <= 0.0):
        raise ValueError(f"{name} entries must be strictly positive.")
    return s


def _validate_weights(weights: Sequence[float], n: int) -> NDArray[np.float64]:
    """Validate nonnegative weights and return a dense float64 array of shape (n,).

    Parameters
    ----------
    weights : Sequence[float]
        Weight values to validate.
    n : int
        Expected length.

    Returns
    -------
    NDArray[np.float64]
        Validated weights as 1D array.

    """
    w = np.asarray(weights, dtype=np.float64).reshape(-1)
    if w.shape[0] != n:
        msg = f"weights length must match the number of draws ({w.shape[0]} != {n})."
        raise DimensionMismatch(msg)
    if np.any(~np.isfinite(w)):
        msg = "weights must be finite."
        raise ValueError(msg)
    if np.any(w < 0):
        msg = "weights must be nonnegative."
        raise ValueError(msg)
    wsum = float(np.sum(w))
    if not np.isfinite(wsum) or wsum <= 0.0:
        raise ValueError("weights must sum to a positive finite value")
    return w


def dot(A: Matrix, B: Matrix) -> NDArray[np.float64]:
    """Dense product, on GPU when the backend is enabled."""
    if _bk.gpu_enabled():
        return np.asarray(_bk.dot(A, B), dtype=np.float64)
    return np.asarray(A, dtype=np.float64) @ np.asarray(B, dtype=np.float64)


def row_means(X: Matrix) -> NDArray[np.float64]:
    """Row means of a dense matrix; zero columns is an error."""
    Xd = as_matrix(X)
    if Xd.shape[1] == 0:
        raise EmptyInput("cannot average over zero columns.")
    return Xd.mean(axis=1)


def safe_cholesky(A: Matrix, *, lower: bool = True) -> NDArray[np.float64]:
    """Strict Cholesky factorization without implicit ridges.
    Raises np.linalg.LinAlgError if not positive definite.
    """
    Ad = as_matrix(A, "A")
    if Ad.shape[0] != Ad.shape[1]:
        msg = f"A must be square; got {Ad.shape}."
        raise DimensionMismatch(msg)
    Ad = (Ad + Ad.T) * 0.5  # symmetrize
    try:
        return sla.cholesky(Ad, lower=lower, check_finite=True)
    except (np.linalg.LinAlgError, ValueError) as exc:
        raise np.linalg.LinAlgError(f"Cholesky factorization failed: {exc}") from exc


def corr_to_chol(corr: Matrix) -> NDArray[np.float64]:
    """Lower Cholesky factor of a correlation matrix (unit diagonal required)."""
    C = as_matrix(corr, "corr")
    if C.shape[0] != C.shape[1]:
        msg = f"corr must be square; got {C.shape}."
        raise DimensionMismatch(msg)
    if not np.allclose(np.diag(C), 1.0):
        raise ValueError("corr must have a unit diagonal.")
    return safe_cholesky(C, lower=True)
