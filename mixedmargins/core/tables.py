"""Conversion between draws tables and square matrices.

Posterior draws of a matrix parameter (e.g. the Cholesky factor ``L`` of a
random-effect correlation matrix) are stored one draw per row, with the
matrix flattened column-major: ``L[1,1], L[2,1], ..., L[q,1], L[1,2], ...``.
"""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from . import linalg as la
from .exceptions import DimensionMismatch, IndexOutOfRange

if TYPE_CHECKING:
    from numpy.typing import NDArray


def _as_table(X: la.Matrix) -> NDArray[np.float64]:
    if isinstance(X, (pd.DataFrame, pd.Series)):
        X = X.to_numpy()
    Xd = np.asarray(X, dtype=np.float64)
    if Xd.ndim == 1:
        return Xd.reshape(1, -1)
    return la.as_matrix(Xd, "X")


def _side(p: int) -> int:
    q = math.isqrt(p)
    if p == 0 or q * q != p:
        msg = f"table rows must hold a flattened square matrix; got {p} columns."
        raise DimensionMismatch(msg)
    return q


def tab2mat(X: la.Matrix, index: int) -> NDArray[np.float64]:
    """Rebuild the square matrix stored in row ``index`` (0-based) of ``X``.

    Raises
    ------
    IndexOutOfRange
        If ``index`` is negative or not smaller than the number of rows.
    DimensionMismatch
        If the row length is not a perfect square.

    """
    T = _as_table(X)
    n_blocks = T.shape[0]
    index = int(index)
    if index < 0 or index >= n_blocks:
        msg = f"index {index} out of range for a table with {n_blocks} row(s)."
        raise IndexOutOfRange(msg)
    q = _side(T.shape[1])
    return T[index].reshape(q, q, order="F").copy()


def mat2tab(mats: la.Matrix) -> NDArray[np.float64]:
    """Flatten one ``(q, q)`` matrix or a ``(B, q, q)`` stack into a table."""
    M = np.asarray(mats, dtype=np.float64)
    if M.ndim == 2:
        M = M[np.newaxis]
    if M.ndim != 3 or M.shape[1] != M.shape[2]:
        msg = f"expected square matrices; got shape {M.shape}."
        raise DimensionMismatch(msg)
    B, q, _ = M.shape
    return M.transpose(0, 2, 1).reshape(B, q * q)
