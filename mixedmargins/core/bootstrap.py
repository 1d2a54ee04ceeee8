"""Row-wise reductions over bootstrap replicates.

Replicate matrices are laid out ``(n, m)``: one row per quantity (e.g. one
observation's marginal prediction), one column per bootstrap replicate or
posterior draw.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from . import linalg as la
from .config import resolve_rng
from .exceptions import DimensionMismatch, EmptyInput, NumericOverflow

if TYPE_CHECKING:
    from numpy.typing import NDArray


def _replicates(x: la.Matrix) -> NDArray[np.float64]:
    arr = la.as_matrix(x, "x")
    if arr.shape[1] == 0:
        raise EmptyInput("x must have at least one replicate column.")
    return arr


def _labelled(x: la.Matrix, values: NDArray[np.float64]) -> NDArray[np.float64] | pd.Series:
    if isinstance(x, pd.DataFrame):
        return pd.Series(values, index=x.index)
    return values


def rowBootMeans(x: la.Matrix) -> NDArray[np.float64] | pd.Series:  # noqa: N802
    """Mean of each row across its replicate columns.

    Parameters
    ----------
    x : (n, m) matrix or DataFrame
        ``m >= 1`` replicate columns.

    Returns
    -------
    (n,) ndarray, or a Series indexed like ``x`` when ``x`` is a DataFrame.

    Raises
    ------
    EmptyInput
        If ``x`` has no columns.
    NumericOverflow
        If a row mean is NaN or Inf.

    """
    arr = _replicates(x)
    out = la.row_means(arr)
    la.assert_finite_result(out, "row means")
    return _labelled(x, out)


def row_bootstrap_means(
    x: la.Matrix,
    *,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
) -> NDArray[np.float64] | pd.Series:
    """Resample each row's columns with replacement and average them.

    Every row gets its own resample of the ``m`` column indices, so the
    result is one bootstrap replicate of the row means.
    """
    arr = _replicates(x)
    rng = resolve_rng(rng, seed)
    n, m = arr.shape
    idx = rng.integers(0, m, size=(n, m))
    out = np.take_along_axis(arr, idx, axis=1).mean(axis=1)
    la.assert_finite_result(out, "bootstrap row means")
    return _labelled(x, out)


def bootstrap_se(x: la.Matrix) -> NDArray[np.float64] | pd.Series:
    """Compute bootstrap standard errors from replicate columns.

    This function is intentionally strict:

    - Requires at least 2 replicates.
    - Rejects any non-finite (NaN/Inf) values.
    - Uses ddof=1 (unbiased sample standard deviation).

    Parameters
    ----------
    x : (n, m) array
        Bootstrap replicates of ``n`` statistics.

    Returns
    -------
    se : (n,) array
        Bootstrap standard errors.

    """
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2:
        raise DimensionMismatch("x must be a 2-D array of shape (n, m).")
    _, m = arr.shape
    if m < 2:
        raise ValueError(f"bootstrap_se requires at least 2 replicates; got m={m}.")
    if not np.isfinite(arr).all():
        bad = np.argwhere(~np.isfinite(arr))
        head = bad[:10].tolist()
        raise NumericOverflow(
            "Non-finite bootstrap replicates detected (showing up to 10 [row, col] indices): "
            f"{head}.",
        )
    return _labelled(x, np.std(arr, axis=1, ddof=1).astype(np.float64))
