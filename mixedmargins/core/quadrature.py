"""Integration nodes for multivariate normal random effects.

Standard normal nodes (Monte-Carlo draws or a Gauss-Hermite grid) are mapped
into the correlated, scaled space of a random-effect distribution with
``integratemvn``. Combining integrand values with node weights is left to
``core.integrate``.
"""

from __future__ import annotations

import itertools
import logging
import warnings
from typing import TYPE_CHECKING

import numpy as np
from scipy.special import roots_hermitenorm

from . import linalg as la
from .config import resolve_rng
from .exceptions import DimensionMismatch

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

_LOGGER = logging.getLogger(__name__)

# Tensor grids above this size trigger a warning.
GHQ_MAX_NODES: int = 100_000


def integratemvn(
    X: la.Matrix,
    k: int,
    sd: Sequence[float],
    chol: la.Matrix,
) -> NDArray[np.float64]:
    """Map standard normal nodes onto a scaled, correlated normal.

    Parameters
    ----------
    X : (n, k) matrix
        Nodes in standardized space, one per row.
    k : int
        Dimensionality of the random effect.
    sd : (k,) vector
        Per-dimension standard deviations (strictly positive).
    chol : (k, k) matrix
        Triangular Cholesky factor of the correlation matrix.

    Returns
    -------
    (n, k) ndarray
        Row ``i`` equals ``(chol @ X[i]) * sd``.

    """
    k = int(k)
    if k < 1:
        raise ValueError(f"k must be a positive integer; got {k}.")
    Xd = la.as_matrix(X, "X")
    if Xd.shape[1] != k:
        msg = f"X must have k={k} columns; got {Xd.shape[1]}."
        raise DimensionMismatch(msg)
    s = la.check_scale_vector(sd, k)
    L = la.check_cholesky_factor(chol, k)
    # rows: (L x)^T = x^T L^T
    return la.dot(Xd, L.T) * s.reshape(1, -1)


def standard_normal_nodes(
    n: int,
    k: int,
    *,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
) -> NDArray[np.float64]:
    """Draw an (n x k) matrix of independent N(0, 1) nodes."""
    if int(n) < 1 or int(k) < 1:
        raise ValueError(f"n and k must be positive; got n={n}, k={k}.")
    rng = resolve_rng(rng, seed)
    return rng.standard_normal((int(n), int(k)))


def gauss_hermite_nodes(k: int, order: int) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Tensor-product Gauss-Hermite rule for the k-variate standard normal.

    Returns ``(nodes, weights)`` with ``nodes`` of shape ``(order**k, k)`` and
    weights summing to one, so that ``sum(w * f(nodes))`` approximates
    ``E[f(Z)]`` for ``Z ~ N(0, I_k)``.
    """
    k = int(k)
    order = int(order)
    if k < 1 or order < 1:
        raise ValueError(f"k and order must be positive; got k={k}, order={order}.")
    size = order**k
    if size > GHQ_MAX_NODES:
        warnings.warn(
            f"Gauss-Hermite grid has {size} nodes (order={order}, k={k}); "
            "consider method='mc' for high-dimensional random effects.",
            UserWarning,
            stacklevel=2,
        )
    x, w = roots_hermitenorm(order)
    w = w / np.sqrt(2.0 * np.pi)
    nodes = np.array(list(itertools.product(x, repeat=k)), dtype=np.float64).reshape(size, k)
    weights = np.prod(
        np.array(list(itertools.product(w, repeat=k)), dtype=np.float64).reshape(size, k),
        axis=1,
    )
    _LOGGER.debug("Gauss-Hermite grid: k=%d order=%d nodes=%d", k, order, size)
    return nodes, weights


def simulate_re(
    design: la.Matrix,
    k: int,
    sd: Sequence[float],
    chol: la.Matrix | None = None,
    *,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
) -> NDArray[np.float64]:
    """Random-effect contributions to the linear predictor at ``k`` draws.

    Draws ``k`` standard normal nodes for the ``q`` effects of one grouping
    block, transforms them with ``integratemvn`` and multiplies by the
    block's design matrix.

    Returns
    -------
    (n_obs, k) ndarray
        Column ``j`` is ``design @ b_j`` for the j-th simulated effect.

    """
    Z = la.as_matrix(design, "design")
    q = Z.shape[1]
    L = np.eye(q) if chol is None else chol
    nodes = standard_normal_nodes(k, q, rng=rng, seed=seed)
    effects = integratemvn(nodes, q, sd, L)
    return la.dot(Z, effects.T)
