"""Integration of predictions over random-effect draws.

``integratere`` averages a prediction callback over a matrix of random-effect
draws (Monte-Carlo or quadrature nodes), optionally weighted:

    E_b[f(b)] ~= sum_i w_i f(b_i) / sum_i w_i

``integrate_re`` builds on it to marginalize a mixed model's predictions over
its random effects, one posterior draw at a time.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol, Union

import numpy as np
import pandas as pd
from scipy import special

from . import linalg as la
from .config import IntegrationConfig
from .exceptions import DimensionMismatch, EmptyInput, PredictionEvaluationError
from .quadrature import gauss_hermite_nodes, integratemvn, standard_normal_nodes
from .tables import tab2mat

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

_LOGGER = logging.getLogger(__name__)


class Predictor(Protocol):
    """Anything that maps one random-effect draw to a prediction matrix."""

    def evaluate(self, draw: NDArray[np.float64]) -> Any: ...


PredictFn = Union[Callable[[np.ndarray], Any], Predictor]


@dataclass(frozen=True)
class REIntegrand:
    """Inputs of ``integratere``.

    draws : (n_draws, n_effects) matrix of random-effect values.
    predict : callable ``f(draw)`` or object with ``evaluate(draw)``.
    weights : optional (n_draws,) nonnegative weights; uniform when None.
    """

    draws: la.Matrix
    predict: PredictFn
    weights: Sequence[float] | None = None


def _call(predict: PredictFn, draw: NDArray[np.float64]) -> Any:
    fn = getattr(predict, "evaluate", None)
    if callable(fn):
        return fn(draw)
    return predict(draw)


def _predict_at(predict: PredictFn, draws: NDArray[np.float64], i: int) -> NDArray[np.float64]:
    try:
        P = np.asarray(_call(predict, draws[i]), dtype=np.float64)
    except Exception as exc:
        msg = f"prediction failed for draw {i}: {exc}"
        raise PredictionEvaluationError(msg, draw_index=i) from exc
    if P.ndim > 2:
        msg = f"prediction for draw {i} must be a matrix; got ndim={P.ndim}."
        raise DimensionMismatch(msg)
    return np.atleast_2d(P)


def _accumulate(
    predict: PredictFn,
    draws: NDArray[np.float64],
    w: NDArray[np.float64],
    idx: NDArray[np.int64],
    shape: tuple[int, ...],
) -> NDArray[np.float64]:
    """Weighted sum of predictions over the draws in ``idx``."""
    total = np.zeros(shape, dtype=np.float64)
    for i in idx:
        P = _predict_at(predict, draws, int(i))
        if P.shape != shape:
            msg = f"prediction for draw {int(i)} has shape {P.shape}; expected {shape}."
            raise DimensionMismatch(msg)
        total += w[i] * P
        la.assert_finite_result(total, f"accumulated predictions (draw {int(i)})")
    return total


def _n_workers(n_jobs: int | None, n_tasks: int) -> int:
    maxw = (os.cpu_count() or 1) if (n_jobs is None or n_jobs == -1) else int(n_jobs)
    return max(1, min(maxw, n_tasks))


def integratere(spec: REIntegrand, *, n_jobs: int | None = 1) -> NDArray[np.float64]:
    """Average the predictions of ``spec.predict`` over ``spec.draws``.

    Parameters
    ----------
    spec : REIntegrand
        Draws, prediction callback and optional weights.
    n_jobs : int or None, default 1
        Worker threads. Draws are split into contiguous chunks, each chunk
        accumulates a private partial sum, and partial sums are merged in
        chunk order once all workers finish. ``-1``/None uses every CPU.

    Returns
    -------
    ndarray
        Matrix with the shape of a single prediction.

    Raises
    ------
    EmptyInput
        No draws were supplied.
    DimensionMismatch
        Weights do not match the draws, or predictions change shape.
    PredictionEvaluationError
        The callback raised for some draw; the cause is chained.
    NumericOverflow
        The running sum or the average contains NaN/Inf.

    """
    draws = np.asarray(spec.draws, dtype=np.float64)
    if draws.ndim == 1:
        draws = draws.reshape(-1, 1)
    draws = la.as_matrix(draws, "draws")
    n_draws = draws.shape[0]
    if n_draws == 0:
        raise EmptyInput("integratere requires at least one draw.")
    if spec.weights is None:
        w = np.ones(n_draws, dtype=np.float64)
    else:
        w = la._validate_weights(spec.weights, n_draws)
    wsum = float(np.sum(w))

    # The first prediction fixes the output shape.
    first = _predict_at(spec.predict, draws, 0)
    shape = first.shape
    total = w[0] * first
    la.assert_finite_result(total, "accumulated predictions (draw 0)")

    rest = np.arange(1, n_draws)
    workers = _n_workers(n_jobs, rest.size)
    if workers == 1:
        total += _accumulate(spec.predict, draws, w, rest, shape)
    else:
        chunks = np.array_split(rest, workers)
        _LOGGER.debug("integratere: %d draws on %d threads", n_draws, workers)
        partial: list[NDArray[np.float64] | None] = [None] * len(chunks)
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futures = {
                ex.submit(_accumulate, spec.predict, draws, w, chunk, shape): j
                for j, chunk in enumerate(chunks)
            }
            try:
                for fut in as_completed(futures):
                    partial[futures[fut]] = fut.result()
            except BaseException:
                for fut in futures:
                    fut.cancel()
                raise
        for part in partial:
            total += part
    out = total / wsum
    la.assert_finite_result(out, "integrated predictions")
    return out


# ---------------------------------------------------------------------
# Marginal predictions of a mixed model
# ---------------------------------------------------------------------


def _cloglog_inv(eta: NDArray[np.float64]) -> NDArray[np.float64]:
    return -np.expm1(-np.exp(eta))


_INVERSE_LINKS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "identity": lambda eta: eta,
    "logit": special.expit,
    "probit": special.ndtr,
    "cloglog": _cloglog_inv,
    "log": np.exp,
    "sqrt": np.square,
}


def inverse_link(eta: la.Matrix, link: str = "identity") -> NDArray[np.float64]:
    """Map a linear predictor to the response scale."""
    name = str(link).lower()
    if name not in _INVERSE_LINKS:
        msg = f"unknown link: {link!r}. Allowed: {sorted(_INVERSE_LINKS)}"
        raise ValueError(msg)
    with np.errstate(over="ignore"):
        return np.asarray(_INVERSE_LINKS[name](np.asarray(eta, dtype=np.float64)), dtype=np.float64)


@dataclass(frozen=True)
class REBlock:
    """Random effects of one grouping factor.

    design : (n_obs, q) random-effect design matrix.
    sd : (n_post, q) posterior draws of the standard deviations.
    chol : optional (n_post, q*q) draws table of the correlation Cholesky
        factor (see ``tables.tab2mat``); independent effects when None.
    """

    design: la.Matrix
    sd: la.Matrix
    chol: la.Matrix | None = None


class _ResponsePredictor:
    """Response-scale prediction for one posterior draw at a given effect."""

    def __init__(self, eta: NDArray[np.float64], Z: NDArray[np.float64], link: str):
        self.eta = eta
        self.Z = Z
        self.link = link

    def evaluate(self, draw: NDArray[np.float64]) -> NDArray[np.float64]:
        return inverse_link(self.eta + self.Z @ draw, self.link)


def _check_block(block: REBlock, n_obs: int, n_post: int, j: int):
    Z = la.as_matrix(block.design, f"blocks[{j}].design")
    if Z.shape[0] != n_obs:
        msg = f"blocks[{j}].design has {Z.shape[0]} rows; yhat has {n_obs} observations."
        raise DimensionMismatch(msg)
    q = Z.shape[1]
    sd = np.asarray(block.sd, dtype=np.float64)
    if sd.ndim == 1 and q == 1:
        sd = sd.reshape(-1, 1)
    sd = la.as_matrix(sd, f"blocks[{j}].sd")
    if sd.shape != (n_post, q):
        msg = f"blocks[{j}].sd must be ({n_post}, {q}); got {sd.shape}."
        raise DimensionMismatch(msg)
    chol = None
    if block.chol is not None:
        chol = np.asarray(block.chol, dtype=np.float64)
        if chol.ndim == 1:
            chol = chol.reshape(-1, 1)
        if chol.shape != (n_post, q * q):
            msg = f"blocks[{j}].chol must be ({n_post}, {q * q}); got {chol.shape}."
            raise DimensionMismatch(msg)
    return Z, sd, chol


def integrate_re(
    yhat: la.Matrix,
    blocks: Sequence[REBlock],
    *,
    config: IntegrationConfig | None = None,
) -> NDArray[np.float64] | pd.DataFrame:
    """Marginal predictions integrating out the random effects.

    For each posterior draw ``i`` the random effects of every block are
    represented by integration nodes mapped with ``integratemvn`` using that
    draw's standard deviations and Cholesky factor. The response-scale
    prediction ``inverse_link(yhat[i] + sum_j Z_j b_j)`` is then averaged over
    the nodes with ``integratere``.

    Parameters
    ----------
    yhat : (n_post, n_obs) matrix or DataFrame
        Posterior draws of the fixed-effects linear predictor.
    blocks : sequence of REBlock
        One entry per grouping factor.
    config : IntegrationConfig, optional
        Node method, number of nodes, link, seed and threading.

    Returns
    -------
    (n_post, n_obs) ndarray, or a DataFrame labelled like ``yhat``.

    """
    cfg = config or IntegrationConfig()
    link = str(cfg.link).lower()
    if link not in _INVERSE_LINKS:
        msg = f"unknown link: {cfg.link!r}. Allowed: {sorted(_INVERSE_LINKS)}"
        raise ValueError(msg)
    Y = la.as_matrix(yhat, "yhat")
    n_post, n_obs = Y.shape
    if n_post == 0 or n_obs == 0:
        raise EmptyInput(f"yhat must be non-empty; got shape {Y.shape}.")
    if len(blocks) == 0:
        raise EmptyInput("integrate_re requires at least one random-effect block.")
    checked = [_check_block(b, n_obs, n_post, j) for j, b in enumerate(blocks)]
    Z_all = np.hstack([Z for Z, _, _ in checked])
    sizes = [Z.shape[1] for Z, _, _ in checked]
    offsets = np.cumsum([0, *sizes])
    n_effects = int(offsets[-1])

    weights = None
    if cfg.method == "ghq":
        base_nodes, weights = gauss_hermite_nodes(n_effects, cfg.ghq_order)
    rng = cfg.make_rng()
    _LOGGER.debug(
        "integrate_re: draws=%d obs=%d effects=%d method=%s link=%s",
        n_post, n_obs, n_effects, cfg.method, cfg.link,
    )

    out = np.empty((n_post, n_obs), dtype=np.float64)
    for i in range(n_post):
        nodes = base_nodes if cfg.method == "ghq" else standard_normal_nodes(cfg.k, n_effects, rng=rng)
        effects = np.empty_like(nodes)
        for j, (_, sd, chol) in enumerate(checked):
            q = sizes[j]
            cols = slice(offsets[j], offsets[j + 1])
            L = np.eye(q) if chol is None else tab2mat(chol, i)
            effects[:, cols] = integratemvn(nodes[:, cols], q, sd[i], L)
        spec = REIntegrand(
            draws=effects,
            predict=_ResponsePredictor(Y[i], Z_all, link),
            weights=weights,
        )
        out[i] = integratere(spec, n_jobs=cfg.n_jobs).reshape(-1)
    if isinstance(yhat, pd.DataFrame):
        return pd.DataFrame(out, index=yhat.index, columns=yhat.columns)
    return out
