"""Monte Carlo simulations and recovery checks.

Generates posterior-draw style inputs for random-intercept and
random-slope models, and checks ``integrate_re`` against closed forms.
"""

from __future__ import annotations

import numpy as np

from mixedmargins.core import linalg as la
from mixedmargins.core.config import IntegrationConfig
from mixedmargins.core.integrate import REBlock, integrate_re
from mixedmargins.core.tables import mat2tab


def simulate_intercept_draws(n_post=40, n_obs=25, sd=0.6, seed: int | None = 42):
    """Posterior draws for ``eta = b0 + b1 * x + u_group``, u ~ N(0, sd^2).

    Returns ``(yhat, block)`` where ``yhat`` is (n_post, n_obs).
    """
    rng = np.random.default_rng(seed)
    x = rng.standard_normal(n_obs)
    b0 = rng.normal(-0.5, 0.05, size=n_post)
    b1 = rng.normal(0.7, 0.05, size=n_post)
    yhat = b0[:, None] + b1[:, None] * x[None, :]
    sd_draws = np.abs(rng.normal(sd, 0.03, size=(n_post, 1)))
    block = REBlock(design=np.ones((n_obs, 1)), sd=sd_draws)
    return yhat, block


def simulate_slope_draws(n_post=20, n_obs=15, sd=(0.5, 0.3), rho=0.4, seed: int | None = 7):
    """Posterior draws for a correlated random intercept and slope.

    Returns ``(yhat, block, x)``; ``block.chol`` is the draws table of the
    correlation Cholesky factor.
    """
    rng = np.random.default_rng(seed)
    x = rng.uniform(-1.0, 1.0, size=n_obs)
    b0 = rng.normal(0.2, 0.05, size=n_post)
    b1 = rng.normal(-0.3, 0.05, size=n_post)
    yhat = b0[:, None] + b1[:, None] * x[None, :]
    sd_draws = np.abs(rng.normal(np.asarray(sd), 0.02, size=(n_post, 2)))
    rhos = np.clip(rng.normal(rho, 0.05, size=n_post), -0.95, 0.95)
    chols = np.stack([la.corr_to_chol(np.array([[1.0, r], [r, 1.0]])) for r in rhos])
    design = np.column_stack([np.ones(n_obs), x])
    block = REBlock(design=design, sd=sd_draws, chol=mat2tab(chols))
    return yhat, block, x


def lognormal_margin(yhat, block: REBlock):
    """Exact E[exp(eta + Z b)] for b ~ N(0, D R D), per posterior draw."""
    Z = np.asarray(block.design, dtype=np.float64)
    sd = np.asarray(block.sd, dtype=np.float64)
    n_post, q = sd.shape
    out = np.empty_like(np.asarray(yhat, dtype=np.float64))
    for i in range(n_post):
        if block.chol is None:
            L = np.eye(q)
        else:
            L = np.asarray(block.chol, dtype=np.float64)[i].reshape(q, q, order="F")
        DL = np.diag(sd[i]) @ L
        var = np.einsum("ij,ij->i", Z @ DL, Z @ DL)
        out[i] = np.exp(yhat[i] + 0.5 * var)
    return out


def test_identity_recovery():
    """Identity link: integrating a mean-zero effect returns yhat."""
    yhat, block = simulate_intercept_draws()
    cfg = IntegrationConfig(method="ghq", ghq_order=8, link="identity")
    mu = integrate_re(yhat, [block], config=cfg)
    err = float(np.max(np.abs(mu - yhat)))
    print("--- Identity-link recovery ---")
    print(f"max |margin - yhat| = {err:.2e}")
    assert err < 1e-10, f"identity recovery failed: {err}"
    print("✓ identity test passed.\n")


def test_lognormal_recovery():
    """Log link: GHQ margins match the lognormal mean."""
    yhat, block, _ = simulate_slope_draws()
    cfg = IntegrationConfig(method="ghq", ghq_order=15, link="log")
    mu = integrate_re(yhat, [block], config=cfg)
    err = float(np.max(np.abs(mu / lognormal_margin(yhat, block) - 1.0)))
    print("--- Log-link recovery (GHQ) ---")
    print(f"max relative error = {err:.2e}")
    assert err < 1e-6, f"lognormal recovery failed: {err}"
    print("✓ lognormal test passed.\n")


def test_mc_lognormal_recovery():
    """Log link: Monte-Carlo margins are close to the lognormal mean."""
    yhat, block = simulate_intercept_draws(n_post=10)
    cfg = IntegrationConfig(method="mc", k=20000, link="log", seed=2024)
    mu = integrate_re(yhat, [block], config=cfg)
    err = float(np.max(np.abs(mu / lognormal_margin(yhat, block) - 1.0)))
    print("--- Log-link recovery (MC) ---")
    print(f"max relative error = {err:.2e}")
    assert err < 0.03, f"Monte-Carlo recovery failed: {err}"
    print("✓ Monte-Carlo test passed.\n")


if __name__ == "__main__":
    test_identity_recovery()
    test_lognormal_recovery()
    test_mc_lognormal_recovery()
