"""Configuration for random-effect integration."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass

import numpy as np

# Default number of Monte-Carlo nodes per posterior draw.
DEFAULT_INTEGRATION_POINTS: int = 100

# Default Gauss-Hermite order per random-effect dimension.
DEFAULT_GHQ_ORDER: int = 10

VALID_METHODS = {"mc", "ghq"}


@dataclass(frozen=True)
class IntegrationConfig:
    """Settings shared by the random-effect integration routines.

    Notes
    -----
    - Method:
        * "mc" draws ``k`` standard normal nodes per posterior draw.
        * "ghq" uses a tensor-product Gauss-Hermite grid of ``ghq_order``
          points per random-effect dimension; ``k`` is ignored.
    - Link: inverse link applied to the linear predictor before averaging
      (see ``core.integrate.inverse_link``).
    - Reproducibility:
        * Use ``seed`` to initialize the generator deterministically
          (``np.random.Generator``). No global RNG state is touched.
    - Parallelism: ``n_jobs > 1`` evaluates draws in chunks on a thread pool,
      ``-1`` uses every CPU.

    """

    k: int = DEFAULT_INTEGRATION_POINTS
    method: str = "mc"
    ghq_order: int = DEFAULT_GHQ_ORDER
    link: str = "identity"
    seed: int | None = None
    n_jobs: int = 1

    def __post_init__(self) -> None:
        if int(self.k) < 1:
            raise ValueError(f"k must be a positive integer; got {self.k}.")
        if self.method not in VALID_METHODS:
            msg = f"method must be one of {sorted(VALID_METHODS)}; got {self.method!r}."
            raise ValueError(msg)
        if int(self.ghq_order) < 1:
            raise ValueError(f"ghq_order must be a positive integer; got {self.ghq_order}.")
        if self.n_jobs == 0 or self.n_jobs < -1:
            raise ValueError("n_jobs must be -1 or a positive integer.")

    def make_rng(self) -> np.random.Generator:
        """Fresh generator seeded from ``seed``."""
        return np.random.default_rng(self.seed)

    def with_(self, **changes) -> IntegrationConfig:
        """Copy of this config with ``changes`` applied."""
        return dataclasses.replace(self, **changes)


def resolve_rng(
    rng: np.random.Generator | None = None, seed: int | None = None,
) -> np.random.Generator:
    """Use the caller's generator, else a new one from ``seed``."""
    return rng or np.random.default_rng(seed)
