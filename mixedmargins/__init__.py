"""mixedmargins: numeric core for marginal effects of mixed models.

This package integrates model predictions over random effects (Monte-Carlo or
Gauss-Hermite nodes) and reduces bootstrap/posterior replicates, the building
blocks of population-averaged margins for Bayesian mixed models.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "DimensionMismatch",
    "EmptyInput",
    "IndexOutOfRange",
    "IntegrationConfig",
    "MarginsError",
    "NumericOverflow",
    "PredictionEvaluationError",
    "REBlock",
    "REIntegrand",
    "bootstrap_se",
    "gauss_hermite_nodes",
    "integrate_re",
    "integratemvn",
    "integratere",
    "inverse_link",
    "mat2tab",
    "rowBootMeans",
    "row_bootstrap_means",
    "simulate_re",
    "standard_normal_nodes",
    "tab2mat",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "DimensionMismatch": ("mixedmargins.core.exceptions", "DimensionMismatch"),
    "EmptyInput": ("mixedmargins.core.exceptions", "EmptyInput"),
    "IndexOutOfRange": ("mixedmargins.core.exceptions", "IndexOutOfRange"),
    "MarginsError": ("mixedmargins.core.exceptions", "MarginsError"),
    "NumericOverflow": ("mixedmargins.core.exceptions", "NumericOverflow"),
    "PredictionEvaluationError": ("mixedmargins.core.exceptions", "PredictionEvaluationError"),
    "IntegrationConfig": ("mixedmargins.core.config", "IntegrationConfig"),
    "REBlock": ("mixedmargins.core.integrate", "REBlock"),
    "REIntegrand": ("mixedmargins.core.integrate", "REIntegrand"),
    "integrate_re": ("mixedmargins.core.integrate", "integrate_re"),
    "integratere": ("mixedmargins.core.integrate", "integratere"),
    "inverse_link": ("mixedmargins.core.integrate", "inverse_link"),
    "gauss_hermite_nodes": ("mixedmargins.core.quadrature", "gauss_hermite_nodes"),
    "integratemvn": ("mixedmargins.core.quadrature", "integratemvn"),
    "simulate_re": ("mixedmargins.core.quadrature", "simulate_re"),
    "standard_normal_nodes": ("mixedmargins.core.quadrature", "standard_normal_nodes"),
    "mat2tab": ("mixedmargins.core.tables", "mat2tab"),
    "tab2mat": ("mixedmargins.core.tables", "tab2mat"),
    "bootstrap_se": ("mixedmargins.core.bootstrap", "bootstrap_se"),
    "rowBootMeans": ("mixedmargins.core.bootstrap", "rowBootMeans"),
    "row_bootstrap_means": ("mixedmargins.core.bootstrap", "row_bootstrap_means"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public routines on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'mixedmargins' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
