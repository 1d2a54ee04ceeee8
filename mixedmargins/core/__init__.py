# mixedmargins/core/__init__.py
"""Core computational modules for mixedmargins."""
from . import backend, bootstrap, config, exceptions, integrate, linalg, quadrature, tables

__all__ = [
    "backend",
    "bootstrap",
    "config",
    "exceptions",
    "integrate",
    "linalg",
    "quadrature",
    "tables",
]
