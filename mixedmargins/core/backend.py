"""Optional GPU acceleration via CuPy.

Dense matrix products used by the node transforms can run on a CUDA device
when CuPy is installed and the environment asks for it. Results always come
back as NumPy arrays.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import numpy as np

try:  # pragma: no cover - optional dependency
    import cupy as _cp  # type: ignore
    _CUPY_OK = True
except ImportError:  # pragma: no cover - optional dependency
    _cp = None  # type: ignore
    _CUPY_OK = False

if TYPE_CHECKING:
    from collections.abc import Iterable


_LOGGER = logging.getLogger(__name__)

DEVICE_ENV = "MIXEDMARGINS_DEVICE"
USE_GPU_ENV = "MIXEDMARGINS_USE_GPU"


def _env_wants_gpu() -> bool:
    dev = str(os.environ.get(DEVICE_ENV, "")).strip().lower()
    flag = str(os.environ.get(USE_GPU_ENV, "")).strip().lower()
    if dev in {"gpu", "cuda"}:
        return True
    return flag in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def gpu_available() -> bool:
    """Return True if CuPy is importable and sees at least one CUDA device."""
    if not _CUPY_OK:
        return False
    try:  # pragma: no cover - environment-specific
        return int(_cp.cuda.runtime.getDeviceCount()) > 0  # type: ignore[attr-defined]
    except (AttributeError, RuntimeError) as exc:  # pragma: no cover - environment-specific
        _LOGGER.debug("GPU detection failed; assuming CPU. Error: %s", exc)
        return False


def gpu_enabled() -> bool:
    """Return True when the environment requests a GPU and one is available."""
    return _env_wants_gpu() and gpu_available()


def xp_for(arrays: Iterable[Any] | None = None, prefer_gpu: bool | None = None):
    """Pick the array module (numpy or cupy) for a computation.

    CuPy inputs force CuPy; otherwise ``prefer_gpu`` (or the environment when
    it is None) decides, falling back to NumPy when no device is present.
    """
    if _CUPY_OK and arrays is not None:
        for a in arrays:
            if isinstance(a, _cp.ndarray):  # type: ignore[attr-defined]
                return _cp
    use_gpu = _env_wants_gpu() if prefer_gpu is None else bool(prefer_gpu)
    if use_gpu and gpu_available():
        return _cp
    return np


def to_cpu(x: Any, dtype=np.float64):
    """Ensure array is on CPU (NumPy)."""
    if _CUPY_OK and isinstance(x, _cp.ndarray):  # type: ignore[attr-defined]
        return _cp.asnumpy(x).astype(dtype, copy=False)  # type: ignore[attr-defined]
    return np.asarray(x, dtype=dtype)


def dot(A: Any, B: Any, prefer_gpu: bool | None = None):
    """Backend-aware matrix multiply returning a NumPy array."""
    xp = xp_for([A, B], prefer_gpu=prefer_gpu)
    if xp is np:
        return np.asarray(A, dtype=np.float64) @ np.asarray(B, dtype=np.float64)
    try:  # pragma: no cover - environment-specific
        C = xp.asarray(A, dtype=np.float64) @ xp.asarray(B, dtype=np.float64)
        return to_cpu(C)
    except (AttributeError, TypeError, ValueError, RuntimeError) as exc:  # pragma: no cover
        _LOGGER.debug("GPU matmul failed; retrying on CPU. Error: %s", exc)
        return to_cpu(A) @ to_cpu(B)
    finally:
        free_gpu_cache()


class DeviceGuard:
    """Context manager to temporarily force a device preference."""

    def __init__(self, device: str):
        self.device = str(device).lower()
        self._prev_env = None

    def __enter__(self):
        self._prev_env = os.environ.get(DEVICE_ENV)
        os.environ[DEVICE_ENV] = ("gpu" if self.device in {"gpu", "cuda"} else "cpu")
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._prev_env is None:
            os.environ.pop(DEVICE_ENV, None)
        else:
            os.environ[DEVICE_ENV] = self._prev_env
        free_gpu_cache()
        return False


def free_gpu_cache() -> None:
    """Release cached GPU memory if CuPy is active."""
    if not _CUPY_OK:
        return
    try:  # pragma: no cover - environment-specific
        _cp.get_default_memory_pool().free_all_blocks()  # type: ignore[attr-defined]
        _cp.get_default_pinned_memory_pool().free_all_blocks()  # type: ignore[attr-defined]
    except (AttributeError, RuntimeError) as exc:  # pragma: no cover - environment-specific
        _LOGGER.debug("GPU cache cleanup failed: %s", exc)
