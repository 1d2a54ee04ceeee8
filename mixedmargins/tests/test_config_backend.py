import os

import pytest
import numpy as np
from mixedmargins.core import backend as bk
from mixedmargins.core.config import IntegrationConfig, resolve_rng

def test_config_defaults():
    cfg = IntegrationConfig()
    assert cfg.k == 100
    assert cfg.method == "mc"
    assert cfg.link == "identity"
    assert cfg.n_jobs == 1

def test_config_validation():
    with pytest.raises(ValueError, match="k must be"):
        IntegrationConfig(k=0)
    with pytest.raises(ValueError, match="method"):
        IntegrationConfig(method="laplace")
    with pytest.raises(ValueError, match="ghq_order"):
        IntegrationConfig(ghq_order=0)
    with pytest.raises(ValueError, match="n_jobs"):
        IntegrationConfig(n_jobs=0)

def test_config_immutability_and_with():
    cfg = IntegrationConfig(seed=1)
    with pytest.raises(AttributeError):
        cfg.k = 5
    cfg2 = cfg.with_(k=5)
    assert cfg2.k == 5 and cfg.k == 100
    with pytest.raises(ValueError):
        cfg.with_(method="nope")

def test_make_rng_reproducible():
    cfg = IntegrationConfig(seed=11)
    assert np.array_equal(cfg.make_rng().standard_normal(3), cfg.make_rng().standard_normal(3))

def test_resolve_rng_prefers_generator():
    g = np.random.default_rng(0)
    assert resolve_rng(g, seed=5) is g
    assert isinstance(resolve_rng(seed=5), np.random.Generator)

def test_device_guard_restores_env(monkeypatch):
    monkeypatch.delenv(bk.DEVICE_ENV, raising=False)
    with bk.DeviceGuard("cpu"):
        assert os.environ[bk.DEVICE_ENV] == "cpu"
        assert bk.xp_for([np.ones(2)]) is np
    assert bk.DEVICE_ENV not in os.environ

def test_env_gpu_request_without_device(monkeypatch):
    monkeypatch.setenv(bk.USE_GPU_ENV, "1")
    monkeypatch.setattr(bk, "gpu_available", lambda: False)
    assert bk._env_wants_gpu()
    assert not bk.gpu_enabled()
    assert bk.xp_for() is np

def test_backend_dot_cpu():
    A = np.arange(4.0).reshape(2, 2)
    out = bk.dot(A, A, prefer_gpu=False)
    assert isinstance(out, np.ndarray)
    assert np.allclose(out, A @ A)
