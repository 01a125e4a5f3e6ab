from __future__ import annotations

import numpy as np
import pytest

from bhlens import backend
from bhlens.backend import get_array_module, is_cupy, to_numpy


def test_numpy_by_default(monkeypatch):
    monkeypatch.delenv("BHLENS_BACKEND", raising=False)
    assert get_array_module() is np
    assert get_array_module("numpy") is np


def test_environment_selects_backend(monkeypatch):
    monkeypatch.setenv("BHLENS_BACKEND", " NumPy ")
    assert get_array_module() is np


def test_cupy_request_without_cupy_fails(monkeypatch):
    monkeypatch.setattr(backend, "cp", None)
    with pytest.raises(RuntimeError, match="CuPy"):
        get_array_module("cupy")
    assert get_array_module("auto") is np


def test_to_numpy_passes_numpy_through():
    a = np.arange(6.0).reshape(2, 3)
    assert not is_cupy(np)
    assert to_numpy(np, a) is a
