from __future__ import annotations

import os

# headless matplotlib for bhlens.viz.plot
os.environ.setdefault("BHLENS_MPL_BACKEND", "Agg")

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from bhlens.raymarch.tracer import SceneTracer  # noqa: E402
from bhlens.scene import default_scene  # noqa: E402


@pytest.fixture
def xp():
    return np


@pytest.fixture
def scene():
    return default_scene()


@pytest.fixture
def tracer(xp, scene):
    return SceneTracer(xp, scene)
