from __future__ import annotations

from dataclasses import replace

import numpy as np
import pytest

from bhlens.camera.camera3d import CameraState
from bhlens.raymarch.config import GridConfig
from bhlens.renderer import FrameContext, RenderConfig, Renderer


@pytest.fixture
def renderer(xp, scene):
    return Renderer(xp, scene)


def test_black_hole_shadow_at_image_center(renderer):
    img = renderer.render(FrameContext(width=100, height=100))
    assert img.shape == (100, 100, 3)
    assert img.dtype == np.float64
    assert np.all(np.isfinite(img))
    assert img.min() >= 0.0
    assert img.max() <= 1.0
    assert np.array_equal(img[49:51, 49:51], np.zeros((2, 2, 3)))
    # the shadow is surrounded by light: sky, disk or lensed images
    assert img.mean() > 0.05


def test_on_axis_center_pixel_is_black(renderer):
    img = renderer.render(FrameContext(width=101, height=101))
    assert np.array_equal(img[50, 50], np.zeros(3))


def test_view_away_from_the_hole_is_sky(renderer):
    camera = CameraState(position=(0.0, 5.0, 300.0), target=(0.0, 5.0, 600.0))
    img = renderer.render(FrameContext(width=40, height=30, camera=camera))
    assert np.all(img > 0.0)
    assert np.all(img < 1.0)
    assert img.mean() < 0.3


def test_parallel_render_is_identical(xp, scene):
    frame = FrameContext(width=48, height=40, time=1.5, camera=CameraState(position=(0.0, 30.0, 250.0)))
    serial = Renderer(xp, scene, RenderConfig(workers=1, chunk_rows=8)).render(frame)
    threaded = Renderer(xp, scene, RenderConfig(workers=3, chunk_rows=8)).render(frame)
    assert np.array_equal(serial, threaded)


def test_disk_animates_with_time(renderer):
    camera = CameraState(position=(0.0, 40.0, 300.0))
    a = renderer.render(FrameContext(width=48, height=32, time=0.0, camera=camera))
    b = renderer.render(FrameContext(width=48, height=32, time=5.0, camera=camera))
    assert not np.array_equal(a, b)


def test_grid_overlay_changes_the_image(xp, scene):
    frame = FrameContext(width=48, height=32, camera=CameraState(position=(0.0, 60.0, 250.0)))
    plain = Renderer(xp, scene).render(frame)
    grid = Renderer(xp, scene, RenderConfig(grid=replace(GridConfig(), enabled=True))).render(frame)
    assert not np.array_equal(plain, grid)
    assert grid.min() >= 0.0
    assert grid.max() <= 1.0


def test_vignette_darkens_corners(xp, scene):
    frame = FrameContext(width=40, height=30)
    plain = Renderer(xp, scene).render(frame)
    dark = Renderer(xp, scene, RenderConfig(vignette=0.5)).render(frame)
    for y, x in ((0, 0), (0, -1), (-1, 0), (-1, -1)):
        assert np.all(dark[y, x] < plain[y, x])


@pytest.mark.parametrize(("width", "height"), [(0, 10), (10, 0), (-4, 4)])
def test_invalid_resolution_raises(renderer, width, height):
    with pytest.raises(ValueError, match="resolution"):
        renderer.render(FrameContext(width=width, height=height))


def test_degenerate_camera_renders_default_view(renderer):
    broken = CameraState(position=(0.0, 0.0, 0.0), target=(0.0, 0.0, 0.0))
    a = renderer.render(FrameContext(width=24, height=16, camera=broken))
    b = renderer.render(FrameContext(width=24, height=16))
    assert np.array_equal(a, b)
