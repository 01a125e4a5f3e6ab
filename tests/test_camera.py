from __future__ import annotations

import logging
import math

import numpy as np
import pytest

from bhlens.camera.camera3d import CameraState


def test_default_basis_is_orthonormal(xp):
    f, r, u = CameraState().basis(xp)
    assert f == pytest.approx([0.0, 0.0, -1.0])
    assert r == pytest.approx([1.0, 0.0, 0.0])
    assert u == pytest.approx([0.0, 1.0, 0.0])


@pytest.mark.parametrize(
    "position",
    [(0.0, 100.0, 0.0), (0.0, -80.0, 0.0), (40.0, 25.0, -300.0)],
)
def test_basis_is_orthonormal_for_any_look_direction(xp, position):
    f, r, u = CameraState(position=position).basis(xp)
    m = np.stack([f, r, u])
    assert np.all(np.isfinite(m))
    assert m @ m.T == pytest.approx(np.eye(3), abs=1e-12)


def test_center_ray_of_odd_resolution_is_forward(xp):
    cam = CameraState(position=(10.0, 20.0, 300.0), target=(0.0, 0.0, 0.0), fov_deg=45.0)
    d = cam.ray_directions(xp, 5, 3)
    f, _, _ = cam.basis(xp)
    assert d.shape == (3, 5, 3)
    assert d[1, 2] == pytest.approx(f)
    assert np.linalg.norm(d, axis=-1) == pytest.approx(np.ones((3, 5)))


def test_screen_uv_layout(xp):
    uv = CameraState().screen_uv(xp, 4, 2)
    assert uv.shape == (2, 4, 2)
    assert uv[0, 0] == pytest.approx([-1.5, 0.5])
    assert uv[1, 3] == pytest.approx([1.5, -0.5])


def test_field_of_view_sets_ray_spread(xp):
    wide = CameraState(fov_deg=90.0).ray_directions(xp, 1, 2)
    narrow = CameraState(fov_deg=30.0).ray_directions(xp, 1, 2)

    def angle(d):
        return math.degrees(math.acos(float(np.dot(d[0, 0], d[1, 0]))))

    assert angle(wide) == pytest.approx(2.0 * math.degrees(math.atan(0.5 * math.tan(math.radians(45.0)))))
    assert angle(narrow) < angle(wide)


@pytest.mark.parametrize(
    "camera",
    [
        CameraState(position=(0.0, 0.0, 0.0), target=(0.0, 0.0, 0.0)),
        CameraState(fov_deg=0.0),
        CameraState(fov_deg=180.0),
        CameraState(position=(float("nan"), 0.0, 300.0)),
        CameraState(target=(0.0, float("inf"), 0.0)),
    ],
)
def test_degenerate_camera_falls_back_to_default(camera, caplog):
    assert camera.is_degenerate()
    with caplog.at_level(logging.WARNING, logger="bhlens.camera.camera3d"):
        assert camera.sanitized() == CameraState()
    assert "degenerate camera" in caplog.text


def test_valid_camera_is_kept(caplog):
    cam = CameraState(position=(1.0, 2.0, 3.0), target=(0.0, 1.0, 0.0), fov_deg=70.0)
    with caplog.at_level(logging.WARNING):
        assert cam.sanitized() is cam
    assert caplog.text == ""
