from __future__ import annotations

import math
from dataclasses import replace

import numpy as np
import pytest

from bhlens.raymarch.config import GridConfig, HitKind, TraceResult
from bhlens.shading.compositing import grid_alpha, shade, tonemap, vignette
from bhlens.shading.noise import hash12, value_noise
from bhlens.shading.surfaces import SKY_AMBIENT, disk_emission, sphere_color, starfield


def _directions(n: int, seed: int = 7) -> np.ndarray:
    rng = np.random.default_rng(seed)
    d = rng.normal(size=(n, 3))
    return d / np.linalg.norm(d, axis=-1, keepdims=True)


def test_tonemap_range_and_monotonic(xp):
    c = np.linspace(0.0, 50.0, 200)
    rgb = np.stack([c, c, c], axis=-1)
    out = tonemap(xp, rgb)
    assert out.min() >= 0.0
    assert out.max() < 1.0
    assert np.all(np.diff(out[:, 0]) > 0.0)
    assert tonemap(xp, np.zeros((1, 3)))[0] == pytest.approx([0.0, 0.0, 0.0])


def test_tonemap_clamps_negative_input(xp):
    assert np.all(tonemap(xp, np.asarray([[-1.0, -0.5, 0.0]])) == 0.0)


def test_tonemap_is_not_idempotent(xp):
    rgb = np.asarray([[0.5, 1.0, 2.0]])
    once = tonemap(xp, rgb)
    assert not np.allclose(tonemap(xp, once), once)


def test_starfield_is_deterministic_and_lit(xp):
    d = _directions(20000)
    a = starfield(xp, d)
    b = starfield(xp, d.copy())
    assert np.array_equal(a, b)
    assert np.all(a > 0.0)
    assert np.all(a >= np.asarray(SKY_AMBIENT) - 1e-12)
    # some directions land on stars
    assert a.max() > 0.2


def test_starfield_depends_on_direction_only(xp):
    d = _directions(64)
    assert np.allclose(starfield(xp, d), starfield(xp, 3.0 * d))


def test_hash_is_in_unit_interval(xp):
    x, y = np.meshgrid(np.arange(-50.0, 50.0), np.arange(-50.0, 50.0))
    h = hash12(xp, x, y)
    assert h.min() >= 0.0
    assert h.max() <= 1.0


def test_value_noise_wraps_along_y(xp):
    x = np.linspace(0.0, 10.0, 37)
    period = 24
    a = value_noise(xp, x, np.zeros_like(x), period_y=period)
    b = value_noise(xp, x, np.full_like(x, float(period)), period_y=period)
    assert np.array_equal(a, b)


def test_disk_vanishes_at_edges(xp, scene):
    disk = scene.disk
    radius = np.asarray([disk.inner, disk.outer])
    rgb, alpha = disk_emission(xp, radius, np.zeros(2), 0.0, scene.black_hole, disk)
    assert np.allclose(rgb, 0.0)
    assert np.allclose(alpha, 0.0)


def test_disk_inner_region_outshines_outer(xp, scene):
    disk = scene.disk
    angle = np.linspace(0.0, 2.0 * math.pi, 64, endpoint=False)
    inner = disk_emission(xp, np.full(64, 10.0), angle, 0.0, scene.black_hole, disk)[0]
    outer = disk_emission(xp, np.full(64, 28.0), angle, 0.0, scene.black_hole, disk)[0]
    assert inner.sum() > outer.sum()


def test_disk_has_no_seam_at_angle_wrap(xp, scene):
    disk = scene.disk
    radius = np.full(3, 12.0)
    angle = np.asarray([-1e-9, 0.0, 2.0 * math.pi - 1e-9])
    rgb, alpha = disk_emission(xp, radius, angle, 3.0, scene.black_hole, disk)
    assert rgb[0] == pytest.approx(rgb[1], abs=1e-6)
    assert rgb[2] == pytest.approx(rgb[1], abs=1e-6)
    assert alpha[0] == pytest.approx(alpha[1], abs=1e-6)


def test_disk_doppler_brightens_approaching_side(xp, scene):
    disk = scene.disk
    still = replace(disk, doppler_strength=0.0)
    radius = np.full(2, 15.0)
    angle = np.asarray([math.pi / 2.0, -math.pi / 2.0])
    moving, _ = disk_emission(xp, radius, angle, 0.0, scene.black_hole, disk)
    flat, _ = disk_emission(xp, radius, angle, 0.0, scene.black_hole, still)
    assert moving[0] == pytest.approx(flat[0] * (1.0 + disk.doppler_strength))
    assert moving[1] == pytest.approx(flat[1] * (1.0 - disk.doppler_strength))


def test_sphere_lit_face_shows_base_color(xp):
    center = np.asarray([[0.0, 0.0, -50.0]])
    position = np.asarray([[0.0, 0.0, -45.0]])
    direction = np.asarray([[0.0, 0.0, -1.0]])
    base = np.asarray([[0.2, 0.4, 0.6]])
    rgb = sphere_color(xp, position, direction, center, base, np.zeros(1))
    assert rgb[0] == pytest.approx(base[0])


def test_sphere_dark_side_keeps_ambient_and_emission(xp):
    center = np.asarray([[0.0, 0.0, -50.0]])
    position = np.asarray([[0.0, 0.0, -55.0]])
    direction = np.asarray([[0.0, 0.0, 1.0]])
    base = np.asarray([[1.0, 1.0, 1.0]])
    dark = sphere_color(xp, position, direction, center, base, np.zeros(1))
    glowing = sphere_color(xp, position, direction, center, base, np.ones(1))
    assert dark[0] == pytest.approx([0.08, 0.08, 0.08])
    assert np.all(glowing > dark)


def _result(kind, distance):
    n = len(kind)
    return TraceResult(
        kind=np.asarray(kind, dtype=np.int64),
        distance=np.asarray(distance, dtype=np.float64),
        sphere_index=np.full((n,), -1, dtype=np.int64),
        disk_radius=np.zeros(n),
        disk_angle=np.zeros(n),
        position=np.zeros((n, 3)),
        direction=np.tile([0.0, 0.0, -1.0], (n, 1)),
    )


def test_shade_horizon_is_black(xp, scene):
    hit = _result([int(HitKind.HORIZON), int(HitKind.BACKGROUND)], [10.0, np.inf])
    rgb = shade(xp, scene, hit, 0.0)
    assert np.array_equal(rgb[0], np.zeros(3))
    assert np.all(rgb[1] > 0.0)


def test_grid_alpha_by_what_lies_behind(xp):
    cfg = GridConfig(enabled=True)
    hit = _result(
        [int(HitKind.HORIZON), int(HitKind.BACKGROUND), int(HitKind.SPHERE), int(HitKind.BACKGROUND), int(HitKind.BACKGROUND)],
        [298.0, np.inf, 50.0, np.inf, np.inf],
    )
    grid_t = np.asarray([100.0, 100.0, 100.0, np.inf, cfg.fade_end])
    alpha = grid_alpha(xp, hit, grid_t, np.ones(5), cfg)
    assert alpha == pytest.approx([cfg.alpha_horizon, cfg.alpha_near, cfg.alpha_far, 0.0, 0.0])


def test_grid_alpha_scales_with_line_intensity(xp):
    cfg = GridConfig(enabled=True)
    hit = _result([int(HitKind.BACKGROUND)] * 2, [np.inf] * 2)
    alpha = grid_alpha(xp, hit, np.asarray([100.0, 100.0]), np.asarray([1.0, 0.0]), cfg)
    assert alpha == pytest.approx([cfg.alpha_near, 0.0])


def test_vignette_darkens_towards_the_edge(xp):
    rgb = np.full((3, 3), 0.5)
    uv = np.asarray([[0.0, 0.0], [0.5, 0.0], [1.0, 1.0]])
    out = vignette(xp, rgb, uv, 0.3)
    assert out[0] == pytest.approx(rgb[0])
    assert out[2].sum() < out[1].sum() < out[0].sum()
    assert np.all(out >= 0.0)
