from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from bhlens.math_utils import dot, mix, smoothstep
from bhlens.raymarch.config import HitKind
from bhlens.shading.surfaces import disk_emission, sphere_color, starfield

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule
    from bhlens.raymarch.config import GridConfig, TraceResult
    from bhlens.scene import Scene

GAMMA = 2.2

Shader = Callable[["ArrayModule", "Scene", "TraceResult", float], Any]


def _shade_background(xp: ArrayModule, scene: Scene, hit: TraceResult, time: float) -> Any:  # noqa: ARG001
    return starfield(xp, hit.direction)


def _shade_horizon(xp: ArrayModule, scene: Scene, hit: TraceResult, time: float) -> Any:  # noqa: ARG001
    return xp.zeros(hit.direction.shape, dtype=xp.float64)


def _shade_sphere(xp: ArrayModule, scene: Scene, hit: TraceResult, time: float) -> Any:  # noqa: ARG001
    idx = hit.sphere_index
    return sphere_color(
        xp,
        hit.position,
        hit.direction,
        scene.body_centers(xp)[idx],
        scene.body_colors(xp)[idx],
        scene.body_emissions(xp)[idx],
    )


def _shade_disk(xp: ArrayModule, scene: Scene, hit: TraceResult, time: float) -> Any:
    rgb, alpha = disk_emission(xp, hit.disk_radius, hit.disk_angle, time, scene.black_hole, scene.disk)
    # what lies behind the disk is approximated by the sky along the same direction
    return rgb + (1.0 - alpha)[..., None] * starfield(xp, hit.direction)


SHADERS: dict[HitKind, Shader] = {
    HitKind.BACKGROUND: _shade_background,
    HitKind.HORIZON: _shade_horizon,
    HitKind.SPHERE: _shade_sphere,
    HitKind.DISK: _shade_disk,
}


def shade(xp: ArrayModule, scene: Scene, hit: TraceResult, time: float) -> Any:
    """Linear (pre tone mapping) color for every traced ray, dispatched on ``hit.kind``."""
    rgb = xp.zeros(hit.direction.shape, dtype=xp.float64)
    for kind, shader in SHADERS.items():
        idx = xp.flatnonzero(hit.kind == int(kind))
        if idx.size == 0:
            continue
        rgb[idx] = shader(xp, scene, hit.take(idx), time)
    return rgb


def grid_alpha(xp: ArrayModule, hit: TraceResult, grid_t: Any, line: Any, cfg: GridConfig) -> Any:
    """Overlay opacity per ray; 0 where the grid was not hit."""
    horizon = hit.kind == int(HitKind.HORIZON)
    nearer = grid_t < hit.distance
    alpha = xp.where(horizon, cfg.alpha_horizon, xp.where(nearer, cfg.alpha_near, cfg.alpha_far))

    finite = xp.isfinite(grid_t)
    safe_t = xp.where(finite, grid_t, 0.0)
    fade = 1.0 - smoothstep(xp, cfg.fade_start, cfg.fade_end, safe_t)
    return xp.where(finite, alpha * fade * line, 0.0)


def blend_grid(xp: ArrayModule, rgb: Any, hit: TraceResult, grid_t: Any, line: Any, cfg: GridConfig) -> Any:
    """Tint the scene color towards the grid line color."""
    alpha = grid_alpha(xp, hit, grid_t, line, cfg)
    color = xp.asarray(cfg.color, dtype=xp.float64)
    return mix(rgb, color, alpha[..., None])


def tonemap(xp: ArrayModule, rgb: Any) -> Any:
    """Reinhard c / (c + 1) per channel, then gamma 1 / 2.2; output in [0, 1]."""
    c = xp.maximum(rgb, 0.0)
    mapped = c / (c + 1.0)
    return xp.clip(mapped, 0.0, 1.0) ** (1.0 / GAMMA)


def vignette(xp: ArrayModule, rgb: Any, uv: Any, strength: float) -> Any:
    """Radial darkening; uv is the (..., 2) offset from screen center in [-1, 1]."""
    factor = xp.clip(1.0 - strength * dot(xp, uv, uv), 0.0, 1.0)
    return rgb * factor[..., None]
