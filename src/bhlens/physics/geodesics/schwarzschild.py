from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from bhlens.geometry import segment_disk_hit, segment_spheres_hit, trace_straight
from bhlens.math_utils import dot, mix, normalize_batch, smoothstep, wrap_angle
from bhlens.raymarch.config import HitKind, IntegratorConfig, TraceResult

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule
    from bhlens.scene import Scene

# Column layout of the batched state array (N, 6)
R, THETA, PHI, P_R, P_THETA, P_PHI = range(6)


def closest_approach(xp: ArrayModule, origin: Any, direction: Any) -> Any:
    """Distance of closest approach of straight rays to the origin.

    t* = max(0, -o.d), returns |o + t* d|. Direction must be normalized.
    """
    t_star = xp.maximum(-dot(xp, origin, direction), 0.0)
    return xp.linalg.norm(origin + t_star[..., None] * direction, axis=-1)


def spherical_basis(xp: ArrayModule, theta: Any, phi: Any) -> tuple[Any, Any, Any]:
    """Orthonormal (e_r, e_theta, e_phi) with the polar axis along +y.

    x = r sin(theta) cos(phi), y = r cos(theta), z = r sin(theta) sin(phi)
    """
    st, ct = xp.sin(theta), xp.cos(theta)
    sp, cp = xp.sin(phi), xp.cos(phi)
    zero = xp.zeros_like(theta)
    e_r = xp.stack([st * cp, ct, st * sp], axis=-1)
    e_theta = xp.stack([ct * cp, -st, ct * sp], axis=-1)
    e_phi = xp.stack([-sp, zero, cp], axis=-1)
    return e_r, e_theta, e_phi


def to_spherical(xp: ArrayModule, p: Any) -> tuple[Any, Any, Any]:
    r = xp.linalg.norm(p, axis=-1)
    r_safe = xp.maximum(r, 1e-12)
    theta = xp.arccos(xp.clip(p[..., 1] / r_safe, -1.0, 1.0))
    phi = xp.arctan2(p[..., 2], p[..., 0])
    return r, theta, phi


def to_cartesian(xp: ArrayModule, r: Any, theta: Any, phi: Any) -> Any:
    st = xp.sin(theta)
    return xp.stack([r * st * xp.cos(phi), r * xp.cos(theta), r * st * xp.sin(phi)], axis=-1)


def initial_state(xp: ArrayModule, origin: Any, direction: Any, pole_eps: float) -> Any:
    """Build the (N, 6) state [r, theta, phi, p_r, p_theta, p_phi] from Cartesian rays.

    Momenta come from projecting the direction on the local basis:
        p_r = d.e_r, p_theta = r (d.e_theta), p_phi = r sin(theta) (d.e_phi)
    """
    r, theta, phi = to_spherical(xp, origin)
    theta = xp.clip(theta, pole_eps, math.pi - pole_eps)
    e_r, e_theta, e_phi = spherical_basis(xp, theta, phi)

    p_r = dot(xp, direction, e_r)
    p_theta = r * dot(xp, direction, e_theta)
    p_phi = r * xp.sin(theta) * dot(xp, direction, e_phi)
    return xp.stack([r, theta, phi, p_r, p_theta, p_phi], axis=-1)


def geodesic_derivative(xp: ArrayModule, y: Any, rs: float, cfg: IntegratorConfig) -> Any:
    """d/dlambda of the state for a static, spherically symmetric metric.

        dr/dl       = f p_r
        dtheta/dl   = p_theta / r^2
        dphi/dl     = p_phi / (r^2 sin^2 theta)
        dp_r/dl     = -(r_s / 2r^2) p_r^2 / f + (p_theta^2 + p_phi^2 / sin^2 theta) f / r^3
        dp_theta/dl = cos theta p_phi^2 / (r^2 sin^3 theta)
        dp_phi/dl   = 0

    with f = 1 - r_s / r floored at ``cfg.lapse_floor``.
    """
    r = y[..., R]
    theta = y[..., THETA]
    p_r = y[..., P_R]
    p_theta = y[..., P_THETA]
    p_phi = y[..., P_PHI]

    f = xp.maximum(1.0 - rs / r, cfg.lapse_floor)
    s = xp.maximum(xp.sin(theta), math.sin(cfg.pole_eps))
    c = xp.cos(theta)
    r2 = r * r
    s2 = s * s

    dr = f * p_r
    dtheta = p_theta / r2
    dphi = p_phi / (r2 * s2)
    dp_r = -(rs / (2.0 * r2)) * p_r * p_r / f + (p_theta * p_theta + p_phi * p_phi / s2) * f / (r2 * r)
    dp_theta = c * p_phi * p_phi / (r2 * s2 * s)
    dp_phi = xp.zeros_like(r)
    return xp.stack([dr, dtheta, dphi, dp_r, dp_theta, dp_phi], axis=-1)


def constrain_state(xp: ArrayModule, y: Any, rs: float, cfg: IntegratorConfig) -> Any:
    """Floor r, keep theta off the poles, wrap phi into (-pi, pi]."""
    # fmax: a nan radius (overflow at the singularity) lands on the floor
    r = xp.fmax(y[..., R], cfg.r_floor_rs * rs)
    theta = xp.clip(y[..., THETA], cfg.pole_eps, math.pi - cfg.pole_eps)
    phi = wrap_angle(xp, y[..., PHI])
    return xp.stack([r, theta, phi, y[..., P_R], y[..., P_THETA], y[..., P_PHI]], axis=-1)


def rk4_step(xp: ArrayModule, y: Any, h: Any, rs: float, cfg: IntegratorConfig) -> Any:
    """Advance the batched state by one RK4 step of size h (shape (N,)).

    Every intermediate stage is constrained before the derivative is
    evaluated on it, and so is the final state.
    """
    hh = h[..., None]

    k1 = geodesic_derivative(xp, y, rs, cfg)

    y2 = constrain_state(xp, y + 0.5 * hh * k1, rs, cfg)
    k2 = geodesic_derivative(xp, y2, rs, cfg)

    y3 = constrain_state(xp, y + 0.5 * hh * k2, rs, cfg)
    k3 = geodesic_derivative(xp, y3, rs, cfg)

    y4 = constrain_state(xp, y + hh * k3, rs, cfg)
    k4 = geodesic_derivative(xp, y4, rs, cfg)

    y_next = y + (hh / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)
    return constrain_state(xp, y_next, rs, cfg)


def adaptive_step(xp: ArrayModule, r: Any, rs: float, cfg: IntegratorConfig) -> Any:
    """Affine step: proportional to r - r_s, reduced near the photon sphere, clamped."""
    base = cfg.step_factor * (r - rs)
    band = cfg.photon_band_rs * rs
    near = mix(cfg.photon_slowdown, 1.0, smoothstep(xp, 0.0, band, xp.abs(r - 1.5 * rs)))
    return xp.clip(base * near, cfg.min_step_rs * rs, cfg.max_step_rs * rs)


def momentum_to_direction(xp: ArrayModule, y: Any, rs: float, cfg: IntegratorConfig) -> Any:
    """Unit Cartesian direction of motion for the state y."""
    d = geodesic_derivative(xp, y, rs, cfg)
    r = y[..., R]
    theta = y[..., THETA]
    e_r, e_theta, e_phi = spherical_basis(xp, theta, y[..., PHI])
    v = (
            d[..., R][..., None] * e_r
            + (r * d[..., THETA])[..., None] * e_theta
            + (r * xp.sin(theta) * d[..., PHI])[..., None] * e_phi
    )
    return normalize_batch(xp, v)


@dataclass(frozen=True, slots=True)
class GeodesicIntegrator:
    """Batched null-geodesic integrator with per-segment scene tests.

    Termination per step, in order:
      - horizon: r < r_s (1 + horizon_eps_rs); wins over anything on the segment
      - hit: the segment since the previous step crosses a body or the disk
      - exit: r > lensing_radius with p_r > 0; continues as a straight ray
      - max_steps: escapes to the background along the last direction
    """

    xp: ArrayModule
    scene: Scene
    cfg: IntegratorConfig = IntegratorConfig()

    def integrate(self, origin: Any, direction: Any, offset: Any = None) -> TraceResult:
        """Trace rays from origin along direction through curved space.

        Args:
            origin: Ray origins, shape (N, 3).
            direction: Normalized ray directions, shape (N, 3).
            offset: Path length already travelled before origin, shape (N,).

        Returns:
            TraceResult with distances measured along the bent path.
        """
        xp = self.xp
        cfg = self.cfg
        scene = self.scene
        rs = scene.rs
        n = origin.shape[0]

        centers = scene.body_centers(xp)
        radii = scene.body_radii(xp)
        horizon_r = rs * (1.0 + cfg.horizon_eps_rs)

        result = TraceResult.background(xp, origin, direction)
        state = initial_state(xp, origin, direction, cfg.pole_eps)
        p_prev = xp.array(origin, dtype=xp.float64, copy=True)
        travelled = (
            xp.zeros((n,), dtype=xp.float64) if offset is None else xp.array(offset, dtype=xp.float64, copy=True)
        )
        active = xp.ones((n,), dtype=bool)
        handoff = xp.zeros((n,), dtype=bool)

        for _ in range(int(cfg.max_steps)):
            a = xp.flatnonzero(active)
            if a.size == 0:
                break

            y = state[a]
            h = adaptive_step(xp, y[:, R], rs, cfg)
            # momenta may overflow right at the horizon; such rays are absorbed below
            with np.errstate(over="ignore", invalid="ignore"):
                y_new = rk4_step(xp, y, h, rs, cfg)
            state[a] = y_new

            p0 = p_prev[a]
            p1 = to_cartesian(xp, y_new[:, R], y_new[:, THETA], y_new[:, PHI])
            seg = p1 - p0
            seg_len = xp.linalg.norm(seg, axis=-1)
            seg_dir = seg / xp.maximum(seg_len, 1e-12)[:, None]
            r = y_new[:, R]

            absorbed = (r < horizon_r) | ~xp.all(xp.isfinite(y_new), axis=-1)

            t_s, idx_s = segment_spheres_hit(xp, p0, p1, centers, radii, cfg.hit_eps)
            t_d, rad_d, ang_d = segment_disk_hit(
                xp, p0, p1, scene.disk.inner, scene.disk.outer,
            )
            hit_d = ~absorbed & xp.isfinite(t_d) & (t_d < t_s)
            hit_s = ~absorbed & xp.isfinite(t_s) & ~hit_d
            hit = hit_s | hit_d
            exiting = ~absorbed & ~hit & (r > scene.lensing_radius) & (y_new[:, P_R] > 0.0)

            t_hit = xp.where(hit_d, t_d, t_s)
            ia = a[absorbed]
            result.kind[ia] = int(HitKind.HORIZON)
            result.distance[ia] = (travelled[a] + seg_len)[absorbed]
            result.position[ia] = p1[absorbed]
            result.direction[ia] = seg_dir[absorbed]

            ih = a[hit]
            result.kind[ih] = xp.where(hit_d, int(HitKind.DISK), int(HitKind.SPHERE))[hit]
            result.distance[ih] = (travelled[a] + t_hit)[hit]
            result.sphere_index[ih] = xp.where(hit_s, idx_s, -1)[hit]
            result.disk_radius[ih] = xp.where(hit_d, rad_d, 0.0)[hit]
            result.disk_angle[ih] = xp.where(hit_d, ang_d, 0.0)[hit]
            result.position[ih] = (p0 + xp.where(hit, t_hit, 0.0)[:, None] * seg_dir)[hit]
            result.direction[ih] = seg_dir[hit]

            handoff[a[exiting]] = True
            travelled[a] = travelled[a] + seg_len
            p_prev[a] = p1
            active[a] = ~(absorbed | hit | exiting)

        # out of steps: background along the last integrated direction
        rest = xp.flatnonzero(active)
        if rest.size > 0:
            result.position[rest] = p_prev[rest]
            result.direction[rest] = momentum_to_direction(xp, state[rest], rs, cfg)

        out = xp.flatnonzero(handoff)
        if out.size > 0:
            d_out = momentum_to_direction(xp, state[out], rs, cfg)
            straight = trace_straight(
                xp, scene, p_prev[out], d_out, cfg.hit_eps, cfg.parallel_eps, offset=travelled[out],
            )
            result.put(out, straight)

        return result
