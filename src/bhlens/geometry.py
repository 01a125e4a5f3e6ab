from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bhlens.math_utils import dot, fract, smoothstep
from bhlens.raymarch.config import HitKind, TraceResult

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule
    from bhlens.raymarch.config import GridConfig
    from bhlens.scene import Scene


def intersect_sphere(
        xp: ArrayModule,
        origin: Any,
        direction: Any,
        center: Any,
        radius: float,
        eps: float = 1e-6,
) -> Any:
    """Nearest positive ray parameter of a sphere hit, ``inf`` if none.

    origin, direction: (N, 3), direction normalized
    center: (3,)
    returns: (N,)

    The smaller root wins; when it lies behind the origin (origin inside the
    sphere) the larger root is used. Roots ``<= eps`` are rejected.
    """
    oc = origin - center
    b = dot(xp, oc, direction)
    c = dot(xp, oc, oc) - radius * radius

    disc = b * b - c
    s = xp.sqrt(xp.maximum(disc, 0.0))
    t0 = -b - s
    t1 = -b + s

    t = xp.where(t0 > eps, t0, xp.where(t1 > eps, t1, xp.inf))
    return xp.where(disc < 0.0, xp.inf, t)


def intersect_spheres(
        xp: ArrayModule,
        origin: Any,
        direction: Any,
        centers: Any,
        radii: Any,
        eps: float = 1e-6,
) -> tuple[Any, Any]:
    """Nearest hit over a set of spheres.

    Returns (t, index) with ``t = inf`` and ``index = -1`` where nothing is hit.
    Ties go to the lower index.
    """
    n = origin.shape[0]
    t_best = xp.full((n,), xp.inf, dtype=xp.float64)
    idx_best = xp.full((n,), -1, dtype=xp.int64)

    for i in range(int(centers.shape[0])):
        t = intersect_sphere(xp, origin, direction, centers[i], float(radii[i]), eps)
        closer = t < t_best
        t_best = xp.where(closer, t, t_best)
        idx_best = xp.where(closer, i, idx_best)

    return t_best, idx_best


def intersect_disk(
        xp: ArrayModule,
        origin: Any,
        direction: Any,
        inner: float,
        outer: float,
        eps: float = 1e-6,
        parallel_eps: float = 1e-9,
) -> tuple[Any, Any, Any]:
    """Intersect rays with the annulus ``inner <= r <= outer`` in the y = 0 plane.

    Returns (t, radius, angle); ``t = inf`` and radius/angle 0 where missed.
    """
    dy = direction[..., 1]
    parallel = xp.abs(dy) < parallel_eps
    safe_dy = xp.where(parallel, 1.0, dy)

    t = -origin[..., 1] / safe_dy
    p = origin + t[..., None] * direction
    radius = xp.hypot(p[..., 0], p[..., 2])
    angle = xp.arctan2(p[..., 2], p[..., 0])

    ok = (~parallel) & (t > eps) & (radius >= inner) & (radius <= outer)
    return (
        xp.where(ok, t, xp.inf),
        xp.where(ok, radius, 0.0),
        xp.where(ok, angle, 0.0),
    )


def segment_spheres_hit(
        xp: ArrayModule,
        p0: Any,
        p1: Any,
        centers: Any,
        radii: Any,
        eps: float = 1e-6,
) -> tuple[Any, Any]:
    """Check whether segments p0 -> p1 hit any sphere.

    p0, p1: (N, 3)
    returns: (distance along the segment or inf, sphere index or -1)
    """
    seg = p1 - p0
    length = xp.linalg.norm(seg, axis=-1)
    d = seg / xp.maximum(length, 1e-12)[..., None]

    t, idx = intersect_spheres(xp, p0, d, centers, radii, eps)
    inside = t <= length
    return xp.where(inside, t, xp.inf), xp.where(inside, idx, -1)


def segment_disk_hit(
        xp: ArrayModule,
        p0: Any,
        p1: Any,
        inner: float,
        outer: float,
) -> tuple[Any, Any, Any]:
    """Detect a disk-plane crossing on segments p0 -> p1.

    Only a sign change of y counts; the crossing point is linearly
    interpolated. Segments that stay on one side of the plane never hit,
    including rays travelling within it.

    returns: (distance along the segment or inf, radius, angle)
    """
    y0 = p0[..., 1]
    y1 = p1[..., 1]

    crossed = (y0 > 0.0) != (y1 > 0.0)
    denom = xp.where(crossed, y0 - y1, 1.0)
    s = xp.where(crossed, y0 / denom, 1.0)

    seg = p1 - p0
    p = p0 + s[..., None] * seg
    radius = xp.hypot(p[..., 0], p[..., 2])
    angle = xp.arctan2(p[..., 2], p[..., 0])

    ok = crossed & (radius >= inner) & (radius <= outer)
    dist = s * xp.linalg.norm(seg, axis=-1)
    return (
        xp.where(ok, dist, xp.inf),
        xp.where(ok, radius, 0.0),
        xp.where(ok, angle, 0.0),
    )


def grid_height(xp: ArrayModule, x: Any, z: Any, rs: float, cfg: GridConfig) -> Any:
    """Embedding-diagram height of the grid surface, ``nan`` inside the hole cutout."""
    r = xp.hypot(x, z)
    arg = xp.maximum(rs * (r - rs), 0.0)
    h = cfg.scale * (cfg.offset - 2.0 * xp.sqrt(arg))
    return xp.where(r < cfg.hole_radius_rs * rs, xp.nan, h)


def _grid_gap(xp: ArrayModule, origin: Any, direction: Any, t: Any, rs: float, cfg: GridConfig) -> Any:
    p = origin + t[..., None] * direction
    return p[..., 1] - grid_height(xp, p[..., 0], p[..., 2], rs, cfg)


def intersect_grid(
        xp: ArrayModule,
        origin: Any,
        direction: Any,
        rs: float,
        cfg: GridConfig,
) -> tuple[Any, Any]:
    """March straight rays against the grid surface.

    Fixed steps of ``cfg.march_step`` look for a sign change of
    ``y - height``; the bracket is refined by ``cfg.bisect_steps`` bisections.
    Steps that land inside the hole cutout (``nan``) never bracket.

    returns: (t or inf, hit point (N, 3))
    """
    n = origin.shape[0]
    step = float(cfg.march_step)

    t_lo = xp.zeros((n,), dtype=xp.float64)
    t_hi = xp.full((n,), xp.inf, dtype=xp.float64)
    found = xp.zeros((n,), dtype=bool)

    t_prev = xp.zeros((n,), dtype=xp.float64)
    g_prev = _grid_gap(xp, origin, direction, t_prev, rs, cfg)

    for k in range(1, int(cfg.march_steps) + 1):
        t_cur = xp.full((n,), k * step, dtype=xp.float64)
        g_cur = _grid_gap(xp, origin, direction, t_cur, rs, cfg)

        # nan compares False, so cutout samples never bracket
        bracket = (~found) & (g_prev * g_cur <= 0.0) & (g_prev != g_cur)
        t_lo = xp.where(bracket, t_prev, t_lo)
        t_hi = xp.where(bracket, t_cur, t_hi)
        found = found | bracket

        if bool(xp.all(found)):
            break
        t_prev, g_prev = t_cur, g_cur

    hi = xp.where(found, t_hi, 0.0)
    g_lo = _grid_gap(xp, origin, direction, t_lo, rs, cfg)
    for _ in range(int(cfg.bisect_steps)):
        mid = 0.5 * (t_lo + hi)
        g_mid = _grid_gap(xp, origin, direction, mid, rs, cfg)
        same_side = g_mid * g_lo > 0.0
        t_lo = xp.where(same_side, mid, t_lo)
        g_lo = xp.where(same_side, g_mid, g_lo)
        hi = xp.where(same_side, hi, mid)

    t_hit = xp.where(found, 0.5 * (t_lo + hi), xp.inf)
    point = origin + xp.where(found, t_hit, 0.0)[..., None] * direction
    return t_hit, point


def grid_line_intensity(xp: ArrayModule, x: Any, z: Any, cfg: GridConfig) -> Any:
    """Line mask in [0, 1]: 1 on the x/z grid lines, 0 between them."""
    spacing = float(cfg.spacing)
    dx = xp.abs(fract(xp, x / spacing + 0.5) - 0.5) * spacing
    dz = xp.abs(fract(xp, z / spacing + 0.5) - 0.5) * spacing
    return 1.0 - smoothstep(xp, 0.0, float(cfg.line_width), xp.minimum(dx, dz))


def trace_straight(
        xp: ArrayModule,
        scene: Scene,
        origin: Any,
        direction: Any,
        eps: float = 1e-6,
        parallel_eps: float = 1e-9,
        offset: Any = None,
) -> TraceResult:
    """Direct (unbent) tests against horizon, bodies and disk; nearest hit wins.

    ``offset`` is added to every reported distance, so a continuation that
    starts part-way along a path reports total path length.
    """
    result = TraceResult.background(xp, origin, direction)

    t_h = intersect_sphere(xp, origin, direction, xp.zeros((3,), dtype=xp.float64), scene.rs, eps)
    t_s, idx_s = intersect_spheres(xp, origin, direction, scene.body_centers(xp), scene.body_radii(xp), eps)
    t_d, rad_d, ang_d = intersect_disk(xp, origin, direction, scene.disk.inner, scene.disk.outer, eps, parallel_eps)

    best = xp.minimum(xp.minimum(t_h, t_s), t_d)
    hit = xp.isfinite(best)
    # ties resolve horizon, then body, then disk
    is_h = hit & (t_h <= best)
    is_s = hit & ~is_h & (t_s <= best)
    is_d = hit & ~is_h & ~is_s

    kind = result.kind
    kind[is_h] = int(HitKind.HORIZON)
    kind[is_s] = int(HitKind.SPHERE)
    kind[is_d] = int(HitKind.DISK)

    base = xp.zeros_like(best) if offset is None else offset
    result.distance[hit] = (base + best)[hit]
    result.sphere_index[is_s] = idx_s[is_s]
    result.disk_radius[is_d] = rad_d[is_d]
    result.disk_angle[is_d] = ang_d[is_d]
    result.position[hit] = (origin + xp.where(hit, best, 0.0)[..., None] * direction)[hit]
    return result
