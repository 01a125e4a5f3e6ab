from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bhlens.geometry import intersect_sphere, trace_straight
from bhlens.math_utils import normalize_batch
from bhlens.physics.geodesics.schwarzschild import GeodesicIntegrator, closest_approach
from bhlens.raymarch.config import IntegratorConfig, TraceResult

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule
    from bhlens.scene import Scene

logger = logging.getLogger(__name__)


class SceneTracer:
    """Resolve what each camera ray sees first.

    Rays whose straight-line closest approach stays outside the lensing zone
    keep their direct intersection results. The rest travel straight up to
    the zone boundary and are integrated from there, unless a direct hit lies
    before the boundary.
    """

    def __init__(self, xp: ArrayModule, scene: Scene, config: IntegratorConfig | None = None) -> None:
        """Initialise the tracer."""
        self.xp = xp
        self.scene = scene
        self.cfg = config or IntegratorConfig()
        self.integrator = GeodesicIntegrator(xp=xp, scene=scene, cfg=self.cfg)

    def in_lensing_zone(self, origin: Any, direction: Any) -> Any:
        """Mask of rays whose closest approach lies within the lensing radius."""
        return closest_approach(self.xp, origin, direction) <= self.scene.lensing_radius

    def trace_direct(self, origin: Any, direction: Any) -> TraceResult:
        return trace_straight(self.xp, self.scene, origin, direction, self.cfg.hit_eps, self.cfg.parallel_eps)

    def trace(self, origin: Any, direction: Any) -> TraceResult:
        """Trace rays.

        Args:
            origin: Ray origins, shape (N, 3).
            direction: Ray directions, shape (N, 3); normalized here.

        Returns:
            TraceResult for all N rays.
        """
        xp = self.xp
        origin = xp.asarray(origin, dtype=xp.float64)
        direction = normalize_batch(xp, xp.asarray(direction, dtype=xp.float64))

        result = self.trace_direct(origin, direction)

        lensed = xp.flatnonzero(self.in_lensing_zone(origin, direction))
        if lensed.size == 0:
            return result

        o = origin[lensed]
        d = direction[lensed]
        radius = float(self.scene.lensing_radius)

        inside = xp.linalg.norm(o, axis=-1) <= radius
        t_entry = intersect_sphere(xp, o, d, xp.zeros((3,), dtype=xp.float64), radius, 0.0)
        t_entry = xp.where(inside | ~xp.isfinite(t_entry), 0.0, t_entry)

        # a direct hit in front of the zone boundary is never bent
        bend = result.distance[lensed] >= t_entry
        idx = lensed[bend]
        if idx.size == 0:
            return result

        t0 = t_entry[bend]
        start = o[bend] + t0[:, None] * d[bend]
        logger.debug("integrating %d of %d rays inside the lensing zone", int(idx.size), int(origin.shape[0]))
        result.put(idx, self.integrator.integrate(start, d[bend], offset=t0))
        return result
