from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any


@dataclass(frozen=True, slots=True)
class IntegratorConfig:
    """Geodesic integration settings.

    Lengths suffixed ``_rs`` are multiples of the Schwarzschild radius, so the
    same config works for any mass.

    Fields:
      max_steps:
        Step budget; a ray that uses it up escapes to the background.
      step_factor:
        Base affine step is ``step_factor * (r - r_s)``.
      min_step_rs, max_step_rs:
        Clamp for the adaptive step.
      photon_band_rs:
        Half-width of the shell around the photon sphere where steps shrink.
      photon_slowdown:
        Step multiplier right on the photon sphere (ramps to 1 at the band edge).
      horizon_eps_rs:
        A ray is absorbed once r < r_s * (1 + horizon_eps_rs).
      r_floor_rs:
        Lower bound applied to r after every RK4 sub-stage.
      lapse_floor:
        Lower bound for f = 1 - r_s / r.
      pole_eps:
        theta is kept inside [pole_eps, pi - pole_eps].
      hit_eps:
        Intersections closer than this are ignored (self-intersection guard).
      parallel_eps:
        |d.y| below this counts as parallel to the disk plane.
    """

    max_steps: int = 600
    step_factor: float = 0.08
    min_step_rs: float = 0.01
    max_step_rs: float = 1.0
    photon_band_rs: float = 1.0
    photon_slowdown: float = 0.25
    horizon_eps_rs: float = 0.01
    r_floor_rs: float = 0.5
    lapse_floor: float = 1e-3
    pole_eps: float = 1e-4
    hit_eps: float = 1e-6
    parallel_eps: float = 1e-9


@dataclass(frozen=True, slots=True)
class GridConfig:
    """Spacetime grid overlay (Flamm embedding surface with line pattern).

    Surface height is ``scale * (offset - 2 * sqrt(r_s * (r - r_s)))`` for
    ``r >= hole_radius_rs * r_s``; there is no surface inside the cutout.
    """

    enabled: bool = False
    scale: float = -0.5
    offset: float = 37.5
    hole_radius_rs: float = 1.2
    march_step: float = 1.0
    march_steps: int = 600
    bisect_steps: int = 10
    spacing: float = 5.0
    line_width: float = 0.15
    color: tuple[float, float, float] = (0.25, 0.6, 1.0)
    alpha_horizon: float = 0.15
    alpha_near: float = 0.8
    alpha_far: float = 0.35
    fade_start: float = 150.0
    fade_end: float = 450.0


class HitKind(IntEnum):
    """Closed set of things a traced ray can end on."""

    BACKGROUND = 0
    HORIZON = 1
    SPHERE = 2
    DISK = 3


@dataclass(frozen=True, slots=True)
class TraceResult:
    """Per-ray classification (tag + associated data), all arrays of length N.

    Attributes
    ----------
    kind:
        ``HitKind`` values, int array.
    distance:
        Path length to the hit, ``inf`` for background.
    sphere_index:
        Index into ``Scene.bodies`` for SPHERE hits, -1 otherwise.
    disk_radius, disk_angle:
        Polar coordinates of the disk hit, 0 otherwise.
    position:
        World-space hit point (N, 3); last ray position for background.
    direction:
        Ray direction at the hit (N, 3); escape direction for background.

    """

    kind: Any
    distance: Any
    sphere_index: Any
    disk_radius: Any
    disk_angle: Any
    position: Any
    direction: Any

    @classmethod
    def background(cls, xp: Any, position: Any, direction: Any) -> TraceResult:
        """All rays escaping: kind BACKGROUND, distance inf."""
        n = position.shape[0]
        return cls(
            kind=xp.full((n,), int(HitKind.BACKGROUND), dtype=xp.int64),
            distance=xp.full((n,), xp.inf, dtype=xp.float64),
            sphere_index=xp.full((n,), -1, dtype=xp.int64),
            disk_radius=xp.zeros((n,), dtype=xp.float64),
            disk_angle=xp.zeros((n,), dtype=xp.float64),
            position=xp.array(position, dtype=xp.float64, copy=True),
            direction=xp.array(direction, dtype=xp.float64, copy=True),
        )

    def take(self, idx: Any) -> TraceResult:
        """Rows ``idx`` as a new result."""
        return TraceResult(
            kind=self.kind[idx],
            distance=self.distance[idx],
            sphere_index=self.sphere_index[idx],
            disk_radius=self.disk_radius[idx],
            disk_angle=self.disk_angle[idx],
            position=self.position[idx],
            direction=self.direction[idx],
        )

    def put(self, idx: Any, other: TraceResult) -> None:
        """Overwrite rows ``idx`` in place with the rows of ``other``."""
        self.kind[idx] = other.kind
        self.distance[idx] = other.distance
        self.sphere_index[idx] = other.sphere_index
        self.disk_radius[idx] = other.disk_radius
        self.disk_angle[idx] = other.disk_angle
        self.position[idx] = other.position
        self.direction[idx] = other.direction
