from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule

Vec3 = tuple[float, float, float]

# default lensing zone radius in units of r_s
LENSING_RADIUS_RS = 30.0


@dataclass(frozen=True, slots=True)
class BlackHole:
    """Non-rotating mass at the coordinate origin, geometric units (G = c = 1)."""

    mass: float = 1.0

    def __post_init__(self) -> None:
        if not self.mass > 0.0:
            msg = f"black hole mass must be positive, got {self.mass}"
            raise ValueError(msg)

    @property
    def rs(self) -> float:
        """Schwarzschild radius r_s = 2M."""
        return 2.0 * self.mass

    @property
    def photon_sphere(self) -> float:
        return 1.5 * self.rs

    @property
    def isco(self) -> float:
        """Innermost stable circular orbit, 3 r_s."""
        return 3.0 * self.rs


@dataclass(frozen=True, slots=True)
class AccretionDisk:
    """Thin emitting annulus in the y = 0 plane.

    Geometry is just ``inner``/``outer`` (the disk is infinitely thin); the remaining
    fields tune the procedural emission evaluated in
    ``bhlens.shading.surfaces.disk_emission``.

    Attributes
    ----------
    inner, outer:
        Radial bounds. ``inner`` is normally the ISCO.
    inner_fade, outer_fade:
        Widths of the smooth radial ramps that take the emission to zero.
    temperature_exponent:
        T ~ (inner / r) ** temperature_exponent.
    doppler_strength, doppler_rate:
        Amplitude of the approaching/receding brightness sinusoid and the
        angular speed at which its phase drifts with time.
    rotation_rate:
        Angular speed of the turbulence pattern.
    brightness:
        Overall emission multiplier applied before tone mapping.

    """

    inner: float
    outer: float
    inner_fade: float = 1.5
    outer_fade: float = 10.0
    temperature_exponent: float = 0.75
    doppler_strength: float = 0.45
    doppler_rate: float = 0.05
    rotation_rate: float = 0.2
    brightness: float = 2.5

    def __post_init__(self) -> None:
        if not 0.0 < self.inner < self.outer:
            msg = f"disk bounds must satisfy 0 < inner < outer, got [{self.inner}, {self.outer}]"
            raise ValueError(msg)

    @classmethod
    def for_black_hole(cls, bh: BlackHole, outer_rs: float = 20.0, **kwargs: Any) -> AccretionDisk:
        """Disk spanning [ISCO, outer_rs * r_s]."""
        return cls(inner=bh.isco, outer=outer_rs * bh.rs, **kwargs)


@dataclass(frozen=True, slots=True)
class CelestialBody:
    """Static decorative sphere."""

    center: Vec3
    radius: float
    color: Vec3
    emission: float = 0.0

    def __post_init__(self) -> None:
        if not self.radius > 0.0:
            msg = f"body radius must be positive, got {self.radius}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class Scene:
    """Complete, immutable scene definition."""

    black_hole: BlackHole
    disk: AccretionDisk
    bodies: tuple[CelestialBody, ...] = field(default_factory=tuple)
    lensing_radius: float | None = None

    def __post_init__(self) -> None:
        if self.lensing_radius is None:
            object.__setattr__(self, "lensing_radius", LENSING_RADIUS_RS * self.black_hole.rs)
        if self.lensing_radius <= self.black_hole.photon_sphere:
            msg = "lensing_radius must lie outside the photon sphere"
            raise ValueError(msg)

    @property
    def rs(self) -> float:
        return self.black_hole.rs

    def body_centers(self, xp: ArrayModule) -> Any:
        """Body centers as an (N, 3) array."""
        return xp.asarray([b.center for b in self.bodies], dtype=xp.float64).reshape(-1, 3)

    def body_radii(self, xp: ArrayModule) -> Any:
        return xp.asarray([b.radius for b in self.bodies], dtype=xp.float64)

    def body_colors(self, xp: ArrayModule) -> Any:
        return xp.asarray([b.color for b in self.bodies], dtype=xp.float64).reshape(-1, 3)

    def body_emissions(self, xp: ArrayModule) -> Any:
        return xp.asarray([b.emission for b in self.bodies], dtype=xp.float64)


def default_scene() -> Scene:
    """Stock scene: M = 1 (r_s = 2), disk [6, 40], three bodies, lensing zone 30 r_s."""
    bh = BlackHole(mass=1.0)
    disk = AccretionDisk.for_black_hole(bh, outer_rs=20.0)
    bodies = (
        CelestialBody(center=(70.0, 12.0, -110.0), radius=9.0, color=(0.85, 0.55, 0.35), emission=0.05),
        CelestialBody(center=(-95.0, -18.0, -60.0), radius=6.0, color=(0.35, 0.55, 0.95), emission=0.1),
        CelestialBody(center=(-30.0, 40.0, -180.0), radius=14.0, color=(1.0, 0.85, 0.6), emission=1.5),
    )
    return Scene(black_hole=bh, disk=disk, bodies=bodies)
