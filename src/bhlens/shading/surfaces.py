from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bhlens.math_utils import dot, fract, mix, normalize_batch, smoothstep
from bhlens.shading.noise import hash12, value_noise

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule
    from bhlens.scene import AccretionDisk, BlackHole

TWO_PI = 2.0 * math.pi

DISK_COOL = (0.85, 0.22, 0.05)
DISK_WARM = (1.0, 0.62, 0.22)
DISK_HOT = (1.0, 0.95, 0.88)

SKY_AMBIENT = (0.010, 0.012, 0.020)
STAR_WARM = (1.0, 0.86, 0.7)
STAR_COLD = (0.75, 0.85, 1.0)

# angular turbulence lattice cells per revolution, one per noise sample
_TURB_CELLS = (24, 40)


@dataclass(frozen=True, slots=True)
class StarLayer:
    """One angular frequency of the procedural starfield.

    ``density`` cells per unit of the latitude coordinate (twice as many
    around the azimuth); a cell holds a star when its hash exceeds
    ``threshold``.
    """

    density: float
    threshold: float
    size: float
    gain: float
    seed: float


STAR_LAYERS: tuple[StarLayer, ...] = (
    StarLayer(density=60.0, threshold=0.965, size=0.22, gain=0.9, seed=1.7),
    StarLayer(density=140.0, threshold=0.975, size=0.18, gain=0.6, seed=13.1),
    StarLayer(density=320.0, threshold=0.985, size=0.15, gain=0.4, seed=41.9),
)


def canonical_angle(xp: ArrayModule, angle: Any) -> Any:
    """Map angles into [0, 2 pi)."""
    return xp.mod(angle, TWO_PI)


def _blend3(xp: ArrayModule, t: Any, c0: Any, c1: Any, c2: Any) -> Any:
    """Three-point color ramp c0 -> c1 -> c2 over t in [0, 1]."""
    c0 = xp.asarray(c0, dtype=xp.float64)
    c1 = xp.asarray(c1, dtype=xp.float64)
    c2 = xp.asarray(c2, dtype=xp.float64)
    tt = t[..., None]
    low = mix(c0, c1, xp.clip(tt * 2.0, 0.0, 1.0))
    high = mix(c1, c2, xp.clip(tt * 2.0 - 1.0, 0.0, 1.0))
    return xp.where(tt < 0.5, low, high)


def disk_fade(xp: ArrayModule, radius: Any, disk: AccretionDisk) -> Any:
    """Radial envelope: 0 at both edges, 1 in between."""
    fade_in = smoothstep(xp, disk.inner, disk.inner + disk.inner_fade, radius)
    fade_out = 1.0 - smoothstep(xp, disk.outer - disk.outer_fade, disk.outer, radius)
    return fade_in * fade_out


def disk_emission(
        xp: ArrayModule,
        radius: Any,
        angle: Any,
        time: float,
        black_hole: BlackHole,
        disk: AccretionDisk,
) -> tuple[Any, Any]:
    """Emitted color and opacity of the disk at polar (radius, angle).

    Returns (rgb (N, 3), alpha (N,)); both go to zero at the inner and outer edge.
    """
    rs = black_hole.rs
    r = xp.maximum(radius, 1e-6)

    temperature = xp.clip((disk.inner / r) ** disk.temperature_exponent, 0.0, 1.0)
    color = _blend3(xp, temperature, DISK_COOL, DISK_WARM, DISK_HOT)

    ang = canonical_angle(xp, angle)
    doppler = 1.0 + disk.doppler_strength * xp.sin(ang + time * disk.doppler_rate)
    redshift = xp.sqrt(xp.maximum(1.0 - rs / r, 0.01))

    # inner rings rotate faster
    swirl = canonical_angle(xp, ang + time * disk.rotation_rate * (disk.inner / r) ** 1.5)
    n1 = value_noise(xp, r * 0.35, swirl / TWO_PI * _TURB_CELLS[0], period_y=_TURB_CELLS[0])
    n2 = value_noise(xp, r * 0.9 + 17.3, swirl / TWO_PI * _TURB_CELLS[1], period_y=_TURB_CELLS[1])
    turbulence = 0.55 + 0.9 * n1 * n2

    fade = disk_fade(xp, r, disk)
    intensity = disk.brightness * temperature * doppler * redshift * turbulence * fade
    alpha = xp.clip(fade * (0.4 + 0.6 * temperature) * turbulence, 0.0, 1.0)
    return color * intensity[..., None], alpha


def sphere_color(
        xp: ArrayModule,
        position: Any,
        direction: Any,
        center: Any,
        base_color: Any,
        emission: Any,
) -> Any:
    """Lambert term lit from the origin, limb darkening, plus emission.

    position, direction, center, base_color: (N, 3); emission: (N,)
    """
    normal = normalize_batch(xp, position - center)
    to_light = normalize_batch(xp, -position)

    diffuse = 0.08 + 0.92 * xp.maximum(dot(xp, normal, to_light), 0.0)
    facing = xp.clip(dot(xp, normal, -direction), 0.0, 1.0)
    limb = 0.35 + 0.65 * xp.sqrt(facing)

    lit = base_color * (diffuse * limb)[..., None]
    return lit + base_color * (emission * limb)[..., None]


def starfield(xp: ArrayModule, direction: Any, layers: tuple[StarLayer, ...] = STAR_LAYERS) -> Any:
    """Procedural sky radiance for unit directions (N, 3); depends on direction only."""
    d = normalize_batch(xp, xp.asarray(direction, dtype=xp.float64))
    u = (xp.arctan2(d[..., 2], d[..., 0]) + math.pi) / TWO_PI
    v = xp.arccos(xp.clip(d[..., 1], -1.0, 1.0)) / math.pi

    rgb = xp.zeros(d.shape, dtype=xp.float64)
    warm = xp.asarray(STAR_WARM, dtype=xp.float64)
    cold = xp.asarray(STAR_COLD, dtype=xp.float64)

    for layer in layers:
        columns = 2.0 * layer.density
        gx = u * columns
        gy = v * layer.density
        cx = xp.mod(xp.floor(gx), columns)
        cy = xp.floor(gy)

        present = hash12(xp, cx + layer.seed, cy) > layer.threshold
        px = hash12(xp, cx + layer.seed + 11.3, cy + 7.1)
        py = hash12(xp, cx + layer.seed + 3.7, cy + 19.9)
        brightness = hash12(xp, cx + layer.seed + 29.1, cy + 2.3)
        tint = hash12(xp, cx + layer.seed + 5.5, cy + 31.7)

        dist = xp.hypot(fract(xp, gx) - px, fract(xp, gy) - py)
        falloff = 1.0 - smoothstep(xp, 0.0, layer.size, dist)
        star = xp.where(present, layer.gain * brightness * falloff, 0.0)
        rgb = rgb + star[..., None] * mix(warm, cold, tint[..., None])

    return rgb + xp.asarray(SKY_AMBIENT, dtype=xp.float64)
