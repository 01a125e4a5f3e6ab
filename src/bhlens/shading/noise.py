from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bhlens.math_utils import fract, mix

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule

_HASH_X = 12.9898
_HASH_Y = 78.233
_HASH_C = 43758.5453


def hash12(xp: ArrayModule, x: Any, y: Any) -> Any:
    """Pseudo-random value in [0, 1) from a 2D lattice coordinate.

    Pure function of its inputs; identical inputs give bit-identical output.
    """
    return fract(xp, xp.sin(x * _HASH_X + y * _HASH_Y) * _HASH_C)


def value_noise(xp: ArrayModule, x: Any, y: Any, period_y: int | None = None) -> Any:
    """Smooth 2D value noise in [0, 1).

    ``period_y`` makes the lattice wrap along y, so a wrapped angular
    coordinate scaled to ``[0, period_y)`` shows no seam.
    """
    ix = xp.floor(x)
    iy = xp.floor(y)
    fx = x - ix
    fy = y - iy
    ux = fx * fx * (3.0 - 2.0 * fx)
    uy = fy * fy * (3.0 - 2.0 * fy)

    iy1 = iy + 1.0
    if period_y is not None:
        iy = xp.mod(iy, period_y)
        iy1 = xp.mod(iy1, period_y)

    a = hash12(xp, ix, iy)
    b = hash12(xp, ix + 1.0, iy)
    c = hash12(xp, ix, iy1)
    d = hash12(xp, ix + 1.0, iy1)
    return mix(mix(a, b, ux), mix(c, d, ux), uy)
