from __future__ import annotations

import math
from typing import Any


def dot(xp: Any, a: Any, b: Any) -> Any:
    """Dot product over the last axis."""
    return xp.sum(a * b, axis=-1)


def normalize_batch(xp: Any, v: Any) -> Any:
    """Normalize vector with division-by-zero guard."""
    n = xp.linalg.norm(v, axis=-1, keepdims=True)
    n = xp.maximum(n, xp.asarray(1e-12, dtype=xp.float64))
    return v / n


def cross(xp: Any, a: Any, b: Any) -> Any:
    """Cross product that works for NumPy/CuPy and array-likes."""
    if hasattr(xp, "cross"):
        return xp.cross(a, b)
    ax, ay, az = a[..., 0], a[..., 1], a[..., 2]
    bx, by, bz = b[..., 0], b[..., 1], b[..., 2]
    return xp.stack([ay * bz - az * by, az * bx - ax * bz, ax * by - ay * bx], axis=-1)


def fract(xp: Any, x: Any) -> Any:
    return x - xp.floor(x)


def mix(a: Any, b: Any, t: Any) -> Any:
    """Linear blend a -> b; t broadcasts against a and b."""
    return a + (b - a) * t


def smoothstep(xp: Any, edge0: float, edge1: float, x: Any) -> Any:
    t = xp.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def wrap_angle(xp: Any, phi: Any) -> Any:
    """Wrap angles into (-pi, pi]."""
    two_pi = 2.0 * math.pi
    wrapped = phi - two_pi * xp.floor((phi + math.pi) / two_pi)
    # floor maps +pi to -pi; keep the half-open interval on the other side
    return xp.where(wrapped <= -math.pi, wrapped + two_pi, wrapped)
