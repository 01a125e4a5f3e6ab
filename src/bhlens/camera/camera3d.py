from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from bhlens.math_utils import cross, normalize_batch

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule

logger = logging.getLogger(__name__)

WORLD_UP = (0.0, 1.0, 0.0)
FALLBACK_UP = (0.0, 0.0, 1.0)

DEFAULT_POSITION = (0.0, 0.0, 300.0)
DEFAULT_TARGET = (0.0, 0.0, 0.0)
DEFAULT_FOV_DEG = 60.0


@dataclass(frozen=True, slots=True)
class CameraState:
    """Pinhole camera supplied by the driver once per frame.

    Parameters
    ----------
    position:
        Camera location in world coordinates.
    target:
        World-space point the camera looks at.
    fov_deg:
        Full vertical field of view in degrees, in (0, 180).

    """

    position: tuple[float, float, float] = DEFAULT_POSITION
    target: tuple[float, float, float] = DEFAULT_TARGET
    fov_deg: float = DEFAULT_FOV_DEG

    def is_degenerate(self) -> bool:
        """True for a zero look vector, a fov outside (0, 180) or non-finite input."""
        values = np.asarray([*self.position, *self.target, self.fov_deg], dtype=np.float64)
        if not np.all(np.isfinite(values)):
            return True
        if not 0.0 < self.fov_deg < 180.0:
            return True
        look = np.asarray(self.target, dtype=np.float64) - np.asarray(self.position, dtype=np.float64)
        return float(np.linalg.norm(look)) < 1e-9

    def sanitized(self) -> CameraState:
        """Return self, or the default camera when this one cannot produce rays."""
        if not self.is_degenerate():
            return self
        logger.warning("degenerate camera %s, falling back to the default camera", self)
        return CameraState()

    def basis(self, xp: ArrayModule) -> tuple[Any, Any, Any]:
        """Orthonormal (forward, right, up)."""
        pos = xp.asarray(self.position, dtype=xp.float64)
        tgt = xp.asarray(self.target, dtype=xp.float64)
        f = normalize_batch(xp, tgt - pos)

        up_hint = xp.asarray(WORLD_UP, dtype=xp.float64)
        if abs(float(xp.sum(f * up_hint))) > 0.999:
            up_hint = xp.asarray(FALLBACK_UP, dtype=xp.float64)

        r = normalize_batch(xp, cross(xp, f, up_hint))
        u = normalize_batch(xp, cross(xp, r, f))
        return f, r, u

    def screen_uv(self, xp: ArrayModule, width: int, height: int) -> Any:
        """Pixel-center offsets from screen center, shape (H, W, 2).

        x spans [-aspect, aspect] and y spans [-1, 1] (top row first).
        """
        aspect = float(width) / float(height)
        xs = (2.0 * (xp.arange(width, dtype=xp.float64) + 0.5) / width - 1.0) * aspect
        ys = 1.0 - 2.0 * (xp.arange(height, dtype=xp.float64) + 0.5) / height
        gx = xp.broadcast_to(xs[None, :], (height, width))
        gy = xp.broadcast_to(ys[:, None], (height, width))
        return xp.stack([gx, gy], axis=-1)

    def ray_directions(self, xp: ArrayModule, width: int, height: int) -> Any:
        """Return normalized ray directions of shape (H, W, 3)."""
        forward, right, up = self.basis(xp)
        scale = math.tan(math.radians(self.fov_deg) * 0.5)

        uv = self.screen_uv(xp, width, height) * scale
        rd = (
                forward[None, None, :]
                + uv[..., 0:1] * right[None, None, :]
                + uv[..., 1:2] * up[None, None, :]
        )
        return normalize_batch(xp, rd)
