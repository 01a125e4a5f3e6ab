from __future__ import annotations

import logging
import time as _time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bhlens.camera.camera3d import CameraState
from bhlens.geometry import grid_line_intensity, intersect_grid
from bhlens.math_utils import normalize_batch
from bhlens.raymarch.config import GridConfig, IntegratorConfig
from bhlens.raymarch.tracer import SceneTracer
from bhlens.shading.compositing import blend_grid, shade, tonemap, vignette

if TYPE_CHECKING:
    from bhlens.backend import ArrayModule
    from bhlens.scene import Scene

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FrameContext:
    """Per-frame input written once by the driver, read-only while rendering."""

    width: int
    height: int
    time: float = 0.0
    camera: CameraState = field(default_factory=CameraState)


@dataclass(frozen=True, slots=True)
class RenderConfig:
    """Quality and execution settings.

    Fields:
      integrator:
        Geodesic integration settings.
      grid:
        Spacetime grid overlay; ``grid.enabled`` switches it on.
      vignette:
        Radial darkening strength applied after tone mapping, 0 disables.
      workers:
        Thread pool size for row chunks; 1 renders serially.
      chunk_rows:
        Image rows per unit of work.
    """

    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    vignette: float = 0.0
    workers: int = 1
    chunk_rows: int = 16


class Renderer:
    """Evaluate the scene for every pixel of a frame."""

    def __init__(self, xp: ArrayModule, scene: Scene, config: RenderConfig | None = None) -> None:
        """Initialise the renderer."""
        self.xp = xp
        self.scene = scene
        self.config = config or RenderConfig()
        self.tracer = SceneTracer(xp, scene, self.config.integrator)

    def shade_rays(self, origin: Any, direction: Any, uv: Any, time: float) -> Any:
        """Display color in [0, 1] for a batch of camera rays.

        origin, direction: (N, 3); uv: (N, 2) screen offsets for the vignette.
        """
        xp = self.xp
        cfg = self.config

        hit = self.tracer.trace(origin, direction)
        rgb = shade(xp, self.scene, hit, time)

        if cfg.grid.enabled:
            # the overlay is marched along the unbent camera ray
            grid_t, point = intersect_grid(xp, origin, normalize_batch(xp, direction), self.scene.rs, cfg.grid)
            line = grid_line_intensity(xp, point[..., 0], point[..., 2], cfg.grid)
            rgb = blend_grid(xp, rgb, hit, grid_t, line, cfg.grid)

        rgb = tonemap(xp, rgb)
        if cfg.vignette > 0.0:
            rgb = vignette(xp, rgb, uv, cfg.vignette)
        return rgb

    def render(self, frame: FrameContext) -> Any:
        """Render one frame, returning an (H, W, 3) float64 xp array in [0, 1]."""
        if frame.width <= 0 or frame.height <= 0:
            msg = f"resolution must be positive, got {frame.width}x{frame.height}"
            raise ValueError(msg)

        xp = self.xp
        width, height = int(frame.width), int(frame.height)
        camera = frame.camera.sanitized()

        started = _time.perf_counter()
        directions = camera.ray_directions(xp, width, height).reshape(-1, 3)
        uv = camera.screen_uv(xp, width, height).reshape(-1, 2)
        origin = xp.broadcast_to(xp.asarray(camera.position, dtype=xp.float64), directions.shape)

        rows = max(1, int(self.config.chunk_rows))
        bounds = [(r0 * width, min(r0 + rows, height) * width) for r0 in range(0, height, rows)]

        def _chunk(span: tuple[int, int]) -> Any:
            lo, hi = span
            return self.shade_rays(origin[lo:hi], directions[lo:hi], uv[lo:hi], float(frame.time))

        if self.config.workers > 1 and len(bounds) > 1:
            with ThreadPoolExecutor(max_workers=int(self.config.workers)) as pool:
                parts = list(pool.map(_chunk, bounds))
        else:
            parts = [_chunk(span) for span in bounds]

        image = xp.concatenate(parts, axis=0).reshape(height, width, 3)
        logger.debug(
            "rendered %dx%d frame at t=%.3f in %.2fs",
            width, height, frame.time, _time.perf_counter() - started,
        )
        return image
