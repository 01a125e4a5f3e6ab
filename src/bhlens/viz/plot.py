from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import matplotlib as mpl
import numpy as np
from matplotlib.animation import FuncAnimation
from matplotlib.image import imsave

# IMPORTANT: set backend before importing pyplot
_BACKEND = os.environ.get("BHLENS_MPL_BACKEND", "").strip()
if _BACKEND:
    mpl.use(_BACKEND, force=True)
else:
    for candidate in ("TkAgg", "QtAgg", "Agg"):
        # noinspection PyBroadException
        try:
            mpl.use(candidate, force=True)
            break
        except Exception:  # pragma: no cover  # noqa: BLE001, S112
            continue

import matplotlib.pyplot as plt  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True, slots=True)
class RenderFrame:
    """Single rendered frame.

    Attributes
    ----------
    img:
        Rendered RGB image (H, W, 3), numpy float in [0, 1].
    time:
        Elapsed time the frame was rendered at.
    cam_pos:
        Camera position in world coordinates (3,).

    """

    img: np.ndarray
    time: float
    cam_pos: np.ndarray


def save_image(path: str | os.PathLike[str], img: np.ndarray) -> Path:
    """Write an (H, W, 3) image in [0, 1] to a PNG file, creating parent dirs."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    imsave(out, np.clip(np.asarray(img, dtype=np.float64), 0.0, 1.0))
    return out


class FramePlotter:
    """Show rendered frames, animated when there is more than one."""

    def __init__(self, *, title: str = "Schwarzschild lensing") -> None:
        """Initialize the plot."""
        self.fig, self.ax_img = plt.subplots(1, 1, figsize=(8, 5))
        self.ax_img.axis("off")
        self.title = title
        self.im: Any = None

    def _caption(self, frame: RenderFrame) -> str:
        x, y, z = (float(c) for c in frame.cam_pos)
        return f"{self.title}  t={frame.time:.2f}  camera=({x:.1f}, {y:.1f}, {z:.1f})"

    def animate(self, frames: Sequence[RenderFrame], interval_ms: int = 120) -> FuncAnimation:
        if not frames:
            msg = "frames is empty"
            raise ValueError(msg)

        self.im = self.ax_img.imshow(frames[0].img)
        self.ax_img.set_title(self._caption(frames[0]))

        def _update(i: int) -> list[Any]:
            f = frames[i]
            self.im.set_data(f.img)
            self.ax_img.set_title(self._caption(f))
            return [self.im]

        return FuncAnimation(
            self.fig,
            _update,
            frames=len(frames),
            interval=interval_ms,
            repeat=True,
            blit=False,
        )

    @staticmethod
    def show() -> None:
        plt.tight_layout()
        plt.show()
