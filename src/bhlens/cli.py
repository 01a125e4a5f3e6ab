from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from tqdm import tqdm

from bhlens.backend import get_array_module, to_numpy
from bhlens.camera.camera3d import DEFAULT_FOV_DEG, DEFAULT_POSITION, DEFAULT_TARGET, CameraState
from bhlens.raymarch.config import GridConfig
from bhlens.renderer import FrameContext, RenderConfig, Renderer
from bhlens.scene import default_scene

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bhlens.viz.plot import RenderFrame

logger = logging.getLogger("bhlens")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bhlens", description="Render light bent by a Schwarzschild black hole")
    parser.add_argument("--width", type=int, default=320, help="Image width in pixels (default: 320)")
    parser.add_argument("--height", type=int, default=180, help="Image height in pixels (default: 180)")
    parser.add_argument("--fov", type=float, default=DEFAULT_FOV_DEG, help="Vertical field of view in degrees")
    parser.add_argument("--camera", type=float, nargs=3, metavar=("X", "Y", "Z"), default=list(DEFAULT_POSITION),
                        help="Camera position (default: 0 0 300)")
    parser.add_argument("--target", type=float, nargs=3, metavar=("X", "Y", "Z"), default=list(DEFAULT_TARGET),
                        help="Point the camera looks at (default: origin)")
    parser.add_argument("--time", type=float, default=0.0, help="Elapsed time of the first frame in seconds")
    parser.add_argument("--frames", type=int, default=1, help="Number of frames to render (default: 1)")
    parser.add_argument("--dt", type=float, default=1.0 / 24.0, help="Time step between frames in seconds")
    parser.add_argument("--grid", action="store_true", help="Overlay the spacetime embedding grid")
    parser.add_argument("--vignette", type=float, default=0.0, help="Vignette strength, 0 disables (default: 0)")
    parser.add_argument("--workers", type=int, default=1, help="Threads used per frame (default: 1)")
    parser.add_argument("--backend", choices=["auto", "numpy", "cupy"], default=None,
                        help="Array backend (default: $BHLENS_BACKEND or numpy)")
    parser.add_argument("--out", type=Path, default=Path("frames"), help="Output directory for PNG frames")
    parser.add_argument("--show", action="store_true", help="Display the rendered frames with matplotlib")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s: %(message)s")

    # pyplot backend selection happens on import
    from bhlens.viz.plot import FramePlotter, RenderFrame, save_image

    try:
        if args.width <= 0 or args.height <= 0:
            msg = f"resolution must be positive, got {args.width}x{args.height}"
            raise ValueError(msg)
        if args.frames <= 0:
            msg = f"--frames must be positive, got {args.frames}"
            raise ValueError(msg)
        config = RenderConfig(
            grid=replace(GridConfig(), enabled=bool(args.grid)),
            vignette=float(args.vignette),
            workers=max(1, int(args.workers)),
        )
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    xp = get_array_module(args.backend)
    scene = default_scene()
    renderer = Renderer(xp, scene, config)
    camera = CameraState(position=tuple(args.camera), target=tuple(args.target), fov_deg=float(args.fov))

    logger.info(
        "Rendering %d frame(s) at %dx%d with %s, r_s=%.2f, lensing zone %.1f",
        args.frames, args.width, args.height, xp.__name__, scene.rs, scene.lensing_radius,
    )

    rendered: list[RenderFrame] = []
    for i in tqdm(range(args.frames), total=args.frames, desc="Rendering frames", disable=args.frames == 1):
        frame = FrameContext(width=args.width, height=args.height, time=args.time + i * args.dt, camera=camera)
        img = to_numpy(xp, renderer.render(frame))
        path = save_image(args.out / f"frame_{i:04d}.png", img)
        logger.debug("Saved %s", path)
        rendered.append(RenderFrame(img=img, time=frame.time, cam_pos=to_numpy(xp, xp.asarray(camera.position))))

    logger.info("Saved %d frame(s) to %s", len(rendered), args.out)

    if args.show:
        plotter = FramePlotter()
        _anim = plotter.animate(rendered)  # keep a reference while the window is open
        plotter.show()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
