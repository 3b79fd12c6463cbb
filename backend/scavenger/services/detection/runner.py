"""
Run the live detection loop against a local camera and log what it sees.

Usage (needs the ``detection`` extra):
  scavenger-detect --camera 0 --model yolov8n.pt
  scavenger-detect --duration 30
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time

from scavenger.core.config import Settings, get_settings
from scavenger.services.ai.common.errors import ModelNotReady

from .contracts import Detection, FrameSource, LoopState, ModelLoader
from .loop import FrameDetectionLoop
from .yolo import DEFAULT_MODEL, CV2FrameSource, yolo_loader

logger = logging.getLogger(__name__)


def describe(detections: tuple[Detection, ...]) -> str:
    return ", ".join(f"{d.label} ({d.confidence:.2f})" for d in detections)


async def run_detection(
    loader: ModelLoader,
    source: FrameSource,
    *,
    duration: float | None = None,
    settings: Settings | None = None,
    log: logging.Logger | None = None,
    poll_interval: float = 0.1,
) -> int:
    """Detect until the source goes inactive or *duration* seconds pass.

    Returns how many non-empty detection sets were published.
    """
    log = log or logger
    loop = FrameDetectionLoop(loader, settings=settings, logger=log)
    if not await loop.wait_until_ready():
        raise ModelNotReady("Detection model failed to load")

    published = 0

    def report(detections: tuple[Detection, ...]) -> None:
        nonlocal published
        if detections:
            published += 1
            log.info("Detected: %s", describe(detections))

    unsubscribe = loop.subscribe(report)
    deadline = None if duration is None else time.monotonic() + duration
    loop.start(source)
    try:
        while loop.state is LoopState.RUNNING:
            if deadline is not None and time.monotonic() >= deadline:
                break
            await asyncio.sleep(poll_interval)
    finally:
        unsubscribe()
        await loop.aclose()

    log.info("Detection finished after %d result set(s)", published)
    return published


def main() -> None:
    parser = argparse.ArgumentParser(description="Run live component detection on a local camera.")
    parser.add_argument("--camera", type=int, default=0, help="OpenCV camera index.")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="YOLO weights to load.")
    parser.add_argument("--duration", type=float, default=None, help="Stop after this many seconds.")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    source = CV2FrameSource(args.camera)
    if not source.is_active:
        print(f"Error: camera {args.camera} could not be opened.", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(
            run_detection(
                yolo_loader(args.model), source, duration=args.duration, settings=settings
            )
        )
    except ModelNotReady as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        source.release()


if __name__ == "__main__":
    main()
