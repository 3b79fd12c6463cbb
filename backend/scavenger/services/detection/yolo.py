"""Ultralytics YOLO detector and OpenCV frame source for the live loop.

Both are optional: install the ``detection`` extra.  Inference and capture
run in a worker thread so the event loop keeps serving; the loop's
single-in-flight rule means the model is never called concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from .contracts import Detection

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "yolov8n.pt"


class YoloDetector:
    def __init__(self, model: Any) -> None:
        self._model = model
        self._names: dict[int, str] = getattr(model, "names", {}) or {}

    async def detect(self, frame: Any, max_results: int) -> Sequence[Detection]:
        results = await asyncio.to_thread(
            self._model.predict, frame, max_det=max_results, verbose=False
        )
        detections: list[Detection] = []
        for result in results:
            boxes = result.boxes
            if boxes is None:
                continue
            xyxy = boxes.xyxy.cpu().numpy()
            conf = boxes.conf.cpu().numpy()
            cls = boxes.cls.cpu().numpy()
            for (x1, y1, x2, y2), score, class_id in zip(xyxy, conf, cls):
                detections.append(
                    Detection(
                        label=self._names.get(int(class_id), str(int(class_id))),
                        confidence=float(score),
                        bounding_box=(float(x1), float(y1), float(x2 - x1), float(y2 - y1)),
                    )
                )
        return detections


def yolo_loader(model_name: str = DEFAULT_MODEL):
    """Return a ``ModelLoader`` that builds a ``YoloDetector`` off the event loop."""

    async def _load() -> YoloDetector:
        from ultralytics import YOLO

        model = await asyncio.to_thread(YOLO, model_name)
        logger.info("Loaded YOLO model %s", model_name)
        return YoloDetector(model)

    return _load


class CV2FrameSource:
    """Webcam frames via OpenCV; inactive once the device stops delivering."""

    def __init__(self, index: int = 0) -> None:
        import cv2

        self._cap = cv2.VideoCapture(index)
        self._active = self._cap.isOpened()
        if not self._active:
            logger.warning("cv2 camera: failed to open device %s", index)

    @property
    def is_active(self) -> bool:
        return self._active

    async def read_frame(self) -> Any:
        ok, frame = await asyncio.to_thread(self._cap.read)
        if not ok or frame is None:
            logger.warning("cv2 camera: frame capture failed")
            self._active = False
            raise RuntimeError("Frame capture failed")
        return frame

    def release(self) -> None:
        self._active = False
        if self._cap.isOpened():
            self._cap.release()
