"""Live detection contracts: detections, loop states, pluggable seams."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol


class LoopState(StrEnum):
    UNLOADED = "UNLOADED"
    LOADING = "LOADING"
    READY = "READY"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


@dataclass(frozen=True)
class Detection:
    """One advisory box; ``bounding_box`` is (x, y, width, height) in source pixels."""

    label: str
    confidence: float
    bounding_box: tuple[float, float, float, float]


class FrameSource(Protocol):
    @property
    def is_active(self) -> bool: ...

    async def read_frame(self) -> Any: ...


class DetectorModel(Protocol):
    async def detect(self, frame: Any, max_results: int) -> Sequence[Detection]: ...


ModelLoader = Callable[[], Awaitable[DetectorModel]]
DetectionObserver = Callable[[tuple[Detection, ...]], None]
