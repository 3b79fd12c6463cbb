"""Continuous on-device detection loop.

One asyncio task issues detection requests against successive frames.  At
most one request is in flight; the next one starts only after the previous
finished and only while the loop is still running and the source is still
active.  Each finished request atomically replaces the published tuple.

``stop()`` bumps a generation counter before cancelling the task, so a
request that completes after ``stop()`` returns is discarded rather than
published.  Each request runs as its own shielded task: cancelling the loop
does not interrupt inference already running in a worker thread, so
``in_flight`` stays set until that request really finishes and a restarted
loop waits for it before issuing the next one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

from scavenger.core.config import Settings, get_settings
from scavenger.services.ai.common.errors import ModelNotReady

from .contracts import (
    Detection,
    DetectionObserver,
    DetectorModel,
    FrameSource,
    LoopState,
    ModelLoader,
)

_module_logger = logging.getLogger(__name__)


class FrameDetectionLoop:
    def __init__(
        self,
        loader: ModelLoader,
        *,
        min_interval_ms: int | None = None,
        confidence_threshold: float | None = None,
        max_results: int | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = settings or get_settings()
        self._loader = loader
        self._min_interval = (
            settings.detection_min_interval_ms if min_interval_ms is None else min_interval_ms
        ) / 1000.0
        self._threshold = (
            settings.detection_confidence_threshold
            if confidence_threshold is None
            else confidence_threshold
        )
        self._max_results = settings.detection_max_results if max_results is None else max_results
        self._log = logger or _module_logger
        self._clock = clock

        self._state = LoopState.UNLOADED
        self._model: DetectorModel | None = None
        self._load_task: asyncio.Task | None = None
        self._run_task: asyncio.Task | None = None
        self._pending: asyncio.Task | None = None
        self._detections: tuple[Detection, ...] = ()
        self._observers: list[DetectionObserver] = []
        self._generation = 0
        self._cancelled = False
        self._in_flight = False
        self._requests_issued = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._model is not None and self._state is not LoopState.LOADING

    @property
    def detections(self) -> tuple[Detection, ...]:
        return self._detections

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def requests_issued(self) -> int:
        return self._requests_issued

    def subscribe(self, observer: DetectionObserver) -> Callable[[], None]:
        """Register *observer*; returns a callable that unsubscribes it."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Model loading
    # ------------------------------------------------------------------

    def ensure_loaded(self) -> asyncio.Task:
        """Begin loading the model if nothing has been loaded yet."""
        if self._load_task is None or (
            self._load_task.done() and self._state is LoopState.UNLOADED
        ):
            self._state = LoopState.LOADING
            self._load_task = asyncio.create_task(self._load())
        return self._load_task

    async def wait_until_ready(self) -> bool:
        await self.ensure_loaded()
        return self.ready

    async def _load(self) -> None:
        t0 = self._clock()
        self._log.info("Loading detection model...")
        try:
            model = await self._loader()
        except asyncio.CancelledError:
            self._state = LoopState.UNLOADED
            raise
        except Exception:
            self._log.exception("Failed to load detection model")
            self._state = LoopState.UNLOADED
            return
        self._model = model
        self._state = LoopState.READY
        self._log.info("Detection model loaded in %.0fms", (self._clock() - t0) * 1000)

    # ------------------------------------------------------------------
    # Run / stop
    # ------------------------------------------------------------------

    def start(self, frame_source: FrameSource) -> None:
        """Start detecting on *frame_source*.

        Raises ``ModelNotReady`` while the model is missing or still loading;
        the first call also kicks off loading.
        """
        if self._state is LoopState.UNLOADED:
            self.ensure_loaded()
        if self._model is None or self._state is LoopState.LOADING:
            raise ModelNotReady("Detection model is not loaded yet")

        if self._state is LoopState.RUNNING:
            self.stop()

        self._generation += 1
        self._cancelled = False
        self._state = LoopState.RUNNING
        self._run_task = asyncio.create_task(self._run(frame_source, self._generation))
        self._log.info("Starting detection")

    def stop(self) -> None:
        """Stop the loop; nothing is published after this returns."""
        self._cancelled = True
        self._generation += 1
        if self._run_task is not None and not self._run_task.done():
            self._run_task.cancel()
        self._run_task = None
        if self._state is LoopState.RUNNING:
            self._state = LoopState.STOPPED
            self._log.info("Stopping detection")
        self._set_detections(())

    async def aclose(self) -> None:
        task = self._run_task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._wait_for_pending()

    async def _wait_for_pending(self) -> None:
        pending = self._pending
        if pending is not None and not pending.done():
            await asyncio.wait([pending])

    def _is_current(self, generation: int) -> bool:
        return (
            not self._cancelled
            and generation == self._generation
            and self._state is LoopState.RUNNING
        )

    async def _run(self, source: FrameSource, generation: int) -> None:
        model = self._model
        if model is None:
            self._log.error("Detection loop started without a model")
            return
        await self._wait_for_pending()

        while self._is_current(generation) and source.is_active:
            started = self._clock()
            detections = await self._detect_once(model, source)

            if not self._is_current(generation):
                return
            self._set_detections(detections)

            remaining = self._min_interval - (self._clock() - started)
            # Always yield so other tasks get a turn even with no throttle.
            await asyncio.sleep(max(0.0, remaining))

        if self._is_current(generation):
            self._log.info("Frame source inactive; detection loop finished")
            self._state = LoopState.STOPPED
            self._set_detections(())

    async def _detect_once(
        self, model: DetectorModel, source: FrameSource
    ) -> tuple[Detection, ...]:
        request = asyncio.create_task(self._request(model, source))
        self._pending = request
        self._in_flight = True
        self._requests_issued += 1
        request.add_done_callback(self._request_done)
        try:
            raw = await asyncio.shield(request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._log.warning("Detection error: %s", exc)
            return ()
        return self._filter(raw)

    async def _request(self, model: DetectorModel, source: FrameSource) -> Sequence[Detection]:
        frame = await source.read_frame()
        return await model.detect(frame, self._max_results)

    def _request_done(self, request: asyncio.Task) -> None:
        if request is self._pending:
            self._pending = None
            self._in_flight = False
        if not request.cancelled():
            # Marks the error retrieved when stop() orphaned the request.
            request.exception()

    def _filter(self, raw: Sequence[Detection]) -> tuple[Detection, ...]:
        kept = [d for d in raw if d.confidence > self._threshold]
        return tuple(kept[: self._max_results])

    def _set_detections(self, detections: tuple[Detection, ...]) -> None:
        if detections == self._detections == ():
            return
        self._detections = detections
        for observer in list(self._observers):
            try:
                observer(detections)
            except Exception:
                self._log.exception("Detection observer failed")

