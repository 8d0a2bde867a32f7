"""Capture loop controller: continuous capture, classification and dispatch.

Pipeline:
1. A capture task records one silence-delimited segment into a fresh
   staging file.
2. When it completes, the next capture is armed immediately, then the
   finished segment is queued. Capture never waits on analysis.
3. A single consumer task drains the queue in completion order:
   optional noise cleaning -> stats -> classify -> on a clap, append to
   history, fire the single-clap callback and evaluate every multi-clap
   subscription. The segment files are deleted whatever the outcome.

``pause()`` takes effect at the next capture completion: that segment is
discarded and no new capture is armed until ``resume()`` and ``listen()``.
"""

import asyncio
import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from clapsense.audio.base import (
    CaptureError,
    CleaningError,
    NoiseCleaner,
    SegmentAnalyzer,
    SegmentRecorder,
    StatsExtractionError,
)
from clapsense.audio.staging import StagingFolder
from clapsense.config import ClapConfig, get_config, merge_config
from clapsense.detection.classifier import classify
from clapsense.detection.history import ClapEvent, ClapHistory
from clapsense.detection.patterns import MultiClapCallback
from clapsense.events import ClapCallback, EventRegistry

logger = logging.getLogger(__name__)


class RunState(enum.Enum):
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class CapturedSegment:
    """A completed capture waiting for analysis."""

    path: Path
    captured_at_ms: int


def monotonic_ms() -> int:
    """Monotonic clock in whole milliseconds."""
    return time.monotonic_ns() // 1_000_000


def build_collaborators(
    config: ClapConfig,
) -> tuple[SegmentRecorder, SegmentAnalyzer, NoiseCleaner | None]:
    """Create the recorder, analyzer and optional cleaner for ``config.backend``."""
    from clapsense.audio.sox import SoxAnalyzer, SoxCleaner, SoxRecorder

    recorder: SegmentRecorder
    analyzer: SegmentAnalyzer
    if config.backend == "sounddevice":
        from clapsense.audio.analysis import WaveAnalyzer
        from clapsense.audio.capture import SoundDeviceRecorder

        recorder = SoundDeviceRecorder(config)
        analyzer = WaveAnalyzer()
    else:
        recorder = SoxRecorder(config)
        analyzer = SoxAnalyzer(config)

    cleaner = SoxCleaner(config) if config.cleaning_enabled else None
    return recorder, analyzer, cleaner


class ClapListener:
    """Listens for claps and multi-clap patterns.

    Collaborators not passed in are built from the (merged) config at
    ``start()``.
    """

    def __init__(
        self,
        config: ClapConfig | None = None,
        *,
        recorder: SegmentRecorder | None = None,
        analyzer: SegmentAnalyzer | None = None,
        cleaner: NoiseCleaner | None = None,
        staging: StagingFolder | None = None,
        registry: EventRegistry | None = None,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        """Initialize the listener.

        Args:
            config: ClapConfig instance (uses singleton if None).
            recorder: Segment capture collaborator.
            analyzer: Segment statistics collaborator.
            cleaner: Noise cleaner, used only when ``cleaning_enabled``.
            staging: Staging folder (defaults to ``config.wav_folder``).
            registry: Event registry holding the callbacks.
            clock: Monotonic clock returning milliseconds.
        """
        self._config = config or get_config()
        self._recorder = recorder
        self._analyzer = analyzer
        self._cleaner = cleaner
        self._staging = staging
        self._owns_staging = staging is None
        self._registry = registry or EventRegistry()
        self._clock = clock

        self._state = RunState.RUNNING
        self._history = ClapHistory(self._config.max_history_length)
        self._segments: asyncio.Queue[CapturedSegment] | None = None
        self._capture_task: asyncio.Task | None = None
        self._capture_path: Path | None = None
        self._consumer_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def config(self) -> ClapConfig:
        return self._config

    @property
    def history(self) -> ClapHistory:
        return self._history

    @property
    def registry(self) -> EventRegistry:
        return self._registry

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_capturing(self) -> bool:
        """True while a capture is in flight."""
        return self._capture_task is not None and not self._capture_task.done()

    def on_clap(self, callback: ClapCallback | None) -> None:
        """Set the single-clap callback (last registration wins)."""
        self._registry.on_clap(callback)

    def on_claps(
        self,
        count: int | None,
        max_delay_ms: int | None,
        callback: MultiClapCallback | None,
    ) -> None:
        """Subscribe to *count* claps within *max_delay_ms* milliseconds."""
        self._registry.on_claps(count, max_delay_ms, callback)

    async def start(self, overrides: dict[str, Any] | None = None) -> None:
        """Merge *overrides* into the config, purge staging and start listening.

        Raises:
            RuntimeError: If the listener is already started.
            StagingError: If the staging folder cannot be created.
        """
        if self._consumer_task is not None:
            raise RuntimeError("Listener already started")

        self._config = merge_config(self._config, overrides)
        if self._recorder is None or self._analyzer is None or (
            self._cleaner is None and self._config.cleaning_enabled
        ):
            recorder, analyzer, cleaner = build_collaborators(self._config)
            self._recorder = self._recorder or recorder
            self._analyzer = self._analyzer or analyzer
            self._cleaner = self._cleaner or cleaner
        if not self._config.cleaning_enabled:
            self._cleaner = None

        if self._owns_staging:
            self._staging = StagingFolder(self._config.wav_folder)
        self._staging.prepare()

        self._history = ClapHistory(self._config.max_history_length)
        self._segments = asyncio.Queue()
        self._consumer_task = asyncio.create_task(self._consume(), name="clapsense-consumer")

        logger.info(
            "Listening for claps (recorder=%s, analyzer=%s, cleaning=%s, staging=%s)",
            self._recorder.name,
            self._analyzer.name,
            "on" if self._cleaner else "off",
            self._staging.folder,
        )
        self.listen()

    def listen(self) -> None:
        """Arm a capture unless one is in flight or the listener is paused."""
        if self._segments is None:
            raise RuntimeError("Listener not started: call start() first")
        if self._state is RunState.PAUSED:
            logger.debug("listen() ignored: listener is paused")
            return
        if self.is_capturing:
            return
        self._arm()

    def pause(self) -> None:
        """Stop acting on captures from the next completion onwards."""
        if self._state is not RunState.PAUSED:
            self._state = RunState.PAUSED
            logger.info("Clap listener paused")

    def resume(self) -> None:
        """Allow captures again; call ``listen()`` to restart the loop."""
        if self._state is not RunState.RUNNING:
            self._state = RunState.RUNNING
            logger.info("Clap listener resumed")

    async def wait_idle(self) -> None:
        """Wait until every queued segment has been processed."""
        if self._segments is not None:
            await self._segments.join()

    async def stop(self) -> None:
        """Cancel the in-flight capture and the consumer, discarding pending segments."""
        tasks = [t for t in (self._capture_task, self._consumer_task) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._staging is not None:
            self._staging.discard(self._capture_path)
            while self._segments is not None and not self._segments.empty():
                self._staging.discard(self._segments.get_nowait().path)

        self._capture_task = None
        self._capture_path = None
        self._consumer_task = None
        self._segments = None
        logger.info("Clap listener stopped")

    # ------------------------------------------------------------------
    # Capture side
    # ------------------------------------------------------------------

    def _arm(self) -> None:
        path = self._staging.new_segment_path()
        self._capture_path = path
        self._capture_task = asyncio.create_task(self._capture(path), name="clapsense-capture")
        logger.debug("Capture armed: %s", path.name)

    async def _capture(self, path: Path) -> None:
        error: Exception | None = None
        try:
            await self._recorder.record(path)
        except Exception as e:
            error = e
        captured_at = self._clock()

        backoff = self._config.capture_failure_backoff
        if error is not None and backoff:
            await asyncio.sleep(backoff)

        self._on_capture_done(CapturedSegment(path, captured_at), error)

    def _on_capture_done(self, segment: CapturedSegment, error: Exception | None) -> None:
        self._capture_task = None
        self._capture_path = None

        if self._state is RunState.PAUSED:
            logger.debug("Paused: discarding %s without re-arming", segment.path.name)
            self._staging.discard(segment.path)
            return

        # Listen again before looking at what was just captured
        self._arm()

        if error is not None:
            if isinstance(error, CaptureError):
                logger.warning("Capture failed: %s", error)
            else:
                logger.error("Capture failed unexpectedly: %r", error)
            self._staging.discard(segment.path)
            return

        self._segments.put_nowait(segment)

    # ------------------------------------------------------------------
    # Analysis side (single consumer)
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        """Process captured segments one at a time, in completion order."""
        while True:
            segment = await self._segments.get()
            try:
                await self._process(segment)
            except Exception:
                logger.exception("Failed to process segment %s", segment.path.name)
            finally:
                self._segments.task_done()

    async def _process(self, segment: CapturedSegment) -> None:
        cleaned: Path | None = None
        try:
            target = segment.path
            if self._cleaner is not None:
                try:
                    cleaned = await self._cleaner.clean(segment.path)
                    target = cleaned
                except CleaningError as e:
                    logger.warning("Noise cleaning failed, using original segment: %s", e)

            try:
                stats = await self._analyzer.analyze(target)
            except StatsExtractionError as e:
                logger.debug("No stats for %s: %s", target.name, e)
                stats = None

            if classify(stats, self._config):
                self._record_clap(segment.captured_at_ms)
        finally:
            self._staging.discard(segment.path, cleaned)

    def _record_clap(self, timestamp_ms: int) -> None:
        self._history.append(ClapEvent(timestamp_ms))
        logger.info("Clap detected (history=%d)", len(self._history))
        self._registry.fire_clap()
        self._registry.fire_patterns(self._history)
