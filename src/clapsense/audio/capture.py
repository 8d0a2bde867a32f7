"""In-process segment capture with sounddevice and peak-based silence detection."""

import asyncio
import enum
import logging
import threading
import wave
from collections.abc import Callable
from pathlib import Path
from typing import Any

import numpy as np

from clapsense.audio.base import CaptureError, SegmentRecorder
from clapsense.config import ClapConfig, get_config

logger = logging.getLogger(__name__)


class _State(enum.Enum):
    WAITING = "waiting"
    RECORDING = "recording"
    DONE = "done"


def _default_stream_factory(**kwargs: Any) -> Any:
    import sounddevice as sd

    return sd.InputStream(**kwargs)


class SoundDeviceRecorder(SegmentRecorder):
    """Records one silence-delimited segment from the microphone.

    Uses a state machine: WAITING -> RECORDING -> DONE.
    WAITING: reads chunks until one peaks above the start threshold.
    RECORDING: keeps every chunk, stops after ``silence_duration`` of
    chunks peaking below the end threshold.
    DONE: writes the recorded chunks to the target WAV file.
    """

    name = "sounddevice"

    def __init__(
        self,
        config: ClapConfig | None = None,
        stream_factory: Callable[..., Any] | None = None,
    ) -> None:
        config = config or get_config()
        self.sample_rate = config.sample_rate
        self.channels = config.channels
        self.start_threshold = config.detection_threshold_start
        self.end_threshold = config.detection_threshold_end
        self.silence_duration = config.silence_duration
        self.max_recording_seconds = config.max_recording_seconds
        self._stream_factory = stream_factory or _default_stream_factory
        # Claps are short, so read 10ms chunks
        self._chunk_duration = 0.01
        self._chunk_samples = max(1, int(self.sample_rate * self._chunk_duration))

    @staticmethod
    def _peak(audio_chunk: np.ndarray) -> float:
        """Peak absolute amplitude of an int16 chunk as a fraction of full scale."""
        if audio_chunk.size == 0:
            return 0.0
        return float(np.max(np.abs(audio_chunk.astype(np.float32))) / 32768.0)

    async def record(self, path: Path) -> None:
        stop = threading.Event()
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._record_sync, path, stop)
        except asyncio.CancelledError:
            stop.set()
            raise
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(f"Audio device error: {e}") from e

    def _record_sync(self, path: Path, stop: threading.Event) -> None:
        """Synchronous capture implementation (runs in executor)."""
        state = _State.WAITING
        recorded_chunks: list[np.ndarray] = []
        silence_samples = 0
        total_recorded = 0
        silence_samples_threshold = int(self.silence_duration * self.sample_rate)
        max_samples = int(self.max_recording_seconds * self.sample_rate)

        with self._stream_factory(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype="int16",
            blocksize=self._chunk_samples,
        ) as stream:
            while state != _State.DONE:
                if stop.is_set():
                    raise CaptureError("Capture cancelled")

                chunk, overflowed = stream.read(self._chunk_samples)
                if overflowed:
                    logger.debug("SoundDeviceRecorder: input overflow")

                peak = self._peak(chunk)

                if state == _State.WAITING:
                    if peak > self.start_threshold:
                        state = _State.RECORDING
                        recorded_chunks.append(chunk.copy())
                        total_recorded += len(chunk)
                        silence_samples = 0
                        logger.debug("SoundDeviceRecorder: sound detected (peak=%.3f)", peak)

                elif state == _State.RECORDING:
                    recorded_chunks.append(chunk.copy())
                    total_recorded += len(chunk)

                    if peak < self.end_threshold:
                        silence_samples += len(chunk)
                        if silence_samples >= silence_samples_threshold:
                            state = _State.DONE
                    else:
                        silence_samples = 0

                    if max_samples and total_recorded >= max_samples:
                        state = _State.DONE
                        logger.debug("SoundDeviceRecorder: max recording time reached")

        audio_data = np.concatenate(recorded_chunks)
        self._write_wav(path, audio_data)
        logger.debug(
            "SoundDeviceRecorder: captured %.3fs to %s",
            len(audio_data) / self.sample_rate, path.name,
        )

    def _write_wav(self, path: Path, audio_data: np.ndarray) -> None:
        """Write int16 samples to *path* as a WAV file."""
        with wave.open(str(path), "wb") as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(2)  # 16-bit = 2 bytes
            wf.setframerate(self.sample_rate)
            wf.writeframes(audio_data.astype("<i2").tobytes())
