"""WAV segment statistics computed with numpy (no sox required)."""

import asyncio
import logging
import wave
from pathlib import Path

import numpy as np

from clapsense.audio.base import SegmentAnalyzer, SegmentStats, StatsExtractionError

logger = logging.getLogger(__name__)

INT16_FULL_SCALE = 32768.0


def compute_stats(samples: np.ndarray, sample_rate: int) -> SegmentStats:
    """Compute duration, RMS and peak of normalized samples in [-1.0, 1.0]."""
    if sample_rate <= 0:
        raise StatsExtractionError(f"Invalid sample rate: {sample_rate}")
    if samples.size == 0:
        return SegmentStats(duration=0.0, rms_amplitude=0.0, peak_amplitude=0.0)

    data = samples.astype(np.float64)
    frames = data.shape[0]
    return SegmentStats(
        duration=frames / sample_rate,
        rms_amplitude=float(np.sqrt(np.mean(data ** 2))),
        peak_amplitude=float(np.max(np.abs(data))),
    )


def load_wav(path: Path) -> tuple[np.ndarray, int]:
    """Load a 16-bit PCM WAV file as normalized float samples.

    Returns:
        Tuple of (samples shaped (frames, channels), sample_rate).

    Raises:
        StatsExtractionError: If the file is missing, not a WAV or not 16-bit.
    """
    try:
        with wave.open(str(path), "rb") as wf:
            channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
            sample_rate = wf.getframerate()
            raw = wf.readframes(wf.getnframes())
    except (OSError, EOFError, wave.Error) as e:
        raise StatsExtractionError(f"Cannot read {path.name}: {e}") from e

    if sample_width != 2:
        raise StatsExtractionError(f"Unsupported sample width {sample_width} in {path.name}")

    samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / INT16_FULL_SCALE
    return samples.reshape(-1, channels), sample_rate


class WaveAnalyzer(SegmentAnalyzer):
    """Reads a WAV segment and computes its statistics in a worker thread."""

    name = "wave"

    async def analyze(self, path: Path) -> SegmentStats:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._analyze_sync, path)

    @staticmethod
    def _analyze_sync(path: Path) -> SegmentStats:
        samples, sample_rate = load_wav(path)
        stats = compute_stats(samples, sample_rate)
        logger.debug(
            "WaveAnalyzer: %s duration=%.3fs rms=%.3f peak=%.3f",
            path.name, stats.duration, stats.rms_amplitude, stats.peak_amplitude,
        )
        return stats
