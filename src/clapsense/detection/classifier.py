"""Clap classification heuristic.

A clap is short and sharp: high peak, low sustained energy. Sustained
noise (voice, music, a door slam's rumble) is longer and has an RMS closer
to its peak. Thresholds are fractions of full scale, so the same config
works across microphone gain settings.
"""

import math
import numbers

from clapsense.audio.base import SegmentStats
from clapsense.config import ClapConfig


def classify(stats: SegmentStats | None, config: ClapConfig) -> bool:
    """Return True if *stats* describe a clap.

    Every bound is strict: a value equal to a threshold is not a clap.
    Missing or non-finite statistics are never a clap.
    """
    if stats is None:
        return False

    duration = stats.duration
    peak = stats.peak_amplitude
    rms = stats.rms_amplitude
    if not all(isinstance(v, numbers.Real) and math.isfinite(v) for v in (duration, peak, rms)):
        return False

    return bool(
        duration < config.clap_max_duration_ms / 1000
        and peak > config.clap_amplitude_threshold
        and rms < config.clap_energy_threshold
    )
