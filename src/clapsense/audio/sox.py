"""sox-backed collaborators: silence-delimited capture, ``stat`` and ``noisered``.

All three shell out to the ``sox`` binary:

- record:  ``sox -t <source> <file> silence 1 0.0001 <start%> 1 0.1 <end%>``
- analyze: ``sox <file> -n stat`` (statistics are printed on stderr)
- clean:   ``sox <file> <clean-file> noisered <profile> <amount>``
"""

import asyncio
import logging
import re
import shlex
import shutil
from pathlib import Path

from clapsense.audio.base import (
    CaptureError,
    CleaningError,
    NoiseCleaner,
    SegmentAnalyzer,
    SegmentRecorder,
    SegmentStats,
    StatsExtractionError,
)
from clapsense.config import ClapConfig, get_config

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"Length\s+\(seconds\):\s+(-?[0-9.]+)")
_RMS_RE = re.compile(r"RMS\s+amplitude:\s+(-?[0-9.]+)")
_PEAK_RE = re.compile(r"Maximum\s+amplitude:\s+(-?[0-9.]+)")

# Prefix of the noise-reduced derivative written next to the original segment
CLEAN_PREFIX = "clean-"


async def _run_sox(args: list[str]) -> tuple[int, str]:
    """Run sox and return (returncode, combined stdout+stderr).

    The child is killed if the awaiting task is cancelled.
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        output, _ = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    return proc.returncode or 0, output.decode("utf-8", errors="replace")


def sox_available(binary: str = "sox") -> bool:
    """Check that the sox binary is on PATH."""
    return shutil.which(binary) is not None


def build_record_command(config: ClapConfig, path: Path) -> list[str]:
    """Build the sox command line that records one silence-delimited segment."""
    return [
        config.sox_binary,
        "-t", *shlex.split(config.audio_source),
        str(path),
        "silence",
        "1", "0.0001", config.detection_percentage_start,
        "1", "0.1", config.detection_percentage_end,
    ]


def parse_stat_output(output: str) -> SegmentStats:
    """Extract duration, RMS and peak amplitude from ``sox -n stat`` output.

    Raises:
        StatsExtractionError: If a field is missing or not a number.
    """
    values = []
    for label, pattern in (
        ("Length (seconds)", _DURATION_RE),
        ("RMS amplitude", _RMS_RE),
        ("Maximum amplitude", _PEAK_RE),
    ):
        match = pattern.search(output)
        if match is None:
            raise StatsExtractionError(f"'{label}' missing from sox stat output")
        try:
            values.append(float(match.group(1)))
        except ValueError as e:
            raise StatsExtractionError(f"Unparsable '{label}': {match.group(1)!r}") from e

    duration, rms, peak = values
    return SegmentStats(duration=duration, rms_amplitude=rms, peak_amplitude=peak)


class SoxRecorder(SegmentRecorder):
    """Records a segment with the sox ``silence`` effect."""

    name = "sox"

    def __init__(self, config: ClapConfig | None = None) -> None:
        self._config = config or get_config()

    async def record(self, path: Path) -> None:
        cmd = build_record_command(self._config, path)
        logger.debug("Running: %s", shlex.join(cmd))
        try:
            rc, output = await _run_sox(cmd)
        except OSError as e:
            raise CaptureError(f"Could not run {self._config.sox_binary}: {e}") from e
        if rc != 0:
            raise CaptureError(f"sox capture failed: {output.strip()[:200]}", returncode=rc)


class SoxAnalyzer(SegmentAnalyzer):
    """Reads segment statistics from ``sox <file> -n stat``."""

    name = "sox"

    def __init__(self, config: ClapConfig | None = None) -> None:
        self._config = config or get_config()

    async def analyze(self, path: Path) -> SegmentStats:
        try:
            rc, output = await _run_sox([self._config.sox_binary, str(path), "-n", "stat"])
        except OSError as e:
            raise StatsExtractionError(f"Could not run {self._config.sox_binary}: {e}") from e
        if rc != 0:
            raise StatsExtractionError(f"sox stat exited with code {rc}")
        return parse_stat_output(output)


class SoxCleaner(NoiseCleaner):
    """Applies ``noisered`` with a pre-recorded noise profile."""

    name = "sox"

    def __init__(self, config: ClapConfig | None = None) -> None:
        self._config = config or get_config()

    async def clean(self, path: Path) -> Path:
        target = path.with_name(CLEAN_PREFIX + path.name)
        cmd = [
            self._config.sox_binary,
            str(path),
            str(target),
            "noisered",
            self._config.noise_profile,
            str(self._config.noise_reduction_amount),
        ]
        try:
            rc, output = await _run_sox(cmd)
        except OSError as e:
            raise CleaningError(f"Could not run {self._config.sox_binary}: {e}") from e
        if rc != 0 or not target.exists():
            target.unlink(missing_ok=True)
            raise CleaningError(f"sox noisered failed (exit code {rc}): {output.strip()[:200]}")
        return target
