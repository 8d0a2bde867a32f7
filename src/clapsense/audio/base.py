"""Abstract base classes for the audio collaborators and custom exceptions."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

# --- Exceptions ---


class ClapSenseError(Exception):
    """Base exception for all clapsense errors."""


class CaptureError(ClapSenseError):
    """Raised when recording a segment fails (non-zero exit, device error)."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        self.returncode = returncode
        if returncode is not None:
            message = f"{message} (exit code {returncode})"
        super().__init__(message)


class StatsExtractionError(ClapSenseError):
    """Raised when segment statistics are missing or cannot be parsed."""


class CleaningError(ClapSenseError):
    """Raised when noise reduction of a segment fails."""


class StagingError(ClapSenseError):
    """Raised when the staging folder cannot be prepared."""


# --- Data ---


@dataclass(frozen=True)
class SegmentStats:
    """Waveform statistics of one captured segment."""

    duration: float         # seconds
    rms_amplitude: float    # fraction of full scale
    peak_amplitude: float   # fraction of full scale


# --- Abstract Base Classes ---


class SegmentRecorder(ABC):
    """Records one audio segment delimited by silence on both ends."""

    name: str

    @abstractmethod
    async def record(self, path: Path) -> None:
        """Block until a sound has been heard and followed by silence.

        Args:
            path: Where to write the segment (WAV).

        Raises:
            CaptureError: If the capture could not complete.
        """


class SegmentAnalyzer(ABC):
    """Computes duration, RMS and peak amplitude of a segment."""

    name: str

    @abstractmethod
    async def analyze(self, path: Path) -> SegmentStats:
        """Return the statistics of the segment stored at *path*.

        Raises:
            StatsExtractionError: On missing or malformed analysis output.
        """


class NoiseCleaner(ABC):
    """Optional noise-reduction pre-processing of a segment."""

    name: str

    @abstractmethod
    async def clean(self, path: Path) -> Path:
        """Write a cleaned derivative of *path* and return its location.

        Raises:
            CleaningError: If noise reduction fails.
        """
