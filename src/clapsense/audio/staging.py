"""Staging folder for transient segment files."""

import logging
import secrets
from pathlib import Path

from clapsense.audio.base import StagingError

logger = logging.getLogger(__name__)


class StagingFolder:
    """Working folder holding in-flight segment files.

    Not a durable store: ``prepare()`` empties it, and every segment is
    discarded once analyzed.
    """

    def __init__(self, folder: Path | str) -> None:
        self.folder = Path(folder)

    def prepare(self) -> None:
        """Create the folder if needed and delete any file left in it.

        Raises:
            StagingError: If the folder cannot be created.
        """
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StagingError(f"Cannot create staging folder {self.folder}: {e}") from e

        removed = 0
        for entry in self.folder.iterdir():
            if not entry.is_file():
                continue
            try:
                entry.unlink()
                removed += 1
            except OSError as e:
                logger.warning("Error deleting stale file %s: %s", entry, e)
        logger.debug("Staging folder %s ready (%d stale files removed)", self.folder, removed)

    def new_segment_path(self) -> Path:
        """Return a fresh, collision-free path for the next capture."""
        while True:
            candidate = self.folder / f"input-{secrets.token_hex(8)}.wav"
            if not candidate.exists():
                return candidate

    def discard(self, *paths: Path | None) -> None:
        """Delete segment files, logging (never raising) on failure."""
        for path in dict.fromkeys(p for p in paths if p is not None):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Error deleting segment %s: %s", path, e)
