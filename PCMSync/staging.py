"""
Staging Area - private scratch space for one sync run.

Raw decoder output and the staged index are written here, never on the
device. Every staged file is registered when it is created, and cleanup()
removes all of them plus the directory, whatever happened in between.

Each sync owns its own StagingArea; nothing is shared between runs.
"""

import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

STAGING_PREFIX = "esptunes-"


class StagingArea:
    """
    Usage:
        with StagingArea() as staging:
            raw = staging.new_path("song1", ".raw")
            ...
        # everything under staging.path is gone here
    """

    def __init__(self, base_dir: Optional[str | Path] = None):
        base = str(base_dir) if base_dir else None
        if base:
            Path(base).mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=base))
        self._pending: list[Path] = []
        self._counter = 0
        logger.debug(f"Created staging area {self.path}")

    @property
    def pending(self) -> list[Path]:
        """Staged files not yet cleaned up."""
        return list(self._pending)

    def new_path(self, stem: str, suffix: str) -> Path:
        """Reserve and register a unique path inside the staging area."""
        self._counter += 1
        safe_stem = "".join(c if c.isalnum() or c in "-_" else "_" for c in stem)[:64]
        path = self.path / f"{self._counter:05d}_{safe_stem}{suffix}"
        self.register(path)
        return path

    def register(self, path: str | Path) -> None:
        path = Path(path)
        if path not in self._pending:
            self._pending.append(path)

    def discard(self, path: str | Path) -> None:
        """Delete one staged file now (e.g. a partial decode)."""
        path = Path(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove staged file {path}: {e}")
            return
        if path in self._pending:
            self._pending.remove(path)

    def cleanup(self) -> int:
        """
        Remove every registered file and the staging directory.

        Best-effort: failures are logged, never raised.

        Returns:
            Number of staged files removed
        """
        removed = 0
        for path in list(self._pending):
            try:
                if path.exists():
                    path.unlink()
                    removed += 1
                self._pending.remove(path)
            except OSError as e:
                logger.warning(f"Could not remove staged file {path}: {e}")

        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove staging directory {self.path}: {e}")

        logger.debug(f"Cleaned up {removed} staged files")
        return removed

    def __enter__(self) -> "StagingArea":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()


def sweep_stale_staging(base_dir: Optional[str | Path] = None, max_age: float = 24 * 60 * 60) -> int:
    """
    Remove staging directories left behind by runs that were killed.

    Only directories with our prefix that are older than max_age seconds are
    touched, so a sync running in another process is left alone.

    Returns:
        Number of directories removed
    """
    base = Path(base_dir) if base_dir else Path(tempfile.gettempdir())
    if not base.is_dir():
        return 0

    cutoff = time.time() - max_age
    removed = 0
    for entry in base.iterdir():
        if not entry.name.startswith(STAGING_PREFIX) or not entry.is_dir():
            continue
        try:
            if entry.stat().st_mtime > cutoff:
                continue
            shutil.rmtree(entry)
            removed += 1
            logger.info(f"Swept stale staging directory {entry}")
        except OSError as e:
            logger.warning(f"Could not sweep {entry}: {e}")
    return removed
