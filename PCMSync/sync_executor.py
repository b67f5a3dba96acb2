"""
Sync Executor - Synchronizes a desired layout onto a removable device.

One call to execute() walks a fixed sequence of states:

  IDLE → PRECONDITION_CHECK → FOLDER_PREP → DIFFING → DELETING →
  CONVERTING → INDEX_BUILDING → INDEX_WRITING → CLEANUP → COMPLETE | FATAL

Ordering guarantees:
- Stale artifacts are deleted before any conversion starts
- Every conversion finishes before the index is built
- The index is rebuilt from what is on disk, never patched
- Staged files are removed on every exit path

Partial progress is never rolled back: artifacts written before a fatal
index failure stay on the device and are skipped by the next sync.

Not safe for concurrent use: callers must serialize syncs per device root.
"""

import logging
import os
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Optional, Callable

from .converter import ConversionPipeline
from .diff_engine import ARTIFACT_DIR, DiffEngine, DiffPlan, DesiredEntry
from .errors import (
    DeviceNotFoundError,
    DeviceReadOnlyError,
    PreconditionError,
    SyncError,
    classify_os_error,
    CAUSE_READ_ONLY,
)
from .events import (
    SyncEvent,
    StatusEvent,
    ProgressEvent,
    FileErrorEvent,
    CompleteEvent,
    STEP_PREPARATION,
    STEP_INDEX,
    STEP_COPY,
    STEP_CLEANUP,
)
from .index_builder import INDEX_FILENAME, IndexBuilder, load_index, write_index
from .library import DesiredLayout
from .settings import AppSettings, get_settings
from .staging import StagingArea
from .transcoder import Decoder, make_ffmpeg_decoder

logger = logging.getLogger(__name__)

WRITE_PROBE_PREFIX = ".esptunes_write_test_"


class SyncState(Enum):
    IDLE = auto()
    PRECONDITION_CHECK = auto()
    FOLDER_PREP = auto()
    DIFFING = auto()
    DELETING = auto()
    CONVERTING = auto()
    INDEX_BUILDING = auto()
    INDEX_WRITING = auto()
    CLEANUP = auto()
    COMPLETE = auto()
    FATAL = auto()


@dataclass
class SyncResult:
    """Result of a sync operation."""

    success: bool = False
    files_converted: int = 0
    files_deleted: int = 0
    files_kept: int = 0
    folders_created: int = 0
    total_files: int = 0
    output_dir: str = ""
    errors: list[tuple[str, str]] = field(default_factory=list)
    fatal_error: Optional[str] = None
    states: list[SyncState] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def summary(self) -> str:
        if self.fatal_error:
            return f"Sync failed: {self.fatal_error}"
        lines = []
        if self.files_converted:
            lines.append(f"  Converted {self.files_converted} files")
        if self.files_deleted:
            lines.append(f"  Deleted {self.files_deleted} stale files")
        if self.files_kept:
            lines.append(f"  Kept {self.files_kept} unchanged files")
        if self.errors:
            lines.append(f"  {len(self.errors)} errors occurred")

        if not lines:
            return "No changes made."

        status = "Sync completed" if not self.errors else "Sync completed with errors"
        return f"{status}:\n" + "\n".join(lines)


class SyncExecutor:
    """
    Usage:
        executor = SyncExecutor("/media/sdcard")
        result = executor.execute(layout, event_callback=print)

    Raises PreconditionError before touching the device if it is missing or
    write-protected, and IndexWriteError if index.json cannot be written.
    """

    def __init__(
        self,
        device_root: str | Path,
        settings: Optional[AppSettings] = None,
        decoder: Optional[Decoder] = None,
    ):
        self.device_root = Path(device_root)
        self.music_dir = self.device_root / ARTIFACT_DIR
        self.settings = settings or get_settings()
        self.decoder = decoder or make_ffmpeg_decoder(
            ffmpeg_path=self.settings.ffmpeg_path or None,
            timeout=self.settings.decode_timeout,
        )
        self.state = SyncState.IDLE
        self._states: list[SyncState] = []

    # ── Public API ──────────────────────────────────────────────────────────

    @property
    def states(self) -> list[SyncState]:
        """States entered by the most recent call, in order."""
        return list(self._states)

    def execute(
        self,
        layout: DesiredLayout,
        event_callback: Optional[Callable[[SyncEvent], None]] = None,
    ) -> SyncResult:
        """
        Run one sync.

        Args:
            layout: The desired folder→files layout.
            event_callback: Receives every status/progress/error/complete event.

        Returns:
            SyncResult (per-file failures are in result.errors)

        Raises:
            PreconditionError: Device missing or not writable, or staging unusable.
            IndexWriteError: index.json could not be written and verified.
        """
        self._states = []
        result = SyncResult(output_dir=str(self.music_dir), states=self._states)
        staging: Optional[StagingArea] = None

        def emit(event: SyncEvent) -> None:
            if event_callback:
                event_callback(event)

        try:
            self._enter(SyncState.PRECONDITION_CHECK)
            self.check_preconditions()

            try:
                staging = StagingArea(self.settings.staging_dir or None)
            except OSError as e:
                raise PreconditionError(f"Staging directory not usable: {e}") from e

            self._enter(SyncState.FOLDER_PREP)
            result.folders_created = self._prepare_folders(layout)

            self._enter(SyncState.DIFFING)
            engine = DiffEngine(self.music_dir)
            plan = engine.compute_diff(layout)

            self._enter(SyncState.DELETING)
            engine.delete_stale(plan)
            result.files_deleted = len(plan.deleted)
            for rel, message in plan.delete_errors:
                result.errors.append((rel, message))
                emit(FileErrorEvent(file=rel, error=f"Could not delete stale file: {message}"))
            to_create = plan.to_create
            result.files_kept = len(plan.to_keep)
            emit(StatusEvent(
                step=STEP_PREPARATION,
                message=(f"Prepared {result.folders_created} folders, removed {result.files_deleted} "
                         f"stale files, {len(to_create)} files to convert"),
            ))

            self._enter(SyncState.CONVERTING)
            report = self._convert(to_create, staging, result, emit)
            result.files_converted = report.converted

            self._enter(SyncState.INDEX_BUILDING)
            prior = load_index(self.music_dir / INDEX_FILENAME)
            index = IndexBuilder(self.music_dir, prior=prior).build(layout, plan, report.results)
            result.total_files = index.total_files
            emit(StatusEvent(step=STEP_INDEX, message=f"Built index with {index.total_files} files"))

            self._enter(SyncState.INDEX_WRITING)
            write_index(index, self.music_dir, staging)
            emit(StatusEvent(step=STEP_COPY, message=f"Copied {INDEX_FILENAME} to device"))

        except SyncError as e:
            result.fatal_error = str(e)
            logger.error(f"Sync failed: {e}")
            self._cleanup(staging, emit, fatal=True)
            self._enter(SyncState.FATAL)
            raise
        except Exception:
            logger.exception("Unexpected error during sync")
            self._cleanup(staging, emit, fatal=True)
            self._enter(SyncState.FATAL)
            raise

        self._cleanup(staging, emit, fatal=False)
        self._enter(SyncState.COMPLETE)
        result.success = True

        emit(CompleteEvent(
            message=f"Successfully converted {result.files_converted} files",
            output_dir=str(self.music_dir),
            files_converted=result.files_converted,
            total_files=result.total_files,
            folders_created=result.folders_created,
        ))
        logger.info(result.summary)
        return result

    def plan(self, layout: DesiredLayout) -> DiffPlan:
        """Compute the diff without changing anything on the device (dry run)."""
        self._states = []
        self._enter(SyncState.PRECONDITION_CHECK)
        self._check_device_root()
        self._enter(SyncState.DIFFING)
        return DiffEngine(self.music_dir).compute_diff(layout)

    def check_preconditions(self) -> None:
        """
        Verify the device can be synced.

        Raises:
            DeviceNotFoundError: Root missing or not a directory
            DeviceReadOnlyError: Root or artifacts directory not writable
            PreconditionError: Artifacts directory could not be created
        """
        self._check_device_root()
        self._probe_writable(self.device_root)

        try:
            self.music_dir.mkdir(exist_ok=True)
        except FileExistsError as e:
            raise PreconditionError(f"{self.music_dir} exists and is not a directory") from e
        except OSError as e:
            if classify_os_error(e) == CAUSE_READ_ONLY:
                raise DeviceReadOnlyError(f"Cannot create {self.music_dir}: device is write-protected") from e
            raise PreconditionError(f"Cannot create {self.music_dir}: {e}") from e
        if not self.music_dir.is_dir():
            raise PreconditionError(f"{self.music_dir} is not a directory")

        self._probe_writable(self.music_dir)

    # ── Stages ──────────────────────────────────────────────────────────────

    def _enter(self, state: SyncState) -> None:
        logger.debug(f"Sync state: {self.state.name} → {state.name}")
        self.state = state
        self._states.append(state)

    def _check_device_root(self) -> None:
        if not self.device_root.exists():
            raise DeviceNotFoundError(f"Device not found at {self.device_root}. Is it mounted?")
        if not self.device_root.is_dir():
            raise DeviceNotFoundError(f"Device path {self.device_root} is not a directory")

    def _probe_writable(self, directory: Path) -> None:
        """Create and remove a marker file."""
        probe = directory / f"{WRITE_PROBE_PREFIX}{uuid.uuid4().hex[:8]}"
        try:
            with open(probe, "wb") as f:
                f.write(b"ok")
            os.remove(probe)
        except OSError as e:
            try:
                probe.unlink(missing_ok=True)
            except OSError:
                pass
            if classify_os_error(e) == CAUSE_READ_ONLY:
                raise DeviceReadOnlyError(
                    f"{directory} is read-only. Check the card's write-protect switch."
                ) from e
            raise PreconditionError(f"Cannot write to {directory}: {e}") from e

    def _prepare_folders(self, layout: DesiredLayout) -> int:
        """Create a directory for every named folder in the layout."""
        count = 0
        for folder in layout.folders:
            if folder.is_root:
                continue
            path = self.music_dir / folder.name
            try:
                path.mkdir(parents=True, exist_ok=True)
                count += 1
            except OSError as e:
                # The pipeline reports a per-file error for each file in it
                logger.error(f"Could not create folder {path}: {e}")
        logger.info(f"Prepared {count} folders")
        return count

    def _convert(self, entries: list[DesiredEntry], staging: StagingArea, result: SyncResult, emit):
        pipeline = ConversionPipeline(self.music_dir, staging, self.decoder)

        def on_progress(current: int, total: int, entry: DesiredEntry) -> None:
            emit(ProgressEvent(file=entry.file.name, current=current, total=total, folder=entry.folder.name))

        def on_error(entry: DesiredEntry, message: str) -> None:
            result.errors.append((entry.file.name, message))
            emit(FileErrorEvent(file=entry.file.name, error=message))

        return pipeline.run(entries, progress_callback=on_progress, error_callback=on_error)

    def _cleanup(self, staging: Optional[StagingArea], emit, fatal: bool) -> None:
        self._enter(SyncState.CLEANUP)
        removed = staging.cleanup() if staging else 0
        if not fatal:
            emit(StatusEvent(step=STEP_CLEANUP, message=f"Removed {removed} staged files"))
