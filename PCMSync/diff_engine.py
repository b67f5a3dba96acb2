"""
Diff Engine - Computes what must change on the device.

Artifacts are identified purely by their relative path under the
artifacts directory:

  <folder name>/<file name without extension>.pcm    (files in a folder)
  <file name without extension>.pcm                   (root-level files)

Flow:
1. Scan device → Dict[relative path, absolute path]
2. Desired layout → Dict[relative path, (folder, file)]
3. Device-only paths → DELETE (done before any conversion)
4. Desired paths missing on device → CREATE
5. Paths on both sides → KEEP (never re-encoded)

A renamed file or folder changes the relative path, so a move is a
delete + create rather than a rename.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional, Callable

from .library import DesiredLayout, DesiredFile, MusicFolder

logger = logging.getLogger(__name__)

# Artifacts directory under the device root, and artifact extension
ARTIFACT_DIR = "ESP32_MUSIC"
ARTIFACT_EXT = ".pcm"


def artifact_relative_path(folder_name: str, file_name: str) -> str:
    """Relative path of the artifact for a desired file (forward slashes)."""
    stem = Path(file_name).stem
    if folder_name:
        return f"{folder_name}/{stem}{ARTIFACT_EXT}"
    return f"{stem}{ARTIFACT_EXT}"


def scan_artifacts(music_dir: str | Path) -> dict[str, Path]:
    """
    Recursively collect every artifact under music_dir.

    Returns:
        relative path (POSIX style) → absolute path
    """
    music_dir = Path(music_dir)
    found: dict[str, Path] = {}
    if not music_dir.is_dir():
        return found

    for root, _, files in os.walk(music_dir):
        for filename in files:
            if Path(filename).suffix.lower() != ARTIFACT_EXT:
                continue
            full_path = Path(root) / filename
            relative = PurePosixPath(*full_path.relative_to(music_dir).parts).as_posix()
            found[relative] = full_path
    return found


@dataclass
class DesiredEntry:
    """A desired artifact and the library file it comes from."""

    relative_path: str
    folder: MusicFolder
    file: DesiredFile
    # (folder index, file index) in the layout
    position: tuple[int, int] = (0, 0)


@dataclass
class DiffPlan:
    """Delete/create/keep sets for one sync."""

    desired: dict[str, DesiredEntry] = field(default_factory=dict)
    existing: dict[str, Path] = field(default_factory=dict)
    desired_folders: set[str] = field(default_factory=set)

    # Populated by DiffEngine.delete_stale()
    deleted: list[str] = field(default_factory=list)
    delete_errors: list[tuple[str, str]] = field(default_factory=list)
    pruned_dirs: list[str] = field(default_factory=list)

    @property
    def to_delete(self) -> dict[str, Path]:
        return {rel: path for rel, path in self.existing.items() if rel not in self.desired}

    @property
    def to_create(self) -> list[DesiredEntry]:
        return [entry for rel, entry in self.desired.items() if rel not in self.existing]

    @property
    def to_keep(self) -> list[str]:
        return [rel for rel in self.desired if rel in self.existing]

    @property
    def has_changes(self) -> bool:
        return bool(self.to_delete or self.to_create)

    @property
    def summary(self) -> str:
        if not self.has_changes:
            return "Everything is in sync."
        return (
            f"{len(self.to_delete)} to delete, {len(self.to_create)} to convert, "
            f"{len(self.to_keep)} unchanged"
        )


class DiffEngine:
    """
    Usage:
        engine = DiffEngine(device_root / ARTIFACT_DIR)
        plan = engine.compute_diff(layout)
        engine.delete_stale(plan)
        for entry in plan.to_create:
            ...
    """

    def __init__(self, music_dir: str | Path):
        self.music_dir = Path(music_dir)

    def desired_paths(self, layout: DesiredLayout) -> dict[str, DesiredEntry]:
        """
        Relative path → entry for every file in the layout.

        If two files map to the same path the later one wins and takes the
        position of the later occurrence.

        Paths are compared case-sensitively. FAT cards are not, so paths
        that differ only in case are logged.
        """
        desired: dict[str, DesiredEntry] = {}
        folded: dict[str, str] = {}
        for fi, folder in enumerate(layout.folders):
            for pi, desired_file in enumerate(folder.files):
                rel = artifact_relative_path(folder.name, desired_file.name)
                if rel in desired:
                    logger.warning(f"Duplicate artifact path {rel}: {desired_file.source_path} replaces "
                                   f"{desired[rel].file.source_path}")
                    del desired[rel]
                elif folded.get(rel.lower(), rel) != rel:
                    logger.warning(f"Artifact paths {folded[rel.lower()]} and {rel} differ only in case; "
                                   f"case-insensitive cards will treat them as one file")
                folded.setdefault(rel.lower(), rel)
                desired[rel] = DesiredEntry(
                    relative_path=rel, folder=folder, file=desired_file, position=(fi, pi)
                )
        return desired

    def compute_diff(self, layout: DesiredLayout) -> DiffPlan:
        plan = DiffPlan(
            desired=self.desired_paths(layout),
            existing=scan_artifacts(self.music_dir),
            desired_folders={f.name for f in layout.folders if f.name},
        )
        logger.info(f"Diff: {plan.summary}")
        return plan

    def delete_stale(
        self,
        plan: DiffPlan,
        progress_callback: Optional[Callable[[str], None]] = None,
    ) -> DiffPlan:
        """
        Delete every artifact in plan.to_delete, prune emptied directories,
        then re-scan so plan.existing reflects the device.

        A file that cannot be deleted is recorded in plan.delete_errors;
        it stays on the device and out of the index.
        """
        for rel, path in sorted(plan.to_delete.items()):
            try:
                path.unlink(missing_ok=True)
                plan.deleted.append(rel)
                logger.info(f"Deleted stale artifact {rel}")
            except OSError as e:
                plan.delete_errors.append((rel, str(e)))
                logger.error(f"Delete failed for {path}: {e}")
            if progress_callback:
                progress_callback(rel)

        plan.pruned_dirs.extend(self._prune_empty_dirs(plan.desired_folders))
        plan.existing = scan_artifacts(self.music_dir)
        return plan

    def _prune_empty_dirs(self, keep: set[str]) -> list[str]:
        """Remove empty directories that are not desired folders. Deepest first."""
        pruned = []
        if not self.music_dir.is_dir():
            return pruned

        for root, _, _ in os.walk(self.music_dir, topdown=False):
            path = Path(root)
            if path == self.music_dir:
                continue
            rel = PurePosixPath(*path.relative_to(self.music_dir).parts).as_posix()
            if rel in keep or any(k.startswith(rel + "/") for k in keep):
                continue
            try:
                path.rmdir()
                pruned.append(rel)
                logger.debug(f"Removed empty directory {rel}")
            except OSError:
                # not empty
                continue
        return pruned
