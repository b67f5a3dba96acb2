"""
Integrity Checker - validates that index.json and the artifacts on the
device agree.

Checks performed
────────────────
A. Index → Filesystem
   Every ``path`` in index.json must exist under the artifacts directory.

B. Filesystem → Index  (orphan detection)
   Every .pcm file under the artifacts directory must be listed in the index.

C. Headers
   Every listed artifact must start with a valid header whose payload size
   matches the file size.

Read-only: nothing is repaired here. The next sync fixes any drift, since
it rebuilds the index from what is on disk.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from PCM_Parser import read_header
from PCM_Writer import HEADER_SIZE

from .diff_engine import ARTIFACT_DIR, scan_artifacts
from .index_builder import INDEX_FILENAME, load_index

logger = logging.getLogger(__name__)


@dataclass
class IntegrityReport:
    """Summary of what the integrity check found."""

    # Paths listed in index.json whose artifact is missing
    missing_files: list[str] = field(default_factory=list)

    # Artifacts on the device that index.json does not list
    orphan_files: list[str] = field(default_factory=list)

    # Listed artifacts with a bad header or size: (path, reason)
    bad_headers: list[tuple[str, str]] = field(default_factory=list)

    errors: list[str] = field(default_factory=list)

    indexed_files: int = 0

    @property
    def is_clean(self) -> bool:
        return not (self.missing_files or self.orphan_files or self.bad_headers or self.errors)

    @property
    def summary(self) -> str:
        if self.is_clean:
            return f"Integrity check passed: {self.indexed_files} files consistent."
        parts = []
        if self.missing_files:
            parts.append(f"{len(self.missing_files)} indexed files missing on device")
        if self.orphan_files:
            parts.append(f"{len(self.orphan_files)} orphan files on device (not in index)")
        if self.bad_headers:
            parts.append(f"{len(self.bad_headers)} files with bad headers")
        if self.errors:
            parts.append(f"{len(self.errors)} errors")
        return "Integrity issues found: " + ", ".join(parts)

    def to_dict(self) -> dict:
        return {
            "clean": self.is_clean,
            "indexedFiles": self.indexed_files,
            "missingFiles": self.missing_files,
            "orphanFiles": self.orphan_files,
            "badHeaders": [{"path": p, "reason": r} for p, r in self.bad_headers],
            "errors": self.errors,
            "summary": self.summary,
        }


def check_integrity(device_root: str | Path) -> IntegrityReport:
    """Run all checks against a device root."""
    music_dir = Path(device_root) / ARTIFACT_DIR
    report = IntegrityReport()

    if not music_dir.is_dir():
        report.errors.append(f"Artifacts directory not found: {music_dir}")
        return report

    index = load_index(music_dir / INDEX_FILENAME)
    if index is None:
        report.errors.append(f"{INDEX_FILENAME} missing or invalid")
        return report

    on_disk = scan_artifacts(music_dir)
    indexed = index.entries_by_path()
    report.indexed_files = len(indexed)

    # ── A. Index → Filesystem ───────────────────────────────────────────────
    for rel in indexed:
        if rel not in on_disk:
            report.missing_files.append(rel)

    # ── B. Filesystem → Index ───────────────────────────────────────────────
    for rel in sorted(on_disk):
        if rel not in indexed:
            report.orphan_files.append(rel)

    # ── C. Headers ──────────────────────────────────────────────────────────
    for rel, path in sorted(on_disk.items()):
        if rel not in indexed:
            continue
        try:
            header = read_header(path)
            actual = path.stat().st_size
        except (OSError, ValueError) as e:
            report.bad_headers.append((rel, str(e)))
            continue
        if header.data_size + HEADER_SIZE != actual:
            report.bad_headers.append((rel, f"header says {header.data_size} payload bytes, file has {actual - HEADER_SIZE}"))

    logger.info(report.summary)
    return report
