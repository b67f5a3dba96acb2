"""
Index Builder - Builds index.json, the playback device's view of the card.

Location on device: /ESP32_MUSIC/index.json

  {
    "version": "1.0",
    "totalFiles": 2,
    "allFiles": [{"name", "path", "sampleRate", "bitDepth", "channels",
                  "folderIndex", "song", "album", "artist"}, ...],
    "musicFolders": [{"name": "Pop",
                      "files": [{"name", "path", "sampleRate", "bitDepth",
                                 "channels", "song", "album", "artist"}]}]
  }

All paths are relative to the artifacts directory, with forward slashes.

The index is rebuilt from scratch on every sync, never patched. It lists
only artifacts that are actually on the device, in desired-layout order, so
an unchanged library always produces byte-identical output.
"""

import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from PCM_Parser import read_header
from PCM_Writer import DEFAULT_SAMPLE_RATE, DEFAULT_BIT_DEPTH, DEFAULT_CHANNELS

from .converter import ConversionResult
from .diff_engine import DesiredEntry, DiffPlan
from .errors import IndexWriteError
from .library import DesiredLayout, Tags, read_tags
from .staging import StagingArea

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
INDEX_VERSION = "1.0"


@dataclass
class IndexEntry:
    """One artifact as the playback device sees it."""

    name: str
    path: str
    sample_rate: int = DEFAULT_SAMPLE_RATE
    bit_depth: int = DEFAULT_BIT_DEPTH
    channels: int = DEFAULT_CHANNELS
    song: Optional[str] = None
    album: Optional[str] = None
    artist: Optional[str] = None

    @property
    def tags(self) -> Tags:
        return Tags(title=self.song, album=self.album, artist=self.artist)

    def to_dict(self, folder_index: Optional[int] = None) -> dict:
        data = {
            "name": self.name,
            "path": self.path,
            "sampleRate": self.sample_rate,
            "bitDepth": self.bit_depth,
            "channels": self.channels,
        }
        if folder_index is not None:
            data["folderIndex"] = folder_index
        data["song"] = self.song
        data["album"] = self.album
        data["artist"] = self.artist
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "IndexEntry":
        return cls(
            name=data["name"],
            path=data["path"],
            sample_rate=data.get("sampleRate", DEFAULT_SAMPLE_RATE),
            bit_depth=data.get("bitDepth", DEFAULT_BIT_DEPTH),
            channels=data.get("channels", DEFAULT_CHANNELS),
            song=data.get("song"),
            album=data.get("album"),
            artist=data.get("artist"),
        )


@dataclass
class IndexFolder:
    name: str
    files: list[IndexEntry] = field(default_factory=list)


@dataclass
class IndexFile:
    version: str = INDEX_VERSION
    folders: list[IndexFolder] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return sum(len(f.files) for f in self.folders)

    def entries_by_path(self) -> dict[str, IndexEntry]:
        return {entry.path: entry for folder in self.folders for entry in folder.files}

    def to_dict(self) -> dict:
        all_files = []
        for i, folder in enumerate(self.folders):
            for entry in folder.files:
                all_files.append(entry.to_dict(folder_index=i))
        return {
            "version": self.version,
            "totalFiles": self.total_files,
            "allFiles": all_files,
            "musicFolders": [
                {"name": folder.name, "files": [entry.to_dict() for entry in folder.files]}
                for folder in self.folders
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, data: dict) -> "IndexFile":
        """Create from parsed JSON. Raises ValueError if the shape is wrong."""
        if not isinstance(data, dict) or not isinstance(data.get("musicFolders"), list):
            raise ValueError("index.json has no musicFolders list")
        try:
            folders = [
                IndexFolder(
                    name=folder.get("name", ""),
                    files=[IndexEntry.from_dict(f) for f in folder.get("files", [])],
                )
                for folder in data["musicFolders"]
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed index.json entry: {e}") from e
        return cls(version=str(data.get("version", INDEX_VERSION)), folders=folders)


def load_index(path: str | Path) -> Optional[IndexFile]:
    """
    Load an existing index.

    Returns:
        IndexFile, or None if the file is missing or unusable
    """
    path = Path(path)
    if not path.exists():
        logger.info(f"No index found at {path}")
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        index = IndexFile.from_dict(data)
        logger.info(f"Loaded prior index with {index.total_files} files")
        return index
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Ignoring invalid index at {path}: {e}")
    except OSError as e:
        logger.warning(f"Could not read index at {path}: {e}")
    return None


class IndexBuilder:
    """
    Usage:
        builder = IndexBuilder(music_dir, prior=load_index(...))
        index = builder.build(layout, plan, report.results)
    """

    def __init__(self, music_dir: str | Path, prior: Optional[IndexFile] = None):
        self.music_dir = Path(music_dir)
        self.prior = prior.entries_by_path() if prior else {}

    def build(
        self,
        layout: DesiredLayout,
        plan: DiffPlan,
        results: list[ConversionResult],
    ) -> IndexFile:
        """
        Build the index from this run's conversions plus kept artifacts.

        A desired file is listed only if its artifact was written now or was
        already on the device. Failed conversions are left out entirely.
        """
        converted = {r.relative_path: r for r in results}
        index = IndexFile()
        folders_by_name: dict[str, IndexFolder] = {}
        # Only the winning occurrence of each relative path is in plan.desired
        winners = {e.position: e for e in plan.desired.values()}

        for fi, folder in enumerate(layout.folders):
            for pi in range(len(folder.files)):
                entry = winners.get((fi, pi))
                if entry is not None:
                    self._add(index, folders_by_name, folder.name, entry, converted, plan)

        logger.info(f"Built index with {index.total_files} files in {len(index.folders)} folders")
        return index

    def _add(
        self,
        index: IndexFile,
        folders_by_name: dict[str, IndexFolder],
        folder_name: str,
        entry: DesiredEntry,
        converted: dict[str, ConversionResult],
        plan: DiffPlan,
    ) -> None:
        rel = entry.relative_path
        desired_file = entry.file

        if rel in converted:
            index_entry = self._from_result(converted[rel])
        elif rel in plan.existing:
            index_entry = self._from_existing(rel, desired_file)
        else:
            # failed conversion
            return

        index_folder = folders_by_name.get(folder_name)
        if index_folder is None:
            index_folder = IndexFolder(name=folder_name)
            folders_by_name[folder_name] = index_folder
            index.folders.append(index_folder)
        index_folder.files.append(index_entry)

    def _from_result(self, result: ConversionResult) -> IndexEntry:
        return IndexEntry(
            name=result.name,
            path=result.relative_path,
            sample_rate=result.sample_rate,
            bit_depth=result.bit_depth,
            channels=result.channels,
            song=result.tags.title,
            album=result.tags.album,
            artist=result.tags.artist,
        )

    def _from_existing(self, rel: str, desired_file) -> IndexEntry:
        """Re-associate a kept artifact with its params and tags."""
        prior = self.prior.get(rel)

        if prior is not None:
            sample_rate, bit_depth, channels = prior.sample_rate, prior.bit_depth, prior.channels
        else:
            try:
                header = read_header(self.music_dir / rel)
                sample_rate, bit_depth, channels = header.sample_rate, header.bit_depth, header.channels
            except (OSError, ValueError) as e:
                logger.debug(f"Using default params for {rel}: {e}")
                sample_rate, bit_depth, channels = DEFAULT_SAMPLE_RATE, DEFAULT_BIT_DEPTH, DEFAULT_CHANNELS

        if not desired_file.tags.is_empty:
            tags = desired_file.tags
        elif prior is not None:
            tags = prior.tags
        else:
            tags = read_tags(desired_file.source_path)

        return IndexEntry(
            name=desired_file.name,
            path=rel,
            sample_rate=sample_rate,
            bit_depth=bit_depth,
            channels=channels,
            song=tags.title,
            album=tags.album,
            artist=tags.artist,
        )


def verify_index_file(path: str | Path, expected: IndexFile) -> None:
    """
    Re-read an index file and check it matches what was written.

    Raises:
        IndexWriteError: If the file is missing, truncated, or differs
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise IndexWriteError(f"Index at {path} could not be read back: {e}") from e

    if not isinstance(data, dict):
        raise IndexWriteError(f"Index at {path} is not a JSON object")
    if data.get("totalFiles") != expected.total_files:
        raise IndexWriteError(
            f"Index at {path} lists {data.get('totalFiles')} files, expected {expected.total_files}"
        )
    if len(data.get("allFiles") or []) != expected.total_files:
        raise IndexWriteError(f"Index at {path} has an incomplete allFiles list")
    if len(data.get("musicFolders") or []) != len(expected.folders):
        raise IndexWriteError(f"Index at {path} has an incomplete musicFolders list")
    if data != expected.to_dict():
        raise IndexWriteError(f"Index at {path} does not match the built index")


def write_index(index: IndexFile, music_dir: str | Path, staging: StagingArea) -> Path:
    """
    Stage, verify, copy to the device, then verify again on the device.

    Returns:
        Path of index.json on the device

    Raises:
        IndexWriteError: On any failure. Artifacts already written stay put.
    """
    content = index.to_json().encode("utf-8")
    staged = staging.new_path("index", ".json")
    try:
        staged.write_bytes(content)
    except OSError as e:
        raise IndexWriteError(f"Could not stage index: {e}") from e
    verify_index_file(staged, index)

    dest = Path(music_dir) / INDEX_FILENAME
    try:
        shutil.copyfile(staged, dest)
    except OSError as e:
        raise IndexWriteError(f"Could not write index to device: {e}") from e

    verify_index_file(dest, index)
    try:
        on_device = dest.read_bytes()
    except OSError as e:
        raise IndexWriteError(f"Could not read index back from device: {e}") from e
    if on_device != content:
        raise IndexWriteError(f"Index on device differs from staged copy ({len(on_device)} of {len(content)} bytes)")

    logger.info(f"Wrote index with {index.total_files} files to {dest}")
    return dest
