"""
Library model - the user's virtual music library and the desired layout
derived from it.

The virtual library is a flat list of LibraryNode objects (folders and
files linked by parent id), independent of where files live on disk.
The sync engine only consumes its folder→files projection, DesiredLayout:

  DesiredLayout
    MusicFolder "Pop"      (folders that directly contain audio files)
      DesiredFile song1.mp3 → /home/me/Music/a/song1.mp3
    MusicFolder ""         (implicit root folder for root-level files)
      DesiredFile intro.mp3 → ...

Tags are read with mutagen, best-effort.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Iterable

import mutagen
from mutagen import MutagenError

logger = logging.getLogger(__name__)

# Sources the user can add to a library
AUDIO_EXTENSIONS = {
    ".mp3",
    ".flac",
    ".wav",
    ".m4a",
    ".ogg",
    ".aac",
    ".wma",
}

# Folder name used for files that have no containing folder
ROOT_FOLDER_NAME = ""

TAG_FIELDS = ("title", "album", "artist")


def is_audio_file(filename: str | Path) -> bool:
    """Check if a filename has a supported audio extension."""
    return Path(filename).suffix.lower() in AUDIO_EXTENSIONS


_PATH_SEPARATORS = ("/", "\\", "\0")


def is_safe_name(name: str) -> bool:
    """A folder or file name that stays one path component under ESP32_MUSIC."""
    return name not in (".", "..") and not any(sep in name for sep in _PATH_SEPARATORS)


class NodeKind(Enum):
    FOLDER = "folder"
    FILE = "file"


@dataclass
class Tags:
    """Optional track tags passed through to the index."""

    title: Optional[str] = None
    album: Optional[str] = None
    artist: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.title or self.album or self.artist)

    @classmethod
    def from_dict(cls, data: dict) -> "Tags":
        return cls(
            title=data.get("title") or data.get("song"),
            album=data.get("album"),
            artist=data.get("artist"),
        )


@dataclass
class LibraryNode:
    """A file or folder in the virtual library."""

    id: str
    name: str
    kind: NodeKind
    source_path: str = ""  # Absolute path on this machine (files only)
    parent: Optional[str] = None  # Parent folder id, None = root
    is_audio: bool = False
    tags: Tags = field(default_factory=Tags)

    @property
    def is_folder(self) -> bool:
        return self.kind == NodeKind.FOLDER


@dataclass
class DesiredFile:
    """A file the device should hold."""

    name: str  # Display name, e.g. "song1.mp3"
    source_path: str
    tags: Tags = field(default_factory=Tags)

    @property
    def base_name(self) -> str:
        """Name without extension - the artifact's stem."""
        return Path(self.name).stem


@dataclass
class MusicFolder:
    name: str
    files: list[DesiredFile] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.name == ROOT_FOLDER_NAME


@dataclass
class DesiredLayout:
    """Ordered folder→files projection of the library. Read-only input to a sync."""

    folders: list[MusicFolder] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return sum(len(f.files) for f in self.folders)

    def iter_files(self) -> Iterable[tuple[MusicFolder, DesiredFile]]:
        for folder in self.folders:
            for desired in folder.files:
                yield folder, desired

    @classmethod
    def from_nodes(cls, nodes: list[LibraryNode]) -> "DesiredLayout":
        """
        Project the virtual library onto the folders that directly contain
        audio files.

        Folders keep the order they appear in ``nodes``. Root-level files
        go into the implicit root folder, placed after all named folders.
        Folders are keyed by id, so two folders may share a display name.
        """
        folders: dict[str, MusicFolder] = {}
        for node in nodes:
            if node.is_folder:
                folders[node.id] = MusicFolder(name=node.name)
        root = MusicFolder(name=ROOT_FOLDER_NAME)

        for node in nodes:
            if node.is_folder or not node.is_audio:
                continue
            desired = DesiredFile(name=node.name, source_path=node.source_path, tags=node.tags)
            parent = folders.get(node.parent) if node.parent else None
            if parent is None:
                if node.parent:
                    logger.warning(f"Parent {node.parent} of {node.name} not found, placing at root")
                root.files.append(desired)
            else:
                parent.files.append(desired)

        ordered = [f for f in folders.values() if f.files]
        if root.files:
            ordered.append(root)
        return cls(folders=ordered)

    @classmethod
    def from_request(cls, data: dict) -> "DesiredLayout":
        """
        Parse the ``desiredLayout`` object of a sync request:

            {"musicFolders": [{"name": "Pop",
                               "files": [{"name": ..., "sourcePath": ...}]}]}
        """
        folders_data = data.get("musicFolders")
        if not isinstance(folders_data, list):
            raise ValueError("desiredLayout.musicFolders must be a list")

        folders = []
        for i, folder_data in enumerate(folders_data):
            if not isinstance(folder_data, dict):
                raise ValueError(f"musicFolders[{i}] must be an object")
            files = []
            for j, file_data in enumerate(folder_data.get("files") or []):
                name = file_data.get("name") if isinstance(file_data, dict) else None
                source = (file_data.get("sourcePath") or file_data.get("path")) if name else None
                if not name or not source:
                    raise ValueError(f"musicFolders[{i}].files[{j}] needs a name and a sourcePath")
                if not isinstance(name, str) or not is_safe_name(name):
                    raise ValueError(f"musicFolders[{i}].files[{j}] has an unusable name: {name!r}")
                files.append(DesiredFile(
                    name=name,
                    source_path=source,
                    tags=Tags.from_dict(file_data),
                ))
            folder_name = folder_data.get("name") or ROOT_FOLDER_NAME
            if not isinstance(folder_name, str) or not is_safe_name(folder_name):
                raise ValueError(f"musicFolders[{i}] has an unusable name: {folder_name!r}")
            folders.append(MusicFolder(name=folder_name, files=files))

        return cls(folders=folders)


def parse_sync_request(data: dict) -> tuple[DesiredLayout, str]:
    """Parse a full sync request into (layout, device root)."""
    if not isinstance(data, dict):
        raise ValueError("Sync request must be a JSON object")
    layout_data = data.get("desiredLayout")
    if not isinstance(layout_data, dict):
        raise ValueError("Sync request is missing desiredLayout")
    device_root = data.get("deviceRoot") or ""
    return DesiredLayout.from_request(layout_data), device_root


def read_tags(source_path: str | Path) -> Tags:
    """Read title/album/artist from an audio file. Returns empty Tags on failure."""
    try:
        audio = mutagen.File(source_path, easy=True)
    except (MutagenError, OSError) as e:
        logger.debug(f"mutagen failed on {source_path}: {e}")
        return Tags()
    if audio is None or not audio.tags:
        return Tags()

    values = {}
    for tag in TAG_FIELDS:
        try:
            value = audio.tags.get(tag)
        except (KeyError, ValueError):
            value = None
        if isinstance(value, list):
            value = value[0] if value else None
        values[tag] = str(value) if value else None
    return Tags(**values)
