"""
PCMSync - Bridge between a virtual music library and an ESP32 playback card

Core components:
- DesiredLayout: Folder→files projection of the virtual library
- DiffEngine: Computes delete/create/keep sets against the card
- ConversionPipeline: Decodes sources and writes header-prefixed PCM artifacts
- IndexBuilder: Rebuilds index.json from what is on the card
- SyncExecutor: Runs the whole sync and reports progress
- check_integrity: Read-only index ↔ filesystem consistency check
"""

from .library import (
    DesiredLayout,
    DesiredFile,
    MusicFolder,
    LibraryNode,
    NodeKind,
    Tags,
    parse_sync_request,
    read_tags,
)
from .diff_engine import DiffEngine, DiffPlan, DesiredEntry, ARTIFACT_DIR, ARTIFACT_EXT, artifact_relative_path
from .converter import ConversionPipeline, ConversionResult, ConversionReport
from .index_builder import IndexBuilder, IndexFile, IndexEntry, INDEX_FILENAME, load_index, write_index
from .sync_executor import SyncExecutor, SyncResult, SyncState
from .events import SyncEvent, StatusEvent, ProgressEvent, FileErrorEvent, CompleteEvent
from .errors import (
    SyncError,
    PreconditionError,
    DeviceNotFoundError,
    DeviceReadOnlyError,
    IndexWriteError,
    DestinationWriteError,
    ConversionError,
)
from .integrity import check_integrity, IntegrityReport
from .staging import StagingArea, sweep_stale_staging
from .transcoder import decode_to_pcm, is_ffmpeg_available, DecodeResult
from .settings import AppSettings, get_settings

__all__ = [
    # Library
    "DesiredLayout",
    "DesiredFile",
    "MusicFolder",
    "LibraryNode",
    "NodeKind",
    "Tags",
    "parse_sync_request",
    "read_tags",
    # Diff
    "DiffEngine",
    "DiffPlan",
    "DesiredEntry",
    "ARTIFACT_DIR",
    "ARTIFACT_EXT",
    "artifact_relative_path",
    # Conversion
    "ConversionPipeline",
    "ConversionResult",
    "ConversionReport",
    "decode_to_pcm",
    "is_ffmpeg_available",
    "DecodeResult",
    # Index
    "IndexBuilder",
    "IndexFile",
    "IndexEntry",
    "INDEX_FILENAME",
    "load_index",
    "write_index",
    # Sync execution
    "SyncExecutor",
    "SyncResult",
    "SyncState",
    "SyncEvent",
    "StatusEvent",
    "ProgressEvent",
    "FileErrorEvent",
    "CompleteEvent",
    # Errors
    "SyncError",
    "PreconditionError",
    "DeviceNotFoundError",
    "DeviceReadOnlyError",
    "IndexWriteError",
    "DestinationWriteError",
    "ConversionError",
    # Integrity / staging / settings
    "check_integrity",
    "IntegrityReport",
    "StagingArea",
    "sweep_stale_staging",
    "AppSettings",
    "get_settings",
]
