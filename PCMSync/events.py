"""
Sync events - the progress/result stream emitted during a sync.

Each event serializes to one JSON object per line:

  {"type": "status", "step": ..., "status": "completed", "message": ...}
  {"type": "progress", "step": "conversion", "file": ..., "progress": 0-100,
   "current": ..., "total": ..., "folder": ...}
  {"type": "error", "file": ..., "error": ...}
  {"type": "complete", "message": ..., "outputDir": ...,
   "stats": {"filesConverted": ..., "totalFiles": ..., "foldersCreated": ...}}
"""

import json
from dataclasses import dataclass

# Status steps
STEP_PREPARATION = "preparation"
STEP_INDEX = "index"
STEP_COPY = "copy"
STEP_CLEANUP = "cleanup"
STEP_CONVERSION = "conversion"


class SyncEvent:
    type = ""

    def to_dict(self) -> dict:
        raise NotImplementedError

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False) + "\n"


@dataclass
class StatusEvent(SyncEvent):
    step: str
    message: str
    status: str = "completed"

    type = "status"

    def to_dict(self) -> dict:
        return {"type": self.type, "step": self.step, "status": self.status, "message": self.message}


@dataclass
class ProgressEvent(SyncEvent):
    file: str
    current: int
    total: int
    folder: str

    type = "progress"

    @property
    def progress(self) -> int:
        if self.total <= 0:
            return 100
        return round(self.current * 100 / self.total)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "step": STEP_CONVERSION,
            "file": self.file,
            "progress": self.progress,
            "current": self.current,
            "total": self.total,
            "folder": self.folder,
        }


@dataclass
class FileErrorEvent(SyncEvent):
    file: str
    error: str

    type = "error"

    def to_dict(self) -> dict:
        return {"type": self.type, "file": self.file, "error": self.error}


@dataclass
class CompleteEvent(SyncEvent):
    message: str
    output_dir: str
    files_converted: int
    total_files: int
    folders_created: int

    type = "complete"

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "message": self.message,
            "outputDir": self.output_dir,
            "stats": {
                "filesConverted": self.files_converted,
                "totalFiles": self.total_files,
                "foldersCreated": self.folders_created,
            },
        }


def fatal_error_line(message: str) -> str:
    """The single non-streamed response for a fatal failure."""
    return json.dumps({"error": message}, ensure_ascii=False) + "\n"
