"""
Exceptions raised by the sync engine.

Only SyncError subclasses abort a sync. DestinationWriteError is raised per
file by the conversion pipeline and reported without stopping the run.
"""

import errno
from typing import Optional


class SyncError(Exception):
    pass


class PreconditionError(SyncError):
    """The device cannot be synced. Nothing was modified."""


class DeviceNotFoundError(PreconditionError):
    pass


class DeviceReadOnlyError(PreconditionError):
    pass


class IndexWriteError(SyncError):
    """index.json could not be written or did not verify."""


# Cause codes for DestinationWriteError
CAUSE_OUT_OF_SPACE = "out_of_space"
CAUSE_READ_ONLY = "read_only"
CAUSE_IO = "io"

_CAUSE_MESSAGES = {
    CAUSE_OUT_OF_SPACE: "Device is out of space",
    CAUSE_READ_ONLY: "Device is read-only or write-protected",
    CAUSE_IO: "I/O error writing to device",
}

_OUT_OF_SPACE_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}
_READ_ONLY_ERRNOS = {errno.EROFS, errno.EACCES, errno.EPERM}


def classify_os_error(exc: OSError) -> str:
    """Map an OSError to a destination-write cause code."""
    if exc.errno in _OUT_OF_SPACE_ERRNOS:
        return CAUSE_OUT_OF_SPACE
    if exc.errno in _READ_ONLY_ERRNOS or isinstance(exc, PermissionError):
        return CAUSE_READ_ONLY
    return CAUSE_IO


class DestinationWriteError(OSError):
    def __init__(self, path, cause: str, detail: Optional[str] = None):
        self.path = str(path)
        self.cause = cause
        self.detail = detail
        message = f"{_CAUSE_MESSAGES.get(cause, _CAUSE_MESSAGES[CAUSE_IO])}: {self.path}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]

    @classmethod
    def from_os_error(cls, path, exc: OSError) -> "DestinationWriteError":
        return cls(path, classify_os_error(exc), exc.strerror or str(exc))


class ConversionError(Exception):
    """A single file could not be converted. The sync continues."""

    def __init__(self, source_path, message: str):
        self.source_path = str(source_path)
        super().__init__(message)


class SourceUnreadableError(ConversionError):
    pass


class DecodeError(ConversionError):
    pass
