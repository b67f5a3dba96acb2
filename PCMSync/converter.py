"""
Conversion Pipeline - turns desired files into artifacts on the device.

Per file, strictly one at a time and in input order:
1. Check the source is readable
2. Ensure the destination folder exists
3. Decode the source to raw PCM in the staging area
4. Read the payload back, prefix the header, write the artifact in one go
5. Verify the artifact on the device

Source and decode failures are per-file. Destination write failures are
classified (out of space / read-only / I/O) and are also per-file, since
other files may still fit on a nearly-full card.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Callable

from PCM_Writer import HEADER_SIZE, write_artifact

from .diff_engine import DesiredEntry
from .errors import (
    ConversionError,
    DecodeError,
    DestinationWriteError,
    SourceUnreadableError,
    CAUSE_IO,
)
from .library import Tags, read_tags
from .staging import StagingArea
from .transcoder import Decoder

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """One successfully written artifact."""

    name: str  # Display name from the library, e.g. "song1.mp3"
    source_path: str
    relative_path: str
    folder_name: str
    sample_rate: int
    bit_depth: int
    channels: int
    size: int = 0
    tags: Tags = field(default_factory=Tags)


@dataclass
class ConversionReport:
    results: list[ConversionResult] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)  # (file name, message)

    @property
    def converted(self) -> int:
        return len(self.results)


class ConversionPipeline:
    """
    Usage:
        pipeline = ConversionPipeline(music_dir, staging, decoder)
        report = pipeline.run(plan.to_create, progress_callback=...)
    """

    def __init__(self, music_dir: str | Path, staging: StagingArea, decoder: Decoder):
        self.music_dir = Path(music_dir)
        self.staging = staging
        self.decoder = decoder

    def run(
        self,
        entries: list[DesiredEntry],
        progress_callback: Optional[Callable[[int, int, DesiredEntry], None]] = None,
        error_callback: Optional[Callable[[DesiredEntry, str], None]] = None,
    ) -> ConversionReport:
        """
        Convert every entry. Never raises for a single file's failure.

        progress_callback(current, total, entry) fires after every attempt,
        successful or not.
        """
        report = ConversionReport()
        total = len(entries)

        for i, entry in enumerate(entries):
            try:
                result = self.convert(entry)
                report.results.append(result)
            except (ConversionError, DestinationWriteError) as e:
                message = str(e)
                report.errors.append((entry.file.name, message))
                logger.error(f"Failed to convert {entry.file.name}: {message}")
                if error_callback:
                    error_callback(entry, message)

            if progress_callback:
                progress_callback(i + 1, total, entry)

        logger.info(f"Converted {report.converted}/{total} files")
        return report

    def convert(self, entry: DesiredEntry) -> ConversionResult:
        """
        Convert a single file.

        Raises:
            SourceUnreadableError: Source missing or unreadable
            DecodeError: The decoder failed
            ConversionError: Staged payload unusable
            DestinationWriteError: Artifact could not be written or verified
        """
        source = Path(entry.file.source_path)
        if not source.is_file() or not os.access(source, os.R_OK):
            raise SourceUnreadableError(source, f"Source file not readable: {source}")

        dest = self.music_dir / entry.relative_path
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DestinationWriteError.from_os_error(dest.parent, e) from e

        staged = self.staging.new_path(Path(entry.file.name).stem, ".raw")
        decoded = self.decoder(source, staged)
        if not decoded.success or decoded.output_path is None:
            self.staging.discard(staged)
            raise DecodeError(source, decoded.error_message or "Decoding failed")
        self.staging.register(decoded.output_path)

        try:
            payload = decoded.output_path.read_bytes()
        except OSError as e:
            raise ConversionError(source, f"Could not read decoded audio: {e}") from e
        finally:
            self.staging.discard(decoded.output_path)

        try:
            written = write_artifact(
                dest,
                payload,
                sample_rate=decoded.sample_rate,
                bit_depth=decoded.bit_depth,
                channels=decoded.channels,
            )
        except ValueError as e:
            raise ConversionError(source, str(e)) from e
        except OSError as e:
            self._remove_partial(dest)
            raise DestinationWriteError.from_os_error(dest, e) from e

        self._verify(dest, HEADER_SIZE + len(payload))
        logger.info(f"Wrote {entry.relative_path} ({written} bytes)")

        tags = entry.file.tags if not entry.file.tags.is_empty else read_tags(source)
        return ConversionResult(
            name=entry.file.name,
            source_path=str(source),
            relative_path=entry.relative_path,
            folder_name=entry.folder.name,
            sample_rate=decoded.sample_rate,
            bit_depth=decoded.bit_depth,
            channels=decoded.channels,
            size=written,
            tags=tags,
        )

    def _verify(self, dest: Path, expected_size: int) -> None:
        try:
            actual = dest.stat().st_size
        except FileNotFoundError:
            raise DestinationWriteError(dest, CAUSE_IO, "file missing after write")
        except OSError as e:
            raise DestinationWriteError.from_os_error(dest, e) from e

        if actual != expected_size:
            self._remove_partial(dest)
            raise DestinationWriteError(dest, CAUSE_IO, f"expected {expected_size} bytes, found {actual}")

    def _remove_partial(self, dest: Path) -> None:
        # A truncated artifact would otherwise be kept by the next diff
        try:
            dest.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial artifact {dest}: {e}")
