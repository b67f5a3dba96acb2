"""
Transcoder - Decode audio files to raw PCM using FFmpeg.

Every source (MP3, FLAC, WAV, M4A, OGG, AAC, WMA) is decoded to the one
format the playback device understands:

  signed 16-bit little-endian, interleaved, 44.1 kHz, stereo

The output is a headerless .raw file in the staging area; the header is
added when the artifact is written to the device.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Callable

from PCM_Writer import DEFAULT_SAMPLE_RATE, DEFAULT_BIT_DEPTH, DEFAULT_CHANNELS

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


@dataclass
class DecodeResult:
    """Result of a decode operation."""

    success: bool
    source_path: Path
    output_path: Optional[Path]
    sample_rate: int = DEFAULT_SAMPLE_RATE
    bit_depth: int = DEFAULT_BIT_DEPTH
    channels: int = DEFAULT_CHANNELS
    error_message: Optional[str] = None


# (source_path, output_path) -> DecodeResult
Decoder = Callable[[Path, Path], DecodeResult]


def find_ffmpeg() -> Optional[str]:
    """Find ffmpeg binary. Returns path or None."""
    ffmpeg = shutil.which("ffmpeg")
    if ffmpeg:
        return ffmpeg

    # Common installation locations
    common_paths = [
        # Windows
        r"C:\Program Files\ffmpeg\bin\ffmpeg.exe",
        r"C:\ffmpeg\bin\ffmpeg.exe",
        # macOS (Homebrew)
        "/usr/local/bin/ffmpeg",
        "/opt/homebrew/bin/ffmpeg",
        # Linux
        "/usr/bin/ffmpeg",
    ]

    for path in common_paths:
        if Path(path).exists():
            return path

    return None


def is_ffmpeg_available() -> bool:
    """Check if ffmpeg is available."""
    return find_ffmpeg() is not None


def build_decode_command(ffmpeg: str, source_path: Path, output_path: Path) -> list[str]:
    return [
        ffmpeg,
        "-nostdin",
        "-v", "error",
        "-i", str(source_path),
        "-vn",  # No video / cover art
        "-acodec", "pcm_s16le",
        "-ar", str(DEFAULT_SAMPLE_RATE),
        "-ac", str(DEFAULT_CHANNELS),
        "-f", "s16le",
        "-y",  # Overwrite output
        str(output_path),
    ]


def decode_to_pcm(
    source_path: str | Path,
    output_path: str | Path,
    ffmpeg_path: Optional[str] = None,
    timeout: int = DEFAULT_TIMEOUT,
) -> DecodeResult:
    """
    Decode an audio file to raw PCM.

    Args:
        source_path: Path to source audio file
        output_path: Where to write raw samples (should be in staging)
        ffmpeg_path: Optional path to ffmpeg binary
        timeout: Seconds before ffmpeg is killed

    Returns:
        DecodeResult with output path and status. Never raises for decode
        failures; a partial output file may be left for the caller to discard.
    """
    source_path = Path(source_path)
    output_path = Path(output_path)

    def _failed(message: str) -> DecodeResult:
        return DecodeResult(
            success=False,
            source_path=source_path,
            output_path=None,
            error_message=message,
        )

    if not source_path.exists():
        return _failed(f"Source file not found: {source_path}")

    ffmpeg = ffmpeg_path or find_ffmpeg()
    if not ffmpeg:
        return _failed("ffmpeg not found")

    cmd = build_decode_command(ffmpeg, source_path, output_path)

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",  # Handle non-UTF8 bytes gracefully
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return _failed("Decoding timed out")
    except OSError as e:
        return _failed(f"Could not run ffmpeg: {e}")

    if result.returncode != 0:
        return _failed(f"ffmpeg failed: {result.stderr.strip()[:500]}")

    if not output_path.exists():
        return _failed("Output file not created")

    logger.info(f"Decoded {source_path.name} → {output_path.name}")
    return DecodeResult(success=True, source_path=source_path, output_path=output_path)


def make_ffmpeg_decoder(ffmpeg_path: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT) -> Decoder:
    """Bind ffmpeg settings into a Decoder callable."""

    def _decode(source_path: Path, output_path: Path) -> DecodeResult:
        return decode_to_pcm(source_path, output_path, ffmpeg_path=ffmpeg_path, timeout=timeout)

    return _decode
