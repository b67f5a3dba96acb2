"""
PCM Writer module for ESPTunes.

Builds the fixed 32-byte header that prefixes every raw audio artifact
written to the device, and writes complete artifacts.

Usage:
    from PCM_Writer import encode_header, write_artifact

    header = encode_header(44100, 16, 2, len(samples))
    write_artifact("/media/sd/ESP32_MUSIC/Pop/song1.pcm", samples)
"""

from .header_writer import (
    HEADER_MAGIC,
    HEADER_SIZE,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_BIT_DEPTH,
    DEFAULT_CHANNELS,
    encode_header,
    write_artifact,
)

__all__ = [
    'HEADER_MAGIC',
    'HEADER_SIZE',
    'DEFAULT_SAMPLE_RATE',
    'DEFAULT_BIT_DEPTH',
    'DEFAULT_CHANNELS',
    'encode_header',
    'write_artifact',
]
