"""
Header Writer - Build the 32-byte preamble stored at the start of every
PCM artifact on the device.

Layout (all integers little-endian):
  0x00  8 bytes  magic "ESP32PCM"
  0x08  4 bytes  sample rate (Hz)
  0x0C  2 bytes  bit depth
  0x0E  2 bytes  channel count
  0x10  4 bytes  payload size in bytes
  0x14 12 bytes  reserved, zero

The playback device is the only reader, so this layout is a wire contract:
it must stay byte-for-byte stable.
"""

import struct
from pathlib import Path

HEADER_MAGIC = b"ESP32PCM"
HEADER_SIZE = 32

# magic, sample rate, bit depth, channels, data size, 12 reserved bytes
HEADER_STRUCT = struct.Struct("<8sIHHI12x")

# Fixed output format for every artifact
DEFAULT_SAMPLE_RATE = 44100
DEFAULT_BIT_DEPTH = 16
DEFAULT_CHANNELS = 2

_UINT16_MAX = 0xFFFF
_UINT32_MAX = 0xFFFFFFFF


def encode_header(sample_rate: int, bit_depth: int, channels: int, data_length: int) -> bytes:
    """
    Encode the artifact header.

    Args:
        sample_rate: Samples per second (uint32)
        bit_depth: Bits per sample (uint16)
        channels: Interleaved channel count (uint16)
        data_length: Size of the raw payload that follows, in bytes (uint32)

    Returns:
        Exactly 32 bytes

    Raises:
        ValueError: If any field does not fit its slot
    """
    for name, value, limit in (
        ("sample_rate", sample_rate, _UINT32_MAX),
        ("bit_depth", bit_depth, _UINT16_MAX),
        ("channels", channels, _UINT16_MAX),
        ("data_length", data_length, _UINT32_MAX),
    ):
        if not 0 <= value <= limit:
            raise ValueError(f"{name} out of range for PCM header: {value}")

    return HEADER_STRUCT.pack(HEADER_MAGIC, sample_rate, bit_depth, channels, data_length)


def write_artifact(
    dest_path: str | Path,
    payload: bytes,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    bit_depth: int = DEFAULT_BIT_DEPTH,
    channels: int = DEFAULT_CHANNELS,
) -> int:
    """
    Write header + payload to dest_path in a single write.

    Returns:
        Total number of bytes written
    """
    header = encode_header(sample_rate, bit_depth, channels, len(payload))
    data = header + payload
    with open(dest_path, "wb") as f:
        f.write(data)
    return len(data)
