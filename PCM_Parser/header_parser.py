import struct
from dataclasses import dataclass
from pathlib import Path

from PCM_Writer.header_writer import HEADER_MAGIC, HEADER_SIZE, HEADER_STRUCT


@dataclass
class PCMHeader:
    sample_rate: int
    bit_depth: int
    channels: int
    data_size: int

    @property
    def duration_ms(self) -> int:
        """Playback length implied by the payload size."""
        frame_size = (self.bit_depth // 8) * self.channels
        if not frame_size or not self.sample_rate:
            return 0
        return (self.data_size // frame_size) * 1000 // self.sample_rate


def parse_header(data: bytes) -> PCMHeader:
    """Parse the first 32 bytes of an artifact."""
    if len(data) < HEADER_SIZE:
        raise ValueError(f"PCM header too short: {len(data)} bytes")

    magic, sample_rate, bit_depth, channels, data_size = HEADER_STRUCT.unpack(data[:HEADER_SIZE])
    if magic != HEADER_MAGIC:
        raise ValueError(f"Not a PCM artifact (magic {magic!r})")

    # reserved bytes must stay zero
    if struct.unpack("<12s", data[20:HEADER_SIZE])[0] != bytes(12):
        raise ValueError("PCM header reserved bytes are not zero")

    return PCMHeader(
        sample_rate=sample_rate,
        bit_depth=bit_depth,
        channels=channels,
        data_size=data_size,
    )


def read_header(path: str | Path) -> PCMHeader:
    """Read and parse the header of an artifact file."""
    with open(path, "rb") as f:
        return parse_header(f.read(HEADER_SIZE))
