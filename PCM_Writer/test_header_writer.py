import struct

import pytest

from PCM_Writer import HEADER_SIZE, encode_header, write_artifact


class TestEncodeHeader:

    def test_exact_bytes(self):
        header = encode_header(44100, 16, 2, 1000)
        expected = (
            b"ESP32PCM"
            + (44100).to_bytes(4, "little")
            + (16).to_bytes(2, "little")
            + (2).to_bytes(2, "little")
            + (1000).to_bytes(4, "little")
            + bytes(12)
        )
        assert header == expected
        assert len(header) == HEADER_SIZE == 32

    def test_field_offsets(self):
        header = encode_header(48000, 24, 1, 0xDEADBEEF)
        assert header[:8] == b"ESP32PCM"
        assert struct.unpack_from("<I", header, 8)[0] == 48000
        assert struct.unpack_from("<H", header, 12)[0] == 24
        assert struct.unpack_from("<H", header, 14)[0] == 1
        assert struct.unpack_from("<I", header, 16)[0] == 0xDEADBEEF
        assert header[20:] == bytes(12)

    def test_empty_payload(self):
        assert encode_header(44100, 16, 2, 0)[16:20] == bytes(4)

    @pytest.mark.parametrize("kwargs", [
        {"data_length": 1 << 32},
        {"data_length": -1},
        {"channels": 70000},
        {"sample_rate": -44100},
    ])
    def test_out_of_range(self, kwargs):
        args = {"sample_rate": 44100, "bit_depth": 16, "channels": 2, "data_length": 10}
        args.update(kwargs)
        with pytest.raises(ValueError):
            encode_header(**args)


class TestWriteArtifact:

    def test_header_then_payload(self, tmp_path):
        dest = tmp_path / "song.pcm"
        payload = bytes(range(256)) * 4
        written = write_artifact(dest, payload)
        data = dest.read_bytes()
        assert written == len(data) == HEADER_SIZE + len(payload)
        assert data[:HEADER_SIZE] == encode_header(44100, 16, 2, len(payload))
        assert data[HEADER_SIZE:] == payload
