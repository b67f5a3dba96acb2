import hashlib
from pathlib import Path

import pytest

from PCMSync.library import DesiredLayout, DesiredFile, MusicFolder
from PCMSync.settings import AppSettings
from PCMSync.transcoder import DecodeResult


class FakeDecoder:
    """Stands in for ffmpeg: writes samples derived from the source bytes."""

    def __init__(self, fail_on: tuple[str, ...] = ()):
        self.fail_on = set(fail_on)
        self.calls: list[Path] = []

    def __call__(self, source_path: Path, output_path: Path) -> DecodeResult:
        self.calls.append(Path(source_path))
        if Path(source_path).name in self.fail_on:
            # leave a partial file behind like a crashed decoder would
            Path(output_path).write_bytes(b"\x00\x01")
            return DecodeResult(
                success=False,
                source_path=Path(source_path),
                output_path=None,
                error_message="ffmpeg failed: Invalid data found when processing input",
            )
        samples = hashlib.sha256(Path(source_path).read_bytes()).digest() * 8
        Path(output_path).write_bytes(samples)
        return DecodeResult(success=True, source_path=Path(source_path), output_path=Path(output_path))


@pytest.fixture
def fake_decoder():
    return FakeDecoder()


@pytest.fixture
def settings(tmp_path):
    staging = tmp_path / "staging"
    return AppSettings(staging_dir=str(staging))


@pytest.fixture
def device(tmp_path):
    root = tmp_path / "sdcard"
    root.mkdir()
    return root


@pytest.fixture
def music(tmp_path):
    """Source music folder with a few fake songs."""
    src = tmp_path / "music"
    src.mkdir()
    for name in ("song1.mp3", "song2.mp3", "song3.flac"):
        (src / name).write_bytes(f"dummy audio {name}".encode())
    return src


def make_layout(music: Path, folders: dict[str, list[str]]) -> DesiredLayout:
    """Build a layout from {"Pop": ["song1.mp3"], ...}."""
    return DesiredLayout(folders=[
        MusicFolder(name=folder, files=[DesiredFile(name=n, source_path=str(music / n)) for n in names])
        for folder, names in folders.items()
    ])


@pytest.fixture
def layout_factory(music):
    def _make(folders: dict[str, list[str]]) -> DesiredLayout:
        return make_layout(music, folders)
    return _make
