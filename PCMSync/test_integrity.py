from PCM_Writer import write_artifact
from PCMSync.diff_engine import ARTIFACT_DIR
from PCMSync.index_builder import INDEX_FILENAME, IndexEntry, IndexFile, IndexFolder
from PCMSync.integrity import check_integrity


def _setup(device, paths, indexed):
    music_dir = device / ARTIFACT_DIR
    music_dir.mkdir(parents=True, exist_ok=True)
    for rel in paths:
        dest = music_dir / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        write_artifact(dest, b"\x00" * 8)
    index = IndexFile(folders=[IndexFolder(name="Pop", files=[
        IndexEntry(name=rel.split("/")[-1].replace(".pcm", ".mp3"), path=rel) for rel in indexed
    ])])
    (music_dir / INDEX_FILENAME).write_text(index.to_json(), encoding="utf-8")
    return music_dir


def test_clean(device):
    _setup(device, ["Pop/a.pcm", "Pop/b.pcm"], ["Pop/a.pcm", "Pop/b.pcm"])
    report = check_integrity(device)
    assert report.is_clean
    assert report.indexed_files == 2
    assert report.to_dict()["clean"] is True


def test_missing_and_orphan(device):
    _setup(device, ["Pop/a.pcm", "Pop/stray.pcm"], ["Pop/a.pcm", "Pop/gone.pcm"])
    report = check_integrity(device)
    assert report.missing_files == ["Pop/gone.pcm"]
    assert report.orphan_files == ["Pop/stray.pcm"]
    assert not report.is_clean
    assert "missing" in report.summary


def test_bad_header_and_truncation(device):
    music_dir = _setup(device, ["Pop/a.pcm", "Pop/b.pcm"], ["Pop/a.pcm", "Pop/b.pcm"])
    (music_dir / "Pop" / "a.pcm").write_bytes(b"not a pcm file at all, definitely not")
    with open(music_dir / "Pop" / "b.pcm", "r+b") as f:
        f.truncate(36)

    report = check_integrity(device)
    assert [p for p, _ in report.bad_headers] == ["Pop/a.pcm", "Pop/b.pcm"]


def test_no_index(device):
    (device / ARTIFACT_DIR).mkdir()
    report = check_integrity(device)
    assert report.errors == [f"{INDEX_FILENAME} missing or invalid"]


def test_nothing_is_modified(device):
    music_dir = _setup(device, ["Pop/stray.pcm"], [])
    check_integrity(device)
    assert (music_dir / "Pop" / "stray.pcm").exists()
