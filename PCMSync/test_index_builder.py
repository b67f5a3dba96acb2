import json

import pytest

from PCM_Writer import write_artifact
from PCMSync.converter import ConversionResult
from PCMSync.diff_engine import ARTIFACT_DIR, DiffEngine
from PCMSync.errors import IndexWriteError
from PCMSync.index_builder import (
    INDEX_FILENAME,
    IndexBuilder,
    IndexEntry,
    IndexFile,
    IndexFolder,
    load_index,
    verify_index_file,
    write_index,
)
from PCMSync.library import DesiredFile, DesiredLayout, MusicFolder, Tags
from PCMSync.staging import StagingArea


def _artifact(path, payload, **params):
    path.parent.mkdir(parents=True, exist_ok=True)
    write_artifact(path, payload, **params)


def _result(rel, folder, name, tags=None):
    return ConversionResult(
        name=name,
        source_path=f"/src/{name}",
        relative_path=rel,
        folder_name=folder,
        sample_rate=44100,
        bit_depth=16,
        channels=2,
        tags=tags or Tags(),
    )


@pytest.fixture
def staging(tmp_path):
    area = StagingArea(tmp_path / "staging")
    yield area
    area.cleanup()


def test_index_json_shape():
    index = IndexFile(folders=[
        IndexFolder(name="Pop", files=[IndexEntry(name="song1.mp3", path="Pop/song1.pcm", song="One")]),
        IndexFolder(name="Rock", files=[IndexEntry(name="song2.mp3", path="Rock/song2.pcm")]),
    ])
    data = json.loads(index.to_json())

    assert data["version"] == "1.0"
    assert data["totalFiles"] == 2
    assert list(data["allFiles"][0]) == [
        "name", "path", "sampleRate", "bitDepth", "channels", "folderIndex", "song", "album", "artist",
    ]
    assert [f["folderIndex"] for f in data["allFiles"]] == [0, 1]
    assert data["musicFolders"][0]["name"] == "Pop"
    assert "folderIndex" not in data["musicFolders"][0]["files"][0]
    assert data["musicFolders"][1]["files"][0]["song"] is None


def test_from_dict_round_trip_and_rejects_garbage():
    index = IndexFile(folders=[IndexFolder(name="Pop", files=[IndexEntry(name="a.mp3", path="Pop/a.pcm")])])
    assert IndexFile.from_dict(index.to_dict()) == index
    with pytest.raises(ValueError):
        IndexFile.from_dict({"version": "1.0"})
    with pytest.raises(ValueError):
        IndexFile.from_dict({"musicFolders": [{"files": [{"path": "x"}]}]})


def test_load_index_missing_or_corrupt(tmp_path):
    assert load_index(tmp_path / INDEX_FILENAME) is None
    (tmp_path / INDEX_FILENAME).write_text("{not json", encoding="utf-8")
    assert load_index(tmp_path / INDEX_FILENAME) is None


def test_build_lists_converted_and_kept_in_layout_order(tmp_path, layout_factory):
    music_dir = tmp_path / ARTIFACT_DIR
    _artifact(music_dir / "Pop" / "song1.pcm", b"\x00" * 4, sample_rate=22050, channels=1)
    layout = layout_factory({"Pop": ["song1.mp3", "song2.mp3"], "Rock": ["song3.flac"]})
    plan = DiffEngine(music_dir).compute_diff(layout)

    results = [_result("Rock/song3.pcm", "Rock", "song3.flac", Tags(title="Three"))]
    index = IndexBuilder(music_dir).build(layout, plan, results)

    # song2 was neither converted nor on the device
    assert [f.name for f in index.folders] == ["Pop", "Rock"]
    assert [e.path for e in index.folders[0].files] == ["Pop/song1.pcm"]
    kept = index.folders[0].files[0]
    # no prior index: params come from the artifact's header
    assert (kept.sample_rate, kept.channels) == (22050, 1)
    assert index.folders[1].files[0].song == "Three"
    assert index.total_files == 2


def test_folder_without_files_is_omitted(tmp_path, layout_factory):
    music_dir = tmp_path / ARTIFACT_DIR
    layout = layout_factory({"Pop": ["song1.mp3"], "Empty": []})
    plan = DiffEngine(music_dir).compute_diff(layout)
    index = IndexBuilder(music_dir).build(layout, plan, [_result("Pop/song1.pcm", "Pop", "song1.mp3")])
    assert [f.name for f in index.folders] == ["Pop"]


def test_kept_file_reuses_prior_tags(tmp_path, layout_factory):
    music_dir = tmp_path / ARTIFACT_DIR
    _artifact(music_dir / "Pop" / "song1.pcm", b"\x00" * 4)
    prior = IndexFile(folders=[IndexFolder(name="Pop", files=[
        IndexEntry(name="song1.mp3", path="Pop/song1.pcm", song="Old", artist="Someone"),
    ])])
    layout = layout_factory({"Pop": ["song1.mp3"]})
    plan = DiffEngine(music_dir).compute_diff(layout)

    entry = IndexBuilder(music_dir, prior=prior).build(layout, plan, []).folders[0].files[0]
    assert (entry.song, entry.artist) == ("Old", "Someone")

    # tags in the request win over the prior index
    layout.folders[0].files[0].tags = Tags(title="New")
    entry = IndexBuilder(music_dir, prior=prior).build(layout, plan, []).folders[0].files[0]
    assert entry.song == "New"


def test_duplicate_path_listed_once(tmp_path, music, layout_factory):
    music_dir = tmp_path / ARTIFACT_DIR
    (music / "other").mkdir()
    (music / "other" / "song1.mp3").write_bytes(b"another")
    layout = layout_factory({"Pop": ["song1.mp3"]})
    layout.folders[0].files.append(
        DesiredFile(name="song1.mp3", source_path=str(music / "other" / "song1.mp3"))
    )
    plan = DiffEngine(music_dir).compute_diff(layout)
    results = [_result("Pop/song1.pcm", "Pop", "song1.mp3")]
    index = IndexBuilder(music_dir).build(layout, plan, results)
    assert index.total_files == 1


def test_write_index_stages_and_verifies(tmp_path, staging):
    music_dir = tmp_path / ARTIFACT_DIR
    music_dir.mkdir()
    index = IndexFile(folders=[IndexFolder(name="Pop", files=[IndexEntry(name="a.mp3", path="Pop/a.pcm")])])

    dest = write_index(index, music_dir, staging)

    assert dest == music_dir / INDEX_FILENAME
    assert dest.read_text(encoding="utf-8") == index.to_json()
    assert load_index(dest) == index


def test_write_index_fails_when_device_gone(tmp_path, staging):
    index = IndexFile()
    with pytest.raises(IndexWriteError, match="Could not write index"):
        write_index(index, tmp_path / "missing" / ARTIFACT_DIR, staging)


def test_verify_detects_truncation(tmp_path):
    index = IndexFile(folders=[IndexFolder(name="Pop", files=[IndexEntry(name="a.mp3", path="Pop/a.pcm")])])
    path = tmp_path / INDEX_FILENAME
    path.write_text(index.to_json()[:40], encoding="utf-8")
    with pytest.raises(IndexWriteError):
        verify_index_file(path, index)

    data = index.to_dict()
    data["allFiles"] = []
    path.write_text(json.dumps(data), encoding="utf-8")
    with pytest.raises(IndexWriteError, match="allFiles"):
        verify_index_file(path, index)


def test_same_file_object_in_two_folders(tmp_path, music):
    music_dir = tmp_path / ARTIFACT_DIR
    shared = DesiredFile(name="song1.mp3", source_path=str(music / "song1.mp3"))
    layout = DesiredLayout(folders=[MusicFolder(name="Pop", files=[shared]),
                                    MusicFolder(name="Rock", files=[shared])])
    plan = DiffEngine(music_dir).compute_diff(layout)
    results = [_result("Pop/song1.pcm", "Pop", "song1.mp3"), _result("Rock/song1.pcm", "Rock", "song1.mp3")]

    index = IndexBuilder(music_dir).build(layout, plan, results)

    assert [(f.name, [e.path for e in f.files]) for f in index.folders] == [
        ("Pop", ["Pop/song1.pcm"]),
        ("Rock", ["Rock/song1.pcm"]),
    ]


def test_duplicate_listed_at_same_position_as_conversion(tmp_path, music, layout_factory):
    music_dir = tmp_path / ARTIFACT_DIR
    layout = layout_factory({"Pop": ["song1.mp3", "song2.mp3"]})
    layout.folders[0].files.append(DesiredFile(name="song1.flac", source_path=str(music / "song3.flac")))
    plan = DiffEngine(music_dir).compute_diff(layout)
    results = [_result(e.relative_path, "Pop", e.file.name) for e in plan.to_create]

    index = IndexBuilder(music_dir).build(layout, plan, results)

    paths = [e.path for e in index.folders[0].files]
    assert paths == [e.relative_path for e in plan.to_create] == ["Pop/song2.pcm", "Pop/song1.pcm"]
    assert index.folders[0].files[1].name == "song1.flac"
