import json

from PCMSync.settings import AppSettings


def test_defaults():
    settings = AppSettings()
    assert settings.ffmpeg_path == ""
    assert settings.decode_timeout == 300
    assert settings.log_level == "INFO"


def test_save_and_load(tmp_path):
    path = str(tmp_path / "cfg" / "settings.json")
    AppSettings(ffmpeg_path="/opt/ffmpeg", decode_timeout=60).save(path)

    loaded = AppSettings.load(path)
    assert loaded.ffmpeg_path == "/opt/ffmpeg"
    assert loaded.decode_timeout == 60
    assert not (tmp_path / "cfg" / "settings.json.tmp").exists()


def test_load_ignores_unknown_and_mistyped_keys(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "decode_timeout": "soon",
        "stale_staging_max_age": True,
        "log_level": "DEBUG",
        "theme": "dark",
    }), encoding="utf-8")

    loaded = AppSettings.load(str(path))
    assert loaded.decode_timeout == 300
    assert loaded.stale_staging_max_age == 24 * 60 * 60
    assert loaded.log_level == "DEBUG"
    assert not hasattr(loaded, "theme")


def test_load_missing_or_corrupt(tmp_path):
    assert AppSettings.load(str(tmp_path / "none.json")) == AppSettings()
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    assert AppSettings.load(str(bad)) == AppSettings()
