"""
Application settings with JSON persistence.

Settings are stored in the user's app data directory:
  Windows: %APPDATA%/ESPTunes/settings.json
  macOS:   ~/Library/Application Support/ESPTunes/settings.json
  Linux:   ~/.config/ESPTunes/settings.json
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, asdict
from typing import Optional

logger = logging.getLogger(__name__)

APP_DIR_NAME = "ESPTunes"


def default_settings_dir() -> str:
    """Get the platform-appropriate settings directory."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA", os.path.expanduser("~"))
    elif sys.platform == "darwin":
        base = os.path.join(os.path.expanduser("~"), "Library", "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME", os.path.join(os.path.expanduser("~"), ".config"))
    return os.path.join(base, APP_DIR_NAME)


def default_settings_path() -> str:
    return os.path.join(default_settings_dir(), "settings.json")


@dataclass
class AppSettings:
    """All user-configurable settings."""

    # ── Decoding ────────────────────────────────────────────────────────────
    # Path to the ffmpeg binary (empty = search PATH and common locations).
    ffmpeg_path: str = ""

    # FFmpeg timeout in seconds per file.
    decode_timeout: int = 300

    # ── Staging ─────────────────────────────────────────────────────────────
    # Where raw payloads and the index are staged before reaching the device
    # (empty = system temp directory). Must not be on the device itself.
    staging_dir: str = ""

    # Leftover staging directories older than this (seconds) are swept at startup.
    stale_staging_max_age: int = 24 * 60 * 60

    # ── Logging ─────────────────────────────────────────────────────────────
    log_level: str = "INFO"

    def save(self, path: Optional[str] = None) -> None:
        """Write settings atomically (temp file + replace)."""
        path = path or default_settings_path()
        os.makedirs(os.path.dirname(path), exist_ok=True)

        tmp = path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(asdict(self), f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except Exception:
            try:
                os.remove(tmp)
            except OSError:
                pass
            raise

    @classmethod
    def load(cls, path: Optional[str] = None) -> "AppSettings":
        """Load settings from JSON, returning defaults for missing keys."""
        path = path or default_settings_path()
        settings = cls()
        if not os.path.exists(path):
            return settings
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                return settings
            # Only set known fields, ignore unknown keys
            for key, value in data.items():
                if hasattr(settings, key):
                    expected_type = type(getattr(settings, key))
                    # bool is an int subclass; don't let true/false land in int fields
                    if isinstance(value, bool) and expected_type is not bool:
                        continue
                    if isinstance(value, expected_type):
                        setattr(settings, key, value)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not load settings from {path}: {e}")
        return settings


# ── Singleton accessor ──────────────────────────────────────────────────────

_instance: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get the global settings instance (loaded once on first access)."""
    global _instance
    if _instance is None:
        _instance = AppSettings.load()
    return _instance


def reload_settings() -> AppSettings:
    """Force reload from disk."""
    global _instance
    _instance = AppSettings.load()
    return _instance
