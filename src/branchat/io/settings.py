"""Settings file I/O for branchat.

Manages a JSON settings file at XDG_CONFIG_HOME/branchat/settings.json.
API connection settings live under the "api" key; other settings can be
added as top-level keys.

This module is a STABLE BOUNDARY.
Import as: import branchat.io.settings
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1/"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


def normalize_base_url(url: str) -> str:
    """Base URLs are joined with relative endpoints, so keep a trailing slash."""
    url = str(url or "").strip()
    if url and not url.endswith("/"):
        url += "/"
    return url


@dataclass(frozen=True)
class ApiSettings:
    """Connection and sampling settings for the model endpoint."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    temperature: float = 0.7
    top_p: float = 1.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    def __post_init__(self):
        object.__setattr__(self, "base_url", normalize_base_url(self.base_url))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_url)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ApiSettings":
        """Build from a settings dict, ignoring unknown keys and bad values."""
        defaults = cls()
        values = {}
        for f in dataclasses.fields(cls):
            if f.name not in data:
                continue
            default = getattr(defaults, f.name)
            try:
                values[f.name] = type(default)(data[f.name])
            except (TypeError, ValueError):
                logger.warning("ignoring invalid setting %s=%r", f.name, data[f.name])
        return cls(**values)


# ─── Settings file ───────────────────────────────────────────────────────────


def get_config_path() -> Path:
    """Return path to settings file.

    Uses XDG_CONFIG_HOME (default ~/.config) / branchat / settings.json.
    """
    config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "branchat" / "settings.json"


def load_settings() -> dict:
    """Load settings from JSON file. Returns empty dict on missing/corrupt file."""
    path = get_config_path()
    # [LAW:dataflow-not-control-flow] Always attempt read; empty dict is the "no data" value.
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(data: dict) -> None:
    """Atomic write of settings dict to JSON file.

    Creates parent directories if needed. Writes to temp file then renames
    to avoid partial writes on crash.
    """
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def load_setting(key: str, default=None):
    """Load a single setting by key. Returns default if absent."""
    return load_settings().get(key, default)


def save_setting(key: str, value) -> None:
    """Save a single setting by key (merge into existing settings)."""
    data = load_settings()
    data[key] = value
    save_settings(data)


# ─── API settings ────────────────────────────────────────────────────────────

# env var -> ApiSettings field. Env wins over the file.
_ENV_OVERRIDES = {
    "BRANCHAT_API_KEY": "api_key",
    "BRANCHAT_BASE_URL": "base_url",
    "BRANCHAT_MODEL": "model",
}


def load_api_settings() -> ApiSettings:
    """Load API settings from the settings file, then apply env overrides."""
    raw = load_setting("api", {})
    data = dict(raw) if isinstance(raw, dict) else {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name, "").strip()
        if value:
            data[field_name] = value
    return ApiSettings.from_dict(data)


def save_api_settings(settings: ApiSettings) -> None:
    save_setting("api", settings.to_dict())
