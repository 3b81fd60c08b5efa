"""Tests for settings file I/O and API settings resolution."""

import json

import pytest

import branchat.io.settings as settings_mod
from branchat.io.settings import ApiSettings


@pytest.fixture(autouse=True)
def config_home(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    for name in ("BRANCHAT_API_KEY", "BRANCHAT_BASE_URL", "BRANCHAT_MODEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestSettingsFile:
    def test_path_under_xdg_config_home(self, config_home):
        assert settings_mod.get_config_path() == config_home / "branchat" / "settings.json"

    def test_missing_file_is_empty(self):
        assert settings_mod.load_settings() == {}

    def test_corrupt_file_is_empty(self):
        path = settings_mod.get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("{oops", encoding="utf-8")
        assert settings_mod.load_settings() == {}

    def test_non_object_file_is_empty(self):
        path = settings_mod.get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("[1, 2]", encoding="utf-8")
        assert settings_mod.load_settings() == {}

    def test_save_and_load(self):
        settings_mod.save_settings({"a": 1})
        assert settings_mod.load_settings() == {"a": 1}
        assert not list(settings_mod.get_config_path().parent.glob("*.tmp"))

    def test_save_setting_merges(self):
        settings_mod.save_setting("a", 1)
        settings_mod.save_setting("b", "two")
        assert settings_mod.load_setting("a") == 1
        assert settings_mod.load_setting("b") == "two"
        assert settings_mod.load_setting("missing", "dflt") == "dflt"


class TestApiSettings:
    def test_defaults(self):
        s = ApiSettings()
        assert s.base_url == settings_mod.DEFAULT_BASE_URL
        assert not s.is_configured

    def test_base_url_gets_trailing_slash(self):
        assert ApiSettings(base_url="http://host/v1").base_url == "http://host/v1/"
        assert settings_mod.normalize_base_url("  ") == ""

    def test_from_dict_coerces_and_ignores(self):
        s = ApiSettings.from_dict(
            {"max_tokens": "256", "temperature": "bad", "unknown": 1, "model": "m"}
        )
        assert s.max_tokens == 256
        assert s.temperature == ApiSettings().temperature
        assert s.model == "m"

    def test_round_trip_through_file(self):
        original = ApiSettings(api_key="k", base_url="http://h/", model="m", top_p=0.5)
        settings_mod.save_api_settings(original)
        assert settings_mod.load_api_settings() == original
        stored = json.loads(settings_mod.get_config_path().read_text(encoding="utf-8"))
        assert stored["api"]["model"] == "m"

    def test_env_overrides_file(self, monkeypatch):
        settings_mod.save_api_settings(ApiSettings(api_key="file-key", model="file-model"))
        monkeypatch.setenv("BRANCHAT_API_KEY", "env-key")
        monkeypatch.setenv("BRANCHAT_BASE_URL", "http://env/v1")
        loaded = settings_mod.load_api_settings()
        assert loaded.api_key == "env-key"
        assert loaded.base_url == "http://env/v1/"
        assert loaded.model == "file-model"
        assert loaded.is_configured

    def test_non_dict_api_section_is_ignored(self):
        settings_mod.save_setting("api", "garbage")
        assert settings_mod.load_api_settings() == ApiSettings()
