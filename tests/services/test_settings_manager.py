"""Unit tests for SettingsManager."""

import os
from pathlib import Path

import pytest

from kindle_vocab.services import SettingsManager
from kindle_vocab.services.settings_manager import DEFAULT_DEVICE_PATH, DEFAULT_STEM_WORKERS

ENV_KEYS = (
    "KINDLE_VOCAB_DB_PATH",
    "KINDLE_VOCAB_DEVICE_PATH",
    "KINDLE_VOCAB_ENABLE_RELATED_WORDS",
    "KINDLE_VOCAB_ENABLE_STEM_SEARCH",
    "KINDLE_VOCAB_SPACY_MODEL",
    "KINDLE_VOCAB_STEM_WORKERS",
    "KINDLE_VOCAB_LOG_LEVEL",
)


@pytest.fixture
def clean_env():
    """Remove KINDLE_VOCAB_* variables before and restore them after each test."""
    saved = {key: os.environ.pop(key, None) for key in ENV_KEYS}
    yield
    for key, value in saved.items():
        if value is not None:
            os.environ[key] = value
        else:
            os.environ.pop(key, None)


def _settings(tmp_path: Path, content: str = "") -> SettingsManager:
    (tmp_path / ".env").write_text(content)
    return SettingsManager(project_root=tmp_path)


class TestDatabasePath:
    def test_path_from_env_file_creates_parent(self, tmp_path, clean_env):
        db_path = tmp_path / "data" / "store.sqlite"
        settings = _settings(tmp_path, f"KINDLE_VOCAB_DB_PATH={db_path}\n")

        assert settings.get_database_path() == db_path
        assert db_path.parent.is_dir()

    def test_device_path_defaults_to_mounted_kindle(self, tmp_path, clean_env):
        settings = _settings(tmp_path)
        assert settings.get_device_path() == DEFAULT_DEVICE_PATH

    def test_device_path_strips_whitespace(self, tmp_path, clean_env):
        settings = _settings(tmp_path, "KINDLE_VOCAB_DEVICE_PATH=  /mnt/kindle/vocab.db  \n")
        assert settings.get_device_path() == Path("/mnt/kindle/vocab.db")


class TestFeatureToggles:
    def test_enabled_by_default(self, tmp_path, clean_env):
        settings = _settings(tmp_path)

        assert settings.is_related_words_enabled() is True
        assert settings.is_stem_search_enabled() is True

    @pytest.mark.parametrize("value", ["0", "false", "No", "off"])
    def test_disabled_values(self, tmp_path, clean_env, value):
        settings = _settings(tmp_path, f"KINDLE_VOCAB_ENABLE_RELATED_WORDS={value}\n")
        assert settings.is_related_words_enabled() is False

    def test_unrecognised_value_keeps_default(self, tmp_path, clean_env):
        settings = _settings(tmp_path, "KINDLE_VOCAB_ENABLE_STEM_SEARCH=maybe\n")
        assert settings.is_stem_search_enabled() is True


class TestWorkersAndLogging:
    def test_stem_workers_default(self, tmp_path, clean_env):
        assert _settings(tmp_path).get_stem_workers() == DEFAULT_STEM_WORKERS

    def test_stem_workers_invalid_falls_back(self, tmp_path, clean_env):
        settings = _settings(tmp_path, "KINDLE_VOCAB_STEM_WORKERS=many\n")
        assert settings.get_stem_workers() == DEFAULT_STEM_WORKERS

    def test_stem_workers_at_least_one(self, tmp_path, clean_env):
        settings = _settings(tmp_path, "KINDLE_VOCAB_STEM_WORKERS=0\n")
        assert settings.get_stem_workers() == 1

    def test_log_level_uppercased(self, tmp_path, clean_env):
        settings = _settings(tmp_path, "KINDLE_VOCAB_LOG_LEVEL=debug\n")
        assert settings.get_log_level() == "DEBUG"

    def test_spacy_model_default(self, tmp_path, clean_env):
        assert _settings(tmp_path).get_spacy_model() == "en_core_web_sm"


class TestReload:
    def test_reload_env_picks_up_changes(self, tmp_path, clean_env):
        env_file = tmp_path / ".env"
        env_file.write_text("KINDLE_VOCAB_LOG_LEVEL=INFO\n")
        settings = SettingsManager(project_root=tmp_path)
        assert settings.get_log_level() == "INFO"

        env_file.write_text("KINDLE_VOCAB_LOG_LEVEL=WARNING\n")
        settings.reload_env()
        assert settings.get_log_level() == "WARNING"

    def test_missing_env_file_uses_defaults(self, tmp_path, clean_env):
        settings = SettingsManager(project_root=tmp_path)

        assert settings.get_log_level() == "INFO"
        assert settings.get_stem_workers() == DEFAULT_STEM_WORKERS
