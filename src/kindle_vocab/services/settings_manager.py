"""Settings Manager - store location, device path and feature toggles."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from kindle_vocab.services.text_processing.lemma_service import DEFAULT_MODEL

DEFAULT_DEVICE_PATH = Path("/Volumes/Kindle/system/vocabulary/vocab.db")
DEFAULT_DATA_DIR = Path.home() / ".kindle_vocab"
DEFAULT_STEM_WORKERS = 2

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class SettingsManager:
    """
    Reads process-level configuration.

    Values come from the environment, seeded from a .env file in the project
    root. Per-user settings such as the custom prompt live in the store.
    """

    def __init__(self, project_root: Optional[Path] = None):
        """
        Initialize settings manager.

        Args:
            project_root: Path to project root where .env is located.
                         If None, searches upward from current file.
        """
        if project_root is None:
            current = Path(__file__).resolve()
            project_root = current.parent.parent.parent.parent

        self._project_root = Path(project_root)
        load_dotenv(dotenv_path=self._project_root / ".env")

    def get_database_path(self) -> Path:
        """Location of the persistent store; its directory is created if needed."""
        configured = self._get("KINDLE_VOCAB_DB_PATH")
        path = Path(configured).expanduser() if configured else DEFAULT_DATA_DIR / "db.sqlite"
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def get_device_path(self) -> Path:
        configured = self._get("KINDLE_VOCAB_DEVICE_PATH")
        return Path(configured).expanduser() if configured else DEFAULT_DEVICE_PATH

    def is_related_words_enabled(self) -> bool:
        return self._get_bool("KINDLE_VOCAB_ENABLE_RELATED_WORDS", True)

    def is_stem_search_enabled(self) -> bool:
        return self._get_bool("KINDLE_VOCAB_ENABLE_STEM_SEARCH", True)

    def get_spacy_model(self) -> str:
        return self._get("KINDLE_VOCAB_SPACY_MODEL") or DEFAULT_MODEL

    def get_stem_workers(self) -> int:
        value = self._get("KINDLE_VOCAB_STEM_WORKERS")
        try:
            return max(1, int(value)) if value else DEFAULT_STEM_WORKERS
        except ValueError:
            return DEFAULT_STEM_WORKERS

    def get_log_level(self) -> str:
        return (self._get("KINDLE_VOCAB_LOG_LEVEL") or "INFO").upper()

    def reload_env(self) -> None:
        """Reload environment variables from .env file."""
        load_dotenv(dotenv_path=self._project_root / ".env", override=True)

    @staticmethod
    def _get(name: str) -> Optional[str]:
        value = os.getenv(name)
        return value.strip() if value and value.strip() else None

    def _get_bool(self, name: str, default: bool) -> bool:
        value = self._get(name)
        if value is None:
            return default
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        return default
