"""Preferred usage examples chosen by the user, kept in the settings table."""

from typing import Dict, Iterable

from kindle_vocab.core import Word
from kindle_vocab.io import DatabaseManager

PREFERENCE_KEY_PREFIX = "pref_usage_"


class PreferenceOverlay:
    """Maps a word id to the usage text shown instead of the latest one."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def set_preferred_usage(self, word_id: str, usage_text: str) -> None:
        self._db.set_setting(f"{PREFERENCE_KEY_PREFIX}{word_id}", usage_text)

    def load_preferences(self) -> Dict[str, str]:
        return self._db.settings_with_prefix(PREFERENCE_KEY_PREFIX)

    @staticmethod
    def apply(words: Iterable[Word], word_id: str, usage_text: str) -> int:
        """Show ``usage_text`` on every word sharing ``word_id``; returns how many changed."""
        changed = 0
        for word in words:
            if word.database_id == word_id:
                word.usage = usage_text
                changed += 1
        return changed
