"""Services layer - stemming, preferences, configuration and text export."""

from kindle_vocab.services.flashcard_formatter import (
    CUSTOM_PROMPT_KEY,
    DEFAULT_PROMPT,
    compose_prompt,
    format_words,
)
from kindle_vocab.services.preference_overlay import PREFERENCE_KEY_PREFIX, PreferenceOverlay
from kindle_vocab.services.settings_manager import SettingsManager

# Text processing services
from kindle_vocab.services.text_processing import LemmaService, StemCandidateGenerator

__all__ = [
    "CUSTOM_PROMPT_KEY",
    "DEFAULT_PROMPT",
    "compose_prompt",
    "format_words",
    "PREFERENCE_KEY_PREFIX",
    "PreferenceOverlay",
    "SettingsManager",
    "LemmaService",
    "StemCandidateGenerator",
]
