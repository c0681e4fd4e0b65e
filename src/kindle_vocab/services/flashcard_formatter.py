"""Plain-text rendering of selected words for flashcard generation."""

from typing import Iterable

from kindle_vocab.core import Word

CUSTOM_PROMPT_KEY = "customPrompt"

DEFAULT_PROMPT = """For a given set of words and usage samples, generate RemNote flashcards in the following format:

word>>3 most frequent translations, ordered by descending frequency, with the most frequent translation wrapped in **bold**. After the translations, add a usage sample enclosed in backticks (``). At least one translation must be derived from the provided usage. If a word has fewer than three frequent translations, list only the available ones.
Each flashcard must be on a new line. Do not add any text, comments, or explanations, output **only** the generated flashcards.

Example:
test>>**translation1**, translation2, translation3 `Usage example`"""


def format_words(words: Iterable[Word]) -> str:
    """One ``text`` line followed by its displayed usage, blocks separated by a blank line."""
    return "\n\n".join(f"{word.text}\n{word.usage or ''}" for word in words)


def compose_prompt(prompt: str, body: str) -> str:
    return f"{prompt}\n\n{body}"
