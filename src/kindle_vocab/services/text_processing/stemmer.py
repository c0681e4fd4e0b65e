"""Stem candidates for fuzzy, morphology-aware word search."""

import re
from typing import Optional, Protocol, Set

_LATIN_LETTER = re.compile(r"[A-Za-z]")
_WHITESPACE = re.compile(r"\s")


class Lemmatizer(Protocol):
    def lemmatize(self, word: str) -> Optional[str]:
        ...


class StemCandidateGenerator:
    """
    Derives candidate root forms for a single English search term.

    A lemma from the optional lemmatizer is preferred; common suffixes are
    stripped as a fallback. Multi-word and non-Latin input yields nothing.
    """

    def __init__(self, lemmatizer: Optional[Lemmatizer] = None):
        self._lemmatizer = lemmatizer

    def candidates(self, text: str) -> Set[str]:
        """
        Return candidate stems for ``text``, excluding the lowercase term itself.

        Args:
            text: Raw search term or word text

        Returns:
            Set of lowercase candidates, empty when the input is not a single
            Latin-alphabet token.
        """
        trimmed = (text or "").strip()
        if not trimmed:
            return set()
        if _WHITESPACE.search(trimmed) or not _LATIN_LETTER.search(trimmed):
            return set()

        lower = trimmed.lower()
        candidates: Set[str] = set()

        lemma = self._lemma(trimmed)
        if lemma:
            candidates.add(lemma)

        candidates.update(suffix_candidates(lower))
        candidates.discard(lower)
        return candidates

    def _lemma(self, word: str) -> Optional[str]:
        if self._lemmatizer is None:
            return None
        lemma = self._lemmatizer.lemmatize(word)
        return lemma.strip().lower() if lemma and lemma.strip() else None


def suffix_candidates(lower: str) -> Set[str]:
    """Strip common English inflection suffixes from a lowercase token.

    A suffix is only stripped when the token is longer than the suffix plus
    one character.
    """
    found: Set[str] = set()
    if len(lower) <= 3:
        return found

    if lower.endswith("ies") and len(lower) > 4:
        found.add(lower[:-3] + "y")
    if lower.endswith("ing") and len(lower) > 4:
        found.add(lower[:-3])
    if lower.endswith("es") and len(lower) > 3:
        found.add(lower[:-2])
    if lower.endswith("s") and len(lower) > 2:
        found.add(lower[:-1])
    if lower.endswith("ed") and len(lower) > 3:
        # peeved -> peeve (silent e after a single consonant), walked -> walk
        if len(lower) > 4 and lower[-4] == "e":
            found.add(lower[:-1])
        else:
            found.add(lower[:-2])
        # agreed -> agree, freed -> free
        if lower[-3] == "e":
            found.add(lower[:-1])
    return found
