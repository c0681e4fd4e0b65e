"""Lemma Service - best-effort English lemmatization backed by spaCy."""

import threading
from typing import Optional

import spacy
from spacy.language import Language

from kindle_vocab.logging_setup import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL = "en_core_web_sm"


class LemmaService:
    """
    Looks up the dictionary form of a single English word.

    The spaCy pipeline is loaded lazily on first use. When the model is not
    installed the service logs once and answers ``None`` from then on, so
    callers fall back to suffix heuristics.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL):
        self.model_name = model_name
        self._nlp: Optional[Language] = None
        self._unavailable = False
        # Shared by the serial worker and the stem-match pool.
        self._lock = threading.Lock()

    def lemmatize(self, word: str) -> Optional[str]:
        """Return the lowercase lemma of ``word`` or ``None`` when unknown."""
        if not word or not word.strip():
            return None

        with self._lock:
            nlp = self._load()
            if nlp is None:
                return None
            try:
                doc = nlp(word.strip())
            except Exception as exc:
                logger.warning("Lemma lookup failed for %r: %s", word, exc)
                return None

        if len(doc) == 0:
            return None
        lemma = doc[0].lemma_.strip().lower()
        return lemma or None

    def _load(self) -> Optional[Language]:
        if self._nlp is not None or self._unavailable:
            return self._nlp
        try:
            self._nlp = spacy.load(self.model_name, disable=["parser", "ner"])
        except OSError as exc:
            self._unavailable = True
            logger.warning(
                "spaCy model %r unavailable, stem search uses suffix rules only: %s",
                self.model_name,
                exc,
            )
        return self._nlp
