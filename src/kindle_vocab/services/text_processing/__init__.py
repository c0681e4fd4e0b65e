"""Text processing services - stemming and lemmatization."""

from kindle_vocab.services.text_processing.lemma_service import LemmaService
from kindle_vocab.services.text_processing.stemmer import (
    Lemmatizer,
    StemCandidateGenerator,
    suffix_candidates,
)

__all__ = [
    "LemmaService",
    "Lemmatizer",
    "StemCandidateGenerator",
    "suffix_candidates",
]
