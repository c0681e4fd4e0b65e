"""Vocabulary entities shared by persistence, services and the session."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Mapping, Optional, Tuple


class WordStatus(IntEnum):
    """Learning state of a word, stored as the WORDS.category integer."""

    LEARNING = 0
    MASTERED = 100
    IGNORED = -1

    @classmethod
    def from_category(cls, category: int) -> "WordStatus":
        try:
            return cls(category)
        except ValueError:
            return cls.LEARNING


@dataclass
class Book:
    id: str
    title: str
    authors: str
    language: str
    word_count: int = 0
    is_mastered: bool = False

    @property
    def aggregation_key(self) -> Tuple[str, str]:
        return (self.title, self.authors)


@dataclass
class Usage:
    word_id: str
    book_id: str
    text: str
    timestamp: int
    """Epoch milliseconds."""


@dataclass
class Word:
    """One word as seen inside one book.

    ``database_id`` is the WORDS.id shared by every projection of the same word,
    ``id`` identifies the (word, book) pair inside a listing.
    """

    id: str
    database_id: str
    text: str
    stem: Optional[str]
    language: str
    status: WordStatus
    book_id: Optional[str]
    timestamp: int
    usage: Optional[str] = None
    all_usages: List[Usage] = field(default_factory=list)
    usage_count: int = 1
    book_title: Optional[str] = None
    book_authors: Optional[str] = None
    stem_other_book_count: int = 0

    @staticmethod
    def projection_id(database_id: str, book_id: str) -> str:
        return f"{database_id}_{book_id}"


@dataclass(frozen=True)
class UndoEntry:
    """Statuses captured right before one batch status change."""

    changes: Tuple[Tuple[str, WordStatus], ...]

    @classmethod
    def capture(
        cls, words: List[Word], pending: Optional[Mapping[str, WordStatus]] = None
    ) -> "UndoEntry":
        """Record each word's status, preferring a write still in flight over ``word.status``."""
        pending = pending or {}
        previous: Dict[str, WordStatus] = {}
        for word in words:
            previous.setdefault(word.database_id, pending.get(word.database_id, word.status))
        return cls(changes=tuple(previous.items()))

    def grouped_by_status(self) -> Dict[WordStatus, List[str]]:
        grouped: Dict[WordStatus, List[str]] = {}
        for word_id, status in self.changes:
            grouped.setdefault(status, []).append(word_id)
        return grouped
