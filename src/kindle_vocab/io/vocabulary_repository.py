"""Read and status-write access to the vocabulary tables."""

import sqlite3
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from kindle_vocab.core import (
    CANCELED,
    Canceled,
    Book,
    CancellationToken,
    QueryError,
    StoreError,
    UndoEntry,
    Usage,
    Word,
    WordStatus,
)
from kindle_vocab.io.database_manager import WORDS_TABLE
from kindle_vocab.io.word_query_builder import (
    BOOK_LISTING_SQL,
    USAGE_HISTORY_SQL,
    WordListingQuery,
    build_stem_match_sql,
    build_word_listing_sql,
)
from kindle_vocab.logging_setup import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Stays below SQLITE_MAX_VARIABLE_NUMBER on old builds (999).
UPDATE_CHUNK_SIZE = 500

MIN_STEM_LENGTH = 3


def _column(row: sqlite3.Row, name: str, expected: Type[T], nullable: bool = False) -> Optional[T]:
    """Read ``name`` from ``row`` and check its type.

    Raises:
        QueryError: If the column is missing, NULL when not nullable, or of
            another type.
    """
    try:
        value = row[name]
    except (IndexError, KeyError) as e:
        raise QueryError(f"Result row has no column {name!r}") from e
    if value is None:
        if nullable:
            return None
        raise QueryError(f"Column {name!r} is NULL")
    if not isinstance(value, expected):
        raise QueryError(
            f"Column {name!r} has type {type(value).__name__}, expected {expected.__name__}"
        )
    return value


class VocabularyRepository:
    """Builds the book and word listings and applies status changes.

    Bound to one connection; the session hands it the serial worker's
    connection for listings and writes, and a separate read-only connection
    for stem-match discovery.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        if connection is None:
            raise StoreError("Database connection required")
        self.connection = connection
        self.connection.row_factory = sqlite3.Row

    def list_books(self) -> List[Book]:
        """Books with at least one word, merged on (title, authors), sorted by title."""
        try:
            rows = self.connection.execute(BOOK_LISTING_SQL).fetchall()
        except sqlite3.Error as e:
            raise QueryError(f"Failed to fetch books: {e}") from e

        books: Dict[Tuple[str, str], Book] = {}
        for row in rows:
            word_count = _column(row, "word_count", int)
            learning_count = _column(row, "learning_count", int, nullable=True) or 0
            if word_count <= 0:
                continue
            title = _column(row, "title", str, nullable=True) or ""
            authors = _column(row, "authors", str, nullable=True) or ""
            key = (title, authors)

            existing = books.get(key)
            if existing is not None:
                existing.word_count += word_count
                if learning_count > 0:
                    existing.is_mastered = False
                continue
            book = Book(
                id=_column(row, "id", str),
                title=title,
                authors=authors,
                language=_column(row, "lang", str, nullable=True) or "",
                word_count=word_count,
                is_mastered=learning_count == 0,
            )
            books[book.aggregation_key] = book
        return sorted(books.values(), key=lambda book: book.title)

    def list_words(
        self,
        query: WordListingQuery,
        preferred_usages: Optional[Mapping[str, str]] = None,
        token: Optional[CancellationToken] = None,
    ) -> Union[List[Word], Canceled]:
        """Run the word listing/search.

        Returns:
            The words, or ``CANCELED`` when ``token`` was cancelled while rows
            were being read.
        """
        sql, params = build_word_listing_sql(query)
        return self._collect_words(sql, params, preferred_usages or {}, token, "words")

    def list_usages(self, word_id: str, book_id: str) -> List[Usage]:
        """All usages of a word in a book, newest first, one per distinct text."""
        try:
            rows = self.connection.execute(
                USAGE_HISTORY_SQL, {"word_id": word_id, "book_id": book_id}
            ).fetchall()
        except sqlite3.Error as e:
            raise QueryError(f"Failed to fetch usages: {e}") from e

        usages: List[Usage] = []
        seen_texts = set()
        for row in rows:
            text = _column(row, "usage", str, nullable=True) or ""
            if text in seen_texts:
                continue
            seen_texts.add(text)
            usages.append(
                Usage(
                    word_id=word_id,
                    book_id=book_id,
                    text=text,
                    timestamp=_column(row, "timestamp", int, nullable=True) or 0,
                )
            )
        return usages

    def stored_stem(self, word_id: str) -> Optional[str]:
        try:
            row = self.connection.execute(
                f"SELECT stem FROM {WORDS_TABLE} WHERE id = ?", (word_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise QueryError(f"Failed to read stem of {word_id}: {e}") from e
        if row is None:
            return None
        stem = _column(row, "stem", str, nullable=True)
        return stem.strip() if stem and stem.strip() else None

    def list_stem_matches(
        self,
        word: Word,
        derived_candidates: Iterable[str] = (),
        exclude_book_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> Union[List[Word], Canceled]:
        """Words elsewhere in the store sharing the stem of ``word``.

        The stored stem wins; derived candidates shorter than three letters
        are ignored.
        """
        stored = self.stored_stem(word.database_id)
        stems: List[str] = [stored] if stored else []
        stored_lower = stored.lower() if stored else None
        for candidate in sorted(set(derived_candidates)):
            if len(candidate) >= MIN_STEM_LENGTH and candidate != stored_lower:
                stems.append(candidate)
        if not stems:
            return []

        sql, params = build_stem_match_sql(stems, exclude_book_id)
        return self._collect_words(sql, params, {}, token, "stem matches")

    def update_status(self, word_ids: Sequence[str], status: WordStatus) -> int:
        """Set ``status`` on every WORDS row whose id is in ``word_ids``."""
        ids = list(dict.fromkeys(word_ids))
        try:
            with self.connection:
                updated = self._update_category(ids, int(status))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to update status: {e}") from e
        logger.info("Set %d word(s) to %s", updated, status.name)
        return updated

    def restore_statuses(self, entry: UndoEntry) -> None:
        """Write back the statuses captured in ``entry`` in one transaction."""
        try:
            with self.connection:
                for status, ids in entry.grouped_by_status().items():
                    self._update_category(list(dict.fromkeys(ids)), int(status))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to undo status change: {e}") from e

    def _update_category(self, ids: List[str], category: int) -> int:
        updated = 0
        for start in range(0, len(ids), UPDATE_CHUNK_SIZE):
            chunk = ids[start:start + UPDATE_CHUNK_SIZE]
            placeholders = ", ".join("?" for _ in chunk)
            cur = self.connection.execute(
                f"UPDATE {WORDS_TABLE} SET category = ? WHERE id IN ({placeholders})",
                (category, *chunk),
            )
            updated += cur.rowcount
        return updated

    def _collect_words(
        self,
        sql: str,
        params: Dict[str, object],
        preferred_usages: Mapping[str, str],
        token: Optional[CancellationToken],
        label: str,
    ) -> Union[List[Word], Canceled]:
        words: List[Word] = []
        try:
            cursor = self.connection.execute(sql, params)
            for row in cursor:
                if token is not None and token.is_cancelled:
                    cursor.close()
                    logger.debug("Abandoned %s query for %r", label, token)
                    return CANCELED
                words.append(self._row_to_word(row, preferred_usages))
        except sqlite3.Error as e:
            raise QueryError(f"Failed to fetch {label}: {e}") from e
        if token is not None and token.is_cancelled:
            return CANCELED
        return words

    @staticmethod
    def _row_to_word(row: sqlite3.Row, preferred_usages: Mapping[str, str]) -> Word:
        database_id = _column(row, "word_id", str)
        book_id = _column(row, "book_id", str)
        usage = _column(row, "usage", str, nullable=True) or ""
        timestamp = _column(row, "latest_ts", int, nullable=True) or 0
        return Word(
            id=Word.projection_id(database_id, book_id),
            database_id=database_id,
            text=_column(row, "word", str, nullable=True) or "",
            stem=_column(row, "stem", str, nullable=True),
            language=_column(row, "lang", str, nullable=True) or "",
            status=WordStatus.from_category(_column(row, "category", int, nullable=True) or 0),
            book_id=book_id,
            timestamp=timestamp,
            usage=preferred_usages.get(database_id, usage),
            all_usages=[Usage(word_id=database_id, book_id=book_id, text=usage, timestamp=timestamp)],
            usage_count=_column(row, "usage_count", int, nullable=True) or 0,
            book_title=_column(row, "book_title", str, nullable=True),
            book_authors=_column(row, "book_authors", str, nullable=True),
            stem_other_book_count=_column(row, "stem_other_book_count", int, nullable=True) or 0,
        )
