"""Vocabulary Session - live projection of books and words over the store."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from PySide6.QtCore import QObject, Signal

from kindle_vocab.core import (
    Book,
    CancellationToken,
    DatasetImportError,
    StoreError,
    UndoEntry,
    VocabularyError,
    Word,
    WordStatus,
)
from kindle_vocab.coordinators.task_scheduler import Lane, TaskScheduler
from kindle_vocab.io import (
    BookScope,
    DatabaseManager,
    DatasetImporter,
    VocabularyRepository,
    WordListingQuery,
)
from kindle_vocab.logging_setup import get_logger
from kindle_vocab.services import (
    CUSTOM_PROMPT_KEY,
    DEFAULT_PROMPT,
    PreferenceOverlay,
    StemCandidateGenerator,
    format_words,
)

logger = get_logger(__name__)

WORDS_REQUEST = "words"
STEM_MATCH_REQUEST = "stem_matches"


class SessionErrorKind(Enum):
    DATABASE = "Database Error"
    IMPORT = "Import Failed"
    SYNC = "Sync Failed"


@dataclass(frozen=True)
class SessionError:
    """The single user-facing error the presentation layer may show and dismiss."""

    kind: SessionErrorKind
    message: str

    @property
    def description(self) -> str:
        return f"{self.kind.value}: {self.message}"


class VocabularySession(QObject):
    """
    Owns the store for one application run and publishes its projection.

    Responsibilities:
    - Open, import into, export and clear the store file
    - Serialize every store operation on the scheduler's serial worker
    - Keep ``books`` and ``words`` current; only one word listing is in
      flight, a newer one supersedes it
    - Record status changes for undo
    - Run stem-match discovery on independent read-only connections

    All projection state is mutated in result callbacks, which the scheduler
    runs on the thread this object lives on.
    """

    books_changed = Signal(object)  # [Book]
    words_changed = Signal(object)  # [Word]
    usages_loaded = Signal(object)  # Word
    stem_matches_ready = Signal(object, object)  # CancellationToken, [Word]
    import_finished = Signal(int)  # added word count
    export_finished = Signal(object)  # Path
    loaded_changed = Signal(bool)
    error_changed = Signal(object)  # Optional[SessionError]

    def __init__(
        self,
        db_path: Path,
        stemmer: Optional[StemCandidateGenerator] = None,
        scheduler: Optional[TaskScheduler] = None,
        importer: Optional[DatasetImporter] = None,
        device_path: Optional[Path] = None,
        related_words_enabled: bool = True,
        stem_search_enabled: bool = True,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)

        if db_path is None:
            raise ValueError("Database path must not be None")

        self.db_path = Path(db_path)
        self.device_path = Path(device_path) if device_path else None
        self.related_words_enabled = related_words_enabled
        self.stem_search_enabled = stem_search_enabled
        self._stemmer = stemmer or StemCandidateGenerator()
        self._scheduler = scheduler or TaskScheduler(parent=self)
        self._importer = importer or DatasetImporter()

        self.books: List[Book] = []
        self.words: List[Word] = []
        self.undo_stack: List[UndoEntry] = []
        self.error: Optional[SessionError] = None
        self._is_loaded = False
        self._stem_token: Optional[CancellationToken] = None
        # Statuses submitted to the store whose write has not been delivered yet.
        self._pending_statuses: Dict[str, WordStatus] = {}
        self._pending_writes: Dict[str, int] = {}

        # Only touched from jobs on the serial worker (and close()).
        self._db: Optional[DatabaseManager] = None

    @property
    def is_loaded(self) -> bool:
        return self._is_loaded

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> bool:
        """Load the persistent store if it exists; returns False when there is none yet."""
        if not self.db_path.exists():
            logger.info("No store at %s yet, waiting for an import", self.db_path)
            return False

        self._scheduler.submit(
            lambda token: self._reload_store(),
            on_result=lambda _: self._store_loaded(),
            on_error=lambda error: self._store_failed(error),
            kind="open",
        )
        return True

    def close(self) -> None:
        """Stop the workers and release the store connection."""
        self._scheduler.shutdown()
        if self._db is not None:
            self._db.close()
            self._db = None
        self._set_loaded(False)

    def wait_for_idle(self, timeout_ms: int = 5000) -> bool:
        return self._scheduler.wait_for_idle(timeout_ms)

    def clear_all(self) -> None:
        """Delete the store file and empty every projection."""
        self._scheduler.submit(
            lambda token: self._delete_store(),
            on_result=lambda _: self._store_cleared(),
            on_error=lambda error: self._set_error(SessionErrorKind.DATABASE, error),
            kind="clear",
        )

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_books(self) -> Optional[CancellationToken]:
        if not self._is_loaded:
            return None
        return self._scheduler.submit(
            lambda token: self._repository().list_books(),
            on_result=self._publish_books,
            on_error=self._books_failed,
            kind="books",
        )

    def list_words(self, book_id: Optional[str] = None, search: str = "") -> Optional[CancellationToken]:
        """Refresh ``words`` for a book and/or search term, cancelling the previous request."""
        if not self._is_loaded:
            return None

        scope = self._resolve_scope(book_id) if book_id else None
        related_words = self.related_words_enabled
        stem_search = self.stem_search_enabled

        def job(token: CancellationToken):
            candidates = self._stemmer.candidates(search) if search and stem_search else set()
            query = WordListingQuery(
                scope=scope,
                search=search,
                stem_candidates=tuple(sorted(candidates)),
                related_words=related_words,
            )
            preferences = PreferenceOverlay(self._require_db()).load_preferences()
            return self._repository().list_words(query, preferences, token)

        return self._scheduler.submit(
            job,
            on_result=self._publish_words,
            on_error=self._words_failed,
            single_flight=WORDS_REQUEST,
        )

    def list_usages(self, word: Word) -> Optional[CancellationToken]:
        """Load the full usage history of ``word`` into its projection entry."""
        if not self._is_loaded or word.book_id is None:
            return None
        return self._scheduler.submit(
            lambda token: self._repository().list_usages(word.database_id, word.book_id),
            on_result=lambda usages: self._publish_usages(word.id, usages),
            on_error=lambda error: self._set_error(SessionErrorKind.DATABASE, error),
            kind="usages",
        )

    def list_stem_matches(self, word: Word, exclude_book_scope: bool = True) -> CancellationToken:
        """Find words sharing ``word``'s stem on a separate read-only connection.

        The answer arrives through ``stem_matches_ready`` with the returned
        token; failures yield an empty list.
        """
        db_path = self.db_path
        stemmer = self._stemmer if self.stem_search_enabled else None
        exclude_book_id = word.book_id if exclude_book_scope else None

        def job(token: CancellationToken):
            try:
                db = DatabaseManager.open_read_only(db_path)
                try:
                    candidates = stemmer.candidates(word.text) if stemmer else set()
                    result = VocabularyRepository(db.connection).list_stem_matches(
                        word, candidates, exclude_book_id, token
                    )
                finally:
                    db.close()
            except VocabularyError as e:
                logger.warning("Stem match lookup for %r failed: %s", word.text, e)
                result = []
            return result

        token = self._scheduler.submit(
            job,
            on_result=lambda words: self._publish_stem_matches(token, words),
            on_error=lambda error: self._publish_stem_matches(token, []),
            lane=Lane.STEM,
            single_flight=STEM_MATCH_REQUEST,
        )
        self._stem_token = token
        return token

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def set_status(self, words: Iterable[Word], status: WordStatus, record_undo: bool = True) -> None:
        """Set ``status`` on every store row sharing the ids of ``words``."""
        words = list(words)
        if not words:
            return

        entry = UndoEntry.capture(words, self._pending_statuses) if record_undo else None
        if entry is not None:
            self.undo_stack.append(entry)

        statuses = {word.database_id: status for word in words}
        self._mark_pending(statuses)
        self._scheduler.submit(
            lambda token: self._repository().update_status(list(statuses), status),
            on_result=lambda _: self._statuses_written(statuses),
            on_error=lambda error: self._status_write_failed(statuses, entry, error),
            kind="status",
        )

    def undo(self) -> bool:
        """Restore the statuses captured by the latest status change; False if none."""
        if not self.undo_stack:
            return False
        entry = self.undo_stack.pop()
        statuses = dict(entry.changes)
        logger.info("Undoing status change of %d word(s)", len(statuses))
        self._mark_pending(statuses)
        self._scheduler.submit(
            lambda token: self._repository().restore_statuses(entry),
            on_result=lambda _: self._statuses_written(statuses),
            on_error=lambda error: self._undo_failed(statuses, entry, error),
            kind="undo",
        )
        return True

    def master_selected(self, word_ids: Set[str]) -> None:
        self.set_status(
            [w for w in self.words if w.id in word_ids and w.status != WordStatus.MASTERED],
            WordStatus.MASTERED,
        )

    def master_all_learning(self) -> None:
        self.set_status([w for w in self.words if w.status == WordStatus.LEARNING], WordStatus.MASTERED)

    # ------------------------------------------------------------------
    # Preferences and settings
    # ------------------------------------------------------------------

    def set_preferred_usage(self, word_id: str, usage_text: str) -> None:
        """Show ``usage_text`` for ``word_id`` everywhere, now and in later listings."""
        if PreferenceOverlay.apply(self.words, word_id, usage_text):
            self.words_changed.emit(self.words)
        self._scheduler.submit(
            lambda token: PreferenceOverlay(self._require_db()).set_preferred_usage(word_id, usage_text),
            on_error=lambda error: self._set_error(SessionErrorKind.DATABASE, error),
            kind="preference",
        )

    def get_setting(self, key: str) -> Optional[str]:
        if not self._is_loaded:
            return None
        try:
            return self._scheduler.run_sync(lambda: self._require_db().get_setting(key))
        except StoreError as e:
            logger.error("Failed to get setting %s: %s", key, e)
            return None

    def set_setting(self, key: str, value: str) -> None:
        if not self._is_loaded:
            return
        self._scheduler.submit(
            lambda token: self._require_db().set_setting(key, value),
            on_error=lambda error: logger.error("Failed to save setting %s: %s", key, error),
            kind="setting",
        )

    def custom_prompt(self) -> str:
        return self.get_setting(CUSTOM_PROMPT_KEY) or DEFAULT_PROMPT

    def set_custom_prompt(self, prompt: str) -> None:
        self.set_setting(CUSTOM_PROMPT_KEY, prompt)

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def import_external(self, source_path: Path) -> None:
        """Merge ``source_path`` into the store; the count arrives via ``import_finished``."""
        self._submit_import(Path(source_path), SessionErrorKind.IMPORT)

    def sync_device(self) -> bool:
        """Import the connected device's vocabulary database, if one is mounted."""
        if self.device_path is None or not self.device_path.exists():
            self._set_error(
                SessionErrorKind.SYNC,
                DatasetImportError("source", f"No device found at {self.device_path}"),
            )
            return False
        self._submit_import(self.device_path, SessionErrorKind.SYNC)
        return True

    def export_database(self, destination: Path) -> None:
        self._scheduler.submit(
            lambda token: self._require_db().backup_to(Path(destination)),
            on_result=self.export_finished.emit,
            on_error=lambda error: self._set_error(SessionErrorKind.DATABASE, error),
            kind="export",
        )

    # ------------------------------------------------------------------
    # Text export
    # ------------------------------------------------------------------

    def format_selected(self, word_ids: Set[str]) -> str:
        return format_words(w for w in self.words if w.id in word_ids)

    def format_all_learning(self) -> str:
        return format_words(w for w in self.words if w.status == WordStatus.LEARNING)

    def dismiss_error(self) -> None:
        if self.error is not None:
            self.error = None
            self.error_changed.emit(None)

    # ------------------------------------------------------------------
    # Serial worker jobs
    # ------------------------------------------------------------------

    def _require_db(self) -> DatabaseManager:
        if self._db is None:
            raise StoreError("No database loaded")
        return self._db

    def _repository(self) -> VocabularyRepository:
        return VocabularyRepository(self._require_db().connection)

    def _reload_store(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None
        self._db = DatabaseManager.open(self.db_path)

    def _delete_store(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None
        for suffix in ("", "-journal", "-wal", "-shm"):
            path = self.db_path.with_name(self.db_path.name + suffix)
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise StoreError(f"Failed to clear database: {e}") from e
        logger.info("Cleared database at %s", self.db_path)

    def _submit_import(self, source_path: Path, error_kind: SessionErrorKind) -> None:
        def job(token: CancellationToken) -> int:
            added = self._importer.import_dataset(source_path, self.db_path)
            self._reload_store()
            return added

        self._scheduler.submit(
            job,
            on_result=self._import_done,
            on_error=lambda error: self._set_error(error_kind, error),
            kind="import",
        )

    # ------------------------------------------------------------------
    # Result callbacks (presentation thread)
    # ------------------------------------------------------------------

    def _resolve_scope(self, book_id: str) -> BookScope:
        book = next((b for b in self.books if b.id == book_id), None)
        if book is None:
            return BookScope(book_id=book_id)
        return BookScope(book_id=book_id, title=book.title, authors=book.authors)

    def _store_loaded(self) -> None:
        self._set_loaded(True)
        self.dismiss_error()
        self.list_books()

    def _store_failed(self, error: Exception) -> None:
        self._set_loaded(False)
        self._set_error(SessionErrorKind.DATABASE, error)

    def _store_cleared(self) -> None:
        self.books = []
        self.words = []
        self.undo_stack.clear()
        self._pending_statuses.clear()
        self._pending_writes.clear()
        self._set_loaded(False)
        self.dismiss_error()
        self.books_changed.emit(self.books)
        self.words_changed.emit(self.words)

    def _import_done(self, added: int) -> None:
        self._set_loaded(True)
        self.dismiss_error()
        self.import_finished.emit(added)
        self.list_books()

    def _publish_books(self, books: List[Book]) -> None:
        self.books = books
        self.books_changed.emit(self.books)

    def _books_failed(self, error: Exception) -> None:
        self.books = []
        self.books_changed.emit(self.books)
        self._set_error(SessionErrorKind.DATABASE, error)

    def _publish_words(self, words: List[Word]) -> None:
        self.words = words
        self.words_changed.emit(self.words)

    def _words_failed(self, error: Exception) -> None:
        self.words = []
        self.words_changed.emit(self.words)
        self._set_error(SessionErrorKind.DATABASE, error)

    def _publish_usages(self, projection_id: str, usages) -> None:
        for word in self.words:
            if word.id == projection_id:
                word.all_usages = usages
                self.usages_loaded.emit(word)
                return

    def _publish_stem_matches(self, token: CancellationToken, words: List[Word]) -> None:
        if token is not self._stem_token:
            return
        self.stem_matches_ready.emit(token, words)

    def _mark_pending(self, statuses: Dict[str, WordStatus]) -> None:
        for word_id, status in statuses.items():
            self._pending_statuses[word_id] = status
            self._pending_writes[word_id] = self._pending_writes.get(word_id, 0) + 1

    def _settle_pending(self, word_ids: Iterable[str]) -> None:
        for word_id in word_ids:
            remaining = self._pending_writes.get(word_id, 0) - 1
            if remaining > 0:
                self._pending_writes[word_id] = remaining
            else:
                self._pending_writes.pop(word_id, None)
                self._pending_statuses.pop(word_id, None)

    def _statuses_written(self, statuses: Dict[str, WordStatus]) -> None:
        self._settle_pending(statuses)
        changed = False
        for word in self.words:
            status = statuses.get(word.database_id)
            if status is not None and word.status != status:
                word.status = status
                changed = True
        if changed:
            self.words_changed.emit(self.words)
        self.list_books()

    def _status_write_failed(
        self, statuses: Dict[str, WordStatus], entry: Optional[UndoEntry], error: Exception
    ) -> None:
        self._settle_pending(statuses)
        if entry is not None:
            self.undo_stack = [e for e in self.undo_stack if e is not entry]
        self._set_error(SessionErrorKind.DATABASE, error)

    def _undo_failed(
        self, statuses: Dict[str, WordStatus], entry: UndoEntry, error: Exception
    ) -> None:
        self._settle_pending(statuses)
        # The store still holds the undone change, so it stays undoable.
        self.undo_stack.append(entry)
        self._set_error(SessionErrorKind.DATABASE, error)

    def _set_loaded(self, loaded: bool) -> None:
        if self._is_loaded != loaded:
            self._is_loaded = loaded
            self.loaded_changed.emit(loaded)

    def _set_error(self, kind: SessionErrorKind, error) -> None:
        if isinstance(error, DatasetImportError):
            message = f"{error.stage}: {error.message}"
        else:
            message = str(error)
        logger.error("%s: %s", kind.value, message)
        self.error = SessionError(kind, message)
        self.error_changed.emit(self.error)
