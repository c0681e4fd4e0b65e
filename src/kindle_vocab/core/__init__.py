"""Domain layer - vocabulary entities, errors and cancellation primitives."""

from .cancellation import CANCELED, CancellationToken, Canceled, RequestState
from .errors import DatasetImportError, QueryError, StoreError, VocabularyError
from .vocabulary_entities import Book, UndoEntry, Usage, Word, WordStatus

__all__ = [
    "Book",
    "Word",
    "Usage",
    "WordStatus",
    "UndoEntry",
    "CANCELED",
    "Canceled",
    "CancellationToken",
    "RequestState",
    "VocabularyError",
    "StoreError",
    "QueryError",
    "DatasetImportError",
]
