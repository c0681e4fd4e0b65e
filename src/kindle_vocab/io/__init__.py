"""I/O layer - SQLite store, dataset import and vocabulary queries."""

from .database_manager import DatabaseManager
from .dataset_importer import DatasetImporter
from .vocabulary_repository import VocabularyRepository
from .word_query_builder import BookScope, WordListingQuery

__all__ = [
    "DatabaseManager",
    "DatasetImporter",
    "VocabularyRepository",
    "BookScope",
    "WordListingQuery",
]
