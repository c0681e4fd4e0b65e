"""Merge an external vocabulary database into the local store."""

import shutil
import sqlite3
from pathlib import Path
from typing import Tuple

from kindle_vocab.core import DatasetImportError, StoreError
from kindle_vocab.io.database_manager import (
    BOOKS_TABLE,
    LOOKUPS_TABLE,
    WORDS_TABLE,
    DatabaseManager,
)
from kindle_vocab.logging_setup import get_logger

logger = get_logger(__name__)

SOURCE_ALIAS = "source"

# (stage, table, columns) in merge order. Explicit columns let a device file
# with extra columns merge into a store built from the minimal schema.
MERGE_STEPS: Tuple[Tuple[str, str, Tuple[str, ...]], ...] = (
    ("words", WORDS_TABLE, ("id", "word", "stem", "lang", "category")),
    ("books", BOOKS_TABLE, ("id", "title", "authors", "lang")),
    ("usages", LOOKUPS_TABLE, ("id", "word_key", "book_key", "usage", "timestamp")),
)


class DatasetImporter:
    """Incorporates an external dataset without clobbering local edits.

    Rows are only ever added: a primary key already present locally is
    skipped, so a word mastered locally keeps its status across re-syncs.
    """

    def import_dataset(self, source_path: Path, target_path: Path) -> int:
        """Copy or merge ``source_path`` into ``target_path``.

        Returns:
            Number of WORDS rows added to the target.

        Raises:
            DatasetImportError: Naming the stage that failed. Steps that did
                not complete leave no partial rows behind.
        """
        source_path = Path(source_path)
        target_path = Path(target_path)
        if not source_path.is_file():
            raise DatasetImportError("source", f"No dataset found at {source_path}")

        if not target_path.exists():
            added = self._copy_as_new_store(source_path, target_path)
        else:
            added = self._merge_into_store(source_path, target_path)
        logger.info("Imported %s: %d words added", source_path, added)
        return added

    def _copy_as_new_store(self, source_path: Path, target_path: Path) -> int:
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source_path, target_path)
        except OSError as e:
            raise DatasetImportError("copy", str(e)) from e

        try:
            store = DatabaseManager(target_path)
            try:
                return store.count_words()
            finally:
                store.close()
        except StoreError as e:
            target_path.unlink(missing_ok=True)
            raise DatasetImportError("copy", f"Copied file is not a vocabulary database: {e}") from e

    def _merge_into_store(self, source_path: Path, target_path: Path) -> int:
        try:
            connection = sqlite3.connect(target_path)
        except sqlite3.Error as e:
            raise DatasetImportError("attach", str(e)) from e

        try:
            try:
                connection.execute(f"ATTACH DATABASE ? AS {SOURCE_ALIAS}", (str(source_path),))
            except sqlite3.Error as e:
                raise DatasetImportError("attach", str(e)) from e

            added_words = 0
            try:
                for stage, table, columns in MERGE_STEPS:
                    inserted = self._insert_missing_rows(connection, stage, table, columns)
                    if table == WORDS_TABLE:
                        added_words = inserted
            except DatasetImportError:
                try:
                    connection.execute(f"DETACH DATABASE {SOURCE_ALIAS}")
                except sqlite3.Error as e:
                    logger.warning("Failed to detach import source %s: %s", source_path, e)
                raise

            try:
                connection.execute(f"DETACH DATABASE {SOURCE_ALIAS}")
            except sqlite3.Error as e:
                raise DatasetImportError("detach", str(e)) from e
        finally:
            connection.close()
        return added_words

    @staticmethod
    def _insert_missing_rows(
        connection: sqlite3.Connection, stage: str, table: str, columns: Tuple[str, ...]
    ) -> int:
        column_list = ", ".join(columns)
        try:
            with connection:
                cur = connection.execute(
                    f"""
                    INSERT OR IGNORE INTO main.{table} ({column_list})
                    SELECT {column_list} FROM {SOURCE_ALIAS}.{table}
                    """
                )
                inserted = cur.rowcount
        except sqlite3.Error as e:
            raise DatasetImportError(stage, str(e)) from e
        logger.debug("Merged %d new rows into %s", inserted, table)
        return inserted
