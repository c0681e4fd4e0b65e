"""SQLite-backed store for the Kindle vocabulary tables and user settings."""

import sqlite3
from pathlib import Path
from typing import Dict, Optional

from kindle_vocab.core import StoreError
from kindle_vocab.logging_setup import get_logger

logger = get_logger(__name__)

WORDS_TABLE = "WORDS"
LOOKUPS_TABLE = "LOOKUPS"
BOOKS_TABLE = "BOOK_INFO"
SETTINGS_TABLE = "settings"


class DatabaseManager:
    """Owns one SQLite connection to the vocabulary store.

    The file is usually a copy of the device's ``vocab.db``; the three core
    tables keep the device's names (BOOK_INFO, WORDS, LOOKUPS) so merges can
    read device files directly.
    """

    def __init__(self, db_path: Path, read_only: bool = False) -> None:
        self.db_path = Path(db_path)
        self.read_only = read_only
        try:
            if read_only:
                uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
                self.connection = sqlite3.connect(
                    uri, uri=True, timeout=5.0, check_same_thread=False
                )
            else:
                # Owned by the serial worker, whose pool may hand it to a new thread.
                self.connection = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open database {self.db_path}: {e}") from e
        self.connection.row_factory = sqlite3.Row

    @classmethod
    def open(cls, db_path: Path) -> "DatabaseManager":
        """Open the store for reading and writing and make sure the schema exists.

        Raises:
            StoreError: If the file cannot be opened, is not a database or
                indices cannot be created.
        """
        logger.info("Opening database at %s", db_path)
        manager = cls(db_path)
        try:
            manager.ensure_schema()
        except StoreError:
            manager.close()
            raise
        return manager

    @classmethod
    def open_read_only(cls, db_path: Path) -> "DatabaseManager":
        """Open an independent read-only connection (never used for writes)."""
        if not Path(db_path).exists():
            raise StoreError(f"Database not found: {db_path}")
        return cls(db_path, read_only=True)

    def ensure_schema(self) -> None:
        """Create the core tables when absent, then the settings table and indices."""
        try:
            cur = self.connection.cursor()
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {BOOKS_TABLE} (
                    id TEXT PRIMARY KEY NOT NULL,
                    title TEXT,
                    authors TEXT,
                    lang TEXT
                );
                """
            )
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {WORDS_TABLE} (
                    id TEXT PRIMARY KEY NOT NULL,
                    word TEXT,
                    stem TEXT,
                    lang TEXT,
                    category INTEGER DEFAULT 0
                );
                """
            )
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {LOOKUPS_TABLE} (
                    id TEXT PRIMARY KEY NOT NULL,
                    word_key TEXT,
                    book_key TEXT,
                    usage TEXT,
                    timestamp INTEGER DEFAULT 0
                );
                """
            )
            self.connection.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to create schema: {e}") from e
        self.ensure_indices()

    def ensure_indices(self) -> None:
        """Create the settings table and lookup indices. Safe to call on every open."""
        statements = (
            f"""
            CREATE TABLE IF NOT EXISTS {SETTINGS_TABLE} (
                key TEXT PRIMARY KEY NOT NULL,
                value TEXT
            );
            """,
            f"CREATE INDEX IF NOT EXISTS idx_lookups_word_key ON {LOOKUPS_TABLE} (word_key)",
            f"CREATE INDEX IF NOT EXISTS idx_lookups_book_key ON {LOOKUPS_TABLE} (book_key)",
            f"CREATE INDEX IF NOT EXISTS idx_lookups_word_book_ts ON {LOOKUPS_TABLE} (word_key, book_key, timestamp)",
            f"CREATE INDEX IF NOT EXISTS idx_lookups_book_word_ts ON {LOOKUPS_TABLE} (book_key, word_key, timestamp)",
            f"CREATE INDEX IF NOT EXISTS idx_words_id ON {WORDS_TABLE} (id)",
            f"CREATE INDEX IF NOT EXISTS idx_words_stem ON {WORDS_TABLE} (stem)",
        )
        try:
            cur = self.connection.cursor()
            for statement in statements:
                cur.execute(statement)
            self.connection.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to create indices: {e}") from e

    def get_setting(self, key: str) -> Optional[str]:
        try:
            cur = self.connection.cursor()
            cur.execute(f"SELECT value FROM {SETTINGS_TABLE} WHERE key = ?", (key,))
            row = cur.fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read setting {key}: {e}") from e
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        try:
            with self.connection:
                self.connection.execute(
                    f"INSERT OR REPLACE INTO {SETTINGS_TABLE} (key, value) VALUES (?, ?)",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to save setting {key}: {e}") from e

    def settings_with_prefix(self, prefix: str) -> Dict[str, str]:
        """Return ``{suffix: value}`` for every setting whose key starts with ``prefix``."""
        try:
            cur = self.connection.cursor()
            cur.execute(
                f"""
                SELECT key, value FROM {SETTINGS_TABLE}
                WHERE substr(key, 1, ?) = ?
                """,
                (len(prefix), prefix),
            )
            rows = cur.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read settings with prefix {prefix}: {e}") from e
        return {row["key"][len(prefix):]: row["value"] for row in rows}

    def count_words(self) -> int:
        try:
            cur = self.connection.cursor()
            cur.execute(f"SELECT COUNT(*) FROM {WORDS_TABLE}")
            return int(cur.fetchone()[0])
        except sqlite3.Error as e:
            raise StoreError(f"Failed to count words: {e}") from e

    def backup_to(self, destination: Path) -> Path:
        """Write a consistent copy of the whole store to ``destination``."""
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            target = sqlite3.connect(destination)
            try:
                self.connection.backup(target)
            finally:
                target.close()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Failed to export database to {destination}: {e}") from e
        logger.info("Exported database to %s", destination)
        return destination

    def close(self) -> None:
        self.connection.close()
