"""Shared fixtures: Kindle-style vocab.db files built in tmp_path."""

import sqlite3
from pathlib import Path

import pytest

# Device schema, including the columns the store itself never reads.
KINDLE_SCHEMA = (
    """
    CREATE TABLE BOOK_INFO (
        id TEXT PRIMARY KEY NOT NULL,
        asin TEXT,
        guid TEXT,
        lang TEXT,
        title TEXT,
        authors TEXT
    )
    """,
    """
    CREATE TABLE WORDS (
        id TEXT PRIMARY KEY NOT NULL,
        word TEXT,
        stem TEXT,
        lang TEXT,
        category INTEGER DEFAULT 0,
        timestamp INTEGER DEFAULT 0,
        profileid TEXT
    )
    """,
    """
    CREATE TABLE LOOKUPS (
        id TEXT PRIMARY KEY NOT NULL,
        word_key TEXT,
        book_key TEXT,
        dict_key TEXT,
        pos TEXT,
        usage TEXT,
        timestamp INTEGER DEFAULT 0
    )
    """,
)

# (id, title, authors)
SAMPLE_BOOKS = [
    ("b1", "Dune", "Frank Herbert"),
    # Second import of the same book from another device.
    ("b2", "Dune", "Frank Herbert"),
    ("b3", "Emma", "Jane Austen"),
]

# (id, word, stem, category)
SAMPLE_WORDS = [
    ("en:walk", "walk", "walk", 0),
    ("en:walked", "walked", "walk", 0),
    ("en:cats", "cats", "cat", 100),
    ("en:the", "the", "the", -1),
    ("en:spice", "spice", "spice", 0),
]

# (id, word_key, book_key, usage, timestamp)
SAMPLE_LOOKUPS = [
    ("l1", "en:walk", "b1", "I walk on sand", 1000),
    ("l2", "en:walk", "b1", "I walk again", 3000),
    ("l3", "en:walk", "b1", "I walk again", 2000),
    ("l4", "en:walked", "b3", "She walked home", 4000),
    ("l5", "en:cats", "b3", "The cats slept", 5000),
    ("l6", "en:the", "b3", "the end", 6000),
    ("l7", "en:spice", "b2", "The spice must flow", 7000),
    ("l8", "en:walk", "b3", "walk with me", 500),
]


def build_kindle_db(path: Path, books=(), words=(), lookups=()) -> Path:
    """Write a vocab.db with the device schema and the given rows."""
    conn = sqlite3.connect(path)
    try:
        for statement in KINDLE_SCHEMA:
            conn.execute(statement)
        conn.executemany(
            "INSERT INTO BOOK_INFO (id, asin, guid, lang, title, authors) VALUES (?, 'asin', 'guid', 'en', ?, ?)",
            books,
        )
        conn.executemany(
            "INSERT INTO WORDS (id, word, stem, lang, category, profileid) VALUES (?, ?, ?, 'en', ?, '')",
            words,
        )
        conn.executemany(
            "INSERT INTO LOOKUPS (id, word_key, book_key, dict_key, pos, usage, timestamp) "
            "VALUES (?, ?, ?, 'dict', '0', ?, ?)",
            lookups,
        )
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def kindle_db(tmp_path):
    """A device vocab.db with three books (two are copies of Dune) and five words."""
    return build_kindle_db(
        tmp_path / "vocab.db", SAMPLE_BOOKS, SAMPLE_WORDS, SAMPLE_LOOKUPS
    )


@pytest.fixture
def make_kindle_db(tmp_path):
    """Factory for extra vocab.db files: ``make_kindle_db(name, books, words, lookups)``."""

    def _make(name: str, books=(), words=(), lookups=()) -> Path:
        return build_kindle_db(tmp_path / name, books, words, lookups)

    return _make
