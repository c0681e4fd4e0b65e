"""
Kindle Vocab - a vocabulary engine for words looked up on an e-reader.

This package provides:
- A SQLite store holding the device's vocabulary tables
- Merge import of device databases that keeps local progress
- Stem-aware search and related-word discovery
- A session with serialized store access, cancellation and undo
"""

__version__ = "0.1.0"

from kindle_vocab.core import Book, Usage, Word, WordStatus

__all__ = [
    "Book",
    "Usage",
    "Word",
    "WordStatus",
]
