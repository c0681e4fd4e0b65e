"""Main entry point for the kindle_vocab command line."""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from PySide6.QtCore import QCoreApplication

from kindle_vocab.coordinators import TaskScheduler, VocabularySession
from kindle_vocab.core import Word
from kindle_vocab.logging_setup import setup_logging
from kindle_vocab.services import (
    LemmaService,
    SettingsManager,
    StemCandidateGenerator,
    compose_prompt,
)

IDLE_TIMEOUT_MS = 120_000


def build_session(settings: SettingsManager) -> VocabularySession:
    """
    Wire the engine following the Composition Root pattern.
    This is the only place that knows how to instantiate every component.
    """
    stemmer = StemCandidateGenerator(LemmaService(settings.get_spacy_model()))
    scheduler = TaskScheduler(stem_workers=settings.get_stem_workers())
    return VocabularySession(
        db_path=settings.get_database_path(),
        stemmer=stemmer,
        scheduler=scheduler,
        device_path=settings.get_device_path(),
        related_words_enabled=settings.is_related_words_enabled(),
        stem_search_enabled=settings.is_stem_search_enabled(),
    )


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="kindle-vocab", description="Kindle vocabulary engine")
    commands = parser.add_subparsers(dest="command", required=True)

    import_cmd = commands.add_parser("import", help="merge a vocab.db into the local store")
    import_cmd.add_argument("path", type=Path)
    commands.add_parser("sync", help="import from the connected device")
    commands.add_parser("books", help="list books")

    words_cmd = commands.add_parser("words", help="list or search words")
    words_cmd.add_argument("--book", dest="book_id")
    words_cmd.add_argument("--search", default="")
    words_cmd.add_argument("--learning", action="store_true", help="flashcard text of learning words")
    words_cmd.add_argument("--with-prompt", action="store_true", help="prepend the custom prompt")

    export_cmd = commands.add_parser("export", help="write a copy of the store")
    export_cmd.add_argument("destination", type=Path)
    commands.add_parser("clear", help="delete the local store")
    return parser.parse_args(argv)


def _print_words(words: List[Word]) -> None:
    for word in words:
        related = f" (+{word.stem_other_book_count} books)" if word.stem_other_book_count else ""
        print(f"[{word.status.name.lower():8}] {word.text}{related}  {word.book_title or ''}")
        if word.usage:
            print(f"           {word.usage}")


def run(session: VocabularySession, args: argparse.Namespace) -> int:
    session.open()
    session.wait_for_idle(IDLE_TIMEOUT_MS)

    if args.command in ("import", "sync"):
        added: List[int] = []
        session.import_finished.connect(added.append)
        if args.command == "import":
            session.import_external(args.path)
        else:
            session.sync_device()
        session.wait_for_idle(IDLE_TIMEOUT_MS)
        if added:
            print(f"Imported. {added[0]} words added")
    elif args.command == "books":
        for book in session.books:
            marker = "✓" if book.is_mastered else " "
            print(f"{marker} {book.id}  {book.title} by {book.authors} ({book.word_count})")
    elif args.command == "words":
        session.list_words(args.book_id, args.search)
        session.wait_for_idle(IDLE_TIMEOUT_MS)
        if args.learning:
            text = session.format_all_learning()
            print(compose_prompt(session.custom_prompt(), text) if args.with_prompt else text)
        else:
            _print_words(session.words)
    elif args.command == "export":
        session.export_database(args.destination)
        session.wait_for_idle(IDLE_TIMEOUT_MS)
    elif args.command == "clear":
        session.clear_all()
        session.wait_for_idle(IDLE_TIMEOUT_MS)

    if session.error is not None:
        print(session.error.description, file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    # 1. Configuration and logging
    settings = SettingsManager(project_root=Path.cwd())
    setup_logging(settings.get_log_level())

    # 2. Event loop for result delivery (no widgets)
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("Kindle Vocab")
    app.setOrganizationName("KindleVocab")

    # 3. Wire the session and run the command
    session = build_session(settings)
    try:
        return run(session, args)
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
