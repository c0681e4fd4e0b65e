"""Command line smoke tests over a temporary store."""

import logging

import pytest

from kindle_vocab.main import main

ENV = {
    "KINDLE_VOCAB_DB_PATH": "store/db.sqlite",
    "KINDLE_VOCAB_SPACY_MODEL": "xx_model_that_does_not_exist",
    "KINDLE_VOCAB_LOG_LEVEL": "WARNING",
}


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key, value in ENV.items():
        monkeypatch.setenv(key, str(tmp_path / value) if key == "KINDLE_VOCAB_DB_PATH" else value)
    monkeypatch.setenv("KINDLE_VOCAB_DEVICE_PATH", str(tmp_path / "no_device.db"))

    # main() installs its own console handler on the root logger.
    root_logger = logging.getLogger()
    handlers, level = root_logger.handlers[:], root_logger.level
    yield tmp_path
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def test_import_then_list(workdir, kindle_db, capsys):
    assert main(["import", str(kindle_db)]) == 0
    assert "5 words added" in capsys.readouterr().out

    assert main(["books"]) == 0
    out = capsys.readouterr().out
    assert "Dune by Frank Herbert (2)" in out
    assert "Emma by Jane Austen (4)" in out

    assert main(["words", "--search", "walked"]) == 0
    out = capsys.readouterr().out
    assert "walked" in out
    assert "spice" not in out


def test_learning_export_with_prompt(workdir, kindle_db, capsys):
    main(["import", str(kindle_db)])
    capsys.readouterr()

    assert main(["words", "--learning", "--with-prompt"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("For a given set of words")
    assert "spice\nThe spice must flow" in out


def test_sync_without_device_fails(workdir, capsys):
    assert main(["sync"]) == 1
    assert "Sync Failed" in capsys.readouterr().err
