"""Error taxonomy raised by the vocabulary engine."""


class VocabularyError(RuntimeError):
    """Base class for every failure surfaced by the engine."""


class StoreError(VocabularyError):
    """The store could not be opened, indexed or written."""


class QueryError(VocabularyError):
    """A listing or search query failed or returned rows of an unexpected shape."""


class DatasetImportError(VocabularyError):
    """Copying or merging an external dataset failed at ``stage``."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"Import failed during {stage}: {message}")
        self.stage = stage
        self.message = message
