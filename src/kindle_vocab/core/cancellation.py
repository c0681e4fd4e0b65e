"""Cooperative cancellation for store requests."""

import itertools
import threading
from enum import Enum


class RequestState(Enum):
    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELED = "canceled"


class Canceled(Enum):
    CANCELED = "canceled"

    def __repr__(self) -> str:
        return "CANCELED"


CANCELED = Canceled.CANCELED
"""Returned by a query instead of partial rows once its token is cancelled."""


class CancellationToken:
    """Identifies one request and carries its cancellation flag.

    Workers poll ``is_cancelled`` between rows; whoever delivers the result
    compares tokens to drop stale answers.
    """

    _ids = itertools.count(1)

    def __init__(self, kind: str = "") -> None:
        self.request_id = next(self._ids)
        self.kind = kind
        self.state = RequestState.IDLE
        self._cancelled = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def __repr__(self) -> str:
        return f"CancellationToken(id={self.request_id}, kind={self.kind!r}, state={self.state.value})"
