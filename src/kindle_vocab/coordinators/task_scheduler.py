"""Task Scheduler - serial store worker and stem-match pool on Qt threads."""

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from PySide6.QtCore import QCoreApplication, QObject, QRunnable, QThreadPool, Signal, Slot

from kindle_vocab.core import CANCELED, CancellationToken, RequestState
from kindle_vocab.logging_setup import get_logger

logger = get_logger(__name__)

Job = Callable[[CancellationToken], Any]
ResultCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]

# Set while a job runs on the serial worker thread.
_serial_context = threading.local()


class Lane(Enum):
    SERIAL = "serial"
    STEM = "stem"


class WorkerSignals(QObject):
    """
    Signals carrying a job's outcome back to the scheduler.

    QRunnable doesn't inherit from QObject, so we need a separate
    QObject to hold the signals.
    """
    finished = Signal(object, object)  # token, result
    error = Signal(object, object)  # token, exception
    canceled = Signal(object)  # token


class StoreTask(QRunnable):
    """
    Runs one job on a pool thread.

    A token cancelled before the job starts skips it; a job returning
    ``CANCELED`` (or whose token was cancelled meanwhile) reports canceled
    instead of a result.
    """

    def __init__(self, job: Job, token: CancellationToken, lane: Lane):
        super().__init__()
        self.job = job
        self.token = token
        self.lane = lane
        self.signals = WorkerSignals()
        self.setAutoDelete(True)

    @Slot()
    def run(self):
        if self.token.is_cancelled:
            self.signals.canceled.emit(self.token)
            return

        self.token.state = RequestState.RUNNING
        _serial_context.active = self.lane is Lane.SERIAL
        try:
            result = self.job(self.token)
        except Exception as e:
            self.signals.error.emit(self.token, e)
            return
        finally:
            _serial_context.active = False

        if result is CANCELED or self.token.is_cancelled:
            self.signals.canceled.emit(self.token)
        else:
            self.signals.finished.emit(self.token, result)


class _SyncTask(QRunnable):
    def __init__(self, job: Callable[[], Any], future: Future):
        super().__init__()
        self.job = job
        self.future = future
        self.setAutoDelete(True)

    def run(self):
        if not self.future.set_running_or_notify_cancel():
            return
        _serial_context.active = True
        try:
            self.future.set_result(self.job())
        except Exception as e:
            self.future.set_exception(e)
        finally:
            _serial_context.active = False


@dataclass
class _PendingTask:
    token: CancellationToken
    # Held until delivery so queued signals outlive the auto-deleted task.
    signals: WorkerSignals
    on_result: Optional[ResultCallback]
    on_error: Optional[ErrorCallback]
    single_flight: Optional[str]


class TaskScheduler(QObject):
    """
    Orders store access for a session.

    Every store-touching job runs on one serial worker in submission order.
    Stem-match jobs run on a separate pool with their own read connections.
    Results come back through queued signals to this object, which lives on
    the presentation thread, and callbacks run there.

    Jobs submitted with a ``single_flight`` key supersede the previous
    pending job of the same key: it is cancelled and its late result is
    dropped.
    """

    def __init__(self, stem_workers: int = 2, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._serial_pool = QThreadPool(self)
        self._serial_pool.setMaxThreadCount(1)
        self._stem_pool = QThreadPool(self)
        self._stem_pool.setMaxThreadCount(max(1, stem_workers))
        self._pending: Dict[int, _PendingTask] = {}
        self._single_flight: Dict[str, CancellationToken] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(
        self,
        job: Job,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        lane: Lane = Lane.SERIAL,
        single_flight: Optional[str] = None,
        kind: str = "",
    ) -> CancellationToken:
        """Queue ``job`` and return the token identifying the request."""
        token = CancellationToken(kind or single_flight or lane.value)

        if single_flight is not None:
            previous = self._single_flight.get(single_flight)
            if previous is not None:
                logger.debug("Superseding %r", previous)
                previous.cancel()
            self._single_flight[single_flight] = token

        task = StoreTask(job, token, lane)
        task.signals.finished.connect(self._on_finished)
        task.signals.error.connect(self._on_error)
        task.signals.canceled.connect(self._on_canceled)
        self._pending[token.request_id] = _PendingTask(
            token, task.signals, on_result, on_error, single_flight
        )

        token.state = RequestState.QUEUED
        pool = self._serial_pool if lane is Lane.SERIAL else self._stem_pool
        pool.start(task)
        return token

    def cancel(self, token: CancellationToken) -> None:
        token.cancel()

    def run_sync(self, job: Callable[[], Any], timeout: Optional[float] = None) -> Any:
        """Run ``job`` on the serial worker and block for its result.

        Runs inline when already called from the serial worker.
        """
        if getattr(_serial_context, "active", False):
            return job()
        future: Future = Future()
        task = _SyncTask(job, future)
        self._serial_pool.start(task)
        return future.result(timeout=timeout)

    def wait_for_idle(self, timeout_ms: int = 5000) -> bool:
        """Pump the presentation event loop until every submitted job is delivered.

        Returns:
            False if jobs were still pending when the timeout expired.
        """
        deadline = time.monotonic() + timeout_ms / 1000
        while self._pending:
            if time.monotonic() > deadline:
                return False
            self._serial_pool.waitForDone(10)
            self._stem_pool.waitForDone(10)
            QCoreApplication.processEvents()
        return True

    def shutdown(self) -> None:
        for pending in self._pending.values():
            pending.token.cancel()
        self._serial_pool.waitForDone()
        self._stem_pool.waitForDone()
        self._pending.clear()
        self._single_flight.clear()

    @Slot(object, object)
    def _on_finished(self, token: CancellationToken, result: Any) -> None:
        pending = self._take(token)
        if pending is None:
            return
        if token.is_cancelled:
            # Superseded while running; the late result must not be published.
            token.state = RequestState.CANCELED
            logger.debug("Dropped stale result of %r", token)
            return
        token.state = RequestState.COMPLETED
        if pending.on_result is not None:
            pending.on_result(result)

    @Slot(object, object)
    def _on_error(self, token: CancellationToken, error: Exception) -> None:
        pending = self._take(token)
        if pending is None:
            return
        token.state = RequestState.CANCELED if token.is_cancelled else RequestState.COMPLETED
        if token.is_cancelled:
            logger.debug("Ignored failure of cancelled %r: %s", token, error)
            return
        if pending.on_error is not None:
            pending.on_error(error)
        else:
            logger.error("Unhandled failure in %r: %s", token, error)

    @Slot(object)
    def _on_canceled(self, token: CancellationToken) -> None:
        self._take(token)
        token.state = RequestState.CANCELED
        logger.debug("Cancelled %r", token)

    def _take(self, token: CancellationToken) -> Optional[_PendingTask]:
        pending = self._pending.pop(token.request_id, None)
        if pending is not None and pending.single_flight is not None:
            if self._single_flight.get(pending.single_flight) is token:
                del self._single_flight[pending.single_flight]
        return pending
