#!/usr/bin/env python3
"""
Tests for TaskScheduler - serial ordering, single-flight cancellation and delivery.
"""

import threading
import time

import pytest
from PySide6.QtCore import QCoreApplication

from kindle_vocab.coordinators import Lane, TaskScheduler
from kindle_vocab.core import CANCELED, RequestState


def ensure_qt_app():
    if QCoreApplication.instance() is None:
        QCoreApplication([])


@pytest.fixture
def scheduler():
    ensure_qt_app()
    task_scheduler = TaskScheduler(stem_workers=2)
    yield task_scheduler
    task_scheduler.shutdown()


def test_serial_jobs_run_in_submission_order(scheduler):
    ran = []
    delivered = []

    for i in range(5):
        scheduler.submit(
            lambda token, i=i: (time.sleep(0.01 * (5 - i)), ran.append(i), i)[-1],
            on_result=delivered.append,
        )

    assert scheduler.wait_for_idle()
    assert ran == [0, 1, 2, 3, 4]
    assert delivered == [0, 1, 2, 3, 4]


def test_result_delivered_on_calling_thread(scheduler):
    delivery_threads = []

    scheduler.submit(
        lambda token: threading.get_ident(),
        on_result=lambda worker: delivery_threads.append((worker, threading.get_ident())),
    )

    assert scheduler.wait_for_idle()
    worker, receiver = delivery_threads[0]
    assert receiver == threading.get_ident()
    assert worker != receiver


def test_newer_single_flight_request_supersedes_older(scheduler):
    gate = threading.Event()
    delivered = []

    first = scheduler.submit(
        lambda token: (gate.wait(2), "first")[-1],
        on_result=delivered.append,
        single_flight="words",
    )
    second = scheduler.submit(lambda token: "second", on_result=delivered.append, single_flight="words")
    gate.set()

    assert scheduler.wait_for_idle()
    assert first.is_cancelled
    assert first.state == RequestState.CANCELED
    assert second.state == RequestState.COMPLETED
    assert delivered == ["second"]


def test_cancelled_before_start_never_runs(scheduler):
    gate = threading.Event()
    ran = []

    scheduler.submit(lambda token: gate.wait(2))
    queued = scheduler.submit(lambda token: ran.append("queued"))
    scheduler.cancel(queued)
    gate.set()

    assert scheduler.wait_for_idle()
    assert ran == []
    assert queued.state == RequestState.CANCELED


def test_job_returning_canceled_is_not_delivered(scheduler):
    delivered = []

    token = scheduler.submit(lambda token: CANCELED, on_result=delivered.append)

    assert scheduler.wait_for_idle()
    assert delivered == []
    assert token.state == RequestState.CANCELED


def test_errors_route_to_error_callback(scheduler):
    errors = []

    def job(token):
        raise RuntimeError("boom")

    scheduler.submit(job, on_result=lambda _: pytest.fail("no result expected"), on_error=errors.append)

    assert scheduler.wait_for_idle()
    assert [str(e) for e in errors] == ["boom"]


def test_run_sync_returns_value(scheduler):
    assert scheduler.run_sync(lambda: 42, timeout=2) == 42


def test_run_sync_raises_job_error(scheduler):
    def job():
        raise ValueError("bad")

    with pytest.raises(ValueError, match="bad"):
        scheduler.run_sync(job, timeout=2)


def test_run_sync_inside_serial_job_runs_inline(scheduler):
    results = []

    scheduler.submit(lambda token: scheduler.run_sync(lambda: "inline"), on_result=results.append)

    assert scheduler.wait_for_idle()
    assert results == ["inline"]


def test_stem_lane_runs_beside_blocked_serial_worker(scheduler):
    gate = threading.Event()
    results = []

    scheduler.submit(lambda token: gate.wait(2))
    scheduler.submit(lambda token: "stem", on_result=results.append, lane=Lane.STEM)

    deadline = time.monotonic() + 2
    while not results and time.monotonic() < deadline:
        QCoreApplication.processEvents()
        time.sleep(0.01)
    gate.set()

    assert results == ["stem"]
    assert scheduler.wait_for_idle()
    assert scheduler.pending_count == 0
