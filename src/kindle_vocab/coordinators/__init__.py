"""Coordinators - session state and task scheduling over the store."""

from .task_scheduler import Lane, StoreTask, TaskScheduler, WorkerSignals
from .vocabulary_session import SessionError, SessionErrorKind, VocabularySession

__all__ = [
    "Lane",
    "StoreTask",
    "TaskScheduler",
    "WorkerSignals",
    "SessionError",
    "SessionErrorKind",
    "VocabularySession",
]
