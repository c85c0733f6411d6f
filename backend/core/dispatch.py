# core/dispatch.py
"""
Fire-and-forget execution for settlement side effects.

Callers hand over a callable and never wait for it. Whatever the task
raises is logged here; it never reaches the submitting code.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from django.db import close_old_connections

logger = logging.getLogger(__name__)


class InlineDispatcher:
    """Runs the task immediately in the caller's thread (tests, scripts)."""

    def submit(self, fn, *args, **kwargs) -> None:
        _run_isolated(fn, *args, **kwargs)


class BackgroundDispatcher:
    """Runs tasks on a small daemon thread pool."""

    def __init__(self, max_workers: int = 4, name: str = "side-effects"):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=name,
        )

    def submit(self, fn, *args, **kwargs) -> None:
        try:
            self._executor.submit(_run_in_worker, fn, *args, **kwargs)
        except RuntimeError:
            # Executor already shut down (interpreter exit)
            logger.warning("Dispatcher closed, dropping task %s", getattr(fn, "__name__", fn))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _run_in_worker(fn, *args, **kwargs):
    close_old_connections()
    try:
        _run_isolated(fn, *args, **kwargs)
    finally:
        close_old_connections()


def _run_isolated(fn, *args, **kwargs):
    try:
        fn(*args, **kwargs)
    except Exception:
        logger.exception("Side-effect task %s failed", getattr(fn, "__name__", fn))
