"""Executor factory utilities used by the repository connector."""

from __future__ import annotations

from concurrent import futures

Executor = futures.ThreadPoolExecutor


def create_executor(workers: int, *, name: str = "p2layout-transfer") -> Executor:
    """
    Return a bounded thread pool for IO-bound transfer work.

    Args:
        workers: Desired concurrency level; values below one are raised to one.
        name: Thread name prefix, visible in log records and thread dumps.

    Returns:
        A :class:`~concurrent.futures.ThreadPoolExecutor` the caller must shut down.
    """
    return futures.ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix=name)
