"""Async helpers for Celery tasks."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Coroutine


def run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """
    Run a coroutine to completion from synchronous task code.

    Worker processes have no running loop, so a fresh one is used per call.
    When a loop is already running (eager execution inside the API), the
    coroutine gets its own loop on a helper thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()
