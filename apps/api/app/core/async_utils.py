from __future__ import annotations

import asyncio
from functools import partial
from typing import Callable, Coroutine, TypeVar

import anyio

T = TypeVar("T")


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Run an async coroutine from sync code (CLI commands).

    - Inside an AnyIO worker thread, uses anyio.from_thread.run on the main loop.
    - Otherwise starts a fresh loop with anyio.run.
    - Raises if called from an async context in the same thread (use await instead).
    """

    async def _runner() -> T:
        if timeout is not None:
            with anyio.fail_after(timeout):
                return await coro
        return await coro

    try:
        return anyio.from_thread.run(_runner)
    except RuntimeError:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return anyio.run(_runner)
        raise RuntimeError("run_async called from async context; use await instead")


async def run_blocking(func: Callable[..., T], *args: object) -> T:
    """Run blocking work (bulk database writes) off the event loop."""
    return await anyio.to_thread.run_sync(partial(func, *args))
