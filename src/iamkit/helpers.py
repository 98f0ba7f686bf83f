"""
Small async helpers shared by the engine, hooks and storage backends.

Hooks, operators and storage methods may be plain callables or coroutine
functions; the engine awaits whatever they return when it is awaitable.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


async def maybe_await(value: "T | Awaitable[T]") -> T:
    """Await value if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine to completion from synchronous code.

    Raises:
        RuntimeError: If called from inside a running event loop
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    coro.close()
    msg = "run_sync() cannot be called from a running event loop; await the coroutine instead"
    raise RuntimeError(msg)
