"""Running probed calls, sync or async, under an optional deadline."""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
from typing import Any, Awaitable, Callable

from stateguard.diagnostics import ProbeTimeoutError


def is_async_callable(func: Any) -> bool:
    """Whether calling ``func`` returns a coroutine (async def or async __call__)."""
    if inspect.iscoroutinefunction(func):
        return True
    return inspect.iscoroutinefunction(getattr(func, "__call__", None))


def call_with_timeout(
    func: Callable[..., Any],
    kwargs: dict[str, Any] | None = None,
    timeout_ms: int | None = None,
) -> Any:
    """Call ``func(**kwargs)`` and return its result.

    Coroutine functions are driven to completion on their own event loop.
    With a ``timeout_ms`` the caller waits at most that long; a sync call
    that overruns is abandoned in its worker thread, not interrupted.

    Raises:
        ProbeTimeoutError: If the deadline passes first.
    """
    kwargs = kwargs or {}
    if is_async_callable(func):
        return _drive(_bounded(func(**kwargs), timeout_ms))
    if timeout_ms is None:
        return func(**kwargs)

    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        return pool.submit(func, **kwargs).result(timeout=timeout_ms / 1000)
    except concurrent.futures.TimeoutError:
        raise ProbeTimeoutError(timeout_ms) from None
    finally:
        pool.shutdown(wait=False)


async def _bounded(awaitable: Awaitable[Any], timeout_ms: int | None) -> Any:
    if timeout_ms is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        raise ProbeTimeoutError(timeout_ms) from None


def _drive(coro: Awaitable[Any]) -> Any:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)  # type: ignore[arg-type]

    # Called from inside a loop: give the coroutine a loop of its own
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()
