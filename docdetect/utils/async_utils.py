"""
Helpers for calling collaborators that may be sync or async.
"""

import asyncio
import functools
import inspect
from concurrent.futures import Executor
from typing import Any, Callable, Optional


async def call_collaborator(
    fn: Callable[..., Any], *args: Any, executor: Optional[Executor] = None
) -> Any:
    """
    Await fn(*args) whether fn is a coroutine function or a blocking callable.

    Blocking callables run on `executor` (the loop's default pool when None)
    so they never stall the event loop. Cancelling the awaiting task does not
    stop a call that is already running in a thread.
    """
    if inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    ):
        return await fn(*args)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(executor, functools.partial(fn, *args))
    if inspect.isawaitable(result):
        result = await result
    return result
