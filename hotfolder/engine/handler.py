"""Run the caller's file handler under a deadline.

Whatever the handler does (returns, raises, hangs) is turned into a
:class:`HandlerResult`; nothing escapes into the poll loop.
"""

import asyncio
import importlib
import inspect
import logging
from collections.abc import Callable
from typing import Any

from hotfolder.schemas.hotfolder import FileInfo, HandlerResult
from hotfolder.store.base import NameCollisionError

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timeout"


def resolve_handler(ref: str) -> Callable[..., Any]:
    """Import a handler from ``"package.module:attr"`` or ``"package.module.attr"``.

    Raises:
        ValueError: If the reference is malformed, cannot be imported, or does
            not name a callable.
    """
    module_name, sep, attr = ref.partition(":")
    if not sep:
        module_name, _, attr = ref.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"Handler reference must look like 'module:function', got {ref!r}")

    try:
        target: Any = importlib.import_module(module_name)
        for part in attr.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError) as exc:
        raise ValueError(f"Cannot load handler {ref!r}: {exc}") from exc

    if not callable(target):
        raise ValueError(f"Handler {ref!r} is not callable")
    return target


async def invoke_handler(
    handler: Callable[..., Any],
    info: FileInfo,
    timeout_ms: int,
    *,
    extra_args: tuple[Any, ...] = (),
) -> HandlerResult:
    """Call *handler* with *info* and return its outcome.

    Coroutine functions are awaited on the loop; plain callables run in a
    worker thread. A thread that overruns the deadline cannot be killed and is
    left to finish on its own.

    Returns:
        ``HandlerResult.success(value)`` for a normal return (a returned
        :class:`HandlerResult` is passed through), otherwise a failure with
        reason ``"timeout"`` or ``"abnormal termination: ..."``.
    """
    if not callable(handler):
        return HandlerResult.failure(f"bad handler: {handler!r}")

    if inspect.iscoroutinefunction(handler):
        work = handler(info, *extra_args)
    else:
        work = asyncio.to_thread(_call_sync, handler, info, extra_args)

    try:
        value = await asyncio.wait_for(work, timeout=timeout_ms / 1000)
    except TimeoutError:
        logger.warning("Handler timed out after %d ms on %s", timeout_ms, info.name)
        return HandlerResult.failure(TIMEOUT_REASON)
    except Exception as exc:
        logger.warning("Handler raised on %s: %s: %s", info.name, type(exc).__name__, exc)
        reason = f"abnormal termination: {type(exc).__name__}: {exc}"
        if isinstance(exc, NameCollisionError):
            reason = f"name collision: {exc}"
        return HandlerResult.failure(reason, error=exc)

    if isinstance(value, HandlerResult):
        return value
    return HandlerResult.success(value)


def _call_sync(handler: Callable[..., Any], info: FileInfo, extra_args: tuple[Any, ...]) -> Any:
    result = handler(info, *extra_args)
    # A sync callable may still hand back an awaitable (e.g. functools.partial of a coroutine)
    if inspect.isawaitable(result):
        return asyncio.run(_await(result))
    return result


async def _await(awaitable: Any) -> Any:
    return await awaitable


def log_and_accept(info: FileInfo) -> str:
    """Built-in handler that only logs the file and reports success.

    Useful for a dry run of a folder layout: every stable file ends up in
    ``success/`` untouched.
    """
    logger.info("Accepted %s (%d bytes) at %s", info.name, info.size, info.path)
    return info.name
