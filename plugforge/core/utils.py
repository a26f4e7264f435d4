"""
Utils Module - Helper functions shared by the event bus and the hook system.

This module provides:
- maybe_await(): Call a sync or async callable uniformly
- accepts_positional(): Signature probe used when registering handlers
- utc_now_iso(): Timestamp format used across history and hook stats
- new_event_id(): Unique id per emission attempt
"""

import inspect
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any


async def maybe_await(func: Callable, *args: Any) -> Any:
    """
    Invoke ``func`` and await the result if it is awaitable.

    Handlers, middleware, transformers and capability behaviors may all be
    plain functions or coroutine functions.
    """
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def accepts_positional(func: Callable) -> bool:
    """
    Check whether a callable takes at least one positional argument.

    Builtins without an introspectable signature are assumed to accept one.
    """
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return True

    for param in sig.parameters.values():
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        ):
            return True
    return False


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_event_id(event_name: str) -> str:
    """Generate an id for one emission attempt of ``event_name``."""
    return f"{event_name}-{uuid.uuid4().hex}"
