"""
Plugin Hooks.

This module provides plugin-scoped hook registration and execution.

Key features:
- Event name -> ordered list of (plugin, handler) registrations
- Sync and async handlers
- Per-handler failure isolation (failures become HookResult entries)
- Per-registration execution statistics
"""

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from plugforge.core.utils import accepts_positional, maybe_await, utc_now_iso
from plugforge.plugin.manifest import LIFECYCLE_EVENTS

DEFAULT_CUSTOM_EVENT_PATTERN = r"^[A-Z][A-Z0-9_]*$"

PRE_CLEANUP = "PRE_CLEANUP"
POST_CLEANUP = "POST_CLEANUP"


class HookError(Exception):
    """Base exception for hook-related errors."""

    pass


class HookHandlerError(HookError):
    """
    Failure of a single hook handler.

    Never raised out of HookDispatcher.execute; it is attached to the
    corresponding HookResult instead.
    """

    def __init__(self, message: str, plugin_name: str, event: str):
        super().__init__(message)
        self.plugin_name = plugin_name
        self.event = event


@dataclass
class HookStats:
    """Execution statistics for one registration."""

    registered_at: str = field(default_factory=utc_now_iso)
    last_executed: str | None = None
    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    average_execution_time: float = 0.0

    def record(self, duration: float, success: bool) -> None:
        """Fold one execution into the statistics."""
        self.last_executed = utc_now_iso()
        self.execution_count += 1
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1
        self.average_execution_time += (
            duration - self.average_execution_time
        ) / self.execution_count


@dataclass
class HookRegistration:
    """
    A registered hook handler.

    Attributes:
        plugin_name: Owning plugin
        event: Event name
        handler: Sync or async callable
        registration_order: Tie-breaker across the dispatcher
        accepts_payload: Whether the handler takes the payload argument
        stats: Execution statistics
    """

    plugin_name: str
    event: str
    handler: Callable
    registration_order: int
    accepts_payload: bool = True
    stats: HookStats = field(default_factory=HookStats)


@dataclass
class HookResult:
    """Outcome of one handler invocation."""

    plugin: str
    event: str
    success: bool
    result: Any = None
    error: str | None = None
    exception: HookHandlerError | None = None

    def to_dict(self) -> dict[str, Any]:
        """Plain representation: {"success", "result"} or {"success", "error"}."""
        if self.success:
            return {"plugin": self.plugin, "success": True, "result": self.result}
        return {"plugin": self.plugin, "success": False, "error": self.error}


def _event_key(event: Any) -> str:
    if isinstance(event, Enum):
        return str(event.value)
    return event


class HookDispatcher:
    """
    Maps event names to ordered handler registrations and executes them.

    Handlers run strictly in registration order. A failing handler never
    aborts its siblings.
    """

    def __init__(
        self,
        custom_event_pattern: str = DEFAULT_CUSTOM_EVENT_PATTERN,
        logger: logging.Logger | None = None,
    ):
        self._hooks: dict[str, list[HookRegistration]] = {}
        self._custom_event_re = re.compile(custom_event_pattern)
        self._logger = logger or logging.getLogger(__name__)
        self._registration_counter = 0

    def is_recognized_event(self, event: Any) -> bool:
        """
        Check whether ``event`` may carry hooks.

        Recognized names are the lifecycle events plus custom event names
        matching the configured pattern (e.g. ``TEST_EVENT``).
        """
        event = _event_key(event)
        if not isinstance(event, str) or not event:
            return False
        return event in LIFECYCLE_EVENTS or bool(self._custom_event_re.match(event))

    def register(self, plugin_name: str, event: Any, handler: Callable) -> HookRegistration:
        """
        Append a handler to the event's ordered list.

        Raises:
            HookError: If handler is not callable
        """
        if not callable(handler):
            raise HookError(f"Hook handler must be callable. Got: {type(handler).__name__}")

        event = _event_key(event)
        registration = HookRegistration(
            plugin_name=plugin_name,
            event=event,
            handler=handler,
            registration_order=self._registration_counter,
            accepts_payload=accepts_positional(handler),
        )
        self._registration_counter += 1
        self._hooks.setdefault(event, []).append(registration)
        self._logger.debug(f"Registered hook {event} from plugin {plugin_name}")
        return registration

    def unregister(self, plugin_name: str) -> int:
        """Remove every registration of a plugin. Returns count removed."""
        removed = 0
        for event in list(self._hooks):
            before = len(self._hooks[event])
            self._hooks[event] = [h for h in self._hooks[event] if h.plugin_name != plugin_name]
            removed += before - len(self._hooks[event])
            if not self._hooks[event]:
                del self._hooks[event]
        return removed

    def get_hooks(self, event: Any, plugin_name: str | None = None) -> list[HookRegistration]:
        """Registrations for an event in registration order, optionally for one plugin."""
        hooks = list(self._hooks.get(_event_key(event), []))
        if plugin_name is not None:
            hooks = [h for h in hooks if h.plugin_name == plugin_name]
        return hooks

    def has_hooks(self, event: Any) -> bool:
        """Check if any hooks are registered for an event."""
        return bool(self._hooks.get(_event_key(event)))

    def get_hook_count_for_plugin(self, plugin_name: str) -> int:
        """Number of registrations owned by a plugin."""
        return sum(
            1 for hooks in self._hooks.values() for h in hooks if h.plugin_name == plugin_name
        )

    def list_all(self) -> list[dict[str, Any]]:
        """List all registrations in registration order."""
        everything = sorted(
            (h for hooks in self._hooks.values() for h in hooks),
            key=lambda h: h.registration_order,
        )
        return [
            {
                "plugin_name": h.plugin_name,
                "event": h.event,
                "execution_count": h.stats.execution_count,
                "failure_count": h.stats.failure_count,
            }
            for h in everything
        ]

    async def _run_handler(self, hook: HookRegistration, payload: Any) -> HookResult:
        """Run a single handler, converting any exception into a failed result."""
        start = time.perf_counter()
        try:
            if hook.accepts_payload:
                result = await maybe_await(hook.handler, payload)
            else:
                result = await maybe_await(hook.handler)
        except Exception as e:
            hook.stats.record(time.perf_counter() - start, success=False)
            self._logger.error(
                f"Hook execution failed for plugin {hook.plugin_name} on {hook.event}: {e}"
            )
            error = HookHandlerError(str(e), plugin_name=hook.plugin_name, event=hook.event)
            error.__cause__ = e
            return HookResult(
                plugin=hook.plugin_name,
                event=hook.event,
                success=False,
                error=str(e),
                exception=error,
            )

        hook.stats.record(time.perf_counter() - start, success=True)
        return HookResult(plugin=hook.plugin_name, event=hook.event, success=True, result=result)

    async def execute(
        self, event: Any, payload: Any = None, plugin_name: str | None = None
    ) -> list[HookResult]:
        """
        Execute the handlers registered for an event.

        Args:
            event: Event name
            payload: Passed to every handler that takes an argument; an empty
                dict when omitted
            plugin_name: Restrict execution to one plugin's handlers

        Returns:
            One HookResult per handler, in registration order
        """
        if payload is None:
            payload = {}

        results = []
        for hook in self.get_hooks(event, plugin_name):
            results.append(await self._run_handler(hook, payload))
        return results
