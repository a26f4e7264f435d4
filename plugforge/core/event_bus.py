"""
Event Bus - Cross-cutting publish mechanism with gating and transformation.

This module implements a single asynchronous emission pipeline:
1. Middleware: Pattern-matched gates that may veto an emission
2. Transformers: Exact-name chain mapping the payload before delivery
3. Subscribers: Listeners receiving the transformed payload

Every completed emission is appended to an in-memory history log.

Ordering rules:
- Middleware run pattern by pattern, in the order patterns were first
  registered, and in insertion order within a pattern
- Transformers and subscribers run in insertion order
- Registering the same callable twice registers it twice
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

from plugforge.core.utils import maybe_await, new_event_id, utc_now_iso


EVENTS = SimpleNamespace(
    PLUGIN=SimpleNamespace(
        REGISTERED="plugin:registered",
        INITIALIZED="plugin:initialized",
        ERROR="plugin:error",
        STATE="plugin:state",
    ),
    LIFECYCLE=SimpleNamespace(
        PRE_INIT="lifecycle:pre-init",
        POST_INIT="lifecycle:post-init",
        PRE_EXECUTE="lifecycle:pre-execute",
        POST_EXECUTE="lifecycle:post-execute",
        PRE_CLEANUP="lifecycle:pre-cleanup",
        POST_CLEANUP="lifecycle:post-cleanup",
    ),
)


class EventBusError(Exception):
    """Base exception for event bus errors."""

    pass


class RegistrationError(EventBusError):
    """Raised when middleware, transformer or subscriber registration fails."""

    pass


class EventPipelineError(EventBusError):
    """
    Raised when a middleware or transformer fails during emission.

    Attributes:
        event_name: Name of the event being emitted
        stage: Either "middleware" or "transformer"
    """

    def __init__(self, message: str, event_name: str, stage: str):
        super().__init__(message)
        self.event_name = event_name
        self.stage = stage


@dataclass
class EventContext:
    """
    Context handed to middleware for one emission attempt.

    Attributes:
        id: Unique id of the emission attempt
        name: Event name
        timestamp: ISO timestamp taken when the emission started
        payload: Original (untransformed) payload
    """

    id: str
    name: str
    timestamp: str
    payload: Any = None


@dataclass
class EventRecord:
    """A completed emission as stored in the history log."""

    id: str
    name: str
    timestamp: str
    payload: Any
    transformed_payload: Any
    completed_at: str


@dataclass
class Registration:
    """
    A registered middleware, transformer or subscriber.

    Attributes:
        callback: Sync or async callable
        registration_order: Global insertion counter value
    """

    callback: Callable
    registration_order: int


@dataclass
class _MiddlewareRoute:
    regex: re.Pattern
    middleware: list[Registration] = field(default_factory=list)


class EventBus:
    """
    Owned event bus value.

    Exposes explicit ``use``/``transform``/``subscribe`` registration and a
    single ``emit_async`` entry point. Instances are independent; nothing is
    shared at module level.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger(__name__)

        # pattern key -> route; dict insertion order is pattern registration order
        self._middleware_routes: dict[str | re.Pattern, _MiddlewareRoute] = {}
        self._transformers: dict[str, list[Registration]] = {}
        self._listeners: dict[str, list[Registration]] = {}

        # event id -> record, insertion ordered
        self._history: dict[str, EventRecord] = {}

        self._registration_counter = 0

    def _next_registration_order(self) -> int:
        """Get next registration order number."""
        order = self._registration_counter
        self._registration_counter += 1
        return order

    def _compile_pattern(self, pattern: str | re.Pattern) -> re.Pattern:
        """
        Compile a middleware pattern.

        Plain strings are treated as regular expressions and matched with
        ``re.search``, so a literal event name matches itself and any name
        containing it.
        """
        if isinstance(pattern, re.Pattern):
            return pattern
        if not isinstance(pattern, str) or not pattern:
            raise RegistrationError(
                f"Middleware pattern must be a non-empty string or compiled regex. Got: {pattern!r}"
            )
        try:
            return re.compile(pattern)
        except re.error as e:
            raise RegistrationError(f"Invalid middleware pattern '{pattern}': {e}") from e

    @staticmethod
    def _check_callable(kind: str, callback: Any) -> None:
        if not callable(callback):
            raise RegistrationError(f"{kind} must be callable. Got: {type(callback).__name__}")

    # Registration
    def use(self, event_pattern: str | re.Pattern, middleware: Callable) -> "EventBus":
        """
        Register a middleware gate.

        Args:
            event_pattern: Regex (or literal substring) matched against event names
            middleware: Callable taking (context: EventContext), returning a truthy
                value to let the emission continue

        Returns:
            The bus, for chaining
        """
        self._check_callable("Middleware", middleware)
        route = self._middleware_routes.get(event_pattern)
        if route is None:
            route = _MiddlewareRoute(regex=self._compile_pattern(event_pattern))
            self._middleware_routes[event_pattern] = route
        route.middleware.append(
            Registration(callback=middleware, registration_order=self._next_registration_order())
        )
        return self

    def transform(self, event_name: str, transformer: Callable) -> "EventBus":
        """
        Register a payload transformer for an exact event name.

        Args:
            event_name: Exact event name
            transformer: Callable taking the current payload, returning the next one

        Returns:
            The bus, for chaining
        """
        self._check_callable("Transformer", transformer)
        self._transformers.setdefault(event_name, []).append(
            Registration(callback=transformer, registration_order=self._next_registration_order())
        )
        return self

    def subscribe(self, event_name: str, listener: Callable) -> Callable[[], bool]:
        """
        Subscribe a listener to an exact event name.

        Returns:
            A zero-argument function removing this subscription
        """
        self._check_callable("Listener", listener)
        registration = Registration(
            callback=listener, registration_order=self._next_registration_order()
        )
        self._listeners.setdefault(event_name, []).append(registration)

        def unsubscribe() -> bool:
            listeners = self._listeners.get(event_name, [])
            if registration in listeners:
                listeners.remove(registration)
                return True
            return False

        return unsubscribe

    def unsubscribe(self, event_name: str, listener: Callable) -> bool:
        """Remove the earliest subscription of ``listener``. Returns True if found."""
        listeners = self._listeners.get(event_name, [])
        for registration in listeners:
            if registration.callback is listener:
                listeners.remove(registration)
                return True
        return False

    def listener_count(self, event_name: str) -> int:
        """Number of subscribers for an exact event name."""
        return len(self._listeners.get(event_name, []))

    def _find_middleware(self, event_name: str) -> list[Registration]:
        """Collect middleware of every matching pattern, in evaluation order."""
        matched = []
        for route in self._middleware_routes.values():
            if route.regex.search(event_name):
                matched.extend(route.middleware)
        return matched

    # Emission
    async def emit_async(self, event_name: str, payload: Any = None) -> bool:
        """
        Emit an event through middleware, transformers and subscribers.

        Args:
            event_name: The event name
            payload: Event payload

        Returns:
            False if a middleware vetoed the emission; otherwise True if at
            least one subscriber received the event

        Raises:
            EventPipelineError: If a middleware or transformer raised
        """
        context = EventContext(
            id=new_event_id(event_name),
            name=event_name,
            timestamp=utc_now_iso(),
            payload=payload,
        )

        for middleware in self._find_middleware(event_name):
            try:
                should_continue = await maybe_await(middleware.callback, context)
            except Exception as e:
                self._logger.error(f"Event emission failed in middleware for '{event_name}': {e}")
                raise EventPipelineError(
                    f"Middleware failed for event '{event_name}': {e}",
                    event_name=event_name,
                    stage="middleware",
                ) from e

            if not should_continue:
                self._logger.info(f"Event {event_name} blocked by middleware")
                return False

        transformed_payload = payload
        for transformer in list(self._transformers.get(event_name, [])):
            try:
                transformed_payload = await maybe_await(transformer.callback, transformed_payload)
            except Exception as e:
                self._logger.error(f"Event emission failed in transformer for '{event_name}': {e}")
                raise EventPipelineError(
                    f"Transformer failed for event '{event_name}': {e}",
                    event_name=event_name,
                    stage="transformer",
                ) from e

        self._history[context.id] = EventRecord(
            id=context.id,
            name=context.name,
            timestamp=context.timestamp,
            payload=payload,
            transformed_payload=transformed_payload,
            completed_at=utc_now_iso(),
        )

        listeners = list(self._listeners.get(event_name, []))
        for listener in listeners:
            try:
                await maybe_await(listener.callback, transformed_payload)
            except Exception as e:
                # Delivery is uninterruptible once the emission completed
                self._logger.warning(f"Listener failed for '{event_name}': {e}")

        return bool(listeners)

    # History
    def get_event_history(self, event_name: str | None = None) -> list[EventRecord]:
        """
        Get completed emissions in recording order.

        Args:
            event_name: Optional exact name to filter on
        """
        records = list(self._history.values())
        if event_name is not None:
            return [record for record in records if record.name == event_name]
        return records

    def get_event(self, event_id: str) -> EventRecord | None:
        """Look up one history entry by its emission id."""
        return self._history.get(event_id)

    def clear_event_history(self) -> None:
        """Empty the history log. Registrations are untouched."""
        self._history.clear()
