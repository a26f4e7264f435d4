"""
Plugin Registry.

This module provides plugin registration, private state, and lifecycle management.

Key features:
- Validated registration with name uniqueness
- Per-plugin private state store, reachable only through the registry
- Lifecycle state machine (initialize / execute / cleanup)
- Capability behavior tables selected by lookup instead of subclassing
- Hook registration and isolated hook execution
- Optional publication of registry notifications on an EventBus
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from plugforge.core.event_bus import EVENTS, EventBus, EventPipelineError
from plugforge.core.utils import maybe_await, utc_now_iso
from plugforge.plugin.hooks import (
    POST_CLEANUP,
    PRE_CLEANUP,
    HookDispatcher,
    HookRegistration,
    HookResult,
)
from plugforge.plugin.manifest import (
    LifecycleEvent,
    ManifestError,
    PluginConfig,
    ValidationError,
    load_plugin_file,
    validate_plugin_config,
)

PLUGIN_FILE_SUFFIXES = (".json", ".toml")

Notifier = Callable[[str, dict[str, Any]], Awaitable[None]]


class PluginError(Exception):
    """Base exception for plugin-related errors."""

    pass


class DuplicateRegistrationError(PluginError):
    """Raised when a plugin name is already registered."""

    pass


class PluginNotFoundError(PluginError):
    """Raised when an operation references an unregistered plugin."""

    pass


class LifecycleError(PluginError):
    """Raised on an invalid lifecycle transition."""

    pass


class CapabilityError(PluginError):
    """Raised when an action is not an enabled, bound capability."""

    pass


class PluginExecutionError(PluginError):
    """Raised when a capability behavior fails during execute()."""

    pass


class PluginStatus(Enum):
    """Plugin lifecycle status."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    EXECUTING = "executing"
    CLEANING_UP = "cleaning_up"
    TERMINATED = "terminated"


_TRANSITIONS: dict[PluginStatus, frozenset[PluginStatus]] = {
    PluginStatus.UNINITIALIZED: frozenset({PluginStatus.INITIALIZING}),
    PluginStatus.INITIALIZING: frozenset({PluginStatus.INITIALIZED}),
    PluginStatus.INITIALIZED: frozenset({PluginStatus.EXECUTING, PluginStatus.CLEANING_UP}),
    PluginStatus.EXECUTING: frozenset({PluginStatus.INITIALIZED}),
    PluginStatus.CLEANING_UP: frozenset({PluginStatus.TERMINATED}),
    PluginStatus.TERMINATED: frozenset(),
}


async def _no_notify(event_name: str, payload: dict[str, Any]) -> None:
    return None


async def _publish_hook_failures(notify: Notifier, failed: list[HookResult]) -> None:
    for result in failed:
        await notify(
            EVENTS.PLUGIN.ERROR,
            {"plugin": result.plugin, "event": result.event, "error": result.error, "phase": "hook"},
        )


class PluginInstance:
    """
    One registered plugin.

    Holds the plugin's immutable configuration, its private state store, its
    lifecycle status and a capability behavior table mapping capability
    names to sync or async callables taking the execution context.

    State is read and written through PluginRegistry.get_plugin_state /
    set_plugin_state only.
    """

    def __init__(
        self,
        config: PluginConfig,
        dispatcher: HookDispatcher,
        behaviors: Mapping[str, Callable] | None = None,
        notify: Notifier | None = None,
        logger: logging.Logger | None = None,
    ):
        self._config = config
        self._dispatcher = dispatcher
        self._behaviors: dict[str, Callable] = dict(behaviors or {})
        self._notify = notify or _no_notify
        self._logger = logger or logging.getLogger(__name__)

        self._state: dict[str, Any] = {}
        self._status = PluginStatus.UNINITIALIZED
        self._active_executions = 0

    @property
    def config(self) -> PluginConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def status(self) -> PluginStatus:
        return self._status

    def is_initialized(self) -> bool:
        """True while the plugin is INITIALIZED or EXECUTING."""
        return self._status in (PluginStatus.INITIALIZED, PluginStatus.EXECUTING)

    def has_capability(self, capability: str) -> bool:
        """Check if a capability is declared and enabled."""
        return self._config.capabilities.get(capability) is True

    def bound_capabilities(self) -> list[str]:
        """Capabilities with a behavior bound."""
        return list(self._behaviors)

    def _transition(self, target: PluginStatus) -> None:
        if target not in _TRANSITIONS[self._status]:
            raise LifecycleError(
                f"Plugin {self.name} cannot move from {self._status.value} to {target.value}"
            )
        self._status = target

    async def _run_stage(
        self, hook_event: str, bus_event: str, payload: dict[str, Any]
    ) -> list[HookResult]:
        await self._notify(bus_event, payload)
        results = await self._dispatcher.execute(hook_event, payload, plugin_name=self.name)
        failed = [r for r in results if not r.success]
        if failed:
            self._logger.warning(
                f"{len(failed)} {hook_event} hook(s) failed for plugin {self.name}"
            )
            await _publish_hook_failures(self._notify, failed)
        return results

    async def initialize(self, context: dict[str, Any] | None = None) -> bool:
        """
        Initialize the plugin, running its PRE_INIT and POST_INIT hooks.

        Re-initializing an INITIALIZED plugin is a no-op success.

        Raises:
            LifecycleError: If the plugin is executing, cleaning up or terminated
        """
        if self._status == PluginStatus.INITIALIZED:
            self._logger.warning(f"Plugin {self.name} is already initialized")
            return True

        self._transition(PluginStatus.INITIALIZING)
        payload = {"plugin": self.name, "context": context or {}}

        try:
            await self._run_stage(
                LifecycleEvent.PRE_INIT.value, EVENTS.LIFECYCLE.PRE_INIT, payload
            )
        except BaseException:
            # Interrupted, e.g. cancelled
            if self._status == PluginStatus.INITIALIZING:
                self._status = PluginStatus.UNINITIALIZED
            raise
        self._transition(PluginStatus.INITIALIZED)
        await self._run_stage(LifecycleEvent.POST_INIT.value, EVENTS.LIFECYCLE.POST_INIT, payload)

        await self._notify(
            EVENTS.PLUGIN.INITIALIZED, {"name": self.name, "type": self._config.type.value}
        )
        self._logger.info(f"Plugin {self.name} initialized")
        return True

    async def execute(self, action: str, context: dict[str, Any] | None = None) -> Any:
        """
        Run one capability behavior.

        Args:
            action: Capability name
            context: Passed to the behavior and to the execute hooks

        Returns:
            The behavior's result

        Raises:
            LifecycleError: If the plugin is not initialized
            CapabilityError: If the capability is disabled, undeclared or unbound
            PluginExecutionError: If the behavior raised
        """
        if not self.is_initialized():
            raise LifecycleError(
                f"Plugin {self.name} must be initialized before execution "
                f"(status: {self._status.value})"
            )
        if not self.has_capability(action):
            raise CapabilityError(f"Capability {action} is not enabled for plugin {self.name}")
        behavior = self._behaviors.get(action)
        if behavior is None:
            raise CapabilityError(f"No behavior bound for capability {action} of plugin {self.name}")

        if self._active_executions == 0:
            self._transition(PluginStatus.EXECUTING)
        self._active_executions += 1

        context = context or {}
        try:
            await self._run_stage(
                LifecycleEvent.PRE_EXECUTE.value,
                EVENTS.LIFECYCLE.PRE_EXECUTE,
                {"plugin": self.name, "action": action, "context": context},
            )
            try:
                result = await maybe_await(behavior, context)
            except Exception as e:
                self._logger.error(f"Plugin {self.name} failed executing {action}: {e}")
                raise PluginExecutionError(
                    f"Plugin {self.name} failed executing {action}: {e}"
                ) from e
            await self._run_stage(
                LifecycleEvent.POST_EXECUTE.value,
                EVENTS.LIFECYCLE.POST_EXECUTE,
                {"plugin": self.name, "action": action, "context": context, "result": result},
            )
            return result
        finally:
            self._active_executions -= 1
            if self._active_executions == 0:
                self._transition(PluginStatus.INITIALIZED)

    async def cleanup(self, context: dict[str, Any] | None = None) -> bool:
        """
        Clean up and terminate the plugin.

        Raises:
            LifecycleError: Unless the plugin is INITIALIZED and idle
        """
        if self._status != PluginStatus.INITIALIZED:
            raise LifecycleError(
                f"Plugin {self.name} cannot be cleaned up from {self._status.value}"
            )

        # execute() and cleanup() are refused from here on
        self._transition(PluginStatus.CLEANING_UP)
        payload = {"plugin": self.name, "context": context or {}}
        try:
            await self._run_stage(PRE_CLEANUP, EVENTS.LIFECYCLE.PRE_CLEANUP, payload)
        except BaseException:
            if self._status == PluginStatus.CLEANING_UP:
                self._status = PluginStatus.INITIALIZED
            raise
        self._behaviors.clear()
        self._transition(PluginStatus.TERMINATED)
        await self._run_stage(POST_CLEANUP, EVENTS.LIFECYCLE.POST_CLEANUP, payload)

        self._logger.info(f"Plugin {self.name} cleaned up")
        return True

    def _terminate(self) -> None:
        """Force TERMINATED on deregistration."""
        self._behaviors.clear()
        self._status = PluginStatus.TERMINATED

    def __repr__(self) -> str:
        return f"PluginInstance({self.name!r}, {self._status.value})"


class PluginRegistry:
    """
    Plugin registry.

    Maps plugin names to PluginInstance objects and owns registration,
    lookup, per-plugin state access and hook registration.
    """

    def __init__(
        self,
        dispatcher: HookDispatcher | None = None,
        event_bus: EventBus | None = None,
        validator: Callable[[Any], PluginConfig | Awaitable[PluginConfig]] = validate_plugin_config,
        logger: logging.Logger | None = None,
        publish_lifecycle_events: bool = True,
    ):
        """
        Initialize PluginRegistry.

        Args:
            dispatcher: Hook dispatcher (a private one is created if omitted)
            event_bus: Bus receiving registry notifications (optional)
            validator: Sync or async callable returning a PluginConfig
            logger: Logger (defaults to this module's logger)
            publish_lifecycle_events: Publish lifecycle:* notifications on the bus
        """
        self._logger = logger or logging.getLogger(__name__)
        self._dispatcher = dispatcher or HookDispatcher(logger=self._logger)
        self._event_bus = event_bus
        self._validator = validator
        self._publish_lifecycle_events = publish_lifecycle_events

        self._plugins: dict[str, PluginInstance] = {}
        # Single writer for check-then-insert and removal
        self._lock = asyncio.Lock()

    @property
    def dispatcher(self) -> HookDispatcher:
        return self._dispatcher

    async def _notify(self, event_name: str, payload: dict[str, Any]) -> None:
        """Publish a registry notification. Pipeline failures are logged only."""
        if self._event_bus is None:
            return
        if event_name.startswith("lifecycle:") and not self._publish_lifecycle_events:
            return
        try:
            await self._event_bus.emit_async(event_name, payload)
        except EventPipelineError as e:
            self._logger.warning(f"Notification {event_name} failed: {e}")

    def _get_instance(self, plugin_name: str) -> PluginInstance:
        instance = self._plugins.get(plugin_name)
        if instance is None:
            raise PluginNotFoundError(f"Plugin {plugin_name} not found")
        return instance

    def _check_behaviors(self, config: PluginConfig, behaviors: Mapping[str, Callable]) -> None:
        for capability, behavior in behaviors.items():
            if capability not in config.capabilities:
                raise CapabilityError(
                    f"Behavior bound for undeclared capability {capability} of plugin {config.name}"
                )
            if not callable(behavior):
                raise CapabilityError(
                    f"Behavior for capability {capability} of plugin {config.name} must be callable"
                )

    # Registration
    async def register_plugin(
        self, config: Any, behaviors: Mapping[str, Callable] | None = None
    ) -> PluginInstance:
        """
        Validate and register a plugin.

        Args:
            config: Raw plugin configuration (mapping) or PluginConfig
            behaviors: Capability name -> sync or async callable(context)

        Returns:
            The new PluginInstance, UNINITIALIZED with an empty state store

        Raises:
            ValidationError: If the configuration is invalid
            DuplicateRegistrationError: If the name is already registered
            CapabilityError: If a behavior targets an undeclared capability
        """
        try:
            async with self._lock:
                valid_config = await maybe_await(self._validator, config)

                if valid_config.name in self._plugins:
                    raise DuplicateRegistrationError(
                        f"Plugin {valid_config.name} is already registered"
                    )
                self._check_behaviors(valid_config, behaviors or {})

                instance = PluginInstance(
                    valid_config,
                    self._dispatcher,
                    behaviors=behaviors,
                    notify=self._notify,
                    logger=self._logger,
                )
                self._plugins[valid_config.name] = instance

                for spec in valid_config.hooks:
                    if spec.handler is not None:
                        self._dispatcher.register(valid_config.name, spec.event, spec.handler)

        except (ManifestError, PluginError) as e:
            self._logger.error(f"Plugin registration failed: {e}")
            await self._notify(EVENTS.PLUGIN.ERROR, {"error": str(e), "phase": "registration"})
            raise

        await self._notify(
            EVENTS.PLUGIN.REGISTERED,
            {
                "name": valid_config.name,
                "type": valid_config.type.value,
                "version": valid_config.version,
                "capabilities": dict(valid_config.capabilities),
            },
        )
        self._logger.info(f"Plugin {valid_config.name} registered successfully")
        return instance

    async def unregister_plugin(self, plugin_name: str) -> None:
        """
        Remove a plugin and all of its hooks.

        Raises:
            PluginNotFoundError: If the plugin is not registered
            LifecycleError: If the plugin is executing
        """
        async with self._lock:
            instance = self._get_instance(plugin_name)
            if instance.status == PluginStatus.EXECUTING:
                raise LifecycleError(f"Plugin {plugin_name} is executing and cannot be removed")

            removed = self._dispatcher.unregister(plugin_name)
            instance._terminate()
            del self._plugins[plugin_name]

        self._logger.info(f"Plugin {plugin_name} unregistered ({removed} hook(s) removed)")

    async def load_plugin_file(
        self, path: Path, behaviors: Mapping[str, Callable] | None = None
    ) -> PluginInstance:
        """
        Register a plugin from a .json or .toml configuration file.

        Raises:
            ManifestError: If the file cannot be read or parsed
            ValidationError: If the configuration is invalid
            DuplicateRegistrationError: If the name is already registered
        """
        return await self.register_plugin(load_plugin_file(Path(path)), behaviors)

    async def discover_plugins(self, plugins_dir: Path) -> list[str]:
        """
        Register every plugin file found directly in a directory.

        Files that fail to parse or validate are logged and skipped.

        Returns:
            Names of the plugins registered

        Raises:
            PluginError: If the directory does not exist
        """
        plugins_dir = Path(plugins_dir)
        if not plugins_dir.is_dir():
            raise PluginError(f"Plugin directory not found: {plugins_dir}")

        discovered = []
        for path in sorted(plugins_dir.iterdir()):
            if not path.is_file() or path.suffix.lower() not in PLUGIN_FILE_SUFFIXES:
                continue
            try:
                instance = await self.load_plugin_file(path)
            except (ManifestError, PluginError) as e:
                self._logger.warning(f"Skipping plugin file {path.name}: {e}")
                continue
            discovered.append(instance.name)

        return discovered

    # Hooks
    async def register_hook(
        self, plugin_name: str, event: Any, handler: Callable
    ) -> HookRegistration:
        """
        Register a hook handler for a plugin.

        Raises:
            PluginNotFoundError: If the plugin is not registered
            ValidationError: If the event name is not recognized or handler
                is not callable
        """
        self._get_instance(plugin_name)

        if not self._dispatcher.is_recognized_event(event):
            raise ValidationError(
                f"Invalid hook event {event!r}. Must be a lifecycle event "
                f"or an upper-case event name",
                rule="hook_event",
                details=event,
            )
        if not callable(handler):
            raise ValidationError(
                f"Hook handler for {event} must be callable",
                rule="hook_handler",
                details=event,
            )

        registration = self._dispatcher.register(plugin_name, event, handler)
        self._logger.info(
            f"Hook registered for plugin {plugin_name} on event {registration.event}"
        )
        return registration

    async def execute_hooks(self, event: Any, payload: Any = None) -> list[HookResult]:
        """
        Execute every handler registered for an event, in registration order.

        Handler failures are captured as HookResult(success=False) entries and
        never raised; each one is also published as plugin:error. Unknown
        events yield an empty list.
        """
        results = await self._dispatcher.execute(event, payload)
        await _publish_hook_failures(self._notify, [r for r in results if not r.success])
        return results

    # State
    def set_plugin_state(self, plugin_name: str, key: str, value: Any) -> None:
        """
        Set a value in a plugin's private state store.

        Raises:
            PluginNotFoundError: If the plugin is not registered
        """
        self._get_instance(plugin_name)._state[key] = value

    def get_plugin_state(self, plugin_name: str, key: str) -> Any:
        """
        Read a value from a plugin's private state store.

        Returns:
            The value, or None when the key is absent

        Raises:
            PluginNotFoundError: If the plugin is not registered
        """
        return self._get_instance(plugin_name)._state.get(key)

    async def update_plugin_state(self, plugin_name: str, key: str, value: Any) -> None:
        """
        Set a state value and publish ``plugin:state:<key>`` on the bus.

        Raises:
            PluginNotFoundError: If the plugin is not registered
        """
        self.set_plugin_state(plugin_name, key, value)
        await self._notify(
            f"{EVENTS.PLUGIN.STATE}:{key}",
            {"plugin": plugin_name, "key": key, "value": value, "timestamp": utc_now_iso()},
        )

    # Lifecycle
    async def initialize_plugin(
        self, plugin_name: str, context: dict[str, Any] | None = None
    ) -> bool:
        """Initialize a registered plugin."""
        return await self._get_instance(plugin_name).initialize(context)

    async def execute_plugin(
        self, plugin_name: str, action: str, context: dict[str, Any] | None = None
    ) -> Any:
        """Run one capability of a registered plugin."""
        return await self._get_instance(plugin_name).execute(action, context)

    async def cleanup_plugin(
        self, plugin_name: str, context: dict[str, Any] | None = None
    ) -> bool:
        """Clean up a registered plugin."""
        return await self._get_instance(plugin_name).cleanup(context)

    # Lookup
    def get_plugin(self, plugin_name: str) -> PluginInstance:
        """
        Get a registered plugin.

        Raises:
            PluginNotFoundError: If the plugin is not registered
        """
        return self._get_instance(plugin_name)

    def has_plugin(self, plugin_name: str) -> bool:
        """Check if a plugin name is registered."""
        return plugin_name in self._plugins

    def list_plugins(self) -> list[PluginInstance]:
        """Registered plugins in registration order."""
        return list(self._plugins.values())
