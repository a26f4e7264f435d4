"""
plugforge - Plugin runtime with validated registration, lifecycle hooks and an event bus.

This is the main package that exports the public API.
"""

__version__ = "0.1.0"

from plugforge.config import Settings, load_settings
from plugforge.core.event_bus import (
    EVENTS,
    EventBus,
    EventBusError,
    EventContext,
    EventPipelineError,
    EventRecord,
)
from plugforge.plugin.hooks import HookDispatcher, HookHandlerError, HookResult
from plugforge.plugin.manager import (
    CapabilityError,
    DuplicateRegistrationError,
    LifecycleError,
    PluginError,
    PluginExecutionError,
    PluginInstance,
    PluginNotFoundError,
    PluginRegistry,
    PluginStatus,
)
from plugforge.plugin.manifest import (
    REQUIRED_CAPABILITIES,
    LifecycleEvent,
    PluginConfig,
    PluginType,
    ValidationError,
    validate_plugin_config,
)
from plugforge.runtime import PluginRuntime, create_runtime

__all__ = [
    "__version__",
    "EVENTS",
    "REQUIRED_CAPABILITIES",
    "CapabilityError",
    "DuplicateRegistrationError",
    "EventBus",
    "EventBusError",
    "EventContext",
    "EventPipelineError",
    "EventRecord",
    "HookDispatcher",
    "HookHandlerError",
    "HookResult",
    "LifecycleError",
    "LifecycleEvent",
    "PluginConfig",
    "PluginError",
    "PluginExecutionError",
    "PluginInstance",
    "PluginNotFoundError",
    "PluginRegistry",
    "PluginRuntime",
    "PluginStatus",
    "PluginType",
    "Settings",
    "ValidationError",
    "create_runtime",
    "load_settings",
    "validate_plugin_config",
]
