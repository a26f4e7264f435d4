"""
Runtime Context.

Bundles the settings, event bus, hook dispatcher and plugin registry of one
runtime. Callers create a runtime explicitly and pass it where it is needed;
there is no module-level instance.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from plugforge.config import Settings
from plugforge.core.event_bus import EVENTS, EventBus, EventContext
from plugforge.plugin.hooks import HookDispatcher
from plugforge.plugin.manager import PluginRegistry


@dataclass
class PluginRuntime:
    """
    One wired-together plugin runtime.

    Attributes:
        settings: Settings the runtime was built from
        bus: Event bus receiving registry notifications
        dispatcher: Hook dispatcher shared with the registry
        registry: Plugin registry
    """

    settings: Settings
    bus: EventBus
    dispatcher: HookDispatcher
    registry: PluginRegistry

    async def discover_configured_plugins(self) -> list[str]:
        """Register plugin files from every directory in settings.plugin_dirs."""
        names = []
        for directory in self.settings.plugin_dirs:
            names.extend(await self.registry.discover_plugins(Path(directory)))
        return names


def install_core_middleware(bus: EventBus, logger: logging.Logger) -> None:
    """
    Register the logging middleware for registry notifications.

    Each middleware logs and lets the emission through.
    """

    def _payload(event: EventContext) -> dict:
        return event.payload if isinstance(event.payload, dict) else {}

    def on_registered(event: EventContext) -> bool:
        logger.info(f"Plugin registration event received: {_payload(event).get('name')}")
        return True

    def on_error(event: EventContext) -> bool:
        logger.error(f"Plugin error occurred: {_payload(event).get('error')}")
        return True

    def on_lifecycle(event: EventContext) -> bool:
        logger.debug(f"Lifecycle event {event.name} triggered for plugin {_payload(event).get('plugin')}")
        return True

    bus.use(f"^{EVENTS.PLUGIN.REGISTERED}$", on_registered)
    bus.use(f"^{EVENTS.PLUGIN.ERROR}$", on_error)
    bus.use(r"^lifecycle:", on_lifecycle)


def create_runtime(
    settings: Settings | None = None, logger: logging.Logger | None = None
) -> PluginRuntime:
    """
    Build a runtime.

    Args:
        settings: Runtime settings (defaults when omitted)
        logger: Logger shared by every component (defaults to "plugforge")

    Returns:
        PluginRuntime with the core middleware installed
    """
    settings = settings or Settings()
    logger = logger or logging.getLogger("plugforge")

    bus = EventBus(logger=logger)
    dispatcher = HookDispatcher(
        custom_event_pattern=settings.custom_event_pattern, logger=logger
    )
    registry = PluginRegistry(
        dispatcher=dispatcher,
        event_bus=bus,
        logger=logger,
        publish_lifecycle_events=settings.publish_lifecycle_events,
    )
    install_core_middleware(bus, logger)

    return PluginRuntime(settings=settings, bus=bus, dispatcher=dispatcher, registry=registry)
