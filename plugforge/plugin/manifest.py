"""
Plugin Configuration Validation.

This module turns a raw plugin configuration into an immutable PluginConfig.

Key features:
- Structural schema via pydantic (names, semver, plugin type, field types)
- Semantic rules (required capabilities per type, boolean capability values,
  recognized hook events, minimum hook description length)
- Plugin config files in JSON or TOML
"""

import json
import re
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_DESCRIPTION_LENGTH = 10


class ManifestError(Exception):
    """Base exception for plugin configuration errors."""

    pass


class ValidationError(ManifestError):
    """
    Raised when a plugin configuration violates a structural or semantic rule.

    Attributes:
        rule: Short identifier of the violated rule (e.g. "required_capabilities")
        details: Rule-specific data, such as the list of missing capabilities
    """

    def __init__(self, message: str, rule: str = "schema", details: Any = None):
        super().__init__(message)
        self.rule = rule
        self.details = details


class PluginType(str, Enum):
    """Plugin type enumeration."""

    API = "api"
    DATABASE = "database"
    ENVIRONMENT = "environment"
    SECURITY = "security"


class LifecycleEvent(str, Enum):
    """Lifecycle events a configured hook may bind to."""

    PRE_INIT = "PRE_INIT"
    POST_INIT = "POST_INIT"
    PRE_EXECUTE = "PRE_EXECUTE"
    POST_EXECUTE = "POST_EXECUTE"


LIFECYCLE_EVENTS: tuple[str, ...] = tuple(event.value for event in LifecycleEvent)

REQUIRED_CAPABILITIES: Mapping[PluginType, tuple[str, ...]] = MappingProxyType(
    {
        PluginType.API: ("design", "mock", "test", "document", "monitor"),
        PluginType.DATABASE: ("migrations", "seeding", "backup", "restore"),
        PluginType.ENVIRONMENT: (
            "syncNodeVersion",
            "syncDependencies",
            "syncConfigs",
            "crossPlatform",
        ),
        PluginType.SECURITY: (
            "dependencyScan",
            "codeScan",
            "configScan",
            "reportGeneration",
        ),
    }
)


def get_required_capabilities(plugin_type: PluginType | str) -> tuple[str, ...]:
    """Capabilities a plugin of ``plugin_type`` must declare."""
    try:
        return REQUIRED_CAPABILITIES[PluginType(plugin_type)]
    except ValueError:
        return ()


@dataclass(frozen=True)
class HookSpec:
    """
    A hook declared in a plugin configuration.

    Attributes:
        event: Lifecycle event name
        description: What the hook does (at least 10 characters)
        handler: Optional callable registered with the hook dispatcher
    """

    event: str
    description: str
    handler: Callable | None = field(default=None, compare=False)


@dataclass(frozen=True)
class PluginConfig:
    """
    Normalized, immutable plugin configuration.

    Attributes:
        name: Plugin name (unique identifier)
        version: Semantic version
        type: Plugin type
        capabilities: Read-only mapping of capability name -> enabled
        description: Optional description
        author: Optional author
        hooks: Declared lifecycle hooks
    """

    name: str
    version: str
    type: PluginType
    capabilities: Mapping[str, bool]
    description: str | None = None
    author: str | None = None
    hooks: tuple[HookSpec, ...] = ()

    def enabled_capabilities(self) -> list[str]:
        """Names of capabilities set to True."""
        return [name for name, enabled in self.capabilities.items() if enabled]


# Structural schema
class _HookModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    event: str
    description: str
    handler: Callable | None = None


class _PluginModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    version: str = "1.0.0"
    type: PluginType
    description: str | None = None
    author: Annotated[str, Field(min_length=1)] | None = None
    # Values are checked by hand so non-booleans fail with a capability rule
    capabilities: dict[str, Any] = Field(min_length=1)
    hooks: list[_HookModel] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not re.match(r"^[a-z0-9-]+$", value):
            raise ValueError(
                "Plugin name must contain only lowercase letters, numbers, and hyphens"
            )
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not re.match(r"^\d+\.\d+\.\d+$", value):
            raise ValueError("Version must follow semantic versioning (x.y.z)")
        return value

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str | None) -> str | None:
        if value is not None and len(value) < MIN_DESCRIPTION_LENGTH:
            raise ValueError(
                f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters"
            )
        return value


def _format_schema_errors(error: pydantic.ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "config"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def _parse_structure(raw: Any) -> _PluginModel:
    if isinstance(raw, PluginConfig):
        raw = plugin_config_to_dict(raw)
    if not isinstance(raw, Mapping):
        raise ValidationError(
            f"Plugin configuration must be a mapping, got {type(raw).__name__}"
        )
    try:
        return _PluginModel.model_validate(dict(raw))
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid plugin configuration: {_format_schema_errors(e)}",
            rule="schema",
            details=e.errors(),
        ) from e


def validate_capabilities(plugin_type: PluginType, capabilities: Mapping[str, Any]) -> None:
    """
    Check the capability table against the required-capability table.

    Raises:
        ValidationError: If a required capability is missing or a value is not a bool
    """
    required = get_required_capabilities(plugin_type)
    missing = [cap for cap in required if cap not in capabilities]
    if missing:
        raise ValidationError(
            f"Missing required capabilities for {plugin_type.value} plugin: "
            f"{', '.join(missing)}",
            rule="required_capabilities",
            details=missing,
        )

    for cap, value in capabilities.items():
        if not isinstance(value, bool):
            raise ValidationError(
                f'Invalid capability value for "{cap}". '
                f"Must be a boolean, received: {type(value).__name__}",
                rule="capability_type",
                details=cap,
            )


def validate_hook_specs(hooks: list[_HookModel]) -> None:
    """
    Check declared hooks against the lifecycle event names and description rule.

    Raises:
        ValidationError: On the first invalid hook
    """
    for index, hook in enumerate(hooks):
        if not hook.event or not hook.description:
            raise ValidationError(
                "Hook must have both event and description defined",
                rule="hook_fields",
                details=index,
            )
        if hook.event not in LIFECYCLE_EVENTS:
            raise ValidationError(
                f'Invalid hook event "{hook.event}". '
                f"Must be one of: {', '.join(LIFECYCLE_EVENTS)}",
                rule="hook_event",
                details=hook.event,
            )
        if len(hook.description) < MIN_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Hook description must be at least {MIN_DESCRIPTION_LENGTH} characters long",
                rule="hook_description",
                details=index,
            )


def validate_plugin_config(raw: Any) -> PluginConfig:
    """
    Validate a raw plugin configuration.

    Args:
        raw: Mapping with name, version, type, description, author,
            capabilities and hooks

    Returns:
        Normalized PluginConfig

    Raises:
        ValidationError: If any structural or semantic rule is violated
    """
    model = _parse_structure(raw)
    validate_capabilities(model.type, model.capabilities)
    validate_hook_specs(model.hooks)

    return PluginConfig(
        name=model.name,
        version=model.version,
        type=model.type,
        capabilities=MappingProxyType(dict(model.capabilities)),
        description=model.description,
        author=model.author,
        hooks=tuple(
            HookSpec(event=hook.event, description=hook.description, handler=hook.handler)
            for hook in model.hooks
        ),
    )


def plugin_config_to_dict(config: PluginConfig) -> dict[str, Any]:
    """Convert a PluginConfig back into a plain mapping (handlers included)."""
    data: dict[str, Any] = {
        "name": config.name,
        "version": config.version,
        "type": config.type.value,
        "capabilities": dict(config.capabilities),
        "hooks": [
            {"event": hook.event, "description": hook.description, "handler": hook.handler}
            for hook in config.hooks
        ],
    }
    if config.description is not None:
        data["description"] = config.description
    if config.author is not None:
        data["author"] = config.author
    return data


def load_plugin_file(path: Path) -> dict[str, Any]:
    """
    Read a raw plugin configuration from a .json or .toml file.

    Args:
        path: Path to the plugin file

    Returns:
        Raw configuration mapping (not yet validated)

    Raises:
        ManifestError: If the file cannot be read or parsed
    """
    suffix = path.suffix.lower()
    if suffix not in (".json", ".toml"):
        raise ManifestError(f"Unsupported plugin file type: {path.name}")

    try:
        if suffix == ".json":
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        else:
            with open(path, "rb") as f:
                data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ManifestError(f"Plugin file not found: {path}") from e
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise ManifestError(f"Failed to parse plugin file {path.name}: {e}") from e
    except OSError as e:
        raise ManifestError(f"Failed to read plugin file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"Plugin file {path.name} must contain an object at top level")
    return data


def parse_plugin_file(path: Path) -> PluginConfig:
    """Read and validate a plugin file in one step."""
    return validate_plugin_config(load_plugin_file(path))
