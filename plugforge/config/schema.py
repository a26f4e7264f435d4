"""
Runtime Settings Schema.

This module declares the settings understood by the plugin runtime and
validates values read from the settings file.

Key features:
- Type-checked field definitions with choices and custom checks
- Frozen Settings object handed to the runtime
"""

import copy
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


class SchemaError(Exception):
    """Base exception for schema-related errors."""

    pass


class SettingsError(SchemaError):
    """Raised when a settings value fails validation."""

    pass


@dataclass
class ConfigField:
    """
    A settings field with type and constraints.

    Attributes:
        type_: The expected type of the field value
        default: Default value for the field
        description: Human-readable description (written as a TOML comment)
        choices: Allowed values (optional)
        check: Extra validation; raises ValueError with a message on failure
    """

    type_: type
    default: Any
    description: str = ""
    choices: list[Any] | None = None
    check: Callable[[Any], None] | None = None

    def __post_init__(self):
        if not isinstance(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {self.type_.__name__}"
            )
        if self.choices is not None and self.default not in self.choices:
            raise SchemaError(f"Default value {self.default!r} not in choices {self.choices}")

    def validate(self, value: Any) -> None:
        """
        Validate a value against this field.

        Raises:
            SettingsError: If validation fails
        """
        # bool is an int subclass; keep them apart
        if not isinstance(value, self.type_) or (
            self.type_ is not bool and isinstance(value, bool)
        ):
            raise SettingsError(
                f"Expected type {self.type_.__name__}, got {type(value).__name__}"
            )

        if self.choices is not None and value not in self.choices:
            raise SettingsError(f"Value {value!r} not in allowed choices {self.choices}")

        if self.check is not None:
            try:
                self.check(value)
            except ValueError as e:
                raise SettingsError(str(e)) from e


def _check_regex(value: str) -> None:
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"Invalid regular expression {value!r}: {e}") from e


def _check_str_list(value: list) -> None:
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"List items must be strings, got {type(item).__name__}")


SETTINGS_SCHEMA: dict[str, ConfigField] = {
    "log_level": ConfigField(
        str,
        "INFO",
        "Logging level for the runtime",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    ),
    "custom_event_pattern": ConfigField(
        str,
        r"^[A-Z][A-Z0-9_]*$",
        "Regex custom hook event names must match",
        check=_check_regex,
    ),
    "publish_lifecycle_events": ConfigField(
        bool,
        True,
        "Publish lifecycle:* notifications on the event bus",
    ),
    "plugin_dirs": ConfigField(
        list,
        [],
        "Directories scanned for plugin .json/.toml files",
        check=_check_str_list,
    ),
}


@dataclass(frozen=True)
class Settings:
    """Validated runtime settings."""

    log_level: str = "INFO"
    custom_event_pattern: str = r"^[A-Z][A-Z0-9_]*$"
    publish_lifecycle_events: bool = True
    plugin_dirs: tuple[str, ...] = field(default_factory=tuple)


def validate_settings(data: dict[str, Any]) -> None:
    """
    Validate a settings section against SETTINGS_SCHEMA.

    Missing fields fall back to defaults; unknown fields are rejected.

    Raises:
        SettingsError: If validation fails
    """
    for key in data:
        if key not in SETTINGS_SCHEMA:
            raise SettingsError(f"Unknown settings field: {key}")

    for name, config_field in SETTINGS_SCHEMA.items():
        if name not in data:
            continue
        try:
            config_field.validate(data[name])
        except SettingsError as e:
            raise SettingsError(f"Field '{name}': {e}") from e


def generate_default_settings() -> dict[str, Any]:
    """Default value of every settings field."""
    return {name: copy.deepcopy(f.default) for name, f in SETTINGS_SCHEMA.items()}


def build_settings(data: dict[str, Any]) -> Settings:
    """Validate a settings section and build a Settings object."""
    validate_settings(data)
    merged = {**generate_default_settings(), **data}
    merged["plugin_dirs"] = tuple(merged["plugin_dirs"])
    return Settings(**merged)
