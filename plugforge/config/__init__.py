"""
plugforge Settings - TOML-based runtime configuration.

This module provides:
- Loading validated Settings from a TOML file
- Writing a commented default settings file

Example usage:
    from plugforge.config import load_settings

    settings = load_settings(Path("plugforge.toml"))
    print(settings.log_level)

The settings file holds a single ``[plugforge]`` table. When no path is
given, the ``PLUGFORGE_CONFIG`` environment variable is consulted, then
``plugforge.toml`` in the working directory.
"""

import os
from pathlib import Path

from plugforge.config.schema import (
    SETTINGS_SCHEMA,
    SchemaError,
    Settings,
    SettingsError,
    build_settings,
    generate_default_settings,
)
from plugforge.config.toml_handler import (
    TOMLError,
    generate_toml_from_schema,
    read_toml,
    write_toml,
)

SECTION = "plugforge"
ENV_VAR = "PLUGFORGE_CONFIG"
DEFAULT_CONFIG_FILE = Path("plugforge.toml")


def resolve_settings_path(path: Path | None = None) -> Path:
    """Explicit path, else $PLUGFORGE_CONFIG, else ./plugforge.toml."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_settings(path: Path | None = None) -> Settings:
    """
    Load runtime settings.

    A missing file, or a file without a ``[plugforge]`` table, yields
    default settings.

    Raises:
        TOMLError: If the file exists but cannot be parsed
        SettingsError: If a value fails validation
    """
    settings_path = resolve_settings_path(path)
    if not settings_path.exists():
        return Settings()

    data = read_toml(settings_path)
    section = data.get(SECTION, {})
    if not isinstance(section, dict):
        raise SettingsError(f"'{SECTION}' must be a table in {settings_path}")
    return build_settings(section)


def write_default_settings(path: Path, overwrite: bool = False) -> Path:
    """
    Write a commented settings file holding the defaults.

    Raises:
        SettingsError: If the file exists and overwrite is False
        TOMLError: If the file cannot be written
    """
    path = Path(path)
    if path.exists() and not overwrite:
        raise SettingsError(f"Settings file already exists: {path}")

    content = generate_toml_from_schema(SECTION, SETTINGS_SCHEMA, generate_default_settings())
    write_toml(path, content)
    return path


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_VAR",
    "SECTION",
    "Settings",
    "SchemaError",
    "SettingsError",
    "TOMLError",
    "load_settings",
    "resolve_settings_path",
    "write_default_settings",
]
