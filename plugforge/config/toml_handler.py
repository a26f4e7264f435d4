"""
TOML File I/O Handler.

Reads settings with tomllib and writes them with tomlkit so generated files
carry field descriptions as comments.
"""

import tomllib
from pathlib import Path
from typing import Any

import tomlkit

from plugforge.config.schema import ConfigField


class TOMLError(Exception):
    """Base exception for TOML-related errors."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Read and parse a TOML file.

    Raises:
        TOMLError: If file cannot be read or parsed
    """
    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise TOMLError(f"TOML file not found: {file_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise TOMLError(f"Failed to parse TOML file {file_path}: {e}") from e
    except OSError as e:
        raise TOMLError(f"Failed to read TOML file {file_path}: {e}") from e


def write_toml(file_path: Path, content: str) -> None:
    """
    Write TOML text to a file, creating parent directories.

    Raises:
        TOMLError: If file cannot be written
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise TOMLError(f"Failed to write TOML file {file_path}: {e}") from e


def generate_toml_from_schema(
    section: str, schema: dict[str, ConfigField], values: dict[str, Any]
) -> str:
    """
    Render one settings section with descriptive comments.

    Args:
        section: Table name
        schema: Field name -> ConfigField
        values: Field name -> value (defaults used for missing fields)

    Returns:
        TOML text
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment(f"Settings for {section}"))
    doc.add(tomlkit.nl())

    table = tomlkit.table()
    for name, config_field in schema.items():
        if config_field.description:
            table.add(tomlkit.comment(config_field.description))
        if config_field.choices is not None:
            table.add(tomlkit.comment(f"Choices: {', '.join(map(str, config_field.choices))}"))
        table.add(name, values.get(name, config_field.default))
        table.add(tomlkit.nl())

    doc.add(section, table)
    return tomlkit.dumps(doc)
