"""
plugforge CLI - Plugin configuration tooling.

Pacman-style interface over the plugin runtime.

Usage:
    plugforge -V <file>...          Validate plugin files
    plugforge -Q [file|dir]...      Register plugins and show a summary
    plugforge -I [path]             Write a default settings file
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from plugforge.config import (
    DEFAULT_CONFIG_FILE,
    SchemaError,
    TOMLError,
    load_settings,
    write_default_settings,
)
from plugforge.plugin.hooks import HookDispatcher
from plugforge.plugin.manager import PluginError, PluginInstance
from plugforge.plugin.manifest import ManifestError, parse_plugin_file
from plugforge.runtime import create_runtime


class CLIError(Exception):
    """Base exception for CLI errors."""

    pass


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with pacman-style flags."""
    parser = argparse.ArgumentParser(
        prog="plugforge",
        description="plugforge - plugin configuration tooling",
        add_help=False,
    )

    ops = parser.add_mutually_exclusive_group()
    ops.add_argument("-V", "--validate", action="store_true", help="Validate plugin files")
    ops.add_argument("-Q", "--query", action="store_true", help="Register and list plugins")
    ops.add_argument("-I", "--init-config", action="store_true", help="Write default settings")
    ops.add_argument("-h", "--help", action="store_true", help="Show help")

    parser.add_argument("-c", "--config", type=Path, default=None, help="Settings file")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite on -I")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    parser.add_argument("targets", nargs="*", help="Plugin files, directories or a path")

    return parser


def print_help():
    """Print help message."""
    help_text = """
plugforge - plugin configuration tooling

Usage:
    plugforge -V <file>...          Validate plugin files
    plugforge -Q [file|dir]...      Register plugins and show a summary
    plugforge -I [path]             Write a default settings file

Options:
    -c, --config <path>             Settings file (default: $PLUGFORGE_CONFIG or ./plugforge.toml)
    --overwrite                     Overwrite an existing settings file on -I
    -v, --verbose                   Verbose output
    -h, --help                      Show this help
"""
    print(help_text.strip())


def configure_logging(level: str, verbose: bool) -> None:
    """Configure root logging for CLI use."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def validate_command(args: argparse.Namespace) -> int:
    """Validate each target file. Returns 1 if any file is invalid."""
    if not args.targets:
        raise CLIError("No plugin files specified. Usage: plugforge -V <file>...")

    failures = 0
    for target in args.targets:
        path = Path(target)
        try:
            config = parse_plugin_file(path)
        except ManifestError as e:
            print(f"INVALID {path}: {e}", file=sys.stderr)
            failures += 1
            continue
        print(f"OK {path}: {config.name} {config.version} ({config.type.value})")

    if args.verbose:
        print(f"\nValid: {len(args.targets) - failures}, Invalid: {failures}")
    return 0 if failures == 0 else 1


def format_plugin(instance: PluginInstance, dispatcher: HookDispatcher, verbose: bool = False) -> str:
    """One summary line per plugin, plus detail lines when verbose."""
    config = instance.config
    enabled = config.enabled_capabilities()
    line = (
        f"{config.name} {config.version} [{config.type.value}] "
        f"capabilities: {', '.join(enabled) or '-'}; "
        f"hooks: {dispatcher.get_hook_count_for_plugin(config.name)}"
    )
    if not verbose:
        return line

    details = [line]
    if config.description:
        details.append(f"    Description: {config.description}")
    if config.author:
        details.append(f"    Author: {config.author}")
    for spec in config.hooks:
        details.append(f"    Hook {spec.event}: {spec.description}")
    return "\n".join(details)


async def query_async(args: argparse.Namespace, settings) -> int:
    """Register targets (or the configured plugin directories) and summarize."""
    runtime = create_runtime(settings)
    registry = runtime.registry

    if args.targets:
        for target in args.targets:
            path = Path(target)
            if path.is_dir():
                await registry.discover_plugins(path)
            else:
                await registry.load_plugin_file(path)
    else:
        await runtime.discover_configured_plugins()

    plugins = registry.list_plugins()
    if not plugins:
        print("No plugins registered")
        return 0

    for instance in plugins:
        print(format_plugin(instance, registry.dispatcher, args.verbose))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the plugforge CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.help or not (args.validate or args.query or args.init_config):
            print_help()
            return 0

        settings = load_settings(args.config)
        configure_logging(settings.log_level, args.verbose)

        if args.validate:
            return validate_command(args)

        elif args.query:
            return asyncio.run(query_async(args, settings))

        elif args.init_config:
            target = Path(args.targets[0]) if args.targets else (args.config or DEFAULT_CONFIG_FILE)
            path = write_default_settings(target, overwrite=args.overwrite)
            print(f"Wrote {path}")
            return 0

    except (CLIError, ManifestError, PluginError, SchemaError, TOMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
