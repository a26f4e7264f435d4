"""
Tests for Plugin Configuration Validation.

This test suite covers:
1. Valid configurations (full and minimal)
2. Structural rules (name, version, type, description, capabilities)
3. Required capabilities per plugin type
4. Hook declarations
5. Plugin files (JSON and TOML)
"""

import json
import tempfile
from pathlib import Path

import pytest

from plugforge.plugin.manifest import (
    REQUIRED_CAPABILITIES,
    ManifestError,
    PluginConfig,
    PluginType,
    ValidationError,
    get_required_capabilities,
    load_plugin_file,
    parse_plugin_file,
    plugin_config_to_dict,
    validate_plugin_config,
)

API_CAPABILITIES = {
    "design": True,
    "mock": True,
    "test": True,
    "document": True,
    "monitor": False,
}


def api_config(**overrides):
    config = {
        "name": "api-tools",
        "version": "1.2.3",
        "type": "api",
        "description": "Tools for API development",
        "author": "Platform Team",
        "capabilities": dict(API_CAPABILITIES),
        "hooks": [],
    }
    config.update(overrides)
    return config


class TestValidConfigs:
    """Test configurations that should pass."""

    def test_full_config(self):
        """A complete API config should normalize into a PluginConfig."""
        config = validate_plugin_config(api_config())

        assert isinstance(config, PluginConfig)
        assert config.name == "api-tools"
        assert config.version == "1.2.3"
        assert config.type is PluginType.API
        assert config.author == "Platform Team"
        assert config.enabled_capabilities() == ["design", "mock", "test", "document"]

    def test_minimal_config_defaults(self):
        """Version, description, author and hooks are optional."""
        config = validate_plugin_config(
            {
                "name": "db-tools",
                "type": "database",
                "capabilities": {
                    "migrations": True,
                    "seeding": True,
                    "backup": True,
                    "restore": True,
                },
            }
        )

        assert config.version == "1.0.0"
        assert config.description is None
        assert config.author is None
        assert config.hooks == ()

    def test_extra_capabilities_allowed(self):
        """Capabilities beyond the required set are kept."""
        config = validate_plugin_config(
            api_config(capabilities={**API_CAPABILITIES, "lint": True})
        )
        assert config.capabilities["lint"] is True

    def test_capabilities_are_read_only(self):
        """The normalized capability table should not be mutable."""
        config = validate_plugin_config(api_config())
        with pytest.raises(TypeError):
            config.capabilities["design"] = False

    def test_plugin_config_is_accepted_again(self):
        """A PluginConfig should validate back into an equal PluginConfig."""
        config = validate_plugin_config(api_config())
        assert validate_plugin_config(config) == config
        assert plugin_config_to_dict(config)["type"] == "api"

    @pytest.mark.parametrize("plugin_type", list(PluginType))
    def test_required_table_covers_every_type(self, plugin_type):
        """Each plugin type should validate with exactly its required capabilities."""
        required = get_required_capabilities(plugin_type)
        assert required == REQUIRED_CAPABILITIES[plugin_type]

        config = validate_plugin_config(
            {
                "name": f"{plugin_type.value}-plugin",
                "type": plugin_type.value,
                "capabilities": {cap: True for cap in required},
            }
        )
        assert config.type is plugin_type


class TestStructuralRules:
    """Test structural schema rules."""

    @pytest.mark.parametrize("name", ["Invalid Name", "UPPER", "under_score", ""])
    def test_invalid_name(self, name):
        """Names must be lowercase letters, digits and hyphens."""
        with pytest.raises(ValidationError) as exc_info:
            validate_plugin_config(api_config(name=name))
        assert exc_info.value.rule == "schema"
        assert "name" in str(exc_info.value)

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0-beta", "latest"])
    def test_invalid_version(self, version):
        """Versions must be x.y.z."""
        with pytest.raises(ValidationError, match="semantic versioning"):
            validate_plugin_config(api_config(version=version))

    def test_unknown_type(self):
        """Unknown plugin types should be rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validate_plugin_config(api_config(type="frontend"))
        assert "type" in str(exc_info.value)

    def test_short_description(self):
        """Descriptions shorter than 10 characters should be rejected."""
        with pytest.raises(ValidationError, match="at least 10 characters"):
            validate_plugin_config(api_config(description="too short"))

    def test_empty_author(self):
        """An empty author string should be rejected."""
        with pytest.raises(ValidationError):
            validate_plugin_config(api_config(author=""))

    def test_missing_capabilities(self):
        """Capabilities are required and must be non-empty."""
        config = api_config()
        del config["capabilities"]
        with pytest.raises(ValidationError):
            validate_plugin_config(config)

        with pytest.raises(ValidationError):
            validate_plugin_config(api_config(capabilities={}))

    def test_not_a_mapping(self):
        """Non-mapping input should be rejected."""
        with pytest.raises(ValidationError, match="must be a mapping"):
            validate_plugin_config(["api-tools"])


class TestCapabilityRules:
    """Test required capabilities and capability values."""

    def test_missing_required_capabilities(self):
        """Missing required capabilities should be listed."""
        with pytest.raises(ValidationError) as exc_info:
            validate_plugin_config(api_config(capabilities={"design": True, "test": True}))

        error = exc_info.value
        assert error.rule == "required_capabilities"
        assert error.details == ["mock", "document", "monitor"]
        assert str(error) == (
            "Missing required capabilities for api plugin: mock, document, monitor"
        )

    def test_non_boolean_capability(self):
        """Capability values must be booleans."""
        with pytest.raises(ValidationError) as exc_info:
            validate_plugin_config(api_config(capabilities={**API_CAPABILITIES, "mock": "yes"}))

        assert exc_info.value.rule == "capability_type"
        assert 'capability value for "mock"' in str(exc_info.value)

    def test_disabled_required_capability_is_present(self):
        """A required capability set to False still counts as declared."""
        config = validate_plugin_config(
            api_config(capabilities={cap: False for cap in API_CAPABILITIES})
        )
        assert config.enabled_capabilities() == []


class TestHookDeclarations:
    """Test hooks declared in a configuration."""

    def test_valid_hooks(self):
        """Lifecycle hooks with long enough descriptions should pass."""

        def handler(payload):
            return payload

        config = validate_plugin_config(
            api_config(
                hooks=[
                    {"event": "PRE_INIT", "description": "Prepare API mocks"},
                    {"event": "POST_EXECUTE", "description": "Publish API docs", "handler": handler},
                ]
            )
        )

        assert [hook.event for hook in config.hooks] == ["PRE_INIT", "POST_EXECUTE"]
        assert config.hooks[0].handler is None
        assert config.hooks[1].handler is handler

    def test_unknown_hook_event(self):
        """Hook events must be lifecycle events."""
        with pytest.raises(ValidationError) as exc_info:
            validate_plugin_config(
                api_config(hooks=[{"event": "ON_DEPLOY", "description": "Deploy the service"}])
            )

        assert exc_info.value.rule == "hook_event"
        assert 'Invalid hook event "ON_DEPLOY"' in str(exc_info.value)
        assert "PRE_INIT, POST_INIT, PRE_EXECUTE, POST_EXECUTE" in str(exc_info.value)

    def test_short_hook_description(self):
        """Hook descriptions must be at least 10 characters."""
        with pytest.raises(ValidationError) as exc_info:
            validate_plugin_config(
                api_config(hooks=[{"event": "PRE_INIT", "description": "short"}])
            )
        assert exc_info.value.rule == "hook_description"

    def test_empty_hook_fields(self):
        """Hooks need both event and description."""
        with pytest.raises(ValidationError) as exc_info:
            validate_plugin_config(
                api_config(hooks=[{"event": "", "description": "Something useful"}])
            )
        assert exc_info.value.rule == "hook_fields"

    def test_non_callable_handler(self):
        """A declared handler must be callable."""
        with pytest.raises(ValidationError):
            validate_plugin_config(
                api_config(
                    hooks=[
                        {"event": "PRE_INIT", "description": "Prepare API mocks", "handler": 3}
                    ]
                )
            )


class TestPluginFiles:
    """Test reading plugin files."""

    def test_json_file(self):
        """A JSON plugin file should parse and validate."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "api-tools.json"
            with open(path, "w") as f:
                json.dump(api_config(), f)

            config = parse_plugin_file(path)
            assert config.name == "api-tools"

    def test_toml_file(self):
        """A TOML plugin file should parse and validate."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "security.toml"
            path.write_text(
                'name = "sec-scan"\n'
                'type = "security"\n'
                'description = "Security scanning suite"\n'
                "\n"
                "[capabilities]\n"
                "dependencyScan = true\n"
                "codeScan = true\n"
                "configScan = false\n"
                "reportGeneration = true\n"
                "\n"
                "[[hooks]]\n"
                'event = "POST_EXECUTE"\n'
                'description = "Write the scan report"\n'
            )

            config = parse_plugin_file(path)
            assert config.type is PluginType.SECURITY
            assert config.hooks[0].event == "POST_EXECUTE"

    def test_unsupported_suffix(self):
        """Only .json and .toml files are accepted."""
        with pytest.raises(ManifestError, match="Unsupported plugin file type"):
            load_plugin_file(Path("plugin.yaml"))

    def test_missing_file(self):
        """A missing file should raise ManifestError."""
        with pytest.raises(ManifestError, match="not found"):
            load_plugin_file(Path("/nonexistent/plugin.json"))

    def test_malformed_json(self):
        """Broken JSON should raise ManifestError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "broken.json"
            path.write_text("{not json")

            with pytest.raises(ManifestError, match="Failed to parse"):
                load_plugin_file(path)

    def test_top_level_must_be_object(self):
        """A JSON array at top level should be rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "list.json"
            path.write_text("[1, 2]")

            with pytest.raises(ManifestError, match="object at top level"):
                load_plugin_file(path)
