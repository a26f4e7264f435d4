"""
Tests for Settings.

This test suite covers:
1. Schema field validation
2. Loading settings (defaults, file values, environment override)
3. Writing the commented default settings file
4. Error cases
"""

import tempfile
from pathlib import Path

import pytest

import plugforge.config
from plugforge.config.schema import (
    SETTINGS_SCHEMA,
    ConfigField,
    SchemaError,
    Settings,
    SettingsError,
    build_settings,
    generate_default_settings,
)
from plugforge.config.toml_handler import TOMLError, read_toml


class TestConfigField:
    """Test schema field validation."""

    def test_default_type_mismatch(self):
        """A default of the wrong type should be rejected at declaration."""
        with pytest.raises(SchemaError, match="does not match type"):
            ConfigField(int, "forty-two")

    def test_default_not_in_choices(self):
        """A default outside its choices should be rejected."""
        with pytest.raises(SchemaError, match="not in choices"):
            ConfigField(str, "TRACE", choices=["DEBUG", "INFO"])

    def test_bool_is_not_int(self):
        """Booleans should not pass as integers."""
        field = ConfigField(int, 1)
        with pytest.raises(SettingsError, match="Expected type int"):
            field.validate(True)

    def test_custom_check(self):
        """A check raising ValueError should become SettingsError."""
        field = SETTINGS_SCHEMA["custom_event_pattern"]
        field.validate(r"^EVT_")
        with pytest.raises(SettingsError, match="Invalid regular expression"):
            field.validate("(")


class TestBuildSettings:
    """Test building Settings objects."""

    def test_defaults(self):
        """An empty section should produce the defaults."""
        settings = build_settings({})
        assert settings == Settings()
        assert settings.log_level == "INFO"
        assert settings.publish_lifecycle_events is True
        assert settings.plugin_dirs == ()

    def test_defaults_match_schema(self):
        """Settings defaults and schema defaults should agree."""
        defaults = generate_default_settings()
        settings = Settings()
        for name, value in defaults.items():
            expected = tuple(value) if isinstance(value, list) else value
            assert getattr(settings, name) == expected

    def test_values_applied(self):
        """Provided values should override defaults."""
        settings = build_settings(
            {"log_level": "DEBUG", "plugin_dirs": ["plugins", "extra"]}
        )
        assert settings.log_level == "DEBUG"
        assert settings.plugin_dirs == ("plugins", "extra")

    def test_unknown_field(self):
        """Unknown fields should be rejected."""
        with pytest.raises(SettingsError, match="Unknown settings field: colour"):
            build_settings({"colour": "blue"})

    def test_invalid_choice(self):
        """Values outside choices should be rejected."""
        with pytest.raises(SettingsError, match="log_level"):
            build_settings({"log_level": "LOUD"})

    def test_plugin_dirs_must_be_strings(self):
        """plugin_dirs entries must be strings."""
        with pytest.raises(SettingsError, match="plugin_dirs"):
            build_settings({"plugin_dirs": ["ok", 3]})


class TestLoadAndWrite:
    """Test reading and writing the settings file."""

    def test_missing_file_gives_defaults(self):
        """A missing settings file should yield defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = plugforge.config.load_settings(Path(tmpdir) / "absent.toml")
            assert settings == Settings()

    def test_load_from_file(self):
        """Values in the [plugforge] table should be loaded."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "plugforge.toml"
            path.write_text(
                "[plugforge]\n"
                'log_level = "WARNING"\n'
                "publish_lifecycle_events = false\n"
            )

            settings = plugforge.config.load_settings(path)
            assert settings.log_level == "WARNING"
            assert settings.publish_lifecycle_events is False

    def test_section_must_be_table(self):
        """A non-table [plugforge] entry should be rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "plugforge.toml"
            path.write_text('plugforge = "yes"\n')

            with pytest.raises(SettingsError, match="must be a table"):
                plugforge.config.load_settings(path)

    def test_malformed_toml(self):
        """Unparseable TOML should raise TOMLError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "plugforge.toml"
            path.write_text("[plugforge\n")

            with pytest.raises(TOMLError, match="Failed to parse"):
                plugforge.config.load_settings(path)

    def test_environment_variable(self, monkeypatch):
        """PLUGFORGE_CONFIG should be used when no path is given."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "custom.toml"
            path.write_text('[plugforge]\nlog_level = "ERROR"\n')
            monkeypatch.setenv(plugforge.config.ENV_VAR, str(path))

            assert plugforge.config.resolve_settings_path() == path
            assert plugforge.config.load_settings().log_level == "ERROR"

    def test_explicit_path_beats_environment(self, monkeypatch):
        """An explicit path should win over PLUGFORGE_CONFIG."""
        monkeypatch.setenv(plugforge.config.ENV_VAR, "/somewhere/else.toml")
        assert plugforge.config.resolve_settings_path(Path("mine.toml")) == Path("mine.toml")

    def test_write_default_settings(self):
        """The generated file should carry comments and load back as defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "conf" / "plugforge.toml"

            plugforge.config.write_default_settings(path)
            content = path.read_text()

            assert "[plugforge]" in content
            assert "# Logging level for the runtime" in content
            assert "# Choices: DEBUG, INFO, WARNING, ERROR" in content
            assert read_toml(path)["plugforge"]["log_level"] == "INFO"
            assert plugforge.config.load_settings(path) == Settings()

    def test_write_refuses_overwrite(self):
        """An existing file should only be replaced with overwrite=True."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "plugforge.toml"
            path.write_text("[plugforge]\n")

            with pytest.raises(SettingsError, match="already exists"):
                plugforge.config.write_default_settings(path)

            plugforge.config.write_default_settings(path, overwrite=True)
            assert "log_level" in path.read_text()
