"""Tests for configuration management."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from localvm.core.config import (
    Config,
    ConfigManager,
    LoggingConfig,
    MachineSection,
    get_default_config_path,
)
from localvm.core.constants import DEFAULT_MACHINE_NAME, DEFAULT_SERVICE_CIDR
from localvm.core.exceptions import ConfigurationError


class TestLoggingConfig:
    """Tests for LoggingConfig model."""

    def test_default_values(self) -> None:
        """Test default logging configuration values."""
        config = LoggingConfig()
        assert config.level == "WARNING"
        assert config.file is None

    def test_log_level_case_insensitive(self) -> None:
        """Test that log levels are case-insensitive."""
        config = LoggingConfig(level="debug")
        assert config.level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        """Test that invalid log levels raise an error."""
        with pytest.raises(ValueError, match="Invalid log level"):
            LoggingConfig(level="INVALID")


class TestMachineSection:
    """Tests for MachineSection model."""

    def test_default_values(self) -> None:
        section = MachineSection()
        assert section.name == DEFAULT_MACHINE_NAME
        assert section.driver == "virtualbox"
        assert section.cpus == 2
        assert section.memory == 2048

    def test_driver_normalized(self) -> None:
        """Test driver names are lower-cased."""
        assert MachineSection(driver="KVM2").driver == "kvm2"

    def test_invalid_driver(self) -> None:
        """Test unknown drivers are rejected when the config is loaded."""
        with pytest.raises(ValueError, match="Invalid driver"):
            MachineSection(driver="qemu-magic")

    def test_validation_constraints(self) -> None:
        """Test that validation constraints are enforced."""
        with pytest.raises(ValueError):
            MachineSection(cpus=0)

        with pytest.raises(ValueError):
            MachineSection(memory=256)


class TestConfig:
    """Tests for Config model."""

    def test_empty_config(self) -> None:
        config = Config()
        assert config.machine.name == DEFAULT_MACHINE_NAME
        assert config.show_driver_deprecation_notification is True

    def test_machine_config_overrides(self) -> None:
        """Test CLI overrides replace config values, None is ignored."""
        config = Config(machine=MachineSection(driver="kvm2", cpus=4))

        machine = config.machine_config(cpus=8, memory=None, insecure_registries=["r:5000"])

        assert machine.driver == "kvm2"
        assert machine.cpus == 8
        assert machine.memory == 2048
        assert machine.insecure_registries == ("r:5000",)

    def test_machine_config_engine_options(self) -> None:
        config = Config(machine=MachineSection(insecure_registries=["r:5000"]))

        engine = config.machine_config().engine_options()

        assert engine.insecure_registry == [DEFAULT_SERVICE_CIDR, "r:5000"]

    def test_machine_config_invalid_override(self) -> None:
        """Test invalid overrides become configuration errors."""
        config = Config()

        with pytest.raises(ConfigurationError, match="Invalid machine configuration"):
            config.machine_config(docker_env=["NOVALUE"])


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_config(self, temp_config_file: Path) -> None:
        """Test loading configuration from file."""
        manager = ConfigManager(temp_config_file)
        assert manager.config.machine.driver == "kvm2"
        assert manager.config.machine.cpus == 4
        assert manager.machine_name == "localvm"

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        """Test a missing config file yields the default configuration."""
        manager = ConfigManager(tmp_path / "new_config.yaml")

        assert manager.config.machine.driver == "virtualbox"

    def test_save_and_reload(self, tmp_path: Path) -> None:
        """Test saving configuration to file."""
        config_path = tmp_path / "save_test.yaml"
        manager = ConfigManager(config_path)
        manager.config.machine.cpus = 6

        manager.save()
        manager.reload()

        assert manager.config.machine.cpus == 6
        assert yaml.safe_load(config_path.read_text())["machine"]["cpus"] == 6

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test loading invalid YAML raises error."""
        config_path = tmp_path / "invalid.yaml"
        config_path.write_text("{ invalid yaml content")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            ConfigManager(config_path)

    def test_invalid_values(self, tmp_path: Path) -> None:
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("machine:\n  cpus: 0\n")

        with pytest.raises(ConfigurationError, match="Failed to load config"):
            ConfigManager(config_path)

    def test_create_example_config(self, tmp_path: Path) -> None:
        """Test creating an example configuration file."""
        config_path = tmp_path / "example.yaml"
        result = ConfigManager.create_example_config(config_path)

        assert result == config_path
        manager = ConfigManager(config_path)
        assert manager.machine_name == DEFAULT_MACHINE_NAME

    def test_to_dict(self, config_manager: ConfigManager) -> None:
        data = config_manager.to_dict()

        assert data["machine"]["driver"] == "kvm2"
        assert "logging" in data

    def test_default_path_from_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test LOCALVM_CONFIG overrides the default location."""
        monkeypatch.setenv("LOCALVM_CONFIG", str(tmp_path / "custom.yaml"))

        assert get_default_config_path() == tmp_path / "custom.yaml"

    def test_default_path_under_home(self, localvm_home: Path) -> None:
        assert get_default_config_path() == localvm_home / "config.yaml"
