"""
Unit tests for remoteview.config module.

Tests cover:
- Loading configuration from INI files
- Loading configuration from CLI arguments only
- CLI override precedence (CLI wins over INI)
- Missing required field validation
- Missing config file handling
- Type errors and non-positive budgets in INI values
- root_path normalization
"""

from pathlib import Path

import pytest

from remoteview.config import (
    MIB,
    AppConfig,
    CacheConfig,
    IndexConfig,
    SSHConfig,
    WarmingConfig,
    load_config,
)


class TestLoadConfigWithINIFile:
    """Tests for load_config with INI file."""

    def test_load_config_reads_all_sections(self, tmp_config_file: Path):
        """Test that load_config correctly reads all sections from INI file."""
        config = load_config(str(tmp_config_file))

        assert config.ssh.host == "testserver.local"
        assert config.ssh.port == 2222
        assert config.ssh.username == "deploy"
        assert config.ssh.key_file == "~/.ssh/id_ed25519"
        assert config.ssh.use_agent is False
        assert config.ssh.root_path == "/var/www/site"

        assert config.connection.timeout_seconds == 45
        assert config.connection.retry_attempts == 5
        assert config.connection.retry_delay_seconds == 2

        assert config.cache.file_ttl_seconds == 600
        assert config.cache.directory_ttl_seconds == 60
        assert config.cache.file_max_bytes == 1048576
        assert config.cache.file_max_entries == 50
        # Untouched keys keep their defaults
        assert config.cache.directory_max_bytes == 5 * MIB

        assert config.index.batch_size == 20
        assert config.index.max_concurrent == 3
        assert config.index.timeout_seconds == 12.5

        assert config.warming.enabled is False
        assert config.warming.delay_seconds == 0.25
        assert config.warming.batch_size == 10

        assert config.logging.level == "DEBUG"
        assert config.logging.file == "test.log"
        assert config.logging.console is False

    def test_load_config_returns_appconfig_type(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file))
        assert isinstance(config, AppConfig)
        assert isinstance(config.ssh, SSHConfig)
        assert isinstance(config.cache, CacheConfig)
        assert isinstance(config.index, IndexConfig)
        assert isinstance(config.warming, WarmingConfig)

    def test_load_config_minimal_file(self, minimal_config_file: Path):
        """Test that defaults fill everything but the host."""
        config = load_config(str(minimal_config_file))

        assert config.ssh.host == "minimal.server.com"
        assert config.ssh.port == 22
        assert config.ssh.root_path == "/"
        assert config.cache.file_ttl_seconds == 300
        assert config.cache.directory_ttl_seconds == 120
        assert config.cache.file_max_bytes == 40 * MIB
        assert config.cache.file_max_entries == 500
        assert config.cache.directory_max_entries == 200
        assert config.index.batch_size == 50
        assert config.index.max_concurrent == 5
        assert config.index.timeout_seconds == 300
        assert config.warming.enabled is True
        assert config.warming.max_concurrent == 5
        assert config.logging.level == "INFO"


class TestLoadConfigCLIOnly:
    """Tests for load_config without an INI file."""

    def test_load_config_cli_only(self):
        config = load_config(host="cli.host", port=2200, username="me", password="pw")

        assert config.ssh.host == "cli.host"
        assert config.ssh.port == 2200
        assert config.ssh.username == "me"
        assert config.ssh.password == "pw"

    def test_debug_flag_sets_console_and_level(self):
        config = load_config(host="cli.host", debug=True)
        assert config.logging.level == "DEBUG"
        assert config.logging.console is True

    def test_root_path_is_normalized(self):
        assert load_config(host="h", root_path="srv/data/").ssh.root_path == "/srv/data"
        assert load_config(host="h", root_path="\\srv\\data").ssh.root_path == "/srv/data"
        assert load_config(host="h", root_path="/").ssh.root_path == "/"


class TestCLIOverrides:
    """CLI arguments win over INI values."""

    def test_cli_overrides_ini_host(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), host="override.host")
        assert config.ssh.host == "override.host"

    def test_cli_overrides_ini_port(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), port=2022)
        assert config.ssh.port == 2022

    def test_cli_overrides_root_and_key(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), root_path="/home/me", key_file="/tmp/key")
        assert config.ssh.root_path == "/home/me"
        assert config.ssh.key_file == "/tmp/key"

    def test_none_values_do_not_override(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), host=None, port=None, username=None)
        assert config.ssh.host == "testserver.local"
        assert config.ssh.port == 2222
        assert config.ssh.username == "deploy"


class TestValidation:
    """Tests for validation errors."""

    def test_missing_host_raises_valueerror(self):
        with pytest.raises(ValueError, match="Missing required configuration fields: host"):
            load_config()

    def test_empty_ini_file_raises_valueerror(self, tmp_path: Path):
        config_path = tmp_path / "empty.ini"
        config_path.write_text("", encoding="utf-8")
        with pytest.raises(ValueError, match="host"):
            load_config(str(config_path))

    def test_missing_config_file_raises_filenotfounderror(self):
        with pytest.raises(FileNotFoundError, match="Configuration file not found"):
            load_config("/nonexistent/remoteview.ini", host="h")

    def test_non_integer_value_raises(self, tmp_path: Path):
        config_path = tmp_path / "bad.ini"
        config_path.write_text("[ssh]\nhost = h\nport = twenty\n", encoding="utf-8")
        with pytest.raises(ValueError, match=r"Invalid port value in \[ssh\]: 'twenty' - must be an integer"):
            load_config(str(config_path))

    def test_non_numeric_float_raises(self, tmp_path: Path):
        config_path = tmp_path / "bad.ini"
        config_path.write_text("[ssh]\nhost = h\n[warming]\ndelay_seconds = soon\n", encoding="utf-8")
        with pytest.raises(ValueError, match="must be a number"):
            load_config(str(config_path))

    @pytest.mark.parametrize(
        "section,key",
        [
            ("cache", "file_max_bytes"),
            ("cache", "directory_max_entries"),
            ("index", "max_concurrent"),
            ("index", "batch_size"),
            ("warming", "max_concurrent"),
        ],
    )
    def test_non_positive_budget_raises(self, tmp_path: Path, section, key):
        config_path = tmp_path / "zero.ini"
        config_path.write_text(f"[ssh]\nhost = h\n[{section}]\n{key} = 0\n", encoding="utf-8")
        with pytest.raises(ValueError, match=f"Invalid {key} value in \\[{section}\\]: must be positive"):
            load_config(str(config_path))

    def test_boolean_variations(self, tmp_path: Path):
        for raw, expected in (("true", True), ("YES", True), ("1", True), ("false", False), ("no", False)):
            config_path = tmp_path / "bool.ini"
            config_path.write_text(f"[ssh]\nhost = h\n[warming]\nenabled = {raw}\n", encoding="utf-8")
            assert load_config(str(config_path)).warming.enabled is expected
