import configparser
from dataclasses import dataclass, field
from pathlib import Path

MIB = 1024 * 1024


@dataclass
class SSHConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    key_file: str | None = None  # Path to SSH private key
    key_passphrase: str | None = None  # Passphrase for encrypted keys
    use_agent: bool = True  # Try SSH agent for auth
    encoding: str = "utf-8"
    root_path: str = "/"  # Remote directory exposed as "/"


@dataclass
class ConnectionConfig:
    timeout_seconds: int = 30
    retry_attempts: int = 3
    retry_delay_seconds: int = 1


@dataclass
class CacheConfig:
    file_ttl_seconds: float = 300
    directory_ttl_seconds: float = 120
    important_ttl_multiplier: float = 2.0
    file_max_bytes: int = 40 * MIB
    file_max_entries: int = 500
    directory_max_bytes: int = 5 * MIB
    directory_max_entries: int = 200
    sweep_interval_seconds: float = 60
    metadata_file: str | None = None


@dataclass
class IndexConfig:
    batch_size: int = 50
    max_concurrent: int = 5
    batch_delay_seconds: float = 0.01
    timeout_seconds: float = 300


@dataclass
class WarmingConfig:
    enabled: bool = True
    batch_size: int = 10
    max_concurrent: int = 5
    delay_seconds: float = 0.1
    max_depth: int = 4


@dataclass
class LogConfig:
    level: str = "INFO"
    file: str = "remoteview.log"
    console: bool = True


@dataclass
class AppConfig:
    ssh: SSHConfig
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    warming: WarmingConfig = field(default_factory=WarmingConfig)
    logging: LogConfig = field(default_factory=LogConfig)


_TRUE_VALUES = ("true", "1", "yes")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _parse_number(section_name: str, key: str, value: str, kind=int):
    try:
        return kind(value)
    except ValueError:
        type_name = "an integer" if kind is int else "a number"
        raise ValueError(
            f"Invalid {key} value in [{section_name}]: '{value}' - must be {type_name}"
        )


def _load_section(parser, section_name: str, target: dict) -> None:
    """Copy the keys of one INI section into target, converted to the default's type."""
    if not parser.has_section(section_name):
        return
    section = parser[section_name]
    for key, current in target.items():
        raw = section.get(key)
        if not raw:
            continue
        if isinstance(current, bool):
            target[key] = _parse_bool(raw)
        elif isinstance(current, int):
            target[key] = _parse_number(section_name, key, raw, int)
        elif isinstance(current, float):
            target[key] = _parse_number(section_name, key, raw, float)
        else:
            target[key] = raw or None


def load_config(config_path: str | None = None, **cli_args) -> AppConfig:
    """
    Load configuration from an INI file and/or CLI arguments.
    CLI arguments take precedence over config file.

    Args:
        config_path: Path to the INI configuration file.
        **cli_args: Key-value pairs from command line arguments.

    Returns:
        AppConfig: The populated configuration object.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If required fields are missing or a value is invalid.
    """
    # Initialize with defaults
    ssh_config = {
        "host": None,
        "port": 22,
        "username": None,
        "password": None,
        "key_file": None,
        "key_passphrase": None,
        "use_agent": True,
        "encoding": "utf-8",
        "root_path": "/",
    }
    connection_config = {
        "timeout_seconds": 30,
        "retry_attempts": 3,
        "retry_delay_seconds": 1,
    }
    cache_config = {
        "file_ttl_seconds": 300.0,
        "directory_ttl_seconds": 120.0,
        "important_ttl_multiplier": 2.0,
        "file_max_bytes": 40 * MIB,
        "file_max_entries": 500,
        "directory_max_bytes": 5 * MIB,
        "directory_max_entries": 200,
        "sweep_interval_seconds": 60.0,
        "metadata_file": None,
    }
    index_config = {
        "batch_size": 50,
        "max_concurrent": 5,
        "batch_delay_seconds": 0.01,
        "timeout_seconds": 300.0,
    }
    warming_config = {
        "enabled": True,
        "batch_size": 10,
        "max_concurrent": 5,
        "delay_seconds": 0.1,
        "max_depth": 4,
    }
    log_config = {
        "level": "INFO",
        "file": "remoteview.log",
        "console": True,
    }

    # Parse INI file if provided
    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")

        _load_section(parser, "ssh", ssh_config)
        _load_section(parser, "connection", connection_config)
        _load_section(parser, "cache", cache_config)
        _load_section(parser, "index", index_config)
        _load_section(parser, "warming", warming_config)
        _load_section(parser, "logging", log_config)

    # Override with CLI arguments (cli_args take precedence)
    if cli_args.get("host") is not None:
        ssh_config["host"] = cli_args["host"]
    if cli_args.get("port") is not None:
        ssh_config["port"] = int(cli_args["port"])
    if cli_args.get("username") is not None:
        ssh_config["username"] = cli_args["username"] or None
    if cli_args.get("password") is not None:
        ssh_config["password"] = cli_args["password"] or None
    if cli_args.get("key_file") is not None:
        ssh_config["key_file"] = cli_args["key_file"]
    if cli_args.get("key_passphrase") is not None:
        ssh_config["key_passphrase"] = cli_args["key_passphrase"]
    if cli_args.get("root_path") is not None:
        ssh_config["root_path"] = cli_args["root_path"]
    if cli_args.get("debug"):
        log_config["level"] = "DEBUG"
        log_config["console"] = True

    # Validate required fields
    if not ssh_config["host"]:
        raise ValueError("Missing required configuration fields: host")

    positive = [
        ("cache", "file_max_bytes", cache_config),
        ("cache", "file_max_entries", cache_config),
        ("cache", "directory_max_bytes", cache_config),
        ("cache", "directory_max_entries", cache_config),
        ("cache", "sweep_interval_seconds", cache_config),
        ("index", "batch_size", index_config),
        ("index", "max_concurrent", index_config),
        ("index", "timeout_seconds", index_config),
        ("warming", "batch_size", warming_config),
        ("warming", "max_concurrent", warming_config),
    ]
    for section_name, key, values in positive:
        if values[key] <= 0:
            raise ValueError(f"Invalid {key} value in [{section_name}]: must be positive")

    root_path = ssh_config["root_path"] or "/"
    ssh_config["root_path"] = "/" + root_path.replace("\\", "/").strip("/")

    return AppConfig(
        ssh=SSHConfig(**ssh_config),
        connection=ConnectionConfig(**connection_config),
        cache=CacheConfig(**cache_config),
        index=IndexConfig(**index_config),
        warming=WarmingConfig(**warming_config),
        logging=LogConfig(**log_config),
    )
