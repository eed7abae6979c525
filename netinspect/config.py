"""
Configuration dataclasses for the network inspector.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .keys import build_bindings
from .logging_config import LOG_LEVELS

DEFAULT_PORT = 9999


@dataclass
class InspectorConfig:
    """
    Configuration for the inspector.

    Attributes:
        host: Address the listener binds
        port: Port the listener binds
        body_cap_bytes: Per-transaction cap for each of request and response body
        retention_ceiling: Closed transactions kept before the oldest are evicted
        unbounded_bodies: Explicit opt-in to disable the body cap
        unbounded_retention: Explicit opt-in to disable eviction
        refresh_rate: Render loop ticks per second
        ingest_queue_size: Capacity of the decoded event queue
        command_queue_size: Capacity of the input command queue
        max_message_bytes: Largest accepted wire message
        shutdown_grace: Seconds allowed for connections to drain on quit
        log_level: Logging level name
        log_file: Log output file path (None = no file)
        key_bindings: command name -> keys overriding the defaults
    """
    # Listener
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    max_message_bytes: int = 4 * 1024 * 1024
    shutdown_grace: float = 2.0

    # Capacity
    body_cap_bytes: int = 64 * 1024
    retention_ceiling: int = 1000
    unbounded_bodies: bool = False
    unbounded_retention: bool = False
    ingest_queue_size: int = 10000
    command_queue_size: int = 256

    # Display
    refresh_rate: float = 10.0
    key_bindings: Dict[str, List[str]] = field(default_factory=dict)

    # Logging
    log_level: str = "info"
    log_file: Optional[str] = None

    @property
    def effective_body_cap(self) -> Optional[int]:
        return None if self.unbounded_bodies else self.body_cap_bytes

    @property
    def effective_retention(self) -> Optional[int]:
        return None if self.unbounded_retention else self.retention_ceiling

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: a value has the wrong type or is out of range
        """
        positive = {
            'body_cap_bytes': self.body_cap_bytes,
            'retention_ceiling': self.retention_ceiling,
            'ingest_queue_size': self.ingest_queue_size,
            'command_queue_size': self.command_queue_size,
            'max_message_bytes': self.max_message_bytes,
            'refresh_rate': self.refresh_rate,
        }
        for name, value in positive.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number (got {value!r})")
            if value <= 0:
                raise ConfigError(f"{name} must be positive (got {value})")

        if not isinstance(self.host, str) or not self.host:
            raise ConfigError(f"host must be a non-empty string (got {self.host!r})")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 0 <= self.port <= 65535:
            raise ConfigError(f"port out of range: {self.port!r}")
        if (isinstance(self.shutdown_grace, bool)
                or not isinstance(self.shutdown_grace, (int, float))
                or self.shutdown_grace < 0):
            raise ConfigError("shutdown_grace must be non-negative")

        for name in ('unbounded_bodies', 'unbounded_retention'):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be true or false")

        if self.log_level not in LOG_LEVELS:
            raise ConfigError(
                f"log_level must be one of {', '.join(LOG_LEVELS)} (got {self.log_level!r})"
            )
        if self.log_file is not None and not isinstance(self.log_file, str):
            raise ConfigError(f"log_file must be a path string (got {self.log_file!r})")

        if not isinstance(self.key_bindings, dict):
            raise ConfigError("keybindings must be a mapping of command to keys")
        build_bindings(self.key_bindings)


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    The file holds InspectorConfig field names at the top level plus an
    optional "keybindings" map of command name to key list.

    Raises:
        ConfigError: unreadable file, invalid YAML or unknown keys
    """
    config_path = Path(path)
    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    if "keybindings" in data:
        data["key_bindings"] = data.pop("keybindings")

    known = {f.name for f in fields(InspectorConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")

    return data


def load_config_from_args(args) -> InspectorConfig:
    """
    Create InspectorConfig from parsed command line arguments.

    Values from --config are applied first; options given on the
    command line override them.

    Args:
        args: Parsed argparse namespace

    Returns:
        Validated InspectorConfig

    Raises:
        ConfigError: invalid file or values
    """
    values: Dict[str, Any] = {}
    if getattr(args, 'config', None):
        values.update(load_config_file(args.config))

    overrides = {
        'host': args.host,
        'port': args.port,
        'body_cap_bytes': args.body_cap,
        'retention_ceiling': args.retention,
        'refresh_rate': args.refresh_rate,
        'max_message_bytes': args.max_message_size,
        'shutdown_grace': args.grace,
        'log_level': args.log_level,
        'log_file': args.log_file,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})

    # Command-line opt-ins add to the config file, never clear it
    if args.unbounded_bodies:
        values['unbounded_bodies'] = True
    if args.unbounded_retention:
        values['unbounded_retention'] = True

    try:
        config = InspectorConfig(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    config.validate()
    return config
