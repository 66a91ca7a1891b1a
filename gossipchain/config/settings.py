"""
Node configuration loaded from the environment (.env supported)
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "GOSSIPCHAIN_"

DEFAULT_DIFFICULTY_PREFIX = "00"
DEFAULT_PROGRESS_INTERVAL = 100000
DEFAULT_INIT_DELAY = 1.0


class ConfigError(ValueError):
    """Raised when a configuration value cannot be used"""
    pass


@dataclass
class NodeConfig:
    """Runtime settings of a node"""
    difficulty_prefix: str = DEFAULT_DIFFICULTY_PREFIX
    init_delay: float = DEFAULT_INIT_DELAY
    listen_host: str = "0.0.0.0"
    listen_port: int = 0
    advertise_host: str = "127.0.0.1"
    bootstrap_peers: List[Tuple[str, int]] = field(default_factory=list)
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    mine_in_background: bool = True
    halt_on_invalid_chains: bool = False
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    def __post_init__(self):
        if not self.difficulty_prefix or set(self.difficulty_prefix) - {"0", "1"}:
            raise ConfigError(f"Difficulty prefix must be a binary string: {self.difficulty_prefix!r}")
        if self.init_delay < 0:
            raise ConfigError("Init delay cannot be negative")
        if not 0 <= self.listen_port <= 65535:
            raise ConfigError(f"Invalid listen port {self.listen_port}")
        if self.progress_interval <= 0:
            raise ConfigError("Progress interval must be positive")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level {self.log_level}")

    @property
    def numeric_log_level(self) -> int:
        return logging.getLevelName(self.log_level.upper())


def parse_peer_address(address: str) -> Tuple[str, int]:
    """Parse a host:port string"""
    host, sep, port = address.strip().rpartition(":")
    if not sep or not host:
        raise ConfigError(f"Peer address must be host:port, got {address!r}")
    try:
        return host, int(port)
    except ValueError:
        raise ConfigError(f"Invalid port in peer address {address!r}") from None


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value == "":
        return default
    if value.lower() in ("1", "true", "yes", "on"):
        return True
    if value.lower() in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{ENV_PREFIX + name} must be a boolean, got {value!r}")


def _get_number(name: str, default, cast):
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX + name} is not a valid number: {value!r}") from None


def load_config(**overrides) -> NodeConfig:
    """Build the node configuration from environment variables

    Keyword overrides (typically from the command line) win over the
    environment when they are not None.
    """
    load_dotenv(find_dotenv(usecwd=True))

    peers = os.getenv(ENV_PREFIX + "BOOTSTRAP_PEERS", "")
    settings = {
        "difficulty_prefix": os.getenv(ENV_PREFIX + "DIFFICULTY_PREFIX", DEFAULT_DIFFICULTY_PREFIX),
        "init_delay": _get_number("INIT_DELAY", DEFAULT_INIT_DELAY, float),
        "listen_host": os.getenv(ENV_PREFIX + "LISTEN_HOST", "0.0.0.0"),
        "listen_port": _get_number("LISTEN_PORT", 0, int),
        "advertise_host": os.getenv(ENV_PREFIX + "ADVERTISE_HOST", "127.0.0.1"),
        "bootstrap_peers": [parse_peer_address(p) for p in peers.split(",") if p.strip()],
        "progress_interval": _get_number("PROGRESS_INTERVAL", DEFAULT_PROGRESS_INTERVAL, int),
        "mine_in_background": _get_bool("MINE_IN_BACKGROUND", True),
        "halt_on_invalid_chains": _get_bool("HALT_ON_INVALID_CHAINS", False),
        "log_level": os.getenv(ENV_PREFIX + "LOG_LEVEL", "INFO"),
        "log_dir": os.getenv(ENV_PREFIX + "LOG_DIR") or None,
    }

    for key, value in overrides.items():
        if key not in settings:
            raise ConfigError(f"Unknown setting {key}")
        if value is not None:
            settings[key] = value

    return NodeConfig(**settings)
