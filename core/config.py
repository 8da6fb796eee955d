"""
Core Module - Configuration.

============================================================
RESPONSIBILITY
============================================================
Builds server and agent configuration.

Precedence (highest first):
1. Environment variables (a .env file is loaded first)
2. Command line flags
3. Defaults

============================================================
SERVER
============================================================
ADDRESS            -a   listen address            localhost:8080
STORE_INTERVAL     -i   snapshot interval (s)     300 (0 = synchronous)
FILE_STORAGE_PATH  -f   snapshot file path        ./metrics-recovery.json
RESTORE            -r   restore on boot           true
DATABASE_DSN       -d   database DSN              (empty = no database)
RETRY_DELAYS            comma separated seconds   1,3,5
LOG_LEVEL               logging level             INFO

============================================================
AGENT
============================================================
ADDRESS            -a   collector address         localhost:8080
REPORT_INTERVAL    -r   report interval (s)       10
POLL_INTERVAL      -p   poll interval (s)         2

============================================================
"""

import argparse
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

from dotenv import load_dotenv

from core.exceptions import ConfigurationError
from core.retry import RETRY_DELAYS


LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_TRUE_VALUES = {"1", "t", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "f", "false", "no", "n", "off"}


# ============================================================
# VALUE PARSERS
# ============================================================

def parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid {key}: {raw}", config_key=key, actual_value=raw)


def parse_seconds(key: str, raw: str) -> float:
    """Parse a non-negative number of seconds ("10", "2.5" or "10s")."""
    value = raw.strip()
    if value.endswith("s"):
        value = value[:-1]
    try:
        seconds = float(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {key}: {raw}", config_key=key, actual_value=raw) from e
    if seconds < 0:
        raise ConfigurationError(f"{key} must not be negative", config_key=key, actual_value=raw)
    return seconds


def parse_delays(key: str, raw: str) -> Tuple[float, ...]:
    """Parse a comma separated list of backoff delays."""
    parts = [p for p in raw.split(",") if p.strip()]
    return tuple(parse_seconds(key, p) for p in parts)


# ============================================================
# SERVER CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class ServerConfig:
    """Collector server configuration."""

    address: str = "localhost:8080"
    """host:port to listen on."""

    store_interval: float = 300.0
    """Seconds between snapshots; 0 saves after every update."""

    file_storage_path: str = "./metrics-recovery.json"
    """Snapshot file (also the file backend's store)."""

    restore: bool = True
    """Replay the snapshot file into the repository at boot."""

    database_dsn: str = ""
    """SQLAlchemy URL; selects the database backend when set."""

    retry_delays: Tuple[float, ...] = RETRY_DELAYS
    """Backoff delays for the database backend."""

    log_level: str = "INFO"

    @property
    def host(self) -> str:
        return split_address(self.address)[0]

    @property
    def port(self) -> int:
        return split_address(self.address)[1]

    @property
    def sync_save(self) -> bool:
        return self.store_interval == 0


def create_server_parser() -> argparse.ArgumentParser:
    """Create the server argument parser."""
    defaults = ServerConfig()
    parser = argparse.ArgumentParser(
        prog="metrics-server",
        description="Metrics collector server",
    )
    parser.add_argument("-a", dest="address", default=defaults.address,
                        help="server address (default: %(default)s)")
    parser.add_argument("-i", dest="store_interval", default=str(int(defaults.store_interval)),
                        help="store interval in seconds (default: %(default)s)")
    parser.add_argument("-f", dest="file_storage_path", default=defaults.file_storage_path,
                        help="file storage path (default: %(default)s)")
    parser.add_argument("-r", dest="restore", default="true",
                        help="restore from file (default: %(default)s)")
    parser.add_argument("-d", dest="database_dsn", default=defaults.database_dsn,
                        help="database DSN")
    parser.add_argument("--log-level", dest="log_level", default=defaults.log_level,
                        choices=LOG_LEVELS, help="logging level (default: %(default)s)")
    return parser


def load_server_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ServerConfig:
    """
    Build the server configuration from flags and environment.

    Raises:
        ConfigurationError: On unparsable values
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    args = create_server_parser().parse_args(argv)

    address = environ.get("ADDRESS") or args.address
    interval_raw = environ.get("STORE_INTERVAL") or args.store_interval
    path = environ.get("FILE_STORAGE_PATH") or args.file_storage_path
    restore_raw = environ.get("RESTORE") or args.restore
    dsn = environ.get("DATABASE_DSN") or args.database_dsn
    delays_raw = environ.get("RETRY_DELAYS")
    log_level = (environ.get("LOG_LEVEL") or args.log_level).upper()

    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"Invalid LOG_LEVEL: {log_level}", config_key="LOG_LEVEL")

    split_address(address)

    return ServerConfig(
        address=address,
        store_interval=parse_seconds("STORE_INTERVAL", interval_raw),
        file_storage_path=path,
        restore=parse_bool("RESTORE", restore_raw),
        database_dsn=dsn,
        retry_delays=parse_delays("RETRY_DELAYS", delays_raw) if delays_raw else RETRY_DELAYS,
        log_level=log_level,
    )


# ============================================================
# AGENT CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class AgentConfig:
    """Reporting agent configuration."""

    address: str = "localhost:8080"
    """Collector host:port."""

    report_interval: float = 10.0
    poll_interval: float = 2.0

    retry_delays: Tuple[float, ...] = RETRY_DELAYS
    request_timeout: float = 10.0
    compress: bool = True
    log_level: str = "INFO"

    @property
    def base_url(self) -> str:
        if self.address.startswith(("http://", "https://")):
            return self.address.rstrip("/")
        return f"http://{self.address}"


def create_agent_parser() -> argparse.ArgumentParser:
    """Create the agent argument parser."""
    defaults = AgentConfig()
    parser = argparse.ArgumentParser(
        prog="metrics-agent",
        description="Process metrics reporting agent",
    )
    parser.add_argument("-a", dest="address", default=defaults.address,
                        help="collector address (default: %(default)s)")
    parser.add_argument("-r", dest="report_interval", default=str(int(defaults.report_interval)),
                        help="report interval in seconds (default: %(default)s)")
    parser.add_argument("-p", dest="poll_interval", default=str(int(defaults.poll_interval)),
                        help="poll interval in seconds (default: %(default)s)")
    parser.add_argument("--log-level", dest="log_level", default=defaults.log_level,
                        choices=LOG_LEVELS, help="logging level (default: %(default)s)")
    return parser


def load_agent_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AgentConfig:
    """Build the agent configuration from flags and environment."""
    if environ is None:
        load_dotenv()
        environ = os.environ

    args = create_agent_parser().parse_args(argv)

    report = parse_seconds("REPORT_INTERVAL", environ.get("REPORT_INTERVAL") or args.report_interval)
    poll = parse_seconds("POLL_INTERVAL", environ.get("POLL_INTERVAL") or args.poll_interval)
    if report <= 0 or poll <= 0:
        raise ConfigurationError("Intervals must be positive", config_key="POLL_INTERVAL")

    delays_raw = environ.get("RETRY_DELAYS")

    return AgentConfig(
        address=environ.get("ADDRESS") or args.address,
        report_interval=report,
        poll_interval=poll,
        retry_delays=parse_delays("RETRY_DELAYS", delays_raw) if delays_raw else RETRY_DELAYS,
        log_level=(environ.get("LOG_LEVEL") or args.log_level).upper(),
    )


# ============================================================
# HELPERS
# ============================================================

def split_address(address: str) -> Tuple[str, int]:
    """Split "host:port" (host may be empty)."""
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ConfigurationError(f"Invalid ADDRESS: {address}", config_key="ADDRESS")
    try:
        return host or "0.0.0.0", int(port)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid ADDRESS: {address}", config_key="ADDRESS", actual_value=address
        ) from e
