"""Configuration loading from CLI args, env vars, and an optional YAML file.

Precedence, lowest first: dataclass defaults, YAML file, environment, CLI.
"""

import argparse
import logging
import os
from dataclasses import dataclass, fields

import yaml

logger = logging.getLogger(__name__)

MIN_INTERVAL = 2


class ConfigurationError(ValueError):
    """Settings that make sampling impossible. Raised before the loop starts."""


@dataclass(frozen=True)
class Config:
    keyspace: str = ""
    table: str | None = None
    interval: int = 5
    count: int | None = None      # None samples forever
    disk: str = "sda"
    iface: str = "eth0"
    log_file: str | None = None
    event_output: str | None = None
    timestamp: bool = False
    epoch: bool = False
    no_header: bool = False
    read_repair: bool = False
    compaction: bool = False
    percentiles: bool = False
    cache: bool = False
    nodetool: str = "nodetool"
    host: str | None = None
    port: int | None = None
    log_level: str = "INFO"


_FIELD_NAMES = {f.name for f in fields(Config)}

_INT_FIELDS = {"interval", "count", "port"}
_BOOL_FIELDS = {"timestamp", "epoch", "no_header", "read_repair", "compaction", "percentiles", "cache"}

_ENV_VARS = {
    "CSTAT_NODETOOL": "nodetool",
    "CSTAT_LOG_LEVEL": "log_level",
}


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cstat",
        description="Sample a database node at a fixed interval and print one row per interval.",
    )
    parser.add_argument("-k", "--keyspace", help="Keyspace to report on (required)")
    parser.add_argument("-t", "--table", help="Table within the keyspace; required for --percentiles")
    parser.add_argument("-i", "--interval", type=int,
                        help=f"Seconds between rows, at least {MIN_INTERVAL} (default: {Config.interval})")
    parser.add_argument("-n", "--count", type=int, help="Stop after this many intervals (default: run forever)")
    parser.add_argument("--disk", help=f"Disk to report (default: {Config.disk})")
    parser.add_argument("--iface", help=f"Network interface to report (default: {Config.iface})")
    parser.add_argument("--log-file", help="Node log file to scan for events")
    parser.add_argument("--event-output", help="Write events to this file instead of between rows")
    parser.add_argument("--timestamp", action="store_true", default=None, help="Add a time column")
    parser.add_argument("--epoch", action="store_true", default=None, help="Add an epoch-seconds column")
    parser.add_argument("--no-header", action="store_true", default=None, help="Do not print column headers")
    parser.add_argument("--read-repair", action="store_true", default=None, help="Add read-repair rate column")
    parser.add_argument("--compaction", action="store_true", default=None, help="Add compaction column")
    parser.add_argument("--percentiles", action="store_true", default=None,
                        help="Add p99/p95 read and write latency columns (needs --table)")
    parser.add_argument("--cache", action="store_true", default=None,
                        help="Add cache hit rate and read-stage pending columns")
    parser.add_argument("--nodetool", help="Path to the nodetool binary (default: nodetool)")
    parser.add_argument("--host", help="Node host passed to nodetool")
    parser.add_argument("--port", type=int, help="Node JMX port passed to nodetool")
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("--log-level", help="Diagnostic log level (default: INFO)")
    return parser


def _coerce(name: str, value, source: str):
    """Convert a file value to the type of the Config field it sets."""
    if value is None:
        return None
    if name in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise ConfigurationError(f"{name} in {source} must be true or false, got {value!r}")
        return value
    if name in _INT_FIELDS:
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ConfigurationError(f"{name} in {source} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{name} in {source} must be an integer, got {value!r}") from None
    if isinstance(value, (dict, list)):
        raise ConfigurationError(f"{name} in {source} must be a single value, got {value!r}")
    return str(value)


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping of settings")

    settings = {}
    for key, value in data.items():
        name = str(key).replace("-", "_")
        if name not in _FIELD_NAMES:
            raise ConfigurationError(f"unknown setting {key!r} in {path}")
        settings[name] = _coerce(name, value, path)
    logger.info("Loaded YAML config from %s", path)
    return settings


def validate(config: Config) -> None:
    if not config.keyspace:
        raise ConfigurationError("a keyspace is required (-k/--keyspace)")
    if config.percentiles and not config.table:
        raise ConfigurationError("--percentiles needs a table (-t/--table)")
    if config.interval < MIN_INTERVAL:
        raise ConfigurationError(f"interval must be at least {MIN_INTERVAL} seconds, got {config.interval}")
    if config.count is not None and config.count < 1:
        raise ConfigurationError(f"count must be positive, got {config.count}")
    if not isinstance(logging.getLevelName(str(config.log_level).upper()), int):
        raise ConfigurationError(f"unknown log level {config.log_level!r}")


def load_config(argv=None) -> Config:
    """Build and validate Config from the YAML file, env vars and CLI args."""
    args = build_cli_parser().parse_args(argv)

    values = load_yaml_config(args.config)
    for var, name in _ENV_VARS.items():
        if var in os.environ:
            values[name] = os.environ[var]
    for name in _FIELD_NAMES:
        cli_value = getattr(args, name, None)
        if cli_value is not None:
            values[name] = cli_value

    config = Config(**values)
    validate(config)
    return config
