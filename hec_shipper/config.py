"""Configuration module — frozen dataclass loaded from YAML, env vars and CLI args."""

import argparse
import logging
import os
from dataclasses import dataclass, fields

import yaml

from hec_shipper.formatter import FormatMode
from hec_shipper.record_accessor import KeyPath

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the output configuration cannot be used."""


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


@dataclass(frozen=True)
class Config:
    host: str = "127.0.0.1"
    port: int = 8088
    tls: bool = False
    tls_verify: bool = True
    compress: str = ""
    http_user: str | None = None
    http_passwd: str = ""
    splunk_token: str | None = None
    event_key: str | None = None
    splunk_send_raw: bool = False
    timeout: float = 10.0
    max_connections: int = 2

    @property
    def compress_gzip(self) -> bool:
        return self.compress.strip().lower() == "gzip"

    @property
    def auth_header(self) -> str | None:
        """Static Authorization value built from the collector token."""
        if self.splunk_token:
            return f"Splunk {self.splunk_token}"
        return None

    @property
    def auth_mode(self) -> str:
        if self.http_user and self.http_passwd:
            return "basic"
        if self.auth_header:
            return "token"
        return "none"

    @property
    def base_url(self) -> str:
        scheme = "https" if self.tls else "http"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def send_mode(self) -> FormatMode:
        key_path = KeyPath.parse(self.event_key) if self.event_key else None
        return FormatMode(send_raw=self.splunk_send_raw, event_key=key_path)

    def validate(self) -> "Config":
        """Check option values; returns self so calls can be chained."""
        if self.compress and not self.compress_gzip:
            raise ConfigError(
                f"Invalid compress option {self.compress!r}, only 'gzip' is supported"
            )
        if self.event_key:
            try:
                KeyPath.parse(self.event_key)
            except ValueError as exc:
                raise ConfigError(f"Invalid event_key {self.event_key!r}: {exc}") from exc
        if not 1 <= self.port <= 65535:
            raise ConfigError(f"Invalid port {self.port}")
        if self.max_connections < 1:
            raise ConfigError("max_connections must be at least 1")
        if self.http_user and not self.http_passwd:
            logger.warning("http_user is set without http_passwd, basic auth disabled")
        if self.auth_mode == "none":
            logger.warning("No authentication configured (set splunk_token or http_user)")
        return self


# Option name -> (env var, converter)
_OPTIONS = {
    "host": ("SPLUNK_HOST", str),
    "port": ("SPLUNK_PORT", int),
    "tls": ("SPLUNK_TLS", _parse_bool),
    "tls_verify": ("SPLUNK_TLS_VERIFY", _parse_bool),
    "compress": ("SPLUNK_COMPRESS", str),
    "http_user": ("SPLUNK_HTTP_USER", str),
    "http_passwd": ("SPLUNK_HTTP_PASSWD", str),
    "splunk_token": ("SPLUNK_TOKEN", str),
    "event_key": ("SPLUNK_EVENT_KEY", str),
    "splunk_send_raw": ("SPLUNK_SEND_RAW", _parse_bool),
    "timeout": ("SPLUNK_TIMEOUT", float),
    "max_connections": ("SPLUNK_MAX_CONNECTIONS", int),
}


def load_yaml_config(path: str | None) -> dict:
    """Load output options from a YAML file. Returns empty dict if no path.

    Options may sit at the top level or under a ``splunk:`` section.
    """
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    section = data.get("splunk", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'splunk' section in {path} must be a mapping")

    unknown = set(section) - set(_OPTIONS)
    if unknown:
        logger.warning("Ignoring unknown options in %s: %s", path, ", ".join(sorted(unknown)))
    logger.info("Loaded YAML config from %s", path)
    return {k: v for k, v in section.items() if k in _OPTIONS}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ship log chunks to an HTTP Event Collector",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("--config", type=str, default=None, help="YAML config file")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--tls", action="store_true", default=None)
    parser.add_argument("--no-tls-verify", dest="tls_verify", action="store_false", default=None)
    parser.add_argument("--compress", type=str, default=None, help="'gzip' to enable")
    parser.add_argument("--http-user", type=str, default=None)
    parser.add_argument("--http-passwd", type=str, default=None)
    parser.add_argument("--splunk-token", type=str, default=None)
    parser.add_argument("--event-key", type=str, default=None)
    parser.add_argument("--send-raw", dest="splunk_send_raw", action="store_true", default=None)
    parser.add_argument("--timeout", type=float, default=None)
    parser.add_argument("--max-connections", type=int, default=None)
    return parser


def config_from_mapping(values: dict) -> Config:
    """Build a validated Config from a plain mapping of option values."""
    kwargs = {}
    for name, value in values.items():
        if value is None:
            continue
        _, convert = _OPTIONS[name]
        try:
            kwargs[name] = convert(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {name}: {value!r}") from exc
    return Config(**kwargs).validate()


def load_config(argv: list[str] | None = None) -> Config:
    """Build Config from defaults <- YAML file <- env vars <- CLI args.

    Flags that are not output options are ignored so entry points can parse
    their own arguments from the same argv.
    """
    args, _ = _build_parser().parse_known_args(argv)

    values: dict = load_yaml_config(args.config or os.environ.get("SPLUNK_CONFIG"))

    for name, (env_var, _) in _OPTIONS.items():
        if env_var in os.environ:
            values[name] = os.environ[env_var]

    for field in fields(Config):
        cli_value = getattr(args, field.name, None)
        if cli_value is not None:
            values[field.name] = cli_value

    return config_from_mapping(values)
