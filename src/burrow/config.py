"""Server configuration.

ServerConfig is a frozen dataclass — immutable after creation,
IDE-autocompletable, no string-key dict lookups. ``from_env`` reads the
environment-style options recognized by the server.
"""

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from burrow.errors import ConfigurationError
from burrow.logs import Level

PROTOCOLS = ("http1.1", "http2")
LOG_STYLES = ("json", "pretty")

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"", "0", "false", "no", "off"})


def is_interactive(stream: TextIO | None = None, environ: Mapping[str, str] | None = None) -> bool:
    """True when *stream* is a TTY and ``TERM`` names a capable terminal."""
    stream = sys.stdout if stream is None else stream
    environ = os.environ if environ is None else environ
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return False
    term = environ.get("TERM", "")
    return bool(term) and term != "dumb"


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Server configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = ServerConfig(host="0.0.0.0", port=8443, secure=True)
    """

    # Listener
    host: str = "localhost"
    port: int = 0
    protocol: str = "http1.1"
    secure: bool = False

    # Logging
    log_level: str = "info"
    log_style: str = "json"
    no_color: bool = False

    # TLS (used only when secure=True)
    tls_key_file: str | Path = "certs/localhost-key.pem"
    tls_cert_file: str | Path = "certs/localhost.pem"
    tls_ca_file: str | Path | None = "certs/ca.pem"

    # Connections
    keep_alive_timeout: float = 5.0
    shutdown_poll_fallback: float = 1.0

    def __post_init__(self) -> None:
        if self.protocol not in PROTOCOLS:
            msg = f"Unknown protocol {self.protocol!r}; expected one of {', '.join(PROTOCOLS)}"
            raise ConfigurationError(msg)
        if self.log_style not in LOG_STYLES:
            msg = f"Unknown log style {self.log_style!r}; expected one of {', '.join(LOG_STYLES)}"
            raise ConfigurationError(msg)
        if not 0 <= self.port <= 65535:
            msg = f"Port {self.port} is out of range"
            raise ConfigurationError(msg)
        Level.parse(self.log_level)

    @property
    def shutdown_poll_interval(self) -> float:
        """Seconds between idle sweeps while shutting down."""
        if self.keep_alive_timeout > 0:
            return self.keep_alive_timeout
        return self.shutdown_poll_fallback

    @property
    def scheme(self) -> str:
        return "https" if self.secure else "http"

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        interactive: bool | None = None,
    ) -> "ServerConfig":
        """Build a config from environment variables.

        ``LOG_STYLE`` wins over ``LOG_FORMAT``; when neither is set the
        style is ``pretty`` for an interactive stdout and ``json`` otherwise.
        """
        env = os.environ if environ is None else environ
        if interactive is None:
            interactive = is_interactive(environ=env)

        defaults = cls()
        style = env.get("LOG_STYLE") or env.get("LOG_FORMAT") or ("pretty" if interactive else "json")
        ca_file = env.get("TLS_CA_FILE", defaults.tls_ca_file)

        return cls(
            host=env.get("HOST") or defaults.host,
            port=_parse_int("PORT", env.get("PORT"), defaults.port),
            protocol=env.get("PROTOCOL") or defaults.protocol,
            secure=_parse_bool("SECURE", env.get("SECURE"), defaults.secure),
            log_level=env.get("LOG_LEVEL") or defaults.log_level,
            log_style=style,
            no_color=bool(env.get("NO_COLOR")),
            tls_key_file=env.get("TLS_KEY_FILE") or defaults.tls_key_file,
            tls_cert_file=env.get("TLS_CERT_FILE") or defaults.tls_cert_file,
            tls_ca_file=ca_file or None,
            keep_alive_timeout=_parse_float(
                "KEEP_ALIVE_TIMEOUT", env.get("KEEP_ALIVE_TIMEOUT"), defaults.keep_alive_timeout
            ),
        )


def _parse_int(name: str, value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        msg = f"{name} must be an integer, got {value!r}"
        raise ConfigurationError(msg) from None


def _parse_float(name: str, value: str | None, default: float) -> float:
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        msg = f"{name} must be a number, got {value!r}"
        raise ConfigurationError(msg) from None


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    msg = f"{name} must be a boolean, got {value!r}"
    raise ConfigurationError(msg)
