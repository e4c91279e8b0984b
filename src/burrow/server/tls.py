"""TLS context construction for the secure listener."""

import ssl
from pathlib import Path

from burrow.config import ServerConfig
from burrow.errors import ConfigurationError


def alpn_protocols(protocol: str) -> list[str]:
    """ALPN identifiers to offer, most preferred first."""
    if protocol == "http2":
        return ["h2", "http/1.1"]
    return ["http/1.1"]


def create_ssl_context(config: ServerConfig) -> ssl.SSLContext:
    """Server-side context from the configured key, certificate, and CA.

    The CA bundle is optional; it is loaded only when the file exists.
    """
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    try:
        context.load_cert_chain(certfile=str(config.tls_cert_file), keyfile=str(config.tls_key_file))
    except (OSError, ssl.SSLError) as exc:
        msg = (
            f"Cannot load TLS certificate {config.tls_cert_file!s} "
            f"with key {config.tls_key_file!s}: {exc}"
        )
        raise ConfigurationError(msg) from exc

    if config.tls_ca_file and Path(config.tls_ca_file).is_file():
        context.load_verify_locations(cafile=str(config.tls_ca_file))

    context.set_alpn_protocols(alpn_protocols(config.protocol))
    return context
