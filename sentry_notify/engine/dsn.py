"""
Sentry DSN parsing and ingestion endpoint derivation.

A DSN has the form::

    {scheme}://{public_key}[:{secret_key}]@{host}[:{port}]/{path/}{project_id}

and maps to:

    STORE    → {scheme}://{host}[:{port}]{/path}/api/{project_id}/store/
    ENVELOPE → {scheme}://{host}[:{port}]{/path}/api/{project_id}/envelope/
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from sentry_notify import __version__
from sentry_notify.engine.config import EndpointType
from sentry_notify.engine.errors import ConfigurationError

SENTRY_VERSION = "7"
SENTRY_CLIENT = f"sentry-notify/{__version__}"


@dataclass(frozen=True)
class SentryDsn:
    scheme: str
    public_key: str
    secret_key: Optional[str]
    host: str
    port: Optional[int]
    path: str
    project_id: str
    raw: str

    @property
    def base_url(self) -> str:
        # IPv6 literals keep their brackets
        host = f"[{self.host}]" if ":" in self.host else self.host
        netloc = host if self.port is None else f"{host}:{self.port}"
        return f"{self.scheme}://{netloc}{self.path}"

    def endpoint_url(self, endpoint_type: EndpointType) -> str:
        suffix = "envelope" if endpoint_type == EndpointType.ENVELOPE else "store"
        return f"{self.base_url}/api/{self.project_id}/{suffix}/"

    def auth_header(self) -> str:
        """Value of the ``X-Sentry-Auth`` header."""
        parts = [
            f"sentry_version={SENTRY_VERSION}",
            f"sentry_client={SENTRY_CLIENT}",
            f"sentry_key={self.public_key}",
        ]
        if self.secret_key:
            parts.append(f"sentry_secret={self.secret_key}")
        return "Sentry " + ", ".join(parts)


def parse_dsn(dsn: str) -> SentryDsn:
    """
    Parse a Sentry DSN.

    Raises:
        ConfigurationError if the scheme, public key, host or project id
        is missing.
    """
    if not dsn or not dsn.strip():
        raise ConfigurationError("Sentry DSN is empty", field="dsn")

    try:
        parts = urlsplit(dsn.strip())
        port = parts.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid Sentry DSN: {e}", field="dsn") from e

    if parts.scheme not in ("http", "https"):
        raise ConfigurationError(
            f"Invalid Sentry DSN scheme '{parts.scheme}' (expected http/https)",
            field="dsn",
        )
    if not parts.username:
        raise ConfigurationError("Sentry DSN has no public key", field="dsn")
    if not parts.hostname:
        raise ConfigurationError("Sentry DSN has no host", field="dsn")

    path, _, project_id = parts.path.rstrip("/").rpartition("/")
    if not project_id:
        raise ConfigurationError("Sentry DSN has no project id", field="dsn")

    return SentryDsn(
        scheme=parts.scheme,
        public_key=parts.username,
        secret_key=parts.password,
        host=parts.hostname,
        port=port,
        path=path,
        project_id=project_id,
        raw=dsn.strip(),
    )


def envelope_body(event_id: str, dsn: SentryDsn, payload: str) -> str:
    """Frame an event payload as a single-item Sentry envelope."""
    header = json.dumps({"event_id": event_id, "dsn": dsn.raw})
    item_header = json.dumps({"type": "event", "content_type": "application/json"})
    return f"{header}\n{item_header}\n{payload}\n"
