"""
Sentry Notify Connection Builder — RequestOptions → httpx client configuration.

Two products per task run:
    1. HttpConfiguration — timeouts, pool expiry, charset and response cap,
       convertible to ``httpx.Client`` keyword arguments.
    2. HttpRequest — a request builder pre-populated with the rendered
       header map from RequestOptions.headers.

Header rendering is delegated to the injected render context; a header that
references an unknown variable raises RenderError and nothing is sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional

import httpx

from sentry_notify.engine.config import DEFAULT_MAX_CONTENT_LENGTH, RequestOptions
from sentry_notify.engine.context import RenderContext

logger = logging.getLogger("sentry_notify.engine.connection")

# httpx's own default (5s for every phase)
TRANSPORT_DEFAULT_TIMEOUT = 5.0


def _seconds(value: Optional[timedelta]) -> Optional[float]:
    return value.total_seconds() if value is not None else None


@dataclass
class HttpConfiguration:
    """Concrete client settings. The no-argument form is the transport default."""

    connect_timeout: Optional[float] = None
    read_idle_timeout: Optional[float] = None
    read_timeout: Optional[float] = None
    pool_idle_timeout: Optional[float] = None
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH
    default_charset: str = "UTF-8"

    def timeout(self) -> httpx.Timeout:
        """
        Build the httpx timeout; unset phases keep the transport default.

        The per-read timeout is capped by ``read_timeout`` so that waiting for
        the response headers is bounded by the overall read timeout too.
        """
        reads = [t for t in (self.read_idle_timeout, self.read_timeout) if t is not None]
        return httpx.Timeout(
            TRANSPORT_DEFAULT_TIMEOUT,
            connect=self.connect_timeout if self.connect_timeout is not None else TRANSPORT_DEFAULT_TIMEOUT,
            read=min(reads) if reads else TRANSPORT_DEFAULT_TIMEOUT,
        )

    def limits(self) -> httpx.Limits:
        if self.pool_idle_timeout is None:
            return httpx.Limits()
        return httpx.Limits(keepalive_expiry=self.pool_idle_timeout)

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``httpx.Client``."""
        return {
            "timeout": self.timeout(),
            "limits": self.limits(),
            "default_encoding": self.default_charset,
        }


@dataclass
class HttpRequest:
    """Request builder: method, url, headers and encoded body.

    Header names are case-insensitive; setting a name replaces every value
    already held under any casing of it.
    """

    method: str = "POST"
    url: str = ""
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers)

    def add_header(self, name: str, value: str) -> "HttpRequest":
        self.headers[name] = value
        return self


def build_http_configuration(options: Optional[RequestOptions]) -> HttpConfiguration:
    """
    Translate RequestOptions into a client configuration.

    Returns the unmodified transport default when *options* is None.
    """
    if options is None:
        return HttpConfiguration()

    return HttpConfiguration(
        connect_timeout=_seconds(options.connect_timeout),
        read_idle_timeout=_seconds(options.read_idle_timeout),
        read_timeout=_seconds(options.read_timeout),
        pool_idle_timeout=_seconds(options.connection_pool_idle_timeout),
        max_content_length=options.max_content_length,
        default_charset=options.default_charset,
    )


def create_request_builder(
    options: Optional[RequestOptions],
    context: RenderContext,
) -> HttpRequest:
    """
    Create a request builder carrying every rendered header from *options*.

    Headers are applied in one pass; on a key collision the last one wins.

    Raises:
        RenderError if a header value references an unknown variable.
    """
    builder = HttpRequest()

    if options is not None and options.headers is not None:
        headers = context.render_map(options.headers)
        for name, value in headers.items():
            builder.add_header(str(name), "" if value is None else str(value))
        logger.debug(f"Attached {len(headers)} configured header(s)")

    return builder
