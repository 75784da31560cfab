"""
Sentry Notify Alert Sender — Single outbound POST of an assembled payload.

Per call:
    1. Open an httpx.Client built from the HttpConfiguration
    2. Stream the POST response
    3. Enforce the overall read deadline and max_content_length while reading
       (the wait for the headers is bounded by httpx's read timeout, which
       never exceeds the overall read timeout)
    4. Map non-2xx / transport failures to TransportError
    5. Close the response and client on every exit path

No retry is performed here. A failed delivery fails the task and the
orchestrator decides whether to run it again.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from sentry_notify.engine.connection import HttpConfiguration, HttpRequest
from sentry_notify.engine.errors import TransportError

logger = logging.getLogger("sentry_notify.engine.sender")

# Truncation for response bodies carried on errors
ERROR_BODY_LIMIT = 2048


@dataclass
class DeliveryResult:
    status_code: int
    duration_ms: float
    response_size_bytes: int
    response_body: str


class AlertSender:
    """
    Sends one request per ``send`` call.

    A custom httpx transport can be injected (tests use httpx.MockTransport
    as the sink); otherwise httpx's default HTTP transport is used.
    """

    def __init__(
        self,
        configuration: Optional[HttpConfiguration] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._configuration = configuration or HttpConfiguration()
        self._transport = transport

    @property
    def configuration(self) -> HttpConfiguration:
        return self._configuration

    def send(self, request: HttpRequest) -> DeliveryResult:
        """
        POST *request* and read the response.

        Raises:
            TransportError on connection/timeout errors, an oversized
            response, or a non-2xx status.
        """
        config = self._configuration
        start_time = time.monotonic()
        deadline = start_time + config.read_timeout if config.read_timeout else None

        try:
            with httpx.Client(transport=self._transport, **config.client_kwargs()) as client:
                with client.stream(
                    request.method,
                    request.url,
                    headers=request.headers,
                    content=request.body,
                ) as response:
                    content = self._read_bounded(response, request.url, deadline)
                    body = content.decode(response.encoding or config.default_charset, errors="replace")
                    status_code = response.status_code
        except TransportError:
            raise
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Timed out sending alert to {request.url}: {e}",
                url=request.url,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Failed to send alert to {request.url}: {e}",
                url=request.url,
            ) from e
        except httpx.InvalidURL as e:
            raise TransportError(
                f"Invalid alert URL {request.url}: {e}",
                url=request.url,
            ) from e

        duration_ms = (time.monotonic() - start_time) * 1000

        if not 200 <= status_code < 300:
            raise TransportError(
                f"Sentry responded with HTTP {status_code}",
                url=request.url,
                status_code=status_code,
                response_body=body[:ERROR_BODY_LIMIT],
            )

        logger.info(f"Alert delivered to {request.url} (HTTP {status_code}, {duration_ms:.0f}ms)")
        return DeliveryResult(
            status_code=status_code,
            duration_ms=duration_ms,
            response_size_bytes=len(content),
            response_body=body,
        )

    def _read_bounded(
        self,
        response: httpx.Response,
        url: str,
        deadline: Optional[float],
    ) -> bytes:
        """Read the response body, rejecting it once it passes the cap or deadline."""
        limit = self._configuration.max_content_length

        declared = response.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > limit:
            raise TransportError(
                f"Response from {url} declares {declared} bytes, above the {limit} byte limit",
                url=url,
                status_code=response.status_code,
            )

        self._check_deadline(deadline, url)

        chunks = []
        received = 0
        for chunk in response.iter_bytes():
            received += len(chunk)
            if received > limit:
                raise TransportError(
                    f"Response from {url} exceeded the {limit} byte limit",
                    url=url,
                    status_code=response.status_code,
                )
            chunks.append(chunk)
            self._check_deadline(deadline, url)

        return b"".join(chunks)

    @staticmethod
    def _check_deadline(deadline: Optional[float], url: str) -> None:
        if deadline is not None and time.monotonic() > deadline:
            raise TransportError(
                f"Reading the response from {url} exceeded the read timeout",
                url=url,
            )
