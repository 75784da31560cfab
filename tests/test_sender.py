"""Unit tests for sentry_notify.engine.sender — AlertSender over httpx.MockTransport."""

import time

import httpx
import pytest

from sentry_notify.engine.connection import HttpConfiguration, HttpRequest
from sentry_notify.engine.errors import TransportError
from sentry_notify.engine.sender import ERROR_BODY_LIMIT, AlertSender


@pytest.fixture
def request_(store_url) -> HttpRequest:
    return HttpRequest(url=store_url, headers={"Content-Type": "application/json"}, body=b'{"event_id":"x"}')


class TestSuccessfulDelivery:
    def test_single_post(self, sink, request_, store_url):
        result = AlertSender(transport=sink.transport).send(request_)
        assert result.status_code == 200
        assert result.response_body == '{"id":"ok"}'
        assert result.response_size_bytes == len(b'{"id":"ok"}')
        assert len(sink.requests) == 1

        sent = sink.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == store_url
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.content == b'{"event_id":"x"}'

    def test_any_2xx_is_success(self, make_sink, request_):
        sink = make_sink(status_code=202, body=b"")
        assert AlertSender(transport=sink.transport).send(request_).status_code == 202


class TestFailures:
    def test_non_2xx_raises(self, make_sink, request_, store_url):
        sink = make_sink(status_code=429, body=b'{"error":"rate limited"}')
        with pytest.raises(TransportError) as exc_info:
            AlertSender(transport=sink.transport).send(request_)
        err = exc_info.value
        assert err.status_code == 429
        assert err.url == store_url
        assert "rate limited" in err.response_body
        assert len(sink.requests) == 1

    def test_error_body_truncated(self, make_sink, request_):
        sink = make_sink(status_code=500, body=b"x" * (ERROR_BODY_LIMIT * 2))
        with pytest.raises(TransportError) as exc_info:
            AlertSender(transport=sink.transport).send(request_)
        assert len(exc_info.value.response_body) == ERROR_BODY_LIMIT

    def test_connection_error(self, request_):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError, match="Failed to send alert") as exc_info:
            AlertSender(transport=httpx.MockTransport(refuse)).send(request_)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_invalid_url(self, sink):
        bad = HttpRequest(url="http://::1:9000/api/42/store/", body=b"{}")
        with pytest.raises(TransportError, match="Invalid alert URL") as exc_info:
            AlertSender(transport=sink.transport).send(bad)
        assert isinstance(exc_info.value.__cause__, httpx.InvalidURL)
        assert sink.requests == []

    def test_timeout(self, request_):
        def stall(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(TransportError, match="Timed out"):
            AlertSender(transport=httpx.MockTransport(stall)).send(request_)


class TestResponseLimits:
    def test_declared_length_above_cap(self, make_sink, request_):
        sink = make_sink(body=b"y" * 64)
        sender = AlertSender(HttpConfiguration(max_content_length=16), transport=sink.transport)
        with pytest.raises(TransportError, match="byte limit"):
            sender.send(request_)

    def test_streamed_body_above_cap(self, request_):
        def chunked(request):
            return httpx.Response(200, content=iter([b"a" * 10, b"b" * 10]))

        sender = AlertSender(HttpConfiguration(max_content_length=15), transport=httpx.MockTransport(chunked))
        with pytest.raises(TransportError, match="exceeded the 15 byte limit"):
            sender.send(request_)

    def test_overall_read_deadline(self, request_):
        def slow_body():
            yield b"first"
            time.sleep(0.2)
            yield b"second"

        def slow(request):
            return httpx.Response(200, content=slow_body())

        sender = AlertSender(HttpConfiguration(read_timeout=0.05), transport=httpx.MockTransport(slow))
        with pytest.raises(TransportError, match="read timeout"):
            sender.send(request_)

    def test_body_within_limits(self, make_sink, request_):
        sink = make_sink(body=b"z" * 16)
        sender = AlertSender(HttpConfiguration(max_content_length=16), transport=sink.transport)
        assert sender.send(request_).response_size_bytes == 16
