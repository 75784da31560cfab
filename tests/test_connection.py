"""Unit tests for sentry_notify.engine.connection — HTTP configuration & request builder."""

from datetime import timedelta

import httpx
import pytest

from sentry_notify.engine.config import RequestOptions
from sentry_notify.engine.connection import (
    TRANSPORT_DEFAULT_TIMEOUT,
    HttpConfiguration,
    HttpRequest,
    build_http_configuration,
    create_request_builder,
)
from sentry_notify.engine.context import RenderContext
from sentry_notify.engine.errors import RenderError


class TestBuildHttpConfiguration:
    def test_no_options_is_transport_default(self):
        assert build_http_configuration(None) == HttpConfiguration()

    def test_defaults_round_trip(self):
        config = build_http_configuration(RequestOptions())
        assert config.connect_timeout is None
        assert config.read_timeout == 10.0
        assert config.read_idle_timeout == 300.0
        assert config.pool_idle_timeout == 0.0
        assert config.max_content_length == 10 * 1024 * 1024
        assert config.default_charset == "UTF-8"

    def test_connect_timeout_applied(self):
        config = build_http_configuration(RequestOptions(connect_timeout=timedelta(seconds=2)))
        timeout = config.timeout()
        assert timeout.connect == 2.0
        assert timeout.read == 10.0

    def test_read_timeout_caps_per_read_wait(self):
        config = build_http_configuration(RequestOptions(read_timeout=timedelta(seconds=10)))
        assert config.timeout().read == 10.0

    def test_read_idle_shorter_than_read_timeout(self):
        config = build_http_configuration(
            RequestOptions(read_idle_timeout=timedelta(seconds=3), read_timeout=timedelta(seconds=30))
        )
        assert config.timeout().read == 3.0

    def test_no_options_read_uses_transport_default(self):
        assert HttpConfiguration().timeout().read == TRANSPORT_DEFAULT_TIMEOUT

    def test_unset_connect_timeout_uses_transport_default(self):
        timeout = build_http_configuration(RequestOptions()).timeout()
        assert timeout.connect == TRANSPORT_DEFAULT_TIMEOUT

    def test_client_kwargs(self):
        config = build_http_configuration(
            RequestOptions(connection_pool_idle_timeout=timedelta(seconds=30), default_charset="latin-1")
        )
        kwargs = config.client_kwargs()
        assert isinstance(kwargs["timeout"], httpx.Timeout)
        assert isinstance(kwargs["limits"], httpx.Limits)
        assert kwargs["limits"].keepalive_expiry == 30.0
        assert kwargs["default_encoding"] == "latin-1"

    def test_client_kwargs_build_a_client(self):
        with httpx.Client(**HttpConfiguration().client_kwargs()) as client:
            assert client.timeout.connect == TRANSPORT_DEFAULT_TIMEOUT


class TestCreateRequestBuilder:
    def test_no_options_no_headers(self):
        builder = create_request_builder(None, RenderContext())
        assert builder.headers == {}
        assert builder.method == "POST"

    def test_headers_are_rendered(self):
        ctx = RenderContext({"execution": {"namespace": "prod"}})
        opts = RequestOptions(headers={"X-Namespace": "{{ execution.namespace }}", "X-Static": "yes"})
        builder = create_request_builder(opts, ctx)
        assert builder.headers == {"X-Namespace": "prod", "X-Static": "yes"}

    def test_non_string_header_values_stringified(self):
        ctx = RenderContext({"attempt": 2})
        builder = create_request_builder(RequestOptions(headers={"X-Attempt": "{{ attempt }}"}), ctx)
        assert builder.headers["X-Attempt"] == "2"

    def test_unresolved_header_fails(self):
        opts = RequestOptions(headers={"X-Namespace": "{{ execution.namespace }}"})
        with pytest.raises(RenderError):
            create_request_builder(opts, RenderContext())

    def test_add_header_last_write_wins(self):
        builder = create_request_builder(None, RenderContext())
        builder.add_header("X-A", "1").add_header("X-A", "2")
        assert builder.headers == {"X-A": "2"}

    def test_header_names_case_insensitive(self):
        builder = create_request_builder(None, RenderContext())
        builder.add_header("content-type", "text/plain")
        builder.headers.setdefault("Content-Type", "application/json")
        assert builder.headers["CONTENT-TYPE"] == "text/plain"
        assert builder.headers.get_list("content-type") == ["text/plain"]

    def test_plain_dict_headers_accepted(self):
        request = HttpRequest(headers={"X-A": "1"})
        assert request.headers["x-a"] == "1"
