"""
Sentry Notify Tasks — Runnable alert tasks.

    SentryAlert       — send a pre-built payload string to the DSN endpoint
    SentryTemplate    — build the payload from template + overrides, then send
    SentryExecution   — SentryTemplate fixed to the packaged execution template,
                        with the render map built from an execution record

Lifecycle (per run):
    1. Render + parse the DSN → endpoint URL          (ConfigurationError)
    2. RequestOptions → HttpConfiguration + headers   (RenderError)
    3. Build the payload                              (template / assembly errors)
    4. POST once via AlertSender                      (TransportError)
    5. Log the delivery or the failure, re-raise failures

Nothing is sent unless steps 1–3 all succeed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from sentry_notify.engine.config import (
    EVENT_ID_PATTERN,
    EndpointType,
    NotifierConfig,
    SentryAlertConfig,
    SentryExecutionConfig,
    SentryTemplateConfig,
    generate_event_id,
)
from sentry_notify.engine.connection import build_http_configuration, create_request_builder
from sentry_notify.engine.context import RenderContext
from sentry_notify.engine.dsn import SentryDsn, envelope_body, parse_dsn
from sentry_notify.engine.errors import ConfigurationError, SentryNotifyError
from sentry_notify.engine.execution import ExecutionRecord, execution_map
from sentry_notify.engine.logging import FileLogger, log_alert_delivery, log_alert_failure
from sentry_notify.engine.payload import PayloadAssembler, PayloadOverrides, parse_level, parse_platform
from sentry_notify.engine.renderer import TemplateRenderer
from sentry_notify.engine.sender import AlertSender

logger = logging.getLogger("sentry_notify.engine.tasks")

EXECUTION_TEMPLATE = "sentry-execution.json.tmpl"

CONTENT_TYPES = {
    EndpointType.STORE: "application/json",
    EndpointType.ENVELOPE: "application/x-sentry-envelope",
}


class SentryAlert:
    """Send ``config.payload`` to the Sentry endpoint derived from ``config.dsn``."""

    TASK_TYPE = "alert"

    def __init__(
        self,
        config: SentryAlertConfig,
        transport: Optional[httpx.BaseTransport] = None,
        file_logger: Optional[FileLogger] = None,
        log_payload: bool = False,
    ):
        self.config = config
        self._transport = transport
        self._file_logger = file_logger
        self._log_payload = log_payload
        self._event_id: Optional[str] = None

    @property
    def execution_id(self) -> Optional[str]:
        return None

    def run(self, context: RenderContext) -> None:
        """
        Build and deliver the alert. Returns nothing; failures raise.

        Raises:
            SentryNotifyError subclasses. Every failure is logged before
            it propagates.
        """
        try:
            self._run(context)
        except SentryNotifyError as e:
            logger.error(f"{self.TASK_TYPE} task failed: {e.message}")
            self._write_log(log_alert_failure(
                task_type=self.TASK_TYPE,
                error=e,
                event_id=self._event_id,
                execution_id=self.execution_id,
            ))
            raise

    def render_payload(self, context: RenderContext) -> str:
        """Build the payload without sending it."""
        return self.build_payload(context)

    def build_payload(self, context: RenderContext) -> str:
        if self.config.payload is None:
            raise ConfigurationError("No payload configured for Sentry alert", field="payload")

        rendered = context.render(self.config.payload)
        if not isinstance(rendered, str):
            rendered = json.dumps(rendered, default=str)

        self._event_id = _extract_event_id(rendered)
        return rendered

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _run(self, context: RenderContext) -> None:
        options = self.config.options
        dsn = self._resolve_dsn(context)
        http_config = build_http_configuration(options)
        request = create_request_builder(options, context)

        payload = self.build_payload(context)
        event_id = self._event_id or generate_event_id()

        endpoint_type = self.config.endpoint_type
        body = payload
        if endpoint_type == EndpointType.ENVELOPE:
            body = envelope_body(event_id, dsn, payload)

        try:
            encoded = body.encode(http_config.default_charset)
        except UnicodeEncodeError as e:
            raise ConfigurationError(
                f"Payload cannot be encoded as {http_config.default_charset}: {e}",
                field="options.default_charset",
            ) from e

        request.url = dsn.endpoint_url(endpoint_type)
        request.body = encoded
        request.headers.setdefault(
            "Content-Type",
            f"{CONTENT_TYPES[endpoint_type]}; charset={http_config.default_charset.lower()}",
        )
        request.headers.setdefault("X-Sentry-Auth", dsn.auth_header())

        sender = AlertSender(http_config, transport=self._transport)
        result = sender.send(request)

        self._write_log(log_alert_delivery(
            task_type=self.TASK_TYPE,
            url=request.url,
            status_code=result.status_code,
            duration_ms=result.duration_ms,
            event_id=event_id,
            execution_id=self.execution_id,
            request_size_bytes=len(encoded),
            response_size_bytes=result.response_size_bytes,
            log_payload=self._log_payload,
            request_body=payload,
        ))

    def _resolve_dsn(self, context: RenderContext) -> SentryDsn:
        rendered = context.render_optional(self.config.dsn)
        if rendered is None:
            raise ConfigurationError("Sentry DSN is empty", field="dsn")
        return parse_dsn(rendered)

    def _write_log(self, entry) -> None:
        if self._file_logger is not None:
            self._file_logger.write(entry)


class SentryTemplate(SentryAlert):
    """Build the payload from ``template_uri`` and the per-field overrides."""

    TASK_TYPE = "template"

    config: SentryTemplateConfig

    def __init__(
        self,
        config: SentryTemplateConfig,
        renderer: Optional[TemplateRenderer] = None,
        assembler: Optional[PayloadAssembler] = None,
        **kwargs: Any,
    ):
        super().__init__(config, **kwargs)
        self._renderer = renderer or TemplateRenderer()
        self._assembler = assembler or PayloadAssembler()

    def template_uri(self, context: RenderContext) -> Optional[str]:
        return context.render_optional(self.config.template_uri)

    def template_render_map(self, context: RenderContext) -> Dict[str, Any]:
        return context.render_map(self.config.template_render_map)

    def resolve_overrides(self, context: RenderContext) -> PayloadOverrides:
        """Render every override field once; ``None`` means not set."""
        cfg = self.config

        event_id = str(context.render(cfg.event_id)).strip()
        if not EVENT_ID_PATTERN.match(event_id):
            raise ConfigurationError(
                f"event_id must be 32 lowercase hex characters, got '{event_id}'",
                field="event_id",
            )

        level = parse_level(context.render(cfg.level)) if cfg.level is not None else None

        return PayloadOverrides(
            event_id=event_id,
            platform=parse_platform(context.render(cfg.platform)),
            level=level,
            transaction=context.render_optional(cfg.transaction),
            server_name=context.render_optional(cfg.server_name),
            extra=context.render_map(cfg.extra),
            errors=context.render_map(cfg.errors),
        )

    def build_payload(self, context: RenderContext) -> str:
        base = self._renderer.render(
            self.template_uri(context),
            self.template_render_map(context),
            context,
        )
        overrides = self.resolve_overrides(context)
        self._event_id = overrides.event_id
        return self._assembler.assemble(base, overrides)


class SentryExecution(SentryTemplate):
    """Send an execution summary (id, namespace, flow, status, failing task, link)."""

    TASK_TYPE = "execution"

    config: SentryExecutionConfig

    def __init__(
        self,
        config: SentryExecutionConfig,
        execution_resolver: Callable[[str], ExecutionRecord],
        **kwargs: Any,
    ):
        super().__init__(config, **kwargs)
        self._execution_resolver = execution_resolver
        self._record: Optional[ExecutionRecord] = None

    @property
    def execution_id(self) -> Optional[str]:
        return self._record.id if self._record else None

    def template_uri(self, context: RenderContext) -> Optional[str]:
        return EXECUTION_TEMPLATE

    def template_render_map(self, context: RenderContext) -> Dict[str, Any]:
        execution_id = context.render_optional(self.config.execution_id)
        if execution_id is None:
            raise ConfigurationError("execution_id rendered to an empty value", field="execution_id")

        self._record = self._execution_resolver(execution_id)
        return execution_map(
            self._record,
            context,
            ui_base_url=self.config.ui_base_url,
            custom_fields=self.config.custom_fields,
            custom_message=self.config.custom_message,
        )


TASK_CLASSES = {
    "alert": SentryAlert,
    "template": SentryTemplate,
    "execution": SentryExecution,
}


def build_task(
    config: NotifierConfig,
    execution_resolver: Optional[Callable[[str], ExecutionRecord]] = None,
    transport: Optional[httpx.BaseTransport] = None,
    file_logger: Optional[FileLogger] = None,
) -> SentryAlert:
    """Instantiate the task class matching ``config.type``."""
    kwargs: Dict[str, Any] = {
        "transport": transport,
        "file_logger": file_logger,
        "log_payload": config.logging.log_payload,
    }
    if config.type == "execution":
        if execution_resolver is None:
            raise ConfigurationError("An execution record is required for execution alerts", field="execution")
        return SentryExecution(config.task, execution_resolver=execution_resolver, **kwargs)
    return TASK_CLASSES[config.type](config.task, **kwargs)


def execution_resolver_for(*records: ExecutionRecord) -> Callable[[str], ExecutionRecord]:
    """Resolver over an in-memory set of execution records."""
    by_id = {record.id: record for record in records}

    def resolve(execution_id: str) -> ExecutionRecord:
        record = by_id.get(execution_id)
        if record is None:
            raise ConfigurationError(f"Execution not found: {execution_id}", field="execution_id")
        return record

    return resolve


def _extract_event_id(payload: str) -> Optional[str]:
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("event_id"), str):
        return parsed["event_id"]
    return None
