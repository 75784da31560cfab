"""Sentry Notify Engine — Template rendering, payload assembly, delivery."""

from sentry_notify.engine.context import RenderContext  # noqa: F401
from sentry_notify.engine.payload import ErrorLevel, PayloadAssembler, PayloadOverrides, Platform  # noqa: F401
from sentry_notify.engine.renderer import TemplateRenderer  # noqa: F401
from sentry_notify.engine.sender import AlertSender  # noqa: F401
from sentry_notify.engine.tasks import SentryAlert, SentryExecution, SentryTemplate, build_task  # noqa: F401

__all__ = [
    "RenderContext",
    "ErrorLevel",
    "PayloadAssembler",
    "PayloadOverrides",
    "Platform",
    "TemplateRenderer",
    "AlertSender",
    "SentryAlert",
    "SentryTemplate",
    "SentryExecution",
    "build_task",
]
