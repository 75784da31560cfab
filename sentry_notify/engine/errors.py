"""
Sentry Notify Error Hierarchy — Structured exceptions for alert task failures.

Every error propagates as a task failure. Nothing is retried or downgraded
to a warning inside the notifier; retries belong to the orchestrator.

Hierarchy:
    SentryNotifyError
    ├── ConfigurationError          — Malformed or missing configuration
    ├── TemplateNotFoundError       — Template resource does not exist
    ├── RenderError                 — Expression could not be resolved
    ├── InvalidTemplateOutputError  — Rendered template is not a JSON object
    ├── SerializationError          — Final payload cannot be serialized
    └── TransportError              — Connection, timeout or non-2xx response
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class SentryNotifyError(Exception):
    """
    Base error for all notifier failures.
    All context is serializable to JSON for the structured log files.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.execution_id: Optional[str] = context.get("execution_id")
        self.task_type: Optional[str] = context.get("task_type")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "execution_id": self.execution_id,
            "task_type": self.task_type,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("execution_id", "task_type")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.task_type:
            parts.append(f"task_type={self.task_type}")
        if self.execution_id:
            parts.append(f"execution_id={self.execution_id}")
        return " | ".join(parts)


class ConfigurationError(SentryNotifyError):
    """
    Malformed or missing configuration (invalid event id, DSN, level...).
    Raised before any network activity.
    """

    def __init__(self, message: str, **context: Any):
        self.field: Optional[str] = context.get("field")
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        d["validation_errors"] = self.validation_errors
        return d


class TemplateNotFoundError(SentryNotifyError):
    """The referenced template resource does not exist."""

    def __init__(self, message: str, **context: Any):
        self.template_uri: Optional[str] = context.get("template_uri")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["template_uri"] = self.template_uri
        return d


class RenderError(SentryNotifyError):
    """A variable reference in a header, template or field could not be resolved."""

    def __init__(self, message: str, **context: Any):
        self.expression: Optional[str] = context.get("expression")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["expression"] = self.expression
        return d


class InvalidTemplateOutputError(SentryNotifyError):
    """Rendered template is not valid JSON or not an object at the top level."""

    def __init__(self, message: str, **context: Any):
        self.template_uri: Optional[str] = context.get("template_uri")
        super().__init__(message, **context)


class SerializationError(SentryNotifyError):
    """Final payload cannot be serialized to JSON."""
    pass


class TransportError(SentryNotifyError):
    """Delivery failed: connection, timeout, oversized or non-2xx response."""

    def __init__(self, message: str, **context: Any):
        self.url: Optional[str] = context.get("url")
        self.status_code: Optional[int] = context.get("status_code")
        self.response_body: Optional[str] = context.get("response_body")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["url"] = self.url
        d["status_code"] = self.status_code
        return d
