"""
Sentry Notify Configuration — Load and validate alert definitions (YAML).

An alert definition file looks like:

    type: execution
    dsn: https://public@o0.ingest.sentry.io/42
    level: ERROR
    transaction: "/execution/id/{{ execution.id }}"
    custom_message: "Failure in prod namespace: {{ execution.id }}"
    options:
      read_timeout: PT15S
      headers:
        X-Namespace: "{{ execution.namespace }}"
    logging:
      level: INFO
      directory: .sentry_notify/logs

Usage:
    from sentry_notify.engine.config import load_notifier_config
"""

from __future__ import annotations

import codecs
import os
import re
import uuid
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from sentry_notify.engine.errors import ConfigurationError

EVENT_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

DEFAULT_MAX_CONTENT_LENGTH = 10 * 1024 * 1024

DSN_ENV_VAR = "SENTRY_NOTIFY_DSN"


def generate_event_id() -> str:
    """Lowercase uuid4 without dashes."""
    return uuid.uuid4().hex


class EndpointType(str, Enum):
    STORE = "STORE"
    ENVELOPE = "ENVELOPE"


# ---------------------------------------------------------------------------
# HTTP request options
# ---------------------------------------------------------------------------

class RequestOptions(BaseModel):
    """HTTP client options. Every field has a default."""

    connect_timeout: Optional[timedelta] = None
    read_timeout: timedelta = timedelta(seconds=10)
    read_idle_timeout: timedelta = timedelta(minutes=5)
    connection_pool_idle_timeout: timedelta = timedelta(seconds=0)
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH
    default_charset: str = "UTF-8"
    headers: Optional[Dict[str, str]] = None

    @field_validator("default_charset")
    @classmethod
    def validate_charset(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"unknown charset '{v}'")
        return v

    @field_validator("max_content_length")
    @classmethod
    def validate_max_content_length(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"max_content_length must be positive, got {v}")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: Optional[str] = None
    log_payload: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"logging level must be DEBUG/INFO/WARNING/ERROR/CRITICAL, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Task definitions
# ---------------------------------------------------------------------------

class SentryAlertConfig(BaseModel):
    """Send a pre-built payload to a Sentry DSN."""

    dsn: str
    endpoint_type: EndpointType = EndpointType.STORE
    payload: Optional[str] = None
    options: Optional[RequestOptions] = None


class SentryTemplateConfig(SentryAlertConfig):
    """Build the payload from a template and per-field overrides."""

    template_uri: Optional[str] = None
    template_render_map: Optional[Dict[str, Any]] = None
    event_id: str = Field(default_factory=generate_event_id)
    platform: str = "JAVA"
    level: Optional[str] = "ERROR"
    transaction: Optional[str] = None
    server_name: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None
    errors: Optional[Dict[str, Any]] = None

    @field_validator("event_id")
    @classmethod
    def validate_event_id(cls, v: str) -> str:
        if not EVENT_ID_PATTERN.match(v):
            raise ValueError(f"event_id must be 32 lowercase hex characters, got '{v}'")
        return v


class SentryExecutionConfig(SentryTemplateConfig):
    """Send execution metadata through the packaged execution template."""

    execution_id: str = "{{ execution.id }}"
    custom_fields: Optional[Dict[str, Any]] = None
    custom_message: Optional[str] = None
    ui_base_url: Optional[str] = None


TASK_TYPES = {
    "alert": SentryAlertConfig,
    "template": SentryTemplateConfig,
    "execution": SentryExecutionConfig,
}


class NotifierConfig(BaseModel):
    """Root model for an alert definition file."""

    type: str = "execution"
    task: SentryAlertConfig
    logging: LoggingConfig = LoggingConfig()

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in TASK_TYPES:
            raise ValueError(f"type must be alert/template/execution, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

def build_task_config(task_type: str, data: Dict[str, Any]) -> SentryAlertConfig:
    """
    Validate a task definition dict against the model for *task_type*.

    Raises:
        ConfigurationError with pydantic's field errors attached.
    """
    model = TASK_TYPES.get(task_type)
    if model is None:
        raise ConfigurationError(
            f"Unknown task type '{task_type}' (expected alert/template/execution)",
            field="type",
        )
    try:
        return model(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {task_type} task configuration: {e.error_count()} error(s)",
            task_type=task_type,
            validation_errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in e.errors()
            ],
        ) from e


def load_notifier_config(
    config_path: str,
    dsn: Optional[str] = None,
) -> NotifierConfig:
    """
    Load and validate an alert definition file.

    Args:
        config_path: Path to the YAML definition.
        dsn: Explicit DSN. Takes precedence over SENTRY_NOTIFY_DSN, which
             takes precedence over the file.

    Returns:
        Validated NotifierConfig instance.
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Alert definition not found: {config_path}", field="config_path")

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Alert definition must be a mapping: {config_path}")

    raw = dict(raw)
    task_type = raw.pop("type", "execution")
    logging_data = raw.pop("logging", {}) or {}

    # Secret resolution order: explicit flag, environment, file
    resolved_dsn = dsn or os.environ.get(DSN_ENV_VAR)
    if resolved_dsn:
        raw["dsn"] = resolved_dsn

    task = build_task_config(task_type, raw)

    try:
        return NotifierConfig(type=task_type, task=task, logging=LoggingConfig(**logging_data))
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid logging configuration in {config_path}",
            validation_errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in e.errors()
            ],
        ) from e
