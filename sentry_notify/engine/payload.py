"""
Sentry Notify Payload Assembler — Overlay resolved fields onto a template payload.

Order (later steps override template values):
    1. event_id     — always set
    2. timestamp    — always set, current UTC instant
    3. platform     — always set
    4. level        — set when resolved, otherwise template value left alone
    5. transaction  — set when non-empty, otherwise left alone
    6. server_name  — set when resolved, otherwise left alone
    7. extra        — MERGED key-by-key into the template's extra object
    8. errors       — REPLACES the template's errors object
    9. serialize    — json.dumps, insertion order preserved

The extra/errors asymmetry is intentional: extra accumulates context on top
of what the template provides, errors describes this event only.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sentry_notify.engine.errors import ConfigurationError, SerializationError

logger = logging.getLogger("sentry_notify.engine.payload")


class Platform(str, Enum):
    AS3 = "AS3"
    C = "C"
    CFML = "CFML"
    COCOA = "COCOA"
    CSHARP = "CSHARP"
    ELIXIR = "ELIXIR"
    HASKELL = "HASKELL"
    GO = "GO"
    GROOVY = "GROOVY"
    JAVA = "JAVA"
    JAVASCRIPT = "JAVASCRIPT"
    NATIVE = "NATIVE"
    NODE = "NODE"
    OBJC = "OBJC"
    OTHER = "OTHER"
    PERL = "PERL"
    PHP = "PHP"
    PYTHON = "PYTHON"
    RUBY = "RUBY"


class ErrorLevel(str, Enum):
    FATAL = "FATAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


def parse_platform(value: Any) -> Platform:
    if isinstance(value, Platform):
        return value
    try:
        return Platform[str(value).strip().upper()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown platform '{value}' (expected one of {', '.join(p.name for p in Platform)})",
            field="platform",
        )


def parse_level(value: Any) -> Optional[ErrorLevel]:
    """Map a rendered level to ErrorLevel. ``None`` or blank means unresolved."""
    if value is None or isinstance(value, ErrorLevel):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return ErrorLevel[text.upper()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown level '{value}' (expected fatal/error/warning/info/debug)",
            field="level",
        )


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PayloadOverrides:
    """Resolved per-field values. ``None`` means "leave the template alone"."""

    event_id: str
    platform: Platform = Platform.JAVA
    level: Optional[ErrorLevel] = ErrorLevel.ERROR
    transaction: Optional[str] = None
    server_name: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, Any] = field(default_factory=dict)


class PayloadAssembler:
    """Builds the final event document. One instance can serve many runs."""

    def __init__(self, clock: Callable[[], str] = utc_timestamp):
        self._clock = clock

    def apply(self, base: Dict[str, Any], overrides: PayloadOverrides) -> Dict[str, Any]:
        """Apply *overrides* to *base* in place and return it."""
        base["event_id"] = overrides.event_id
        base["timestamp"] = self._clock()
        base["platform"] = overrides.platform.name.lower()

        if overrides.level is not None:
            base["level"] = overrides.level.name.lower()

        if overrides.transaction:
            base["transaction"] = overrides.transaction

        if overrides.server_name is not None:
            base["server_name"] = overrides.server_name

        if overrides.extra:
            base["extra"] = merge_extra(base.get("extra"), overrides.extra)

        if overrides.errors:
            base["errors"] = dict(overrides.errors)

        return base

    def assemble(self, base: Dict[str, Any], overrides: PayloadOverrides) -> str:
        """
        Apply *overrides* and serialize.

        Raises:
            SerializationError if a value is not JSON-serializable.
        """
        payload = self.apply(base, overrides)
        try:
            return json.dumps(payload, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Unable to serialize event payload: {e}") from e


def merge_extra(existing: Any, resolved: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge *resolved* into the template's extra object.

    A missing or non-object template value starts from an empty object.
    Colliding keys take the resolved value.
    """
    merged = dict(existing) if isinstance(existing, dict) else {}
    merged.update(resolved)
    return merged
