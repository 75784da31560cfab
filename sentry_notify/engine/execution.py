"""
Sentry Notify Execution Adapter — Host execution record → template render map.

The orchestrator hands over an execution record (JSON). This module models it
with pydantic and flattens it into the variables the execution template uses:

    execution      → {id, namespace, flowId, state, startDate, endDate}
    executionId, startDate, duration, durationSeconds, link
    firstFailed    → first FAILED task run ({id, taskId, state}) or None
    failedTaskId   → firstFailed.taskId or None
    customFields, customMessage, message
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from sentry_notify.engine.context import RenderContext
from sentry_notify.engine.errors import ConfigurationError

logger = logging.getLogger("sentry_notify.engine.execution")


class TaskRun(BaseModel):
    id: str
    task_id: str = Field(alias="taskId")
    state: str = "SUCCESS"

    model_config = {"populate_by_name": True}


class ExecutionRecord(BaseModel):
    """An execution as reported by the orchestration engine."""

    id: str
    namespace: str
    flow_id: str = Field(alias="flowId")
    state: str
    start_date: datetime = Field(alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    task_runs: List[TaskRun] = Field(default_factory=list, alias="taskRuns")

    model_config = {"populate_by_name": True}

    @property
    def duration(self) -> timedelta:
        end = self.end_date or datetime.now(timezone.utc)
        start = self.start_date
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        return end - start

    def first_failed(self) -> Optional[TaskRun]:
        for run in self.task_runs:
            if run.state == "FAILED":
                return run
        return None


def load_executions(path: str) -> List[ExecutionRecord]:
    """Load one execution record, or a JSON list of them, from a file."""
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Execution record not found: {path}", field="execution")

    try:
        raw = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid execution record {path}: {e}", field="execution") from e

    items = raw if isinstance(raw, list) else [raw]
    try:
        return [ExecutionRecord(**item) for item in items]
    except (TypeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid execution record {path}: {e}", field="execution") from e


def execution_variables(record: ExecutionRecord) -> Dict[str, Any]:
    """The ``execution`` variable exposed to expressions."""
    return {
        "id": record.id,
        "namespace": record.namespace,
        "flowId": record.flow_id,
        "state": record.state,
        "startDate": record.start_date.isoformat(),
        "endDate": record.end_date.isoformat() if record.end_date else None,
    }


def format_duration(value: timedelta) -> str:
    """Human-readable duration: ``1h 2m 3.456s``."""
    total = max(value.total_seconds(), 0.0)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{int(hours)}h")
    if minutes:
        parts.append(f"{int(minutes)}m")
    parts.append(f"{seconds:.3f}".rstrip("0").rstrip(".") + "s")
    return " ".join(parts)


def execution_link(record: ExecutionRecord, ui_base_url: Optional[str]) -> Optional[str]:
    if not ui_base_url:
        return None
    return f"{ui_base_url.rstrip('/')}/executions/{record.namespace}/{record.flow_id}/{record.id}"


def execution_map(
    record: ExecutionRecord,
    context: RenderContext,
    ui_base_url: Optional[str] = None,
    custom_fields: Optional[Dict[str, Any]] = None,
    custom_message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the template render map for *record*.

    custom_fields and custom_message are rendered against the execution
    variables, so they may reference ``{{ execution.id }}`` and friends.

    Raises:
        RenderError if a custom field or the message cannot be rendered.
    """
    execution = execution_variables(record)

    failed = record.first_failed()
    first_failed = (
        {"id": failed.id, "taskId": failed.task_id, "state": failed.state}
        if failed is not None else None
    )

    scope = context.with_variables({"execution": execution, "firstFailed": first_failed})
    rendered_fields = scope.render_map(custom_fields)
    rendered_message = scope.render_optional(custom_message)

    if rendered_message:
        message = rendered_message
    elif failed is not None:
        message = f"Failed on task `{failed.task_id}`"
    else:
        message = f"Execution {record.state}"

    render_map: Dict[str, Any] = {
        "execution": execution,
        "executionId": record.id,
        "startDate": execution["startDate"],
        "duration": format_duration(record.duration),
        "durationSeconds": round(record.duration.total_seconds(), 3),
        "link": execution_link(record, ui_base_url),
        "firstFailed": first_failed,
        "failedTaskId": failed.task_id if failed is not None else None,
        "customFields": rendered_fields,
        "customMessage": rendered_message,
        "message": message,
    }
    logger.debug(f"Built render map for execution {record.id} ({len(rendered_fields)} custom field(s))")
    return render_map
