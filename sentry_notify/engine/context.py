"""
Sentry Notify Render Context — Expression rendering capability for tasks.

The host orchestrator owns the real expression language. Tasks only need a
render capability with one contract: substitute ``{{ expr }}`` placeholders
from a variable map and fail loudly when a reference cannot be resolved.
RenderContext is the default implementation of that capability; any object
with the same ``render`` / ``render_map`` / ``with_variables`` surface can be
injected instead.

Supported expressions:
    {{ name }}                 → top-level variable
    {{ execution.id }}         → dotted path into nested dicts / attributes
    {{ customFields | json }}  → filters: json, lower, upper

Usage:
    ctx = RenderContext({"execution": {"id": "abc"}})
    ctx.render("/execution/{{ execution.id }}")   # → "/execution/abc"
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, Mapping, Optional

from sentry_notify.engine.errors import RenderError

_EXPRESSION = re.compile(r"\{\{\s*((?:(?!\{\{|\}\}).)*?)\s*\}\}", re.DOTALL)
_PATH_PART = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_MISSING = object()


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


FILTERS: Dict[str, Callable[[Any], Any]] = {
    "json": lambda v: json.dumps(v, default=str),
    "lower": lambda v: _to_text(v).lower(),
    "upper": lambda v: _to_text(v).upper(),
}


class RenderContext:
    """
    Per-run variable scope used to render dynamic task properties.

    Instances are never shared between task runs; ``with_variables`` returns a
    new context instead of mutating this one.
    """

    def __init__(self, variables: Optional[Mapping[str, Any]] = None):
        self._variables: Dict[str, Any] = dict(variables or {})

    @property
    def variables(self) -> Dict[str, Any]:
        """All variables (read-only copy)."""
        return dict(self._variables)

    def with_variables(self, extra: Optional[Mapping[str, Any]]) -> "RenderContext":
        """Return a new context whose variables are this one's plus *extra*."""
        merged = dict(self._variables)
        merged.update(extra or {})
        return RenderContext(merged)

    def render(self, value: Any, variables: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Render a value. Strings are interpolated, dicts and lists are
        rendered recursively, everything else is returned as-is.

        Args:
            value: The value to render.
            variables: If given, used *instead of* this context's variables.

        Raises:
            RenderError if any referenced name cannot be resolved.
        """
        scope = self._variables if variables is None else dict(variables)
        return self._render_value(value, scope)

    def render_map(
        self,
        value: Optional[Mapping[str, Any]],
        variables: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Render a mapping; ``None`` renders to an empty dict."""
        if value is None:
            return {}
        return self.render(dict(value), variables)

    def render_optional(self, value: Optional[str]) -> Optional[str]:
        """Render an optional string. ``None`` and blank results become ``None``."""
        if value is None:
            return None
        rendered = self.render(value)
        if rendered is None:
            return None
        rendered = _to_text(rendered)
        return rendered if rendered.strip() else None

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _render_value(self, value: Any, scope: Dict[str, Any]) -> Any:
        if isinstance(value, str):
            return self._render_string(value, scope)
        if isinstance(value, dict):
            return {
                self._render_string(k, scope) if isinstance(k, str) else k: self._render_value(v, scope)
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [self._render_value(item, scope) for item in value]
        return value

    def _render_string(self, template: str, scope: Dict[str, Any]) -> Any:
        match = _EXPRESSION.fullmatch(template)
        if match:
            # A lone expression keeps the type of its value
            return self._evaluate(match.group(1), scope)

        def replacer(m: "re.Match[str]") -> str:
            return _to_text(self._evaluate(m.group(1), scope))

        return _EXPRESSION.sub(replacer, template)

    def _evaluate(self, expression: str, scope: Dict[str, Any]) -> Any:
        parts = [p.strip() for p in expression.split("|")]
        path, filters = parts[0], parts[1:]

        value = self._lookup(path, scope, expression)
        for name in filters:
            fn = FILTERS.get(name)
            if fn is None:
                raise RenderError(
                    f"Unknown filter '{name}' in expression '{{{{ {expression} }}}}'",
                    expression=expression,
                )
            value = fn(value)
        return value

    @staticmethod
    def _lookup(path: str, scope: Dict[str, Any], expression: str) -> Any:
        if not path:
            raise RenderError("Empty expression '{{ }}'", expression=expression)

        current: Any = scope
        for part in path.split("."):
            if not _PATH_PART.match(part):
                raise RenderError(
                    f"Invalid expression '{{{{ {expression} }}}}'",
                    expression=expression,
                )
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            else:
                current = getattr(current, part, _MISSING)
            if current is _MISSING:
                raise RenderError(
                    f"Unable to resolve '{path}' in expression '{{{{ {expression} }}}}'",
                    expression=expression,
                )
        return current
