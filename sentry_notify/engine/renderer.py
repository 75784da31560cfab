"""
Sentry Notify Template Renderer — Named template → rendered JSON object.

Pipeline (per render):
    1. No template configured → start from an empty payload
    2. Load the template text from the search path
    3. Substitute {{ expr }} references via the injected render context
    4. Parse the result as a single JSON object

Templates are looked up in explicitly configured directories first, then in
the templates packaged with sentry_notify.
"""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sentry_notify.engine.context import RenderContext
from sentry_notify.engine.errors import InvalidTemplateOutputError, TemplateNotFoundError

logger = logging.getLogger("sentry_notify.engine.renderer")

PACKAGED_TEMPLATES = "sentry_notify.templates"


def list_packaged_templates() -> List[str]:
    """Names of the templates shipped with the package."""
    return sorted(
        entry.name
        for entry in resources.files(PACKAGED_TEMPLATES).iterdir()
        if entry.is_file() and entry.name.endswith(".tmpl")
    )


class TemplateRenderer:
    """
    Loads and renders payload templates.

    The renderer holds no per-run state; the render context and variables
    are passed to every call.
    """

    def __init__(self, search_paths: Optional[Sequence[str]] = None):
        self._search_paths = [Path(p) for p in (search_paths or [])]

    def load(self, template_uri: str) -> str:
        """
        Return the raw text of *template_uri*.

        Raises:
            TemplateNotFoundError if no search location holds the template.
        """
        for base in self._search_paths:
            candidate = base / template_uri
            if candidate.is_file():
                logger.debug(f"Loaded template '{template_uri}' from {candidate}")
                return candidate.read_text(encoding="utf-8")

        candidate = Path(template_uri)
        if candidate.is_absolute() and candidate.is_file():
            return candidate.read_text(encoding="utf-8")

        packaged = resources.files(PACKAGED_TEMPLATES).joinpath(template_uri)
        if packaged.is_file():
            return packaged.read_text(encoding="utf-8")

        raise TemplateNotFoundError(
            f"Template not found: {template_uri}",
            template_uri=template_uri,
        )

    def render(
        self,
        template_uri: Optional[str],
        render_map: Optional[Mapping[str, Any]],
        context: RenderContext,
    ) -> Dict[str, Any]:
        """
        Render *template_uri* with *render_map* into the initial payload.

        Returns:
            A fresh mutable dict; empty when no template is configured.

        Raises:
            TemplateNotFoundError, RenderError, InvalidTemplateOutputError.
        """
        if template_uri is None:
            return {}

        text = self.load(template_uri)
        rendered = context.render(text, render_map or {})

        try:
            parsed = json.loads(rendered)
        except (TypeError, json.JSONDecodeError) as e:
            raise InvalidTemplateOutputError(
                f"Template '{template_uri}' did not render to valid JSON: {e}",
                template_uri=template_uri,
            ) from e

        if not isinstance(parsed, dict):
            raise InvalidTemplateOutputError(
                f"Template '{template_uri}' rendered to {type(parsed).__name__}, expected a JSON object",
                template_uri=template_uri,
            )

        return parsed
