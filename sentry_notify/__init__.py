"""
Sentry Notify — Render execution metadata into Sentry events and deliver them.

    from sentry_notify.engine import SentryExecution, RenderContext
"""

__version__ = "1.0.0"
__all__ = ["engine", "cli"]
