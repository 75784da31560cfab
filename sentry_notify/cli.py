"""
Sentry Notify CLI — Run alert definitions from the command line.

Commands:
- sentry-notify send       — Build the payload and POST it to Sentry
- sentry-notify render     — Build the payload and print it (nothing is sent)
- sentry-notify templates  — List the packaged templates

The DSN can be supplied with --dsn or the SENTRY_NOTIFY_DSN environment
variable so that secrets never have to live in the definition file.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from sentry_notify import __version__
from sentry_notify.engine.config import NotifierConfig, load_notifier_config
from sentry_notify.engine.context import RenderContext
from sentry_notify.engine.errors import ConfigurationError, SentryNotifyError
from sentry_notify.engine.execution import ExecutionRecord, execution_variables, load_executions
from sentry_notify.engine.logging import FileLogger, configure_logging
from sentry_notify.engine.renderer import list_packaged_templates
from sentry_notify.engine.tasks import SentryAlert, build_task, execution_resolver_for

logger = logging.getLogger("sentry_notify.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="sentry-notify",
        description="Send execution alerts to Sentry",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sentry-notify send
    send_parser = subparsers.add_parser("send", help="Send the alert to Sentry")
    _add_task_arguments(send_parser)

    # sentry-notify render
    render_parser = subparsers.add_parser("render", help="Print the payload without sending it")
    _add_task_arguments(render_parser)

    # sentry-notify templates
    subparsers.add_parser("templates", help="List packaged templates")

    args = parser.parse_args(argv)

    if args.command == "send":
        return cmd_send(args)
    elif args.command == "render":
        return cmd_render(args)
    elif args.command == "templates":
        return cmd_templates(args)
    else:
        parser.print_help()
        return 0


def _add_task_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("config", help="Path to the alert definition (YAML)")
    sub.add_argument("--execution", help="Path to the execution record (JSON object or list)")
    sub.add_argument("--dsn", help="Sentry DSN (overrides SENTRY_NOTIFY_DSN and the file)")
    sub.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra render variable (repeatable)",
    )


def parse_vars(pairs: List[str]) -> Dict[str, Any]:
    """Parse repeated KEY=VALUE flags into a dict."""
    result: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"Invalid --var '{pair}' (expected KEY=VALUE)", field="var")
        result[key.strip()] = value
    return result


def _prepare(args: argparse.Namespace, dsn: Optional[str] = None):
    """Load config, execution records and the render context."""
    config = load_notifier_config(args.config, dsn=dsn)
    configure_logging(config.logging)

    variables = parse_vars(args.var)
    records: List[ExecutionRecord] = load_executions(args.execution) if args.execution else []
    if records:
        # The first record is the execution this alert runs for
        variables.setdefault("execution", execution_variables(records[0]))

    context = RenderContext(variables)
    return config, records, context


def _task(config: NotifierConfig, records: List[ExecutionRecord]) -> SentryAlert:
    file_logger = FileLogger(config.logging.directory) if config.logging.directory else None
    resolver = execution_resolver_for(*records) if records else None
    return build_task(config, execution_resolver=resolver, file_logger=file_logger)


def cmd_send(args: argparse.Namespace) -> int:
    """Build and deliver the alert."""
    try:
        config, records, context = _prepare(args, dsn=args.dsn)
        task = _task(config, records)
        task.run(context)
    except SentryNotifyError as e:
        print(f"[ERROR] {e.error_type}: {e.message}", file=sys.stderr)
        return 1

    print(f"[OK] Alert sent ({config.type})")
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    """Build the payload and print it."""
    try:
        config, records, context = _prepare(args, dsn=args.dsn)
        task = _task(config, records)
        payload = task.render_payload(context)
    except SentryNotifyError as e:
        print(f"[ERROR] {e.error_type}: {e.message}", file=sys.stderr)
        return 1

    print(payload)
    return 0


def cmd_templates(args: argparse.Namespace) -> int:
    """List packaged templates."""
    for name in list_packaged_templates():
        print(name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
