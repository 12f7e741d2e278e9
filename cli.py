#!/usr/bin/env python3
"""
Command-line interface for the stringing notification service.

Usage:
    python cli.py [command] [options]

Commands:
    demo        Run the application lifecycle demo
    outbox      Inspect the notification outbox
    serve       Start the admin API server

Examples:
    python cli.py demo
    python cli.py demo --outbox var/outbox.db
    python cli.py outbox list --status failed
    python cli.py outbox show 3f2a9c...
    python cli.py serve --reload
"""

import argparse
import json
import logging
import subprocess
import sys
from typing import Optional

from notifications.config import NotificationSettings
from notifications.errors import PersistenceError
from notifications.outbox_store import OutboxStore


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
        datefmt="%H:%M:%S",
    )


def open_store(path: Optional[str]) -> OutboxStore:
    """Outbox at `path` (file or URL), or at NOTIFY_OUTBOX_URL when none is given."""
    if path:
        return OutboxStore(path)
    settings = NotificationSettings.from_env()
    if settings.outbox_url is None:
        print("No outbox database: pass --outbox or set NOTIFY_OUTBOX_URL")
        sys.exit(1)
    return OutboxStore(settings.outbox_url)


def run_demo(outbox: Optional[str]) -> None:
    """Run the stringing lifecycle demo."""
    from stringing.demo import run_stringing_demo
    run_stringing_demo(outbox)


def run_outbox_list(store: OutboxStore, status: str, query: str, page: int, limit: int) -> None:
    """Print one page of outbox records."""
    result = store.list_records(status=status, query=query, page=page, limit=limit)
    counts = ", ".join(f"{k}={v}" for k, v in result.counts.items())
    print(f"{result.total} record(s) ({counts})")
    for record in result.items:
        print(
            f"  {record.id}  {record.created_at:%Y-%m-%d %H:%M:%S}  {record.status:<6}  "
            f"{record.event_type:<36}  {record.recipient() or '-'}"
        )
        if record.error:
            print(f"      error: {record.error}")


def run_outbox_show(store: OutboxStore, record_id: str) -> None:
    """Print one outbox record as JSON."""
    record = store.get(record_id)
    if record is None:
        print(f"Outbox record not found: {record_id}")
        sys.exit(1)
    print(json.dumps(record.model_dump(mode="json"), ensure_ascii=False, indent=2))


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    cmd = [sys.executable, "-m", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Stringing Notifications CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo
  %(prog)s outbox list --status failed -q minji
  %(prog)s outbox show <record-id>
  %(prog)s serve --reload
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run the application lifecycle demo")
    demo_parser.add_argument("--outbox", default=None, help="Persist the demo outbox to this SQLite file or database URL")

    # Outbox commands
    outbox_parser = subparsers.add_parser("outbox", help="Inspect the notification outbox")
    outbox_parser.add_argument("--outbox", default=None, help="Outbox SQLite file or database URL (default: NOTIFY_OUTBOX_URL)")
    outbox_sub = outbox_parser.add_subparsers(dest="outbox_command", help="Outbox command")

    list_parser = outbox_sub.add_parser("list", help="List records, newest first")
    list_parser.add_argument(
        "--status",
        choices=["all", "queued", "failed", "sent"],
        default="all",
        help="Only records in this status",
    )
    list_parser.add_argument("-q", "--query", default="", help="Keyword filter")
    list_parser.add_argument("--page", type=int, default=1, help="1-based page number")
    list_parser.add_argument("--limit", type=int, default=10, help="Page size")

    show_parser = outbox_sub.add_parser("show", help="Show one record as JSON")
    show_parser.add_argument("record_id", help="Outbox record id")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the admin API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()
    configure_logging(args.verbose)

    try:
        if args.command == "demo":
            run_demo(args.outbox)
        elif args.command == "outbox":
            if args.outbox_command is None:
                outbox_parser.print_help()
                return
            store = open_store(args.outbox)
            if args.outbox_command == "list":
                run_outbox_list(store, args.status, args.query, args.page, args.limit)
            else:
                run_outbox_show(store, args.record_id)
        elif args.command == "serve":
            run_server(args.host, args.port, args.reload)
        else:
            parser.print_help()
    except PersistenceError as e:
        print(f"Outbox error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
