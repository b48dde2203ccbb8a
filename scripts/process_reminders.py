#!/usr/bin/env python3
"""
Operator CLI for payment reminders.

Schedules reminders for one invoice, or runs one processing pass over due
reminders, against the SQL record store.  Outgoing mail is written to the
``mailOutbox`` collection.  Prints the result as JSON.

Environment:
    DUNNING_DATABASE_URL   SQLAlchemy URL (default: sqlite:///dunning.db)
    DUNNING_CONFIG_PATH    Reminder policy YAML (default: packaged defaults)
    DUNNING_LOG_LEVEL      Log level (default: INFO)

Usage:
    python3 scripts/process_reminders.py --user-id <uid> schedule <invoice_id>
    python3 scripts/process_reminders.py --user-id <uid> process [--as-of 2026-03-01]

Examples:
    # Schedule reminders for a sent invoice
    python3 scripts/process_reminders.py --user-id u-1 schedule inv-42

    # Process reminders as if it were 1 March 2026 (UTC)
    python3 scripts/process_reminders.py --user-id u-1 process --as-of 2026-03-01
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import date, datetime, time, timezone
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = os.environ.get("DUNNING_DATABASE_URL", "sqlite:///dunning.db")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Schedule and process payment reminders.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--user-id", required=True, help="Owner of the invoices.")
    parser.add_argument("--db-url", default=DB_URL, help="Database URL.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Reminder policy YAML (overrides DUNNING_CONFIG_PATH).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    schedule = sub.add_parser("schedule", help="Create reminders for one invoice.")
    schedule.add_argument("invoice_id")

    process = sub.add_parser("process", help="Send reminders that are due.")
    process.add_argument(
        "--as-of",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Process as of this date (YYYY-MM-DD, UTC). Default: now.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from dunning_config import get_active_config
    from dunning_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from dunning_kernel.exceptions import DunningError
    from dunning_kernel.logging_config import LogContext, configure_logging
    from dunning_kernel.store.sql import SqlRecordStore
    from dunning_modules.reminders import OutboxMailer, ReminderProcessor, ReminderScheduler

    configure_logging(level=os.environ.get("DUNNING_LOG_LEVEL", "INFO").upper())

    config = get_active_config(args.config)
    init_engine_from_url(args.db_url)
    create_tables()
    store = SqlRecordStore(get_session_factory())

    try:
        with LogContext.bind(user_id=args.user_id):
            if args.command == "schedule":
                scheduler = ReminderScheduler(store, config, args.user_id)
                reminders = scheduler.schedule_reminders(args.invoice_id)
                output = {
                    "invoice_id": args.invoice_id,
                    "scheduled": [
                        {
                            "id": r.id,
                            "level": r.level.value,
                            "scheduled_date": r.scheduled_date.isoformat(),
                        }
                        for r in reminders
                    ],
                }
            else:
                now = None
                if args.as_of is not None:
                    now = datetime.combine(args.as_of, time(12, 0), tzinfo=timezone.utc)
                processor = ReminderProcessor(store, config, args.user_id, OutboxMailer(store))
                try:
                    output = processor.process_due_reminders(now).as_dict()
                finally:
                    processor.close()
    except DunningError as exc:
        print(json.dumps({"error": exc.code, "message": str(exc)}), file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
