"""Kasmoni Command Line Interface.

Provides operational tools for:
- Schema creation
- Group payment status for a month
- Payment audit history

Usage:
    python -m kasmoni.cli init-db
    python -m kasmoni.cli group-status --month 2024-03
    python -m kasmoni.cli group-status --group-id 1
    python -m kasmoni.cli audit-log --payment-id 42
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, TextIO

from sqlalchemy.exc import SQLAlchemyError

from kasmoni.config import get_settings
from kasmoni.database import create_schema, get_engine, make_session_factory
from kasmoni.services.audit_logger import PaymentAuditLogger
from kasmoni.services.errors import PaymentError
from kasmoni.services.periods import validate_month
from kasmoni.services.status_aggregator import StatusAggregator

logger = logging.getLogger(__name__)

_LOG_FIELDS = (
    "id",
    "action",
    "old_status",
    "new_status",
    "details",
    "performed_by_username",
    "timestamp",
)


def parse_month(s: str) -> str:
    """Parse a YYYY-MM month argument."""
    try:
        return validate_month(s)
    except PaymentError as e:
        raise argparse.ArgumentTypeError(e.message) from e


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Cannot serialize {type(value).__name__}")


class KasmoniCli:
    """Kasmoni Command Line Interface."""

    def __init__(self, database_url: str | None = None, out: TextIO | None = None) -> None:
        self.database_url = database_url
        self.out = out or sys.stdout
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m kasmoni.cli",
            description="Kasmoni payment engine tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Async database URL (default: DATABASE_URL from the environment)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create all tables that do not exist yet")

        status = subparsers.add_parser(
            "group-status",
            help="Show payment status of groups for a month",
        )
        status.add_argument(
            "--month",
            type=parse_month,
            help="Reference month in YYYY-MM format (default: current month)",
        )
        status.add_argument(
            "--group-id",
            type=int,
            help="Only show this group, with per-slot detail",
        )

        audit = subparsers.add_parser(
            "audit-log",
            help="Show the audit history of a payment",
        )
        audit.add_argument(
            "--payment-id",
            type=int,
            required=True,
            help="Payment ID (history survives permanent deletion)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[..., Any]] = {
            "init-db": self._cmd_init_db,
            "group-status": self._cmd_group_status,
            "audit-log": self._cmd_audit_log,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        url = parsed.database_url or self.database_url or get_settings().database_url
        try:
            return asyncio.run(self._with_engine(url, handler, parsed))
        except PaymentError as e:
            print(f"ERROR [{e.code}]: {e.message}", file=sys.stderr)
            return 1
        except SQLAlchemyError as e:
            logger.error("Database error: %s", e)
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    async def _with_engine(
        self, url: str, handler: Callable[..., Any], args: argparse.Namespace
    ) -> int:
        engine = get_engine(url)
        try:
            return await handler(engine, args)
        finally:
            await engine.dispose()

    def _emit(self, payload: Any) -> None:
        json.dump(payload, self.out, indent=2, default=_json_default)
        self.out.write("\n")

    async def _cmd_init_db(self, engine, args: argparse.Namespace) -> int:
        """Create the schema."""
        await create_schema(engine)
        self._emit({"status": "ok", "message": "Schema created"})
        return 0

    async def _cmd_group_status(self, engine, args: argparse.Namespace) -> int:
        """Print group status summaries."""
        async with make_session_factory(engine)() as session:
            aggregator = StatusAggregator(session)
            if args.group_id is not None:
                summary = await aggregator.group_status(args.group_id, args.month)
                slots = await aggregator.slot_statuses(args.group_id, summary.month)
                self._emit(
                    {
                        "group_id": summary.group_id,
                        "month": summary.month,
                        "status": summary.status.value,
                        "pendingCount": summary.pending_count,
                        "memberCount": summary.member_count,
                        "slots": [
                            {
                                "member_id": s.member_id,
                                "receive_month": s.receive_month,
                                "classification": s.classification.value,
                            }
                            for s in slots
                        ],
                    }
                )
                return 0

            overviews = await aggregator.all_group_statuses(args.month)
            self._emit(
                [
                    {
                        "group_id": o.group.id,
                        "name": o.group.name,
                        "month": o.summary.month,
                        "status": o.summary.status.value,
                        "pendingCount": o.summary.pending_count,
                        "memberCount": o.summary.member_count,
                    }
                    for o in overviews
                ]
            )
        return 0

    async def _cmd_audit_log(self, engine, args: argparse.Namespace) -> int:
        """Print the audit history of one payment."""
        async with make_session_factory(engine)() as session:
            entries = await PaymentAuditLogger(session).entries_for_payment(args.payment_id)
        if not entries:
            print(f"No audit entries for payment {args.payment_id}", file=sys.stderr)
            return 1
        self._emit([{name: getattr(e, name) for name in _LOG_FIELDS} for e in entries])
        return 0


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=get_settings().log_level)
    cli = KasmoniCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
