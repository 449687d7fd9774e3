"""Append-only audit trail for payment mutations.

Entries use a fixed schema. Each action may only populate its own subset of
snapshot columns:

- created, restored: new_* values
- deleted, archived, permanently_deleted: old_* values
- updated: old_* and new_* of the mutated fields
- status_changed: old_status / new_status
- bulk_created: bulk_payment_count

Absent values are left out of the inserted row rather than written as
explicit placeholders.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, fields
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kasmoni.models import AUDITED_FIELDS, AuditAction, Payment, PaymentLog, utcnow
from kasmoni.services.errors import AuditWriteError

logger = logging.getLogger(__name__)

OLD_FIELDS = frozenset(f"old_{name}" for name in AUDITED_FIELDS)
NEW_FIELDS = frozenset(f"new_{name}" for name in AUDITED_FIELDS)

ALLOWED_SNAPSHOT_FIELDS: dict[AuditAction, frozenset[str]] = {
    AuditAction.CREATED: NEW_FIELDS,
    AuditAction.RESTORED: NEW_FIELDS,
    AuditAction.DELETED: OLD_FIELDS,
    AuditAction.ARCHIVED: OLD_FIELDS,
    AuditAction.PERMANENTLY_DELETED: OLD_FIELDS,
    AuditAction.UPDATED: OLD_FIELDS | NEW_FIELDS,
    AuditAction.STATUS_CHANGED: frozenset({"old_status", "new_status"}),
    AuditAction.BULK_CREATED: frozenset({"bulk_payment_count"}),
}


@dataclass(frozen=True)
class Actor:
    """Who performed an operation. Passed through from the auth layer unchecked."""

    user_id: int | None = None
    username: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AuditEntry:
    """A single audit log entry before it is persisted."""

    action: AuditAction
    payment_id: int | None = None
    member_id: int | None = None
    group_id: int | None = None

    old_status: str | None = None
    new_status: str | None = None
    old_amount: Decimal | None = None
    new_amount: Decimal | None = None
    old_payment_date: date | None = None
    new_payment_date: date | None = None
    old_payment_month: str | None = None
    new_payment_month: str | None = None
    old_slot: str | None = None
    new_slot: str | None = None
    old_payment_type: str | None = None
    new_payment_type: str | None = None
    old_sender_bank: str | None = None
    new_sender_bank: str | None = None
    old_receiver_bank: str | None = None
    new_receiver_bank: str | None = None
    old_proof_of_payment: str | None = None
    new_proof_of_payment: str | None = None

    bulk_payment_count: int | None = None
    details: str | None = None

    performed_by_user_id: int | None = None
    performed_by_username: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    def __post_init__(self) -> None:
        allowed = ALLOWED_SNAPSHOT_FIELDS[self.action]
        restricted = OLD_FIELDS | NEW_FIELDS | {"bulk_payment_count"}
        illegal = sorted(
            name
            for name in restricted
            if getattr(self, name) is not None and name not in allowed
        )
        if illegal:
            raise ValueError(
                f"Audit action '{self.action.value}' cannot populate: {', '.join(illegal)}"
            )

    def to_row(self) -> dict[str, Any]:
        """Column values for the insert, absent fields omitted."""
        row: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            row[f.name] = value.value if isinstance(value, AuditAction) else value
        return row


def _prefixed(prefix: str, values: dict[str, Any]) -> dict[str, Any]:
    return {f"{prefix}_{name}": value for name, value in values.items()}


def _actor_fields(actor: Actor) -> dict[str, Any]:
    return {
        "performed_by_user_id": actor.user_id,
        "performed_by_username": actor.username,
        "ip_address": actor.ip_address,
        "user_agent": actor.user_agent,
    }


class PaymentAuditLogger:
    """Writes and reads payment audit entries within the caller's session.

    Writes flush immediately so that a failure surfaces inside the same
    transaction as the mutation it describes.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    async def record(self, entry: AuditEntry) -> PaymentLog:
        """Persist one entry, raising AuditWriteError on any storage failure."""
        row = PaymentLog(**entry.to_row())
        try:
            self.session.add(row)
            await self.session.flush()
        except SQLAlchemyError as exc:
            logger.exception(
                "Audit write failed for action %s on payment %s",
                entry.action.value,
                entry.payment_id,
            )
            raise AuditWriteError(entry.action.value, entry.payment_id, exc) from exc
        return row

    async def created(self, payment: Payment, actor: Actor) -> PaymentLog:
        return await self.record(
            AuditEntry(
                action=AuditAction.CREATED,
                payment_id=payment.id,
                member_id=payment.member_id,
                group_id=payment.group_id,
                details=f"Payment created for member {payment.member_id} in group {payment.group_id}",
                **_prefixed("new", payment.snapshot()),
                **_actor_fields(actor),
            )
        )

    async def updated(
        self,
        payment: Payment,
        old_values: dict[str, Any],
        new_values: dict[str, Any],
        actor: Actor,
    ) -> PaymentLog:
        """Record a field update; only the mutated fields are passed in."""
        return await self.record(
            AuditEntry(
                action=AuditAction.UPDATED,
                payment_id=payment.id,
                member_id=payment.member_id,
                group_id=payment.group_id,
                details=f"Payment details updated: {', '.join(sorted(new_values))}",
                **_prefixed("old", old_values),
                **_prefixed("new", new_values),
                **_actor_fields(actor),
            )
        )

    async def status_changed(
        self, payment: Payment, old_status: str, new_status: str, actor: Actor
    ) -> PaymentLog:
        return await self.record(
            AuditEntry(
                action=AuditAction.STATUS_CHANGED,
                payment_id=payment.id,
                member_id=payment.member_id,
                group_id=payment.group_id,
                old_status=old_status,
                new_status=new_status,
                details=f"Payment status changed from {old_status} to {new_status}",
                **_actor_fields(actor),
            )
        )

    async def deleted(
        self, payment: Payment, actor: Actor, details: str | None = None
    ) -> PaymentLog:
        return await self.record(
            AuditEntry(
                action=AuditAction.DELETED,
                payment_id=payment.id,
                member_id=payment.member_id,
                group_id=payment.group_id,
                details=details or "Payment moved to trashbox",
                **_prefixed("old", payment.snapshot()),
                **_actor_fields(actor),
            )
        )

    async def restored(
        self, payment: Payment, actor: Actor, details: str | None = None
    ) -> PaymentLog:
        return await self.record(
            AuditEntry(
                action=AuditAction.RESTORED,
                payment_id=payment.id,
                member_id=payment.member_id,
                group_id=payment.group_id,
                details=details or "Payment restored from trashbox",
                **_prefixed("new", payment.snapshot()),
                **_actor_fields(actor),
            )
        )

    async def archived(self, payment: Payment, actor: Actor, reason: str = "") -> PaymentLog:
        return await self.record(
            AuditEntry(
                action=AuditAction.ARCHIVED,
                payment_id=payment.id,
                member_id=payment.member_id,
                group_id=payment.group_id,
                details=f"Payment archived: {reason}" if reason else "Payment archived",
                **_prefixed("old", payment.snapshot()),
                **_actor_fields(actor),
            )
        )

    async def permanently_deleted(self, payment: Payment, actor: Actor) -> PaymentLog:
        return await self.record(
            AuditEntry(
                action=AuditAction.PERMANENTLY_DELETED,
                payment_id=payment.id,
                member_id=payment.member_id,
                group_id=payment.group_id,
                details="Payment permanently deleted from trashbox",
                **_prefixed("old", payment.snapshot()),
                **_actor_fields(actor),
            )
        )

    async def bulk_created(self, group_id: int, count: int, actor: Actor) -> PaymentLog:
        return await self.record(
            AuditEntry(
                action=AuditAction.BULK_CREATED,
                group_id=group_id,
                bulk_payment_count=count,
                details=f"Bulk payment creation: {count} payments created",
                **_actor_fields(actor),
            )
        )

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    async def entries_for_payment(self, payment_id: int) -> list[PaymentLog]:
        """Full history of one payment, oldest first. Works after a purge."""
        result = await self.session.execute(
            select(PaymentLog)
            .where(PaymentLog.payment_id == payment_id)
            .order_by(PaymentLog.id.asc())
        )
        return list(result.scalars().all())

    async def list_entries(
        self,
        *,
        action: str | None = None,
        member_id: int | None = None,
        group_id: int | None = None,
        performed_by: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[PaymentLog]:
        """Filtered audit entries, newest first."""
        query = select(PaymentLog)
        if action:
            query = query.where(PaymentLog.action == action)
        if member_id is not None:
            query = query.where(PaymentLog.member_id == member_id)
        if group_id is not None:
            query = query.where(PaymentLog.group_id == group_id)
        if performed_by:
            query = query.where(PaymentLog.performed_by_username.ilike(f"%{performed_by}%"))
        if start is not None:
            query = query.where(PaymentLog.timestamp >= start)
        if end is not None:
            query = query.where(PaymentLog.timestamp <= end)

        query = query.order_by(PaymentLog.timestamp.desc(), PaymentLog.id.desc())
        query = query.offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def daily_action_counts(
        self, days: int = 30, now: datetime | None = None
    ) -> dict[str, dict[str, int]]:
        """Entry counts per day and action over the trailing window, newest day first."""
        cutoff = (now or utcnow()) - timedelta(days=days)
        result = await self.session.execute(
            select(PaymentLog.action, PaymentLog.timestamp).where(PaymentLog.timestamp >= cutoff)
        )
        stats: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for action, timestamp in result.all():
            stats[timestamp.date().isoformat()][action] += 1
        return {day: dict(stats[day]) for day in sorted(stats, reverse=True)}
