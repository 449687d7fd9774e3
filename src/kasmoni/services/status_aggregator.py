"""Group and member-slot payment status aggregation.

Every consumer (dashboard, group list, current-recipient view) goes through
the same per-slot classification and precedence rule, so two views can never
disagree on a group's status for the same reference month. Nothing is cached:
each call reads the committed payment and slot state.

Per slot s of a group, for reference month M, the active record with
payment_month = M, slot = s and the slot holder as member is classified:

- received: the record's status is ``received``
- not_paid: no record, or the record's status is ``not_paid``
- pending:  anything else (``pending``, ``settled``)

The group is fully_paid when every slot is received, not_paid when every slot
is not_paid (or there are no slots), and pending otherwise. Mixed sets fall
through to pending.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Protocol, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from kasmoni.models import Group, GroupMember, GroupStatus, Member, Payment, PaymentState, PaymentStatus
from kasmoni.services.errors import GroupNotFoundError
from kasmoni.services.periods import resolve_month
from kasmoni.services.queries import PaymentQueries

logger = logging.getLogger(__name__)


class SlotClass(str, Enum):
    """Classification of one slot for a reference month."""

    RECEIVED = "received"
    NOT_PAID = "not_paid"
    PENDING = "pending"


class SlotLike(Protocol):
    group_id: int
    member_id: int
    receive_month: str


class ContributionLike(Protocol):
    group_id: int
    member_id: int
    slot: str
    payment_month: str
    status: str
    state: str


@dataclass(frozen=True)
class SlotStatus:
    """Classification of a single member-slot."""

    group_id: int
    member_id: int
    receive_month: str
    classification: SlotClass
    payment_id: int | None = None
    payment_status: str | None = None


@dataclass(frozen=True)
class GroupStatusSummary:
    """Derived status of a group for one reference month."""

    group_id: int
    month: str
    status: GroupStatus
    pending_count: int
    member_count: int


@dataclass(frozen=True)
class GroupOverview:
    group: Group
    summary: GroupStatusSummary


@dataclass(frozen=True)
class GroupRecipientView:
    """A group with the member receiving the pool in the reference month."""

    group: Group
    summary: GroupStatusSummary
    recipient_slot: GroupMember | None
    recipient: Member | None


# =============================================================================
# Pure aggregation
# =============================================================================


def classify_slot(record_status: str | None) -> SlotClass:
    """Classify a slot from the status of its active record (None if no record)."""
    if record_status is None or record_status == PaymentStatus.NOT_PAID:
        return SlotClass.NOT_PAID
    if record_status == PaymentStatus.RECEIVED:
        return SlotClass.RECEIVED
    return SlotClass.PENDING


def decide_group_status(classes: Sequence[SlotClass]) -> GroupStatus:
    """Apply the precedence rule to a multiset of slot classifications."""
    total = len(classes)
    if total == 0:
        return GroupStatus.NOT_PAID

    received = sum(1 for c in classes if c == SlotClass.RECEIVED)
    not_paid = sum(1 for c in classes if c == SlotClass.NOT_PAID)
    pending = sum(1 for c in classes if c == SlotClass.PENDING)

    if received == total:
        return GroupStatus.FULLY_PAID
    if not_paid == total:
        return GroupStatus.NOT_PAID
    if pending == total:
        return GroupStatus.PENDING
    # Mixed slot sets have no label of their own
    return GroupStatus.PENDING


def classify_group_slots(
    group_id: int,
    slots: Iterable[SlotLike],
    payments: Iterable[ContributionLike],
    month: str,
) -> list[SlotStatus]:
    """Classify every distinct slot of one group for the reference month."""
    distinct: dict[str, SlotLike] = {}
    for slot in slots:
        if slot.group_id == group_id and slot.receive_month not in distinct:
            distinct[slot.receive_month] = slot

    records: dict[tuple[int, str], ContributionLike] = {}
    for payment in payments:
        if (
            payment.group_id != group_id
            or payment.payment_month != month
            or payment.state != PaymentState.ACTIVE
        ):
            continue
        records.setdefault((payment.member_id, payment.slot), payment)

    result = []
    for receive_month in sorted(distinct):
        slot = distinct[receive_month]
        record = records.get((slot.member_id, receive_month))
        result.append(
            SlotStatus(
                group_id=group_id,
                member_id=slot.member_id,
                receive_month=receive_month,
                classification=classify_slot(record.status if record else None),
                payment_id=getattr(record, "id", None) if record else None,
                payment_status=record.status if record else None,
            )
        )
    return result


def aggregate_group(
    group_id: int,
    slots: Iterable[SlotLike],
    payments: Iterable[ContributionLike],
    month: str,
) -> GroupStatusSummary:
    """Compute (status, pending count, member count) for one group."""
    slot_statuses = classify_group_slots(group_id, slots, payments, month)
    classes = [s.classification for s in slot_statuses]
    return GroupStatusSummary(
        group_id=group_id,
        month=month,
        status=decide_group_status(classes),
        pending_count=sum(1 for c in classes if c != SlotClass.RECEIVED),
        member_count=len(classes),
    )


def aggregate_groups(
    slots: Iterable[SlotLike],
    payments: Iterable[ContributionLike],
    month: str,
    group_ids: Iterable[int] | None = None,
) -> dict[int, GroupStatusSummary]:
    """Batch variant: group inputs by group id and aggregate each group.

    Groups listed in ``group_ids`` but holding no slots are reported as
    not_paid with zero counts.
    """
    slots_by_group: dict[int, list[SlotLike]] = defaultdict(list)
    for slot in slots:
        slots_by_group[slot.group_id].append(slot)

    payments_by_group: dict[int, list[ContributionLike]] = defaultdict(list)
    for payment in payments:
        payments_by_group[payment.group_id].append(payment)

    ids = list(group_ids) if group_ids is not None else sorted(slots_by_group)
    return {
        gid: aggregate_group(gid, slots_by_group.get(gid, []), payments_by_group.get(gid, []), month)
        for gid in ids
    }


# =============================================================================
# Store-backed aggregator
# =============================================================================


class StatusAggregator:
    """Reads slots and active payments and applies the pure aggregation."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.queries = PaymentQueries(session)

    async def group_status(self, group_id: int, month: str | None = None) -> GroupStatusSummary:
        """Status of one group for the reference month (default: current month)."""
        month = resolve_month(month)
        await self._require_group(group_id)
        slots, payments = await self._load_inputs(month, [group_id])
        return aggregate_group(group_id, slots, payments, month)

    async def slot_statuses(self, group_id: int, month: str | None = None) -> list[SlotStatus]:
        """Per member-slot classification for one group."""
        month = resolve_month(month)
        await self._require_group(group_id)
        slots, payments = await self._load_inputs(month, [group_id])
        return classify_group_slots(group_id, slots, payments, month)

    async def all_group_statuses(self, month: str | None = None) -> list[GroupOverview]:
        """Status of every group, newest group first."""
        month = resolve_month(month)
        groups = list(
            (
                await self.session.execute(
                    select(Group).order_by(Group.created_at.desc(), Group.id.desc())
                )
            ).scalars()
        )
        slots, payments = await self._load_inputs(month)
        summaries = aggregate_groups(slots, payments, month, [g.id for g in groups])
        logger.debug("Aggregated %d groups for %s", len(groups), month)
        return [GroupOverview(group=g, summary=summaries[g.id]) for g in groups]

    async def groups_with_recipients(self, month: str | None = None) -> list[GroupRecipientView]:
        """Running groups with the member whose slot falls in the reference month."""
        month = resolve_month(month)
        groups = list(
            (
                await self.session.execute(
                    select(Group)
                    .where(or_(Group.end_month.is_(None), Group.end_month >= month))
                    .order_by(Group.name.asc())
                )
            ).scalars()
        )
        group_ids = [g.id for g in groups]
        if not group_ids:
            return []

        slots, payments = await self._load_inputs(month, group_ids)
        summaries = aggregate_groups(slots, payments, month, group_ids)

        recipient_rows = await self.session.execute(
            select(GroupMember, Member)
            .join(Member, GroupMember.member_id == Member.id)
            .where(GroupMember.group_id.in_(group_ids), GroupMember.receive_month == month)
        )
        recipients = {slot.group_id: (slot, member) for slot, member in recipient_rows.all()}

        views = []
        for group in groups:
            slot, member = recipients.get(group.id, (None, None))
            views.append(
                GroupRecipientView(
                    group=group,
                    summary=summaries[group.id],
                    recipient_slot=slot,
                    recipient=member,
                )
            )
        return views

    async def available_slots(
        self, group_id: int, member_id: int, month: str | None = None
    ) -> list[str]:
        """The member's slots that have no received/settled contribution for the month."""
        month = resolve_month(month)
        held = await self.queries.member_slots(group_id, member_id)
        paid = set(
            (
                await self.session.execute(
                    select(Payment.slot).where(
                        Payment.group_id == group_id,
                        Payment.member_id == member_id,
                        Payment.payment_month == month,
                        Payment.state == PaymentState.ACTIVE.value,
                        Payment.status.in_(
                            [PaymentStatus.RECEIVED.value, PaymentStatus.SETTLED.value]
                        ),
                    )
                )
            ).scalars()
        )
        return [slot for slot in held if slot not in paid]

    async def overdue_payments(
        self, today: date | None = None, overdue_day: int = 28
    ) -> list[Payment]:
        """Active contributions still unpaid once the month's overdue day has passed."""
        return await self.queries.overdue(today=today, overdue_day=overdue_day)

    async def _require_group(self, group_id: int) -> None:
        if await self.session.get(Group, group_id) is None:
            raise GroupNotFoundError(group_id)

    async def _load_inputs(
        self, month: str, group_ids: list[int] | None = None
    ) -> tuple[list[GroupMember], list[Payment]]:
        slot_query = select(GroupMember)
        payment_query = select(Payment).where(
            Payment.state == PaymentState.ACTIVE.value,
            Payment.payment_month == month,
        )
        if group_ids is not None:
            slot_query = slot_query.where(GroupMember.group_id.in_(group_ids))
            payment_query = payment_query.where(Payment.group_id.in_(group_ids))

        slots = list((await self.session.execute(slot_query)).scalars())
        payments = list((await self.session.execute(payment_query)).scalars())
        return slots, payments
