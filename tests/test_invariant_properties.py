"""Property-based tests for lifecycle and aggregation invariants.

Hypothesis generates random sequences of create, status change, trash,
archive, restore, move and purge operations and runs them through
PaymentLifecycleManager against a fresh SQLite database per example. After
every step the stored rows must satisfy:

- at most one active record exists per (group, member, slot, month)
- a successful operation moved the record along an allowed transition, a
  rejected one left every record untouched
- purged records never come back
- every successful mutation left exactly one audit entry for its payment
- group status is derived from active records only
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import date
from decimal import Decimal

from hypothesis import given, settings, strategies as st
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from kasmoni.database import make_session_factory
from kasmoni.models import (
    Base,
    Group,
    GroupMember,
    GroupStatus,
    Member,
    Payment,
    PaymentLog,
    PaymentState,
    PaymentStatus,
)
from kasmoni.services.audit_logger import Actor
from kasmoni.services.errors import (
    ConflictingActiveRecordError,
    DuplicatePaymentError,
    InvalidTransitionError,
    PaymentNotFoundError,
)
from kasmoni.services.lifecycle import PaymentDraft, PaymentLifecycleManager
from kasmoni.services.state_machine import PaymentLifecycleStateMachine
from kasmoni.services.status_aggregator import StatusAggregator

MONTH = "2024-03"
SLOTS = ("2024-01", "2024-02", "2024-03")

ACTIVE = PaymentState.ACTIVE.value
TRASHED = PaymentState.TRASHED.value
ARCHIVED = PaymentState.ARCHIVED.value

# operation -> (states it may start from, state it ends in)
TRANSITIONS = {
    "soft_delete": ((ACTIVE,), TRASHED),
    "archive": ((ACTIVE,), ARCHIVED),
    "restore": ((TRASHED, ARCHIVED), ACTIVE),
    "move": ((ARCHIVED,), TRASHED),
    "purge": ((TRASHED,), PaymentState.PURGED.value),
}

operations = st.lists(
    st.tuples(
        st.sampled_from(["create", "change_status", *TRANSITIONS]),
        st.integers(min_value=0, max_value=7),
        st.sampled_from([s.value for s in PaymentStatus]),
    ),
    max_size=25,
)


class LifecycleRun:
    """Applies operations through the manager and checks the stored rows."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.manager = PaymentLifecycleManager(session)
        self.actor = Actor(user_id=1, username="hypothesis")
        self.ids: list[int] = []
        self.slots: dict[int, str] = {}
        self.purged: set[int] = set()
        self.expected_entries: Counter[int] = Counter()

    async def seed(self) -> None:
        group = Group(
            name="Property",
            monthly_amount=Decimal("100.00"),
            max_members=len(SLOTS),
            duration=len(SLOTS),
            start_month=SLOTS[0],
        )
        self.session.add(group)
        await self.session.flush()
        self.holders = {}
        for i, receive_month in enumerate(SLOTS, start=1):
            member = Member(first_name=f"Member{i}", last_name="Property")
            self.session.add(member)
            await self.session.flush()
            self.session.add(
                GroupMember(group_id=group.id, member_id=member.id, receive_month=receive_month)
            )
            self.holders[receive_month] = member.id
        await self.session.commit()
        self.group_id = group.id

    async def rows(self) -> dict[int, tuple[str, str]]:
        """(state, status) per stored payment id, read without ORM instances."""
        result = await self.session.execute(select(Payment.id, Payment.state, Payment.status))
        return {row.id: (row.state, row.status) for row in result}

    async def apply(self, op: str, index: int, status: str) -> None:
        if op == "create":
            await self._create(SLOTS[index % len(SLOTS)], status)
            return
        if not self.ids:
            return

        payment_id = self.ids[index % len(self.ids)]
        before = await self.rows()
        try:
            await self._call(op, payment_id, status)
        except (InvalidTransitionError, PaymentNotFoundError, ConflictingActiveRecordError) as exc:
            assert await self.rows() == before
            self._assert_rejection_was_due(op, payment_id, before, exc)
            return

        after = await self.rows()
        if op == "change_status":
            assert before[payment_id][0] == ACTIVE
            assert after[payment_id] == (ACTIVE, status)
            if before[payment_id][1] != status:
                self.expected_entries[payment_id] += 1
            return

        sources, target = TRANSITIONS[op]
        assert before[payment_id][0] in sources
        assert PaymentLifecycleStateMachine.can_transition(before[payment_id][0], target)
        if target == PaymentState.PURGED.value:
            assert payment_id not in after
            self.purged.add(payment_id)
        else:
            assert after[payment_id][0] == target
        self.expected_entries[payment_id] += 1

    async def _create(self, slot: str, status: str) -> None:
        draft = PaymentDraft(
            group_id=self.group_id,
            member_id=self.holders[slot],
            amount=Decimal("100.00"),
            payment_date=date(2024, 3, 5),
            payment_month=MONTH,
            slot=slot,
            payment_type="cash",
            status=status,
        )
        before = await self.rows()
        try:
            payment = await self.manager.create(draft, self.actor)
        except DuplicatePaymentError:
            assert any(
                state == ACTIVE and self.slots[pid] == slot for pid, (state, _) in before.items()
            )
            return
        self.ids.append(payment.id)
        self.slots[payment.id] = slot
        self.expected_entries[payment.id] += 1

    async def _call(self, op: str, payment_id: int, status: str) -> None:
        if op == "change_status":
            await self.manager.change_status(payment_id, status, self.actor)
        elif op == "soft_delete":
            await self.manager.soft_delete(payment_id, self.actor)
        elif op == "archive":
            await self.manager.archive(payment_id, self.actor, "year end")
        elif op == "restore":
            await self.manager.restore(payment_id, self.actor)
        elif op == "move":
            await self.manager.move_archived_to_trash(
                payment_id, self.actor, "cleanup", confirmed=True
            )
        else:
            await self.manager.permanently_delete(payment_id, self.actor)

    def _assert_rejection_was_due(self, op, payment_id, before, exc) -> None:
        if payment_id not in before:
            assert isinstance(exc, PaymentNotFoundError)
            assert payment_id in self.purged
            return
        state = before[payment_id][0]
        if isinstance(exc, ConflictingActiveRecordError):
            assert op == "restore"
            assert any(
                other != payment_id and s == ACTIVE and self.slots[other] == self.slots[payment_id]
                for other, (s, _) in before.items()
            )
            return
        sources = (ACTIVE,) if op == "change_status" else TRANSITIONS[op][0]
        assert state not in sources

    async def check_invariants(self) -> None:
        rows = await self.rows()

        active_slots = [self.slots[pid] for pid, (state, _) in rows.items() if state == ACTIVE]
        assert len(active_slots) == len(set(active_slots))

        assert not self.purged & set(rows)

        result = await self.session.execute(
            select(PaymentLog.payment_id, func.count()).group_by(PaymentLog.payment_id)
        )
        assert dict(result.all()) == dict(self.expected_entries)

        active = {
            self.slots[pid]: status for pid, (state, status) in rows.items() if state == ACTIVE
        }
        received = sum(1 for slot in SLOTS if active.get(slot) == PaymentStatus.RECEIVED.value)
        not_paid = sum(
            1 for slot in SLOTS if active.get(slot, PaymentStatus.NOT_PAID.value) == "not_paid"
        )
        if received == len(SLOTS):
            expected = GroupStatus.FULLY_PAID
        elif not_paid == len(SLOTS):
            expected = GroupStatus.NOT_PAID
        else:
            expected = GroupStatus.PENDING

        summary = await StatusAggregator(self.session).group_status(self.group_id, MONTH)
        assert summary.status == expected
        assert summary.pending_count == len(SLOTS) - received
        assert summary.member_count == len(SLOTS)


async def run_operations(ops: list[tuple[str, int, str]]) -> None:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with make_session_factory(engine)() as session:
            run = LifecycleRun(session)
            await run.seed()
            for op in ops:
                await run.apply(*op)
                await run.check_invariants()
    finally:
        await engine.dispose()


@settings(max_examples=40, deadline=None)
@given(ops=operations)
def test_lifecycle_invariants_hold_for_any_operation_sequence(ops):
    asyncio.run(run_operations(ops))
