"""Tests for group and slot status aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import pytest
from hypothesis import given, settings, strategies as st

from kasmoni.models import GroupMember, GroupStatus, Payment
from kasmoni.services.errors import GroupNotFoundError, PaymentValidationError
from kasmoni.services.lifecycle import PaymentLifecycleManager
from kasmoni.services.status_aggregator import (
    SlotClass,
    StatusAggregator,
    aggregate_group,
    aggregate_groups,
    classify_slot,
    decide_group_status,
)


@dataclass
class Slot:
    group_id: int
    member_id: int
    receive_month: str


@dataclass
class Contribution:
    group_id: int
    member_id: int
    slot: str
    payment_month: str
    status: str
    state: str = "active"
    id: int | None = None


SLOTS = [Slot(1, 10, "2024-01"), Slot(1, 11, "2024-02"), Slot(1, 12, "2024-03")]


def contributions(*statuses: str, month: str = "2024-03") -> list[Contribution]:
    return [
        Contribution(1, slot.member_id, slot.receive_month, month, status)
        for slot, status in zip(SLOTS, statuses)
    ]


# =============================================================================
# Pure aggregation
# =============================================================================


class TestClassifySlot:
    def test_missing_record_is_not_paid(self):
        assert classify_slot(None) == SlotClass.NOT_PAID

    def test_record_statuses(self):
        assert classify_slot("not_paid") == SlotClass.NOT_PAID
        assert classify_slot("received") == SlotClass.RECEIVED
        assert classify_slot("pending") == SlotClass.PENDING
        assert classify_slot("settled") == SlotClass.PENDING


class TestDecideGroupStatus:
    def test_no_slots_is_not_paid(self):
        assert decide_group_status([]) == GroupStatus.NOT_PAID

    def test_all_received(self):
        assert decide_group_status([SlotClass.RECEIVED] * 3) == GroupStatus.FULLY_PAID

    def test_all_not_paid(self):
        assert decide_group_status([SlotClass.NOT_PAID] * 2) == GroupStatus.NOT_PAID

    def test_all_pending(self):
        assert decide_group_status([SlotClass.PENDING] * 2) == GroupStatus.PENDING

    def test_mixed_is_pending(self):
        assert (
            decide_group_status([SlotClass.RECEIVED, SlotClass.NOT_PAID]) == GroupStatus.PENDING
        )
        assert (
            decide_group_status([SlotClass.RECEIVED, SlotClass.PENDING, SlotClass.NOT_PAID])
            == GroupStatus.PENDING
        )


class TestAggregateGroup:
    def test_all_received_is_fully_paid(self):
        """Three slots, three received records."""
        summary = aggregate_group(1, SLOTS, contributions("received", "received", "received"), "2024-03")

        assert summary.status == GroupStatus.FULLY_PAID
        assert summary.pending_count == 0
        assert summary.member_count == 3

    def test_one_missing_record_is_pending(self):
        """Two received, the third slot has no record."""
        summary = aggregate_group(1, SLOTS, contributions("received", "received"), "2024-03")

        assert summary.status == GroupStatus.PENDING
        assert summary.pending_count == 1
        assert summary.member_count == 3

    def test_no_records_is_not_paid(self):
        summary = aggregate_group(1, SLOTS, [], "2024-03")

        assert summary.status == GroupStatus.NOT_PAID
        assert summary.pending_count == 3

    def test_group_without_slots(self):
        summary = aggregate_group(1, [], contributions("received"), "2024-03")

        assert summary.status == GroupStatus.NOT_PAID
        assert summary.pending_count == 0
        assert summary.member_count == 0

    def test_settled_counts_as_pending(self):
        summary = aggregate_group(1, SLOTS, contributions("settled", "settled", "settled"), "2024-03")

        assert summary.status == GroupStatus.PENDING
        assert summary.pending_count == 3

    def test_ignores_non_active_records(self):
        records = contributions("received", "received", "received")
        records[0].state = "trashed"
        records[1].state = "archived"

        summary = aggregate_group(1, SLOTS, records, "2024-03")

        assert summary.status == GroupStatus.PENDING
        assert summary.pending_count == 2

    def test_ignores_other_months(self):
        records = contributions("received", "received", "received", month="2024-02")

        summary = aggregate_group(1, SLOTS, records, "2024-03")

        assert summary.status == GroupStatus.NOT_PAID

    def test_record_of_another_member_does_not_count(self):
        records = [Contribution(1, 99, "2024-01", "2024-03", "received")]

        summary = aggregate_group(1, SLOTS[:1], records, "2024-03")

        assert summary.status == GroupStatus.NOT_PAID

    def test_batch_matches_single_group(self):
        other_slots = [Slot(2, 20, "2024-01")]
        records = contributions("received", "pending", "not_paid") + [
            Contribution(2, 20, "2024-01", "2024-03", "received")
        ]

        batch = aggregate_groups(SLOTS + other_slots, records, "2024-03", group_ids=[1, 2, 3])

        assert batch[1] == aggregate_group(1, SLOTS, records, "2024-03")
        assert batch[2].status == GroupStatus.FULLY_PAID
        assert batch[3].status == GroupStatus.NOT_PAID
        assert batch[3].member_count == 0


slot_statuses = st.lists(
    st.sampled_from([None, "not_paid", "pending", "received", "settled"]),
    min_size=0,
    max_size=12,
)


@settings(max_examples=200)
@given(statuses=slot_statuses)
def test_precedence_holds_for_any_slot_mix(statuses):
    """Status follows the precedence rule and pending_count excludes received slots."""
    slots = [Slot(1, 100 + i, f"2024-{i + 1:02d}") for i in range(len(statuses))]
    records = [
        Contribution(1, slot.member_id, slot.receive_month, "2024-03", status)
        for slot, status in zip(slots, statuses)
        if status is not None
    ]

    summary = aggregate_group(1, slots, records, "2024-03")

    received = sum(1 for s in statuses if s == "received")
    not_paid = sum(1 for s in statuses if s in (None, "not_paid"))
    assert summary.member_count == len(statuses)
    assert summary.pending_count == len(statuses) - received
    if not statuses or not_paid == len(statuses):
        assert summary.status == GroupStatus.NOT_PAID
    elif received == len(statuses):
        assert summary.status == GroupStatus.FULLY_PAID
    else:
        assert summary.status == GroupStatus.PENDING


@settings(max_examples=100)
@given(statuses=slot_statuses)
def test_aggregation_is_idempotent(statuses):
    slots = [Slot(1, 100 + i, f"2023-{i + 1:02d}") for i in range(len(statuses))]
    records = [
        Contribution(1, slot.member_id, slot.receive_month, "2024-03", status)
        for slot, status in zip(slots, statuses)
        if status is not None
    ]

    assert aggregate_group(1, slots, records, "2024-03") == aggregate_group(
        1, slots, records, "2024-03"
    )


# =============================================================================
# Store-backed aggregator
# =============================================================================


class TestStatusAggregator:
    async def test_fully_paid_group(self, session, seeded, draft, actor):
        manager = PaymentLifecycleManager(session)
        for slot in ("2024-01", "2024-02", "2024-03"):
            await manager.create(draft(seeded, slot, status="received"), actor)

        summary = await StatusAggregator(session).group_status(seeded.id, "2024-03")

        assert summary.status == GroupStatus.FULLY_PAID
        assert summary.pending_count == 0
        assert summary.member_count == 3

    async def test_repeated_calls_agree(self, session, seeded, draft, actor):
        manager = PaymentLifecycleManager(session)
        await manager.create(draft(seeded, "2024-01", status="received"), actor)
        await manager.create(draft(seeded, "2024-02", status="pending"), actor)
        aggregator = StatusAggregator(session)

        first = await aggregator.group_status(seeded.id, "2024-03")
        second = await aggregator.group_status(seeded.id, "2024-03")
        overview = await aggregator.all_group_statuses("2024-03")

        assert first == second
        assert overview[0].summary == first
        assert first.status == GroupStatus.PENDING
        assert first.pending_count == 2

    async def test_trashed_payment_stops_counting(self, session, seeded, draft, actor):
        manager = PaymentLifecycleManager(session)
        payments = [
            await manager.create(draft(seeded, slot, status="received"), actor)
            for slot in ("2024-01", "2024-02", "2024-03")
        ]
        aggregator = StatusAggregator(session)
        assert (await aggregator.group_status(seeded.id, "2024-03")).status == GroupStatus.FULLY_PAID

        await manager.soft_delete(payments[2].id, actor)

        summary = await aggregator.group_status(seeded.id, "2024-03")
        assert summary.status == GroupStatus.PENDING
        assert summary.pending_count == 1

    async def test_slot_statuses(self, session, seeded, draft, actor):
        manager = PaymentLifecycleManager(session)
        payment = await manager.create(draft(seeded, "2024-02", status="settled"), actor)

        slots = await StatusAggregator(session).slot_statuses(seeded.id, "2024-03")

        assert [s.receive_month for s in slots] == ["2024-01", "2024-02", "2024-03"]
        assert [s.classification for s in slots] == [
            SlotClass.NOT_PAID,
            SlotClass.PENDING,
            SlotClass.NOT_PAID,
        ]
        assert slots[1].payment_id == payment.id

    async def test_unknown_group(self, session):
        with pytest.raises(GroupNotFoundError):
            await StatusAggregator(session).group_status(999, "2024-03")

    async def test_malformed_month(self, session, seeded):
        with pytest.raises(PaymentValidationError):
            await StatusAggregator(session).group_status(seeded.id, "March")

    async def test_current_recipients(self, session, seeded, group_factory, draft, actor):
        await group_factory(name="Ended", slots=("2023-01", "2023-02"), end_month="2023-02")
        await PaymentLifecycleManager(session).create(
            draft(seeded, "2024-03", status="received"), actor
        )

        views = await StatusAggregator(session).groups_with_recipients("2024-03")

        assert [v.group.name for v in views] == ["Alpha"]
        assert views[0].recipient_slot.receive_month == "2024-03"
        assert views[0].recipient.id == seeded.holder("2024-03")
        assert views[0].summary == await StatusAggregator(session).group_status(seeded.id, "2024-03")

    async def test_available_slots(self, session, group_factory, draft, actor):
        # One member holding two slots
        seeded = await group_factory(name="Twin", slots=("2024-01",))
        member_id = seeded.holder("2024-01")
        session.add(GroupMember(group_id=seeded.id, member_id=member_id, receive_month="2024-06"))
        await session.commit()
        await PaymentLifecycleManager(session).create(
            draft(seeded, "2024-01", status="received"), actor
        )

        slots = await StatusAggregator(session).available_slots(seeded.id, member_id, "2024-03")

        assert slots == ["2024-06"]

    async def test_overdue_payments(self, session, seeded, draft, actor):
        manager = PaymentLifecycleManager(session)
        unpaid = await manager.create(draft(seeded, "2024-01", status="pending"), actor)
        await manager.create(draft(seeded, "2024-02", status="received"), actor)
        aggregator = StatusAggregator(session)

        assert await aggregator.overdue_payments(today=date(2024, 3, 27)) == []

        overdue = await aggregator.overdue_payments(today=date(2024, 3, 28))
        assert [p.id for p in overdue] == [unpaid.id]
        assert all(isinstance(p, Payment) for p in overdue)

    async def test_no_records_for_month(self, session, group_factory):
        """Scenario A: three slots and no records for the month."""
        group = await group_factory(name="Gamma", slots=("2025-01", "2025-02", "2025-03"))

        summary = await StatusAggregator(session).group_status(group.id, "2025-03")

        assert summary.status == GroupStatus.NOT_PAID
        assert summary.pending_count == 3

    async def test_single_received_record(self, session, group_factory, draft, actor):
        """Scenario B: one received record, two slots without records."""
        group = await group_factory(name="Gamma", slots=("2025-01", "2025-02", "2025-03"))
        await PaymentLifecycleManager(session).create(
            draft(group, "2025-02", status="received", payment_month="2025-03"), actor
        )

        summary = await StatusAggregator(session).group_status(group.id, "2025-03")

        assert summary.status == GroupStatus.PENDING
        assert summary.pending_count == 2
