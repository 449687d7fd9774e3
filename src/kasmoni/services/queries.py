"""Shared data-access queries for payment records."""

from __future__ import annotations

import calendar
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kasmoni.models import Group, GroupMember, Member, Payment, PaymentState, PaymentStatus
from kasmoni.services.errors import PaymentNotFoundError


class PaymentQueries:
    """Read access to payments and the read-only group/member/slot tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, payment_id: int) -> Payment:
        """Load a payment in any stored state, raising PaymentNotFoundError."""
        result = await self.session.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    async def lock(self, payment_id: int) -> Payment:
        """Load a payment with a row lock for a state transition."""
        result = await self.session.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    async def find_active_for_tuple(
        self,
        group_id: int,
        member_id: int,
        slot: str,
        payment_month: str,
        exclude_id: int | None = None,
    ) -> Payment | None:
        """The active payment holding a (group, member, slot, month) tuple, if any."""
        query = select(Payment).where(
            Payment.group_id == group_id,
            Payment.member_id == member_id,
            Payment.slot == slot,
            Payment.payment_month == payment_month,
            Payment.state == PaymentState.ACTIVE.value,
        )
        if exclude_id is not None:
            query = query.where(Payment.id != exclude_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_active(
        self,
        *,
        group_id: int | None = None,
        member_id: int | None = None,
        payment_month: str | None = None,
        status: str | None = None,
    ) -> list[Payment]:
        """Active payments, most recent payment date first."""
        query = select(Payment).where(Payment.state == PaymentState.ACTIVE.value)
        if group_id is not None:
            query = query.where(Payment.group_id == group_id)
        if member_id is not None:
            query = query.where(Payment.member_id == member_id)
        if payment_month is not None:
            query = query.where(Payment.payment_month == payment_month)
        if status is not None:
            query = query.where(Payment.status == status)
        query = query.order_by(Payment.payment_date.desc(), Payment.id.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_trashed(self) -> list[Payment]:
        """Trashbox contents, most recently deleted first."""
        result = await self.session.execute(
            select(Payment)
            .where(Payment.state == PaymentState.TRASHED.value)
            .order_by(Payment.deleted_at.desc(), Payment.id.desc())
        )
        return list(result.scalars().all())

    async def list_archived(self) -> list[Payment]:
        """Archive contents, most recently archived first."""
        result = await self.session.execute(
            select(Payment)
            .where(Payment.state == PaymentState.ARCHIVED.value)
            .order_by(Payment.archived_at.desc(), Payment.id.desc())
        )
        return list(result.scalars().all())

    async def overdue(self, today: date | None = None, overdue_day: int = 28) -> list[Payment]:
        """Unpaid active contributions once the month's overdue day has arrived.

        Before that day nothing is overdue. Afterwards every active payment
        still not_paid or pending whose payment date is on or before the
        deadline is returned, oldest first.
        """
        today = today or date.today()
        last_day = calendar.monthrange(today.year, today.month)[1]
        deadline = date(today.year, today.month, min(overdue_day, last_day))
        if today < deadline:
            return []

        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.state == PaymentState.ACTIVE.value,
                Payment.status.in_([PaymentStatus.NOT_PAID.value, PaymentStatus.PENDING.value]),
                Payment.payment_date <= deadline,
            )
            .order_by(Payment.payment_date.asc(), Payment.id.asc())
        )
        return list(result.scalars().all())

    async def get_group(self, group_id: int) -> Group | None:
        return await self.session.get(Group, group_id)

    async def get_member(self, member_id: int) -> Member | None:
        return await self.session.get(Member, member_id)

    async def member_slots(self, group_id: int, member_id: int) -> list[str]:
        """Receive months the member holds in the group."""
        result = await self.session.execute(
            select(GroupMember.receive_month)
            .where(GroupMember.group_id == group_id, GroupMember.member_id == member_id)
            .order_by(GroupMember.receive_month.asc())
        )
        return list(result.scalars().all())
