"""Pytest fixtures for kasmoni payment engine tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from kasmoni.database import make_session_factory
from kasmoni.models import Base, Group, GroupMember, Member
from kasmoni.services.audit_logger import Actor
from kasmoni.services.lifecycle import PaymentDraft

# Use in-memory SQLite for tests (with async support)
# StaticPool keeps the single in-memory connection alive across sessions
TEST_DATABASE_URL = "sqlite+aiosqlite://"

MONTH = "2024-03"
SLOTS = ("2024-01", "2024-02", "2024-03")


@dataclass
class SeededGroup:
    """Ids of a seeded group and its slot holders.

    Plain ids rather than ORM objects: a rolled-back session expires its
    instances and async sessions cannot lazy-load them again.
    """

    id: int
    name: str
    holders: dict[str, int]

    @property
    def member_ids(self) -> list[int]:
        return list(self.holders.values())

    def holder(self, receive_month: str) -> int:
        """Member id holding ``receive_month``."""
        return self.holders[receive_month]


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


async def seed_group(
    session: AsyncSession,
    name: str = "Alpha",
    slots: tuple[str, ...] = SLOTS,
    end_month: str | None = None,
) -> SeededGroup:
    """Insert a group whose members each hold one of ``slots``."""
    group = Group(
        name=name,
        monthly_amount=Decimal("100.00"),
        max_members=len(slots),
        duration=len(slots),
        start_month=slots[0] if slots else MONTH,
        end_month=end_month,
    )
    session.add(group)
    await session.flush()

    holders = {}
    for i, receive_month in enumerate(slots, start=1):
        member = Member(
            first_name=f"{name}{i}",
            last_name="Member",
            phone_number=f"+597 800{i:04d}",
            bank_name="DSB",
            account_number=f"{i:08d}",
        )
        session.add(member)
        await session.flush()
        session.add(
            GroupMember(group_id=group.id, member_id=member.id, receive_month=receive_month)
        )
        holders[receive_month] = member.id

    await session.commit()
    return SeededGroup(id=group.id, name=name, holders=holders)


def make_draft(
    seeded: SeededGroup,
    slot: str,
    status: str = "not_paid",
    payment_month: str = MONTH,
    **overrides,
) -> PaymentDraft:
    """A valid cash contribution by the holder of ``slot``."""
    values = dict(
        group_id=seeded.id,
        member_id=seeded.holder(slot),
        amount=Decimal("100.00"),
        payment_date=date(2024, 3, 5),
        payment_month=payment_month,
        slot=slot,
        payment_type="cash",
        status=status,
    )
    values.update(overrides)
    return PaymentDraft(**values)


@pytest_asyncio.fixture
async def seeded(session) -> SeededGroup:
    """Group 'Alpha' with three members holding 2024-01, 2024-02, 2024-03."""
    return await seed_group(session)


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id=7, username="admin", ip_address="127.0.0.1", user_agent="pytest")


@pytest.fixture
def group_factory(session):
    """Seed additional groups: ``await group_factory(name="Beta", slots=(...))``."""

    def factory(**kwargs):
        return seed_group(session, **kwargs)

    return factory


@pytest.fixture
def draft():
    """Build payment drafts: ``draft(seeded, "2024-01", status="received")``."""
    return make_draft
