"""Payment record model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from kasmoni.models.base import Base, TimestampMixin, utcnow
from kasmoni.models.enums import PaymentState, PaymentStatus, PaymentType, sql_in

# Fields captured in audit snapshots (old_<field> / new_<field>)
AUDITED_FIELDS: tuple[str, ...] = (
    "status",
    "amount",
    "payment_date",
    "payment_month",
    "slot",
    "payment_type",
    "sender_bank",
    "receiver_bank",
    "proof_of_payment",
)


class Payment(Base, TimestampMixin):
    """A member's contribution toward one slot for one payment month.

    The lifecycle state is stored explicitly. Trash and archive markers are
    only ever populated together with the matching state, which the check
    constraints below enforce.
    """

    __tablename__ = "payment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("savings_group.id", ondelete="RESTRICT"),
        nullable=False,
    )
    member_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("member.id", ondelete="RESTRICT"),
        nullable=False,
    )
    payment_month: Mapped[str] = mapped_column(String(7), nullable=False)
    slot: Mapped[str] = mapped_column(String(7), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_type: Mapped[str] = mapped_column(String, nullable=False)
    sender_bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receiver_bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    proof_of_payment: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=PaymentStatus.NOT_PAID.value
    )

    state: Mapped[str] = mapped_column(
        String, nullable=False, default=PaymentState.ACTIVE.value
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deleted_by_username: Mapped[str | None] = mapped_column(String, nullable=True)
    deletion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    archived_by_username: Mapped[str | None] = mapped_column(String, nullable=True)
    archive_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="payment_amount_check"),
        CheckConstraint(f"status IN {sql_in(PaymentStatus)}", name="payment_status_check"),
        CheckConstraint(f"payment_type IN {sql_in(PaymentType)}", name="payment_type_check"),
        CheckConstraint(
            f"state IN {sql_in(PaymentState, exclude=(PaymentState.PURGED,))}",
            name="payment_state_check",
        ),
        CheckConstraint(
            "(state = 'trashed' AND deleted_at IS NOT NULL)"
            " OR (state <> 'trashed' AND deleted_at IS NULL)",
            name="payment_trash_marker_check",
        ),
        CheckConstraint(
            "(state = 'archived' AND archived_at IS NOT NULL)"
            " OR (state <> 'archived' AND archived_at IS NULL)",
            name="payment_archive_marker_check",
        ),
        Index(
            "payment_active_tuple_uq",
            "group_id",
            "member_id",
            "slot",
            "payment_month",
            unique=True,
            postgresql_where=text("state = 'active'"),
            sqlite_where=text("state = 'active'"),
        ),
        Index("payment_group_month_idx", "group_id", "payment_month"),
    )

    @property
    def lifecycle(self) -> PaymentState:
        """Current lifecycle state as an enum."""
        return PaymentState(self.state)

    @property
    def tuple_key(self) -> tuple[int, int, str, str]:
        """The (group, member, slot, month) key unique among active records."""
        return (self.group_id, self.member_id, self.slot, self.payment_month)

    def snapshot(self) -> dict[str, Any]:
        """Values of every audited field."""
        return {name: getattr(self, name) for name in AUDITED_FIELDS}

    def mark_trashed(
        self, user_id: int | None, username: str | None, reason: str | None = None
    ) -> None:
        """Move into the trashbox, clearing any archive markers."""
        self._clear_markers()
        self.state = PaymentState.TRASHED.value
        self.deleted_at = utcnow()
        self.deleted_by_user_id = user_id
        self.deleted_by_username = username
        self.deletion_reason = reason

    def mark_archived(self, user_id: int | None, username: str | None, reason: str) -> None:
        """Move into the archive."""
        self._clear_markers()
        self.state = PaymentState.ARCHIVED.value
        self.archived_at = utcnow()
        self.archived_by_user_id = user_id
        self.archived_by_username = username
        self.archive_reason = reason

    def mark_active(self) -> None:
        """Return to the active set."""
        self._clear_markers()
        self.state = PaymentState.ACTIVE.value

    def _clear_markers(self) -> None:
        self.deleted_at = None
        self.deleted_by_user_id = None
        self.deleted_by_username = None
        self.deletion_reason = None
        self.archived_at = None
        self.archived_by_user_id = None
        self.archived_by_username = None
        self.archive_reason = None
