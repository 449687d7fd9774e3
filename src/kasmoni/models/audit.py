"""Append-only payment audit log model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, Index, Integer, Numeric, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from kasmoni.models.base import Base, utcnow
from kasmoni.models.enums import AuditAction, sql_in


class ImmutableAuditLogError(Exception):
    """Raised when code tries to modify or delete a written audit entry."""


class PaymentLog(Base):
    """One audit entry per payment mutation.

    payment_id has no foreign key: entries for a purged payment
    must outlive the payment row.
    """

    __tablename__ = "payment_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String, nullable=False)

    old_status: Mapped[str | None] = mapped_column(String, nullable=True)
    new_status: Mapped[str | None] = mapped_column(String, nullable=True)
    old_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    new_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    old_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    new_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    old_payment_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    new_payment_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    old_slot: Mapped[str | None] = mapped_column(String(7), nullable=True)
    new_slot: Mapped[str | None] = mapped_column(String(7), nullable=True)
    old_payment_type: Mapped[str | None] = mapped_column(String, nullable=True)
    new_payment_type: Mapped[str | None] = mapped_column(String, nullable=True)
    old_sender_bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    new_sender_bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    old_receiver_bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    new_receiver_bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    old_proof_of_payment: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_proof_of_payment: Mapped[str | None] = mapped_column(Text, nullable=True)

    member_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    group_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bulk_payment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    performed_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    performed_by_username: Mapped[str | None] = mapped_column(String, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(f"action IN {sql_in(AuditAction)}", name="payment_log_action_check"),
        Index("payment_log_payment_idx", "payment_id"),
        Index("payment_log_timestamp_idx", "timestamp"),
    )


@event.listens_for(PaymentLog, "before_update")
def _refuse_update(mapper, connection, target: PaymentLog) -> None:
    raise ImmutableAuditLogError(f"Audit entry {target.id} is immutable")


@event.listens_for(PaymentLog, "before_delete")
def _refuse_delete(mapper, connection, target: PaymentLog) -> None:
    raise ImmutableAuditLogError(f"Audit entry {target.id} cannot be deleted")
