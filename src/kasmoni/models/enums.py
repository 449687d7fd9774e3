"""Enumerated values shared by models, services and API schemas."""

from __future__ import annotations

from enum import Enum


class PaymentStatus(str, Enum):
    """Status of a single contribution record."""

    NOT_PAID = "not_paid"
    PENDING = "pending"
    RECEIVED = "received"
    SETTLED = "settled"


class PaymentType(str, Enum):
    """How a contribution was made."""

    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class PaymentState(str, Enum):
    """Lifecycle state of a payment record.

    PURGED never appears in the store; it is the state a record reaches when
    it is permanently deleted.
    """

    ACTIVE = "active"
    TRASHED = "trashed"
    ARCHIVED = "archived"
    PURGED = "purged"


class GroupStatus(str, Enum):
    """Aggregate status of a group for a reference month."""

    NOT_PAID = "not_paid"
    PENDING = "pending"
    FULLY_PAID = "fully_paid"


class AuditAction(str, Enum):
    """Kinds of audit log entries."""

    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    DELETED = "deleted"
    RESTORED = "restored"
    ARCHIVED = "archived"
    PERMANENTLY_DELETED = "permanently_deleted"
    BULK_CREATED = "bulk_created"


def sql_in(enum_cls: type[Enum], exclude: tuple[Enum, ...] = ()) -> str:
    """Render enum values as an SQL ``IN`` list for check constraints."""
    values = ", ".join(f"'{member.value}'" for member in enum_cls if member not in exclude)
    return f"({values})"
