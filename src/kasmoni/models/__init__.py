"""ORM models."""

from kasmoni.models.audit import ImmutableAuditLogError, PaymentLog
from kasmoni.models.base import Base, TimestampMixin, utcnow
from kasmoni.models.enums import (
    AuditAction,
    GroupStatus,
    PaymentState,
    PaymentStatus,
    PaymentType,
)
from kasmoni.models.group import Group, GroupMember, Member
from kasmoni.models.payment import AUDITED_FIELDS, Payment

__all__ = [
    "AUDITED_FIELDS",
    "AuditAction",
    "Base",
    "Group",
    "GroupMember",
    "GroupStatus",
    "ImmutableAuditLogError",
    "Member",
    "Payment",
    "PaymentLog",
    "PaymentState",
    "PaymentStatus",
    "PaymentType",
    "TimestampMixin",
    "utcnow",
]
