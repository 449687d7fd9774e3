"""Kasmoni payment engine services."""

from kasmoni.services.audit_logger import Actor, AuditEntry, PaymentAuditLogger
from kasmoni.services.errors import (
    AuditWriteError,
    ConflictingActiveRecordError,
    DuplicatePaymentError,
    GroupNotFoundError,
    InvalidTransitionError,
    MemberNotFoundError,
    PaymentError,
    PaymentNotFoundError,
    PaymentValidationError,
)
from kasmoni.services.lifecycle import (
    BulkItemResult,
    BulkPaymentItem,
    BulkResult,
    BulkValidationResult,
    PaymentChanges,
    PaymentDraft,
    PaymentLifecycleManager,
)
from kasmoni.services.queries import PaymentQueries
from kasmoni.services.state_machine import PaymentLifecycleStateMachine
from kasmoni.services.status_aggregator import GroupStatusSummary, SlotClass, StatusAggregator

__all__ = [
    "Actor",
    "AuditEntry",
    "AuditWriteError",
    "BulkItemResult",
    "BulkPaymentItem",
    "BulkResult",
    "BulkValidationResult",
    "ConflictingActiveRecordError",
    "DuplicatePaymentError",
    "GroupNotFoundError",
    "GroupStatusSummary",
    "InvalidTransitionError",
    "MemberNotFoundError",
    "PaymentAuditLogger",
    "PaymentChanges",
    "PaymentDraft",
    "PaymentError",
    "PaymentLifecycleManager",
    "PaymentLifecycleStateMachine",
    "PaymentNotFoundError",
    "PaymentQueries",
    "PaymentValidationError",
    "SlotClass",
    "StatusAggregator",
]
