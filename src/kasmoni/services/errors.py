"""Error taxonomy for payment lifecycle operations.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with. None of them is retried automatically.
"""

from __future__ import annotations


class PaymentError(Exception):
    """Base class for errors surfaced to callers of the payment engine."""

    code = "PAYMENT_ERROR"
    http_status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PaymentValidationError(PaymentError):
    """Missing or malformed input."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class DuplicatePaymentError(PaymentError):
    """An active record already exists for the (group, member, slot, month) tuple."""

    code = "DUPLICATE_PAYMENT"
    http_status = 409

    def __init__(self, group_id: int, member_id: int, slot: str, payment_month: str):
        self.group_id = group_id
        self.member_id = member_id
        self.slot = slot
        self.payment_month = payment_month
        super().__init__(
            f"An active payment already exists for member {member_id} in group {group_id}"
            f" (slot {slot}, month {payment_month})"
        )


class InvalidTransitionError(PaymentError):
    """Raised when an invalid lifecycle transition is attempted."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, from_state: str, to_state: str, reason: str | None = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        msg = f"Invalid transition from '{from_state}' to '{to_state}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConflictingActiveRecordError(PaymentError):
    """Restoring would create a second active record for the same tuple."""

    code = "CONFLICTING_ACTIVE_RECORD"
    http_status = 409

    def __init__(self, payment_id: int, conflicting_id: int | None = None):
        self.payment_id = payment_id
        self.conflicting_id = conflicting_id
        holder = f"active payment {conflicting_id}" if conflicting_id else "another active payment"
        super().__init__(
            f"Cannot restore payment {payment_id}: {holder} already holds the same slot and month"
        )


class PaymentNotFoundError(PaymentError):
    """The payment does not exist (or was permanently deleted)."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found")


class GroupNotFoundError(PaymentError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, group_id: int):
        self.group_id = group_id
        super().__init__(f"Group {group_id} not found")


class MemberNotFoundError(PaymentError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, member_id: int):
        self.member_id = member_id
        super().__init__(f"Member {member_id} not found")


class AuditWriteError(PaymentError):
    """The audit entry could not be written.

    The triggering mutation shares the audit write's transaction and is rolled
    back with it, but callers must treat the operation as failed and alert.
    """

    code = "AUDIT_WRITE_FAILURE"
    http_status = 500

    def __init__(self, action: str, payment_id: int | None, cause: Exception | None = None):
        self.action = action
        self.payment_id = payment_id
        self.cause = cause
        target = f"payment {payment_id}" if payment_id is not None else "bulk operation"
        super().__init__(f"Failed to write '{action}' audit entry for {target}")
