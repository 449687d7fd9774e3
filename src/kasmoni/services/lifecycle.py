"""Payment lifecycle manager.

Governs creation, editing, trashing, archiving, restoring and purging of
payment records. Each operation runs "lock → guard → mutate → audit" inside
one transaction and commits it, so a record mutation and its audit entry are
persisted together or not at all.

Bulk operations are not atomic: every item runs in its own transaction and
failures are reported per item while successful items stay committed.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncGenerator, Awaitable, Callable, Iterable, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kasmoni.models import Payment, PaymentState, PaymentStatus, PaymentType
from kasmoni.services.audit_logger import Actor, PaymentAuditLogger
from kasmoni.services.errors import (
    ConflictingActiveRecordError,
    DuplicatePaymentError,
    GroupNotFoundError,
    InvalidTransitionError,
    MemberNotFoundError,
    PaymentError,
    PaymentValidationError,
)
from kasmoni.services.periods import is_month
from kasmoni.services.queries import PaymentQueries
from kasmoni.services.state_machine import PaymentLifecycleStateMachine

logger = logging.getLogger(__name__)

_STATUSES = {s.value for s in PaymentStatus}
_TYPES = {t.value for t in PaymentType}


# =============================================================================
# Inputs and results
# =============================================================================


def _to_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount.quantize(Decimal("0.01"))


def _bank_errors(values: dict[str, Any]) -> list[str]:
    errors = []
    for name in ("sender_bank", "receiver_bank"):
        if values.get(name):
            if len(values[name]) > 100:
                errors.append(f"{name} must be at most 100 characters")
        elif values.get("payment_type") == PaymentType.BANK_TRANSFER:
            errors.append(f"{name} is required for bank transfers")
    return errors


@dataclass(frozen=True)
class PaymentDraft:
    """Fields for a new payment record."""

    group_id: int
    member_id: int
    amount: Decimal | str | float | int | None
    payment_date: date | None
    payment_month: str
    slot: str
    payment_type: str
    sender_bank: str | None = None
    receiver_bank: str | None = None
    status: str = PaymentStatus.NOT_PAID.value
    proof_of_payment: str | None = None

    def errors(self) -> list[str]:
        """Every validation problem, without touching the store."""
        errors: list[str] = []
        if not isinstance(self.group_id, int) or self.group_id <= 0:
            errors.append("group_id must be a positive integer")
        if not isinstance(self.member_id, int) or self.member_id <= 0:
            errors.append("member_id must be a positive integer")
        amount = _to_amount(self.amount)
        if amount is None:
            errors.append("amount is required")
        elif amount <= 0:
            errors.append("amount must be greater than zero")
        if not isinstance(self.payment_date, date):
            errors.append("payment_date is required")
        if not is_month(self.payment_month):
            errors.append("payment_month must be in YYYY-MM format")
        if not is_month(self.slot):
            errors.append("slot must be in YYYY-MM format")
        if self.payment_type not in _TYPES:
            errors.append("payment_type must be one of: " + ", ".join(sorted(_TYPES)))
        if self.status not in _STATUSES:
            errors.append("status must be one of: " + ", ".join(sorted(_STATUSES)))
        errors.extend(_bank_errors(self.__dict__))
        return errors

    def validated(self) -> dict[str, Any]:
        """Normalized column values, raising PaymentValidationError on bad input."""
        errors = self.errors()
        if errors:
            raise PaymentValidationError("; ".join(errors))
        return {
            "group_id": self.group_id,
            "member_id": self.member_id,
            "amount": _to_amount(self.amount),
            "payment_date": self.payment_date,
            "payment_month": self.payment_month,
            "slot": self.slot,
            "payment_type": self.payment_type,
            "sender_bank": self.sender_bank or None,
            "receiver_bank": self.receiver_bank or None,
            "status": self.status,
            "proof_of_payment": self.proof_of_payment,
        }


@dataclass(frozen=True)
class PaymentChanges:
    """Partial update of an active payment. None means "leave unchanged"."""

    amount: Decimal | str | float | int | None = None
    payment_date: date | None = None
    payment_month: str | None = None
    slot: str | None = None
    payment_type: str | None = None
    sender_bank: str | None = None
    receiver_bank: str | None = None
    status: str | None = None
    proof_of_payment: str | None = None

    def validated(self) -> dict[str, Any]:
        """Provided fields, validated before any store access."""
        values = {k: v for k, v in self.__dict__.items() if v is not None}
        if not values:
            raise PaymentValidationError("No fields to update")

        errors = []
        if "amount" in values:
            amount = _to_amount(values["amount"])
            if amount is None or amount <= 0:
                errors.append("amount must be greater than zero")
            else:
                values["amount"] = amount
        if "payment_date" in values and not isinstance(values["payment_date"], date):
            errors.append("payment_date must be a date")
        for name in ("sender_bank", "receiver_bank"):
            if name in values and len(str(values[name])) > 100:
                errors.append(f"{name} must be at most 100 characters")
        for name in ("payment_month", "slot"):
            if name in values and not is_month(values[name]):
                errors.append(f"{name} must be in YYYY-MM format")
        if "payment_type" in values and values["payment_type"] not in _TYPES:
            errors.append("payment_type must be one of: " + ", ".join(sorted(_TYPES)))
        if "status" in values and values["status"] not in _STATUSES:
            errors.append("status must be one of: " + ", ".join(sorted(_STATUSES)))
        if errors:
            raise PaymentValidationError("; ".join(errors))
        return values


@dataclass(frozen=True)
class BulkPaymentItem:
    """One row of a bulk creation request; group and month come from the batch."""

    member_id: int
    amount: Decimal | str | float | int | None
    payment_date: date | None
    slot: str
    payment_type: str
    sender_bank: str | None = None
    receiver_bank: str | None = None
    status: str = PaymentStatus.NOT_PAID.value
    proof_of_payment: str | None = None

    def to_draft(self, group_id: int, payment_month: str) -> PaymentDraft:
        return PaymentDraft(
            group_id=group_id,
            member_id=self.member_id,
            amount=self.amount,
            payment_date=self.payment_date,
            payment_month=payment_month,
            slot=self.slot,
            payment_type=self.payment_type,
            sender_bank=self.sender_bank,
            receiver_bank=self.receiver_bank,
            status=self.status,
            proof_of_payment=self.proof_of_payment,
        )


@dataclass(frozen=True)
class BulkItemResult:
    """Outcome of one item of a bulk operation.

    ``ref`` is the payment id for id-based operations and the item index for
    bulk creation.
    """

    ref: int
    ok: bool
    payment_id: int | None = None
    error_code: str | None = None
    message: str | None = None


@dataclass
class BulkResult:
    items: list[BulkItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[BulkItemResult]:
        return [item for item in self.items if item.ok]

    @property
    def failed(self) -> list[BulkItemResult]:
        return [item for item in self.items if not item.ok]

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


@dataclass(frozen=True)
class BulkValidationResult:
    index: int
    member_id: int
    errors: list[str]

    @property
    def valid(self) -> bool:
        return not self.errors


# =============================================================================
# Manager
# =============================================================================


class PaymentLifecycleManager:
    """State machine driver for payment records.

    States: active, trashed, archived, purged (see PaymentLifecycleStateMachine).

    Failure semantics:
    - bad input raises PaymentValidationError before any store access
    - guard violations raise InvalidTransitionError with no mutation and no audit
    - a failed audit write raises AuditWriteError and rolls the mutation back
    """

    def __init__(
        self,
        session: AsyncSession,
        audit_logger: PaymentAuditLogger | None = None,
    ):
        self.session = session
        self.queries = PaymentQueries(session)
        self.audit = audit_logger or PaymentAuditLogger(session)
        self.state_machine = PaymentLifecycleStateMachine

    # ------------------------------------------------------------------
    # Single-record operations
    # ------------------------------------------------------------------

    async def create(self, draft: PaymentDraft, actor: Actor) -> Payment:
        """Insert a new active payment and audit it."""
        values = draft.validated()
        async with self._transaction():
            payment = await self._insert(values)
            await self.audit.created(payment, actor)
        logger.info(
            "Created payment %s (group %s, member %s, slot %s, month %s)",
            payment.id,
            payment.group_id,
            payment.member_id,
            payment.slot,
            payment.payment_month,
        )
        return payment

    async def update(self, payment_id: int, changes: PaymentChanges, actor: Actor) -> Payment:
        """Change fields of an active payment.

        Audited as status_changed when only the status moved, otherwise as
        updated with the old and new values of every mutated field. A request
        that changes nothing writes nothing.
        """
        values = changes.validated()
        async with self._transaction():
            payment = await self.queries.lock(payment_id)
            self.state_machine.validate_edit(payment.state)

            old = payment.snapshot()
            mutated = {name: value for name, value in values.items() if old[name] != value}
            if not mutated:
                return payment

            merged = {**old, **mutated}
            bank_errors = _bank_errors(merged)
            if bank_errors:
                raise PaymentValidationError("; ".join(bank_errors))

            if "slot" in mutated or "payment_month" in mutated:
                await self._ensure_slot_held(payment.group_id, payment.member_id, merged["slot"])
                await self._ensure_tuple_free(
                    payment.group_id,
                    payment.member_id,
                    merged["slot"],
                    merged["payment_month"],
                    exclude_id=payment.id,
                )

            for name, value in mutated.items():
                setattr(payment, name, value)
            await self._flush_payment(payment)

            if set(mutated) == {"status"}:
                await self.audit.status_changed(payment, old["status"], mutated["status"], actor)
            else:
                await self.audit.updated(
                    payment,
                    {name: old[name] for name in mutated},
                    mutated,
                    actor,
                )
        logger.info("Updated payment %s fields: %s", payment_id, ", ".join(sorted(mutated)))
        return payment

    async def change_status(self, payment_id: int, status: str, actor: Actor) -> Payment:
        """Set only the status of an active payment."""
        if status is None:
            raise PaymentValidationError("status is required", field="status")
        return await self.update(payment_id, PaymentChanges(status=status), actor)

    async def soft_delete(
        self, payment_id: int, actor: Actor, details: str | None = None
    ) -> Payment:
        """Move an active payment to the trashbox."""
        async with self._transaction():
            payment = await self._lock_in(
                payment_id,
                (PaymentState.ACTIVE,),
                PaymentState.TRASHED,
                "archived payments are moved to the trashbox from the archive",
            )
            payment.mark_trashed(actor.user_id, actor.username)
            await self._flush_payment(payment)
            await self.audit.deleted(payment, actor, details)
        logger.info("Moved payment %s to trashbox", payment_id)
        return payment

    async def restore(self, payment_id: int, actor: Actor) -> Payment:
        """Bring a trashed or archived payment back to active under the same id."""
        async with self._transaction():
            payment = await self._lock_in(
                payment_id,
                (PaymentState.TRASHED, PaymentState.ARCHIVED),
                PaymentState.ACTIVE,
            )
            source = payment.lifecycle
            conflict = await self.queries.find_active_for_tuple(
                *payment.tuple_key, exclude_id=payment.id
            )
            if conflict is not None:
                raise ConflictingActiveRecordError(payment.id, conflict.id)

            payment.mark_active()
            await self._flush_payment(payment, source)
            origin = "trashbox" if source == PaymentState.TRASHED else "archive"
            await self.audit.restored(payment, actor, f"Payment restored from {origin}")
        logger.info("Restored payment %s from %s", payment_id, origin)
        return payment

    async def archive(self, payment_id: int, actor: Actor, reason: str | None = "") -> Payment:
        """Archive an active payment. The reason may be empty."""
        reason = reason or ""
        async with self._transaction():
            payment = await self._lock_in(payment_id, (PaymentState.ACTIVE,), PaymentState.ARCHIVED)
            payment.mark_archived(actor.user_id, actor.username, reason)
            await self._flush_payment(payment)
            await self.audit.archived(payment, actor, reason)
        logger.info("Archived payment %s", payment_id)
        return payment

    async def move_archived_to_trash(
        self,
        payment_id: int,
        actor: Actor,
        reason: str | None,
        confirmed: bool,
    ) -> Payment:
        """Move an archived payment to the trashbox; needs confirmation and a reason."""
        if not confirmed:
            raise PaymentValidationError(
                "Moving an archived payment to the trashbox must be confirmed", field="confirm"
            )
        if not reason or not reason.strip():
            raise PaymentValidationError("A reason is required", field="reason")
        reason = reason.strip()

        async with self._transaction():
            payment = await self._lock_in(
                payment_id, (PaymentState.ARCHIVED,), PaymentState.TRASHED
            )
            archive_reason = payment.archive_reason
            payment.mark_trashed(actor.user_id, actor.username, reason)
            await self._flush_payment(payment)
            details = f"Moved to trashbox from archive: {reason}"
            if archive_reason:
                details += f" (archived for: {archive_reason})"
            await self.audit.deleted(payment, actor, details)
        logger.info("Moved archived payment %s to trashbox", payment_id)
        return payment

    async def permanently_delete(self, payment_id: int, actor: Actor) -> int:
        """Purge a trashed payment. Its audit history is kept."""
        async with self._transaction():
            payment = await self._lock_in(payment_id, (PaymentState.TRASHED,), PaymentState.PURGED)
            # Audit first: the entry must exist before the row disappears
            await self.audit.permanently_deleted(payment, actor)
            await self.session.delete(payment)
            await self.session.flush()
        logger.info("Permanently deleted payment %s", payment_id)
        return payment_id

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def bulk_create(
        self,
        group_id: int,
        payment_month: str,
        items: Sequence[BulkPaymentItem],
        actor: Actor,
    ) -> BulkResult:
        """Create many payments for one group and month.

        Each item commits on its own. A single bulk_created summary entry is
        written for the successful items.
        """
        self._validate_bulk_header(group_id, payment_month, items)

        result = BulkResult()
        for index, item in enumerate(items):
            try:
                values = item.to_draft(group_id, payment_month).validated()
                async with self._transaction():
                    payment = await self._insert(values)
                result.items.append(BulkItemResult(ref=index, ok=True, payment_id=payment.id))
            except (PaymentError, SQLAlchemyError) as exc:
                result.items.append(self._failure(index, exc))

        if result.succeeded_count:
            async with self._transaction():
                await self.audit.bulk_created(group_id, result.succeeded_count, actor)
        logger.info(
            "Bulk create for group %s month %s: %d created, %d failed",
            group_id,
            payment_month,
            result.succeeded_count,
            result.failed_count,
        )
        return result

    async def validate_bulk(
        self,
        group_id: int,
        payment_month: str,
        items: Sequence[BulkPaymentItem],
    ) -> list[BulkValidationResult]:
        """Dry run of bulk_create: report per-item problems without writing."""
        self._validate_bulk_header(group_id, payment_month, items)

        group_exists = await self.queries.get_group(group_id) is not None
        results = []
        for index, item in enumerate(items):
            draft = item.to_draft(group_id, payment_month)
            errors = draft.errors()
            if not group_exists:
                errors.append("Group not found")
            if await self.queries.get_member(item.member_id) is None:
                errors.append("Member not found")
            else:
                held = await self.queries.member_slots(group_id, item.member_id)
                if not held:
                    errors.append("Member is not part of this group")
                elif item.slot not in held:
                    errors.append("Invalid slot for this member in this group")
                elif is_month(item.slot) and await self.queries.find_active_for_tuple(
                    group_id, item.member_id, item.slot, payment_month
                ):
                    errors.append("An active payment already exists for this slot and month")
            results.append(BulkValidationResult(index=index, member_id=item.member_id, errors=errors))
        return results

    async def bulk_soft_delete(self, payment_ids: Iterable[int], actor: Actor) -> BulkResult:
        return await self._run_bulk(payment_ids, lambda pid: self.soft_delete(pid, actor))

    async def bulk_restore(self, payment_ids: Iterable[int], actor: Actor) -> BulkResult:
        return await self._run_bulk(payment_ids, lambda pid: self.restore(pid, actor))

    async def bulk_archive(
        self, payment_ids: Iterable[int], actor: Actor, reason: str | None = ""
    ) -> BulkResult:
        return await self._run_bulk(payment_ids, lambda pid: self.archive(pid, actor, reason))

    async def bulk_move_archived_to_trash(
        self,
        payment_ids: Iterable[int],
        actor: Actor,
        reason: str | None,
        confirmed: bool,
    ) -> BulkResult:
        # Confirmation and reason apply to the whole batch
        if not confirmed:
            raise PaymentValidationError(
                "Moving archived payments to the trashbox must be confirmed", field="confirm"
            )
        if not reason or not reason.strip():
            raise PaymentValidationError("A reason is required", field="reason")
        return await self._run_bulk(
            payment_ids,
            lambda pid: self.move_archived_to_trash(pid, actor, reason, confirmed),
        )

    async def bulk_permanently_delete(self, payment_ids: Iterable[int], actor: Actor) -> BulkResult:
        return await self._run_bulk(payment_ids, lambda pid: self.permanently_delete(pid, actor))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[None, None]:
        """Commit on success, roll back on any error."""
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def _run_bulk(
        self,
        payment_ids: Iterable[int],
        operation: Callable[[int], Awaitable[Any]],
    ) -> BulkResult:
        ids = list(payment_ids)
        if not ids:
            raise PaymentValidationError("Payment IDs are required", field="payment_ids")

        result = BulkResult()
        for payment_id in ids:
            try:
                await operation(payment_id)
            except (PaymentError, SQLAlchemyError) as exc:
                result.items.append(self._failure(payment_id, exc))
            else:
                result.items.append(BulkItemResult(ref=payment_id, ok=True, payment_id=payment_id))
        return result

    @staticmethod
    def _failure(ref: int, exc: Exception) -> BulkItemResult:
        if isinstance(exc, PaymentError):
            code, message = exc.code, exc.message
        else:
            code, message = "DATABASE_ERROR", str(exc)
        logger.warning("Bulk item %s failed: %s (%s)", ref, message, code)
        return BulkItemResult(ref=ref, ok=False, error_code=code, message=message)

    @staticmethod
    def _validate_bulk_header(
        group_id: int, payment_month: str, items: Sequence[BulkPaymentItem]
    ) -> None:
        if not isinstance(group_id, int) or group_id <= 0:
            raise PaymentValidationError("group_id must be a positive integer", field="group_id")
        if not is_month(payment_month):
            raise PaymentValidationError(
                "payment_month must be in YYYY-MM format", field="payment_month"
            )
        if not items:
            raise PaymentValidationError("At least one payment is required", field="payments")

    async def _lock_in(
        self,
        payment_id: int,
        sources: tuple[PaymentState, ...],
        target: PaymentState,
        hint: str | None = None,
    ) -> Payment:
        """Lock a payment and check it may move from its state to ``target``."""
        payment = await self.queries.lock(payment_id)
        self.state_machine.validate_transition(payment.state, target)
        if payment.state not in sources:
            # Allowed by the state machine, but only through another operation
            raise InvalidTransitionError(payment.state, target.value, hint)
        return payment

    async def _insert(self, values: dict[str, Any]) -> Payment:
        group_id, member_id = values["group_id"], values["member_id"]
        if await self.queries.get_group(group_id) is None:
            raise GroupNotFoundError(group_id)
        if await self.queries.get_member(member_id) is None:
            raise MemberNotFoundError(member_id)
        await self._ensure_slot_held(group_id, member_id, values["slot"])
        await self._ensure_tuple_free(group_id, member_id, values["slot"], values["payment_month"])

        payment = Payment(**values, state=PaymentState.ACTIVE.value)
        self.session.add(payment)
        await self._flush_payment(payment)
        return payment

    async def _ensure_slot_held(self, group_id: int, member_id: int, slot: str) -> None:
        held = await self.queries.member_slots(group_id, member_id)
        if not held:
            raise PaymentValidationError("Member is not part of this group", field="member_id")
        if slot not in held:
            raise PaymentValidationError(
                "Invalid slot for this member in this group", field="slot"
            )

    async def _ensure_tuple_free(
        self,
        group_id: int,
        member_id: int,
        slot: str,
        payment_month: str,
        exclude_id: int | None = None,
    ) -> None:
        existing = await self.queries.find_active_for_tuple(
            group_id, member_id, slot, payment_month, exclude_id=exclude_id
        )
        if existing is not None:
            raise DuplicatePaymentError(group_id, member_id, slot, payment_month)

    async def _flush_payment(self, payment: Payment, source: PaymentState | None = None) -> None:
        """Flush a payment mutation, translating the active-tuple index violation."""
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if "unique" not in str(exc.orig).lower():
                raise
            if source is not None and self.state_machine.is_restore(source, payment.state):
                raise ConflictingActiveRecordError(payment.id, None) from exc
            raise DuplicatePaymentError(
                payment.group_id, payment.member_id, payment.slot, payment.payment_month
            ) from exc
