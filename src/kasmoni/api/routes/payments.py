"""Payment API endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from kasmoni.api.dependencies import Aggregator, CurrentActor, DbSession, Lifecycle
from kasmoni.api.schemas import (
    ArchiveRequest,
    AvailableSlotsResponse,
    BulkArchiveRequest,
    BulkCreateRequest,
    BulkIdsRequest,
    BulkResultResponse,
    BulkValidationItemResponse,
    BulkValidationResponse,
    ErrorResponse,
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    PaymentUpdate,
    StatusUpdate,
)
from kasmoni.config import get_settings
from kasmoni.models import PaymentStatus
from kasmoni.services.errors import PaymentNotFoundError, PaymentValidationError
from kasmoni.services.periods import resolve_month, validate_month
from kasmoni.services.queries import PaymentQueries
from kasmoni.services.state_machine import PaymentLifecycleStateMachine

router = APIRouter(prefix="/payments", tags=["payments"])

_STATUSES = {s.value for s in PaymentStatus}


# ============================================================================
# Listing and lookups
# ============================================================================


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    db: DbSession,
    group_id: int | None = None,
    member_id: int | None = None,
    payment_month: Annotated[str | None, Query(alias="month")] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> PaymentListResponse:
    """List active payments with optional filters."""
    if payment_month is not None:
        validate_month(payment_month, "month")
    if status_filter is not None and status_filter not in _STATUSES:
        raise PaymentValidationError(
            "status must be one of: " + ", ".join(sorted(_STATUSES)), field="status"
        )
    payments = await PaymentQueries(db).list_active(
        group_id=group_id,
        member_id=member_id,
        payment_month=payment_month,
        status=status_filter,
    )
    return PaymentListResponse(
        items=[PaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )


@router.get("/overdue", response_model=PaymentListResponse)
async def list_overdue_payments(
    aggregator: Aggregator,
    today: date | None = None,
) -> PaymentListResponse:
    """Active contributions still unpaid after the month's overdue day."""
    payments = await aggregator.overdue_payments(
        today=today, overdue_day=get_settings().overdue_day
    )
    return PaymentListResponse(
        items=[PaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )


@router.get("/slots/{group_id}/{member_id}", response_model=AvailableSlotsResponse)
async def list_available_slots(
    aggregator: Aggregator,
    group_id: Annotated[int, Path()],
    member_id: Annotated[int, Path()],
    month: str | None = None,
) -> AvailableSlotsResponse:
    """Slots of a member without a received or settled contribution for the month."""
    month = resolve_month(month)
    slots = await aggregator.available_slots(group_id, member_id, month)
    return AvailableSlotsResponse(
        group_id=group_id, member_id=member_id, month=month, slots=slots
    )


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payment(
    db: DbSession,
    payment_id: Annotated[int, Path()],
) -> PaymentResponse:
    """Get an active payment by ID."""
    payment = await PaymentQueries(db).get(payment_id)
    if not PaymentLifecycleStateMachine.counts_toward_status(payment.state):
        # Trashed and archived payments are served by their own views
        raise PaymentNotFoundError(payment_id)
    return PaymentResponse.model_validate(payment)


# ============================================================================
# Single-record mutations
# ============================================================================


@router.post(
    "",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_payment(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payload: PaymentCreate,
) -> PaymentResponse:
    """Create a payment record."""
    payment = await lifecycle.create(payload.to_draft(), actor)
    return PaymentResponse.model_validate(payment)


@router.put(
    "/{payment_id}",
    response_model=PaymentResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_payment(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payment_id: Annotated[int, Path()],
    payload: PaymentUpdate,
) -> PaymentResponse:
    """Update fields of an active payment."""
    payment = await lifecycle.update(payment_id, payload.to_changes(), actor)
    return PaymentResponse.model_validate(payment)


@router.patch(
    "/{payment_id}/status",
    response_model=PaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_payment_status(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payment_id: Annotated[int, Path()],
    payload: StatusUpdate,
) -> PaymentResponse:
    """Change only the status of an active payment."""
    payment = await lifecycle.change_status(payment_id, payload.status, actor)
    return PaymentResponse.model_validate(payment)


@router.delete(
    "/{payment_id}",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_payment(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payment_id: Annotated[int, Path()],
) -> PaymentResponse:
    """Move a payment to the trashbox."""
    payment = await lifecycle.soft_delete(payment_id, actor)
    return PaymentResponse.model_validate(payment)


@router.post(
    "/{payment_id}/archive",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def archive_payment(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payment_id: Annotated[int, Path()],
    payload: ArchiveRequest | None = None,
) -> PaymentResponse:
    """Archive an active payment."""
    reason = payload.reason if payload else ""
    payment = await lifecycle.archive(payment_id, actor, reason)
    return PaymentResponse.model_validate(payment)


# ============================================================================
# Bulk operations
# ============================================================================


@router.post(
    "/bulk",
    response_model=BulkResultResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def bulk_create_payments(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payload: BulkCreateRequest,
) -> BulkResultResponse:
    """Create many payments for one group and month; items succeed or fail individually."""
    result = await lifecycle.bulk_create(
        payload.group_id, payload.payment_month, payload.items(), actor
    )
    return BulkResultResponse.from_result(result)


@router.post(
    "/bulk/validate",
    response_model=BulkValidationResponse,
    responses={400: {"model": ErrorResponse}},
)
async def validate_bulk_payments(
    lifecycle: Lifecycle,
    payload: BulkCreateRequest,
) -> BulkValidationResponse:
    """Report per-item problems of a bulk request without writing anything."""
    results = await lifecycle.validate_bulk(
        payload.group_id, payload.payment_month, payload.items()
    )
    return BulkValidationResponse(
        valid=all(r.valid for r in results),
        items=[BulkValidationItemResponse.model_validate(r) for r in results],
    )


@router.post(
    "/bulk-delete",
    response_model=BulkResultResponse,
    responses={400: {"model": ErrorResponse}},
)
async def bulk_delete_payments(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payload: BulkIdsRequest,
) -> BulkResultResponse:
    """Move many payments to the trashbox."""
    result = await lifecycle.bulk_soft_delete(payload.payment_ids, actor)
    return BulkResultResponse.from_result(result)


@router.post(
    "/bulk-archive",
    response_model=BulkResultResponse,
    responses={400: {"model": ErrorResponse}},
)
async def bulk_archive_payments(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payload: BulkArchiveRequest,
) -> BulkResultResponse:
    """Archive many payments."""
    result = await lifecycle.bulk_archive(payload.payment_ids, actor, payload.reason)
    return BulkResultResponse.from_result(result)
