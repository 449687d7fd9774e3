"""Trashbox API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path

from kasmoni.api.dependencies import CurrentActor, DbSession, Lifecycle
from kasmoni.api.schemas import (
    BulkIdsRequest,
    BulkResultResponse,
    ErrorResponse,
    PaymentResponse,
    TrashboxListResponse,
    TrashedPaymentResponse,
)
from kasmoni.services.queries import PaymentQueries

router = APIRouter(prefix="/trashbox", tags=["trashbox"])


@router.get("", response_model=TrashboxListResponse)
async def list_trashbox(db: DbSession) -> TrashboxListResponse:
    """List trashed payments, most recently deleted first."""
    payments = await PaymentQueries(db).list_trashed()
    return TrashboxListResponse(
        items=[TrashedPaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )


@router.post(
    "/{payment_id}/restore",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def restore_from_trashbox(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payment_id: Annotated[int, Path()],
) -> PaymentResponse:
    """Restore a trashed payment to active."""
    payment = await lifecycle.restore(payment_id, actor)
    return PaymentResponse.model_validate(payment)


@router.delete(
    "/{payment_id}",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def permanently_delete_payment(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payment_id: Annotated[int, Path()],
) -> dict[str, int | str]:
    """Permanently delete a trashed payment. Its audit history is kept."""
    await lifecycle.permanently_delete(payment_id, actor)
    return {"id": payment_id, "message": "Payment permanently deleted"}


@router.post("/bulk-restore", response_model=BulkResultResponse)
async def bulk_restore_from_trashbox(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payload: BulkIdsRequest,
) -> BulkResultResponse:
    """Restore many trashed payments."""
    result = await lifecycle.bulk_restore(payload.payment_ids, actor)
    return BulkResultResponse.from_result(result)


@router.post("/bulk-permanent-delete", response_model=BulkResultResponse)
async def bulk_permanently_delete(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payload: BulkIdsRequest,
) -> BulkResultResponse:
    """Permanently delete many trashed payments."""
    result = await lifecycle.bulk_permanently_delete(payload.payment_ids, actor)
    return BulkResultResponse.from_result(result)
