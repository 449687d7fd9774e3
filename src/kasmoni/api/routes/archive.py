"""Archive API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path

from kasmoni.api.dependencies import CurrentActor, DbSession, Lifecycle
from kasmoni.api.schemas import (
    ArchivedPaymentResponse,
    ArchiveListResponse,
    BulkIdsRequest,
    BulkMoveToTrashboxRequest,
    BulkResultResponse,
    ErrorResponse,
    MoveToTrashboxRequest,
    PaymentResponse,
    TrashedPaymentResponse,
)
from kasmoni.services.queries import PaymentQueries

router = APIRouter(prefix="/archive", tags=["archive"])


@router.get("", response_model=ArchiveListResponse)
async def list_archive(db: DbSession) -> ArchiveListResponse:
    """List archived payments, most recently archived first."""
    payments = await PaymentQueries(db).list_archived()
    return ArchiveListResponse(
        items=[ArchivedPaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )


@router.post(
    "/{payment_id}/restore",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def restore_from_archive(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payment_id: Annotated[int, Path()],
) -> PaymentResponse:
    """Restore an archived payment to active."""
    payment = await lifecycle.restore(payment_id, actor)
    return PaymentResponse.model_validate(payment)


@router.post(
    "/{payment_id}/move-to-trashbox",
    response_model=TrashedPaymentResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def move_to_trashbox(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payment_id: Annotated[int, Path()],
    payload: MoveToTrashboxRequest,
) -> TrashedPaymentResponse:
    """Move an archived payment to the trashbox (confirmation and reason required)."""
    payment = await lifecycle.move_archived_to_trash(
        payment_id, actor, payload.reason, payload.confirm
    )
    return TrashedPaymentResponse.model_validate(payment)


@router.post("/bulk-restore", response_model=BulkResultResponse)
async def bulk_restore_from_archive(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payload: BulkIdsRequest,
) -> BulkResultResponse:
    result = await lifecycle.bulk_restore(payload.payment_ids, actor)
    return BulkResultResponse.from_result(result)


@router.post(
    "/bulk-move-to-trashbox",
    response_model=BulkResultResponse,
    responses={400: {"model": ErrorResponse}},
)
async def bulk_move_to_trashbox(
    lifecycle: Lifecycle,
    actor: CurrentActor,
    payload: BulkMoveToTrashboxRequest,
) -> BulkResultResponse:
    result = await lifecycle.bulk_move_archived_to_trash(
        payload.payment_ids, actor, payload.reason, payload.confirm
    )
    return BulkResultResponse.from_result(result)
