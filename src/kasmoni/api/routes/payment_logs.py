"""Payment audit log endpoints (read-only)."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Path, Query

from kasmoni.api.dependencies import DbSession
from kasmoni.api.schemas import (
    PaymentLogListResponse,
    PaymentLogResponse,
    PaymentLogStatsResponse,
)
from kasmoni.services.audit_logger import PaymentAuditLogger

router = APIRouter(prefix="/payment-logs", tags=["payment-logs"])


@router.get("", response_model=PaymentLogListResponse)
async def list_payment_logs(
    db: DbSession,
    action: str | None = None,
    member_id: int | None = None,
    group_id: int | None = None,
    performed_by: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> PaymentLogListResponse:
    """List audit entries with optional filters, newest first."""
    entries = await PaymentAuditLogger(db).list_entries(
        action=action,
        member_id=member_id,
        group_id=group_id,
        performed_by=performed_by,
        start=start_date,
        end=end_date,
        limit=limit,
        offset=offset,
    )
    return PaymentLogListResponse(
        items=[PaymentLogResponse.model_validate(e) for e in entries],
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=PaymentLogStatsResponse)
async def payment_log_stats(
    db: DbSession,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> PaymentLogStatsResponse:
    """Entry counts per day and action over the trailing window."""
    stats = await PaymentAuditLogger(db).daily_action_counts(days=days)
    return PaymentLogStatsResponse(days=days, stats=stats)


@router.get("/payment/{payment_id}", response_model=list[PaymentLogResponse])
async def payment_history(
    db: DbSession,
    payment_id: Annotated[int, Path()],
) -> list[PaymentLogResponse]:
    """Full history of one payment, oldest first. Available after a purge."""
    entries = await PaymentAuditLogger(db).entries_for_payment(payment_id)
    return [PaymentLogResponse.model_validate(e) for e in entries]
