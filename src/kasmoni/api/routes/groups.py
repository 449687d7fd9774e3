"""Group payment status endpoints.

Every view goes through the same status aggregator, so the dashboard, the
group list and the current-recipient view agree for a given month.
"""

from typing import Annotated

from fastapi import APIRouter, Path

from kasmoni.api.dependencies import Aggregator
from kasmoni.api.schemas import (
    CurrentRecipientResponse,
    ErrorResponse,
    GroupOverviewResponse,
    GroupResponse,
    GroupStatusResponse,
    MemberResponse,
    SlotStatusListResponse,
    SlotStatusResponse,
)
from kasmoni.services.periods import resolve_month

router = APIRouter(prefix="/groups", tags=["groups"])


@router.get("/status", response_model=list[GroupOverviewResponse])
async def list_group_statuses(
    aggregator: Aggregator,
    month: str | None = None,
) -> list[GroupOverviewResponse]:
    """Payment status of every group for the month (default: current month)."""
    overviews = await aggregator.all_group_statuses(month)
    return [
        GroupOverviewResponse(
            group=GroupResponse.model_validate(o.group),
            payment_status=GroupStatusResponse.from_summary(o.summary),
        )
        for o in overviews
    ]


@router.get("/current-recipients", response_model=list[CurrentRecipientResponse])
async def list_current_recipients(
    aggregator: Aggregator,
    month: str | None = None,
) -> list[CurrentRecipientResponse]:
    """Running groups with the member receiving the pool this month."""
    views = await aggregator.groups_with_recipients(month)
    return [
        CurrentRecipientResponse(
            group=GroupResponse.model_validate(v.group),
            payment_status=GroupStatusResponse.from_summary(v.summary),
            receive_month=v.recipient_slot.receive_month if v.recipient_slot else None,
            recipient=MemberResponse.model_validate(v.recipient) if v.recipient else None,
        )
        for v in views
    ]


@router.get(
    "/{group_id}/status",
    response_model=GroupStatusResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_group_status(
    aggregator: Aggregator,
    group_id: Annotated[int, Path()],
    month: str | None = None,
) -> GroupStatusResponse:
    """Payment status of one group."""
    summary = await aggregator.group_status(group_id, month)
    return GroupStatusResponse.from_summary(summary)


@router.get(
    "/{group_id}/slots/status",
    response_model=SlotStatusListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_slot_statuses(
    aggregator: Aggregator,
    group_id: Annotated[int, Path()],
    month: str | None = None,
) -> SlotStatusListResponse:
    """Per member-slot classification of one group."""
    month = resolve_month(month)
    slots = await aggregator.slot_statuses(group_id, month)
    return SlotStatusListResponse(
        group_id=group_id,
        month=month,
        slots=[
            SlotStatusResponse(
                member_id=s.member_id,
                receive_month=s.receive_month,
                classification=s.classification.value,
                payment_id=s.payment_id,
                payment_status=s.payment_status,
            )
            for s in slots
        ],
    )
