"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from kasmoni.services.lifecycle import (
    BulkPaymentItem,
    BulkResult,
    PaymentChanges,
    PaymentDraft,
)
from kasmoni.services.status_aggregator import GroupStatusSummary


class ErrorResponse(BaseModel):
    """Error body returned for every PaymentError."""

    detail: str
    code: str


# ============================================================================
# Payment schemas
# ============================================================================


class PaymentCreate(BaseModel):
    """Schema for creating a payment record."""

    group_id: int
    member_id: int
    amount: Decimal
    payment_date: date
    payment_month: str
    slot: str
    payment_type: str
    sender_bank: str | None = None
    receiver_bank: str | None = None
    status: str = "not_paid"
    proof_of_payment: str | None = None

    def to_draft(self) -> PaymentDraft:
        return PaymentDraft(**self.model_dump())


class PaymentUpdate(BaseModel):
    """Schema for a partial payment update; omitted fields stay unchanged."""

    amount: Decimal | None = None
    payment_date: date | None = None
    payment_month: str | None = None
    slot: str | None = None
    payment_type: str | None = None
    sender_bank: str | None = None
    receiver_bank: str | None = None
    status: str | None = None
    proof_of_payment: str | None = None

    def to_changes(self) -> PaymentChanges:
        return PaymentChanges(**self.model_dump())


class StatusUpdate(BaseModel):
    status: str


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    group_id: int
    member_id: int
    payment_month: str
    slot: str
    amount: Decimal
    payment_date: date
    payment_type: str
    sender_bank: str | None = None
    receiver_bank: str | None = None
    proof_of_payment: str | None = None
    status: str
    state: str
    created_at: datetime
    updated_at: datetime


class TrashedPaymentResponse(PaymentResponse):
    """Payment in the trashbox with its deletion metadata."""

    deleted_at: datetime | None = None
    deleted_by_user_id: int | None = None
    deleted_by_username: str | None = None
    deletion_reason: str | None = None


class ArchivedPaymentResponse(PaymentResponse):
    """Archived payment with its archive metadata."""

    archived_at: datetime | None = None
    archived_by_user_id: int | None = None
    archived_by_username: str | None = None
    archive_reason: str | None = None


class PaymentListResponse(BaseModel):
    items: list[PaymentResponse]
    total: int


class TrashboxListResponse(BaseModel):
    items: list[TrashedPaymentResponse]
    total: int


class ArchiveListResponse(BaseModel):
    items: list[ArchivedPaymentResponse]
    total: int


class AvailableSlotsResponse(BaseModel):
    group_id: int
    member_id: int
    month: str
    slots: list[str]


# ============================================================================
# Lifecycle request schemas
# ============================================================================


class ArchiveRequest(BaseModel):
    reason: str | None = ""


class MoveToTrashboxRequest(BaseModel):
    """Moving an archived payment needs explicit confirmation and a reason."""

    reason: str | None = None
    confirm: bool = False


class BulkIdsRequest(BaseModel):
    payment_ids: list[int] = Field(default_factory=list)


class BulkArchiveRequest(BulkIdsRequest):
    reason: str | None = ""


class BulkMoveToTrashboxRequest(BulkIdsRequest):
    reason: str | None = None
    confirm: bool = False


class BulkPaymentItemSchema(BaseModel):
    member_id: int
    amount: Decimal
    payment_date: date
    slot: str
    payment_type: str
    sender_bank: str | None = None
    receiver_bank: str | None = None
    status: str = "not_paid"
    proof_of_payment: str | None = None

    def to_item(self) -> BulkPaymentItem:
        return BulkPaymentItem(**self.model_dump())


class BulkCreateRequest(BaseModel):
    """Many payments for one group and payment month."""

    group_id: int
    payment_month: str
    payments: list[BulkPaymentItemSchema] = Field(default_factory=list)

    def items(self) -> list[BulkPaymentItem]:
        return [p.to_item() for p in self.payments]


class BulkItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ref: int
    ok: bool
    payment_id: int | None = None
    error_code: str | None = None
    message: str | None = None


class BulkResultResponse(BaseModel):
    """Per-item outcome of a non-atomic bulk operation."""

    succeeded: int
    failed: int
    items: list[BulkItemResponse]

    @classmethod
    def from_result(cls, result: BulkResult) -> "BulkResultResponse":
        return cls(
            succeeded=result.succeeded_count,
            failed=result.failed_count,
            items=[BulkItemResponse.model_validate(item) for item in result.items],
        )


class BulkValidationItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    index: int
    member_id: int
    valid: bool
    errors: list[str]


class BulkValidationResponse(BaseModel):
    valid: bool
    items: list[BulkValidationItemResponse]


# ============================================================================
# Group status schemas
# ============================================================================


class GroupStatusResponse(BaseModel):
    """Derived status of one group for one month."""

    model_config = ConfigDict(populate_by_name=True)

    group_id: int
    month: str
    status: str
    pending_count: int = Field(serialization_alias="pendingCount")
    member_count: int = Field(serialization_alias="memberCount")

    @classmethod
    def from_summary(cls, summary: GroupStatusSummary) -> "GroupStatusResponse":
        return cls(
            group_id=summary.group_id,
            month=summary.month,
            status=summary.status.value,
            pending_count=summary.pending_count,
            member_count=summary.member_count,
        )


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    monthly_amount: Decimal
    max_members: int
    duration: int
    start_month: str
    end_month: str | None = None


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    phone_number: str | None = None
    bank_name: str | None = None
    account_number: str | None = None


class GroupOverviewResponse(BaseModel):
    group: GroupResponse
    payment_status: GroupStatusResponse


class SlotStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    member_id: int
    receive_month: str
    classification: str
    payment_id: int | None = None
    payment_status: str | None = None


class SlotStatusListResponse(BaseModel):
    group_id: int
    month: str
    slots: list[SlotStatusResponse]


class CurrentRecipientResponse(BaseModel):
    group: GroupResponse
    payment_status: GroupStatusResponse
    receive_month: str | None = None
    recipient: MemberResponse | None = None


# ============================================================================
# Payment log schemas
# ============================================================================


class PaymentLogResponse(BaseModel):
    """One audit log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    payment_id: int | None = None
    action: str
    old_status: str | None = None
    new_status: str | None = None
    old_amount: Decimal | None = None
    new_amount: Decimal | None = None
    old_payment_date: date | None = None
    new_payment_date: date | None = None
    old_payment_month: str | None = None
    new_payment_month: str | None = None
    old_slot: str | None = None
    new_slot: str | None = None
    old_payment_type: str | None = None
    new_payment_type: str | None = None
    old_sender_bank: str | None = None
    new_sender_bank: str | None = None
    old_receiver_bank: str | None = None
    new_receiver_bank: str | None = None
    old_proof_of_payment: str | None = None
    new_proof_of_payment: str | None = None
    member_id: int | None = None
    group_id: int | None = None
    bulk_payment_count: int | None = None
    details: str | None = None
    performed_by_user_id: int | None = None
    performed_by_username: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    timestamp: datetime


class PaymentLogListResponse(BaseModel):
    items: list[PaymentLogResponse]
    limit: int
    offset: int


class PaymentLogStatsResponse(BaseModel):
    """Entry counts per day and action."""

    days: int
    stats: dict[str, dict[str, int]]
