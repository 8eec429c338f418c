from enum import Enum
from typing import Annotated, Literal, Union
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from uuid import UUID
from decimal import Decimal


class ChangeOrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING_INTERNAL = "pending_internal"
    PENDING_CLIENT = "pending_client"
    APPROVED = "approved"
    REJECTED = "rejected"
    VOIDED = "voided"


TERMINAL_STATUSES = frozenset(
    {ChangeOrderStatus.APPROVED, ChangeOrderStatus.REJECTED, ChangeOrderStatus.VOIDED}
)

STATUS_LABELS = {
    ChangeOrderStatus.DRAFT: "Draft",
    ChangeOrderStatus.PENDING_INTERNAL: "Pending Internal Sign",
    ChangeOrderStatus.PENDING_CLIENT: "Pending Client",
    ChangeOrderStatus.APPROVED: "Approved",
    ChangeOrderStatus.REJECTED: "Rejected",
    ChangeOrderStatus.VOIDED: "Voided",
}


class RequestedBy(str, Enum):
    CLIENT = "Client"
    INTERNAL = "Internal"
    GC = "GC"
    ARCHITECT = "Architect"
    ENGINEER = "Engineer"
    AGENCY = "Agency"


# Older rows stored the agency option under its building-department name.
_REQUESTED_BY_ALIASES = {"DOB": RequestedBy.AGENCY.value}


def _coerce_requested_by(value):
    if isinstance(value, str):
        if not value.strip():
            return None
        return _REQUESTED_BY_ALIASES.get(value, value)
    return value


class LineItem(BaseModel):
    name: str = Field(min_length=1)
    amount: Decimal = Decimal("0")
    description: str | None = None


class DetailedLineItems(BaseModel):
    kind: Literal["detailed"] = "detailed"
    items: list[LineItem] = []


class LegacyNames(BaseModel):
    """Historical rows: service names only, total carried on the record."""
    kind: Literal["legacy_names"] = "legacy_names"
    names: list[str] = []
    total: Decimal = Decimal("0")


LineItems = Annotated[Union[DetailedLineItems, LegacyNames], Field(discriminator="kind")]


class ChangeOrder(BaseModel):
    id: UUID
    company_id: UUID | None = None
    project_id: UUID
    co_number: str
    title: str
    description: str | None = None
    reason: str | None = None
    notes: str | None = None
    amount: Decimal = Decimal("0")
    line_items: list[LineItem] = []
    linked_service_names: list[str] = []
    deposit_percentage: Decimal = Decimal("0")
    requested_by: RequestedBy | None = None
    status: ChangeOrderStatus = ChangeOrderStatus.DRAFT
    created_by: UUID | None = None

    internal_signed_at: datetime | None = None
    internal_signed_by: UUID | None = None
    internal_signature_data: str | None = None
    sent_at: datetime | None = None
    sent_to_email: str | None = None
    client_signed_at: datetime | None = None
    client_signer_name: str | None = None
    client_signature_data: str | None = None
    approved_at: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    normalize_requested_by = field_validator("requested_by", mode="before")(
        _coerce_requested_by
    )

    @field_validator("line_items", "linked_service_names", mode="before")
    @classmethod
    def _null_to_empty(cls, value):
        return [] if value is None else value

    @field_validator("deposit_percentage", mode="before")
    @classmethod
    def _null_deposit(cls, value):
        return Decimal("0") if value is None else value


class ChangeOrderCreate(BaseModel):
    project_id: UUID
    title: str = Field(min_length=1)
    description: str | None = None
    reason: str | None = None
    notes: str | None = None
    requested_by: RequestedBy | None = None
    line_items: list[LineItem] = []
    linked_service_names: list[str] = []
    deposit_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)

    normalize_requested_by = field_validator("requested_by", mode="before")(
        _coerce_requested_by
    )


class ChangeOrderUpdate(BaseModel):
    title: str | None = Field(None, min_length=1)
    description: str | None = None
    reason: str | None = None
    notes: str | None = None
    requested_by: RequestedBy | None = None
    line_items: list[LineItem] | None = None
    linked_service_names: list[str] | None = None
    deposit_percentage: Decimal | None = Field(None, ge=0, le=100)
    as_draft: bool | None = None

    normalize_requested_by = field_validator("requested_by", mode="before")(
        _coerce_requested_by
    )


class CreateChangeOrderRequest(ChangeOrderCreate):
    save_as_draft: bool = True


class NotesUpdate(BaseModel):
    notes: str | None = None


class SignRequest(BaseModel):
    signature_data: str  # data:image/png;base64,...
    save_signature: bool = True
    signature_source: Literal["drawn", "saved"] = "drawn"


class SavedSignatureResponse(BaseModel):
    signature_data: str | None = None


class ClientSignRequest(BaseModel):
    signer_name: str = Field(min_length=1)
    signature_data: str


class ApproveRequest(BaseModel):
    client_signer_name: str | None = None
    client_signature_data: str | None = None


class TimelineEntry(BaseModel):
    event: str  # created | internally_signed | sent | client_signed | approved
    actor: str | None = None
    at: datetime


class ChangeOrderResponse(ChangeOrder):
    status_label: str = ""
    deposit_amount: Decimal = Decimal("0")
    allowed_actions: list[str] = []
