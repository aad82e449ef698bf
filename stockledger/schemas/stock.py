from datetime import date, datetime, timezone

from pydantic import BaseModel, Field, field_validator

from stockledger.models.stock_transaction import ApprovalStatus, ReasonType

_OPTIONAL_TEXT = (
    "serial_number",
    "vendor",
    "reference_number",
    "note",
    "reason",
    "issued_to",
    "created_by",
    "from_location",
    "to_location",
    "approved_by",
    "scrap_vendor",
)


class StockMovementMeta(BaseModel):
    """Decoded view of a ledger record's encoded attributes."""

    category: str
    item_name: str
    location: str
    serial_number: str | None = None
    vendor: str | None = None
    reference_number: str | None = None
    note: str | None = None
    reason: str | None = None
    issued_to: str | None = None
    unit_cost: float | None = Field(default=None, ge=0)
    total_cost: float | None = Field(default=None, ge=0)
    quantity: int | None = None
    transaction_date: date | None = None
    created_by: str | None = None
    created_date: datetime | None = None
    reason_type: ReasonType | None = None
    from_location: str | None = None
    to_location: str | None = None
    approval_status: ApprovalStatus | None = None
    approved_by: str | None = None
    approved_date: datetime | None = None
    scrap_vendor: str | None = None

    @field_validator("category", "item_name", "location", mode="before")
    @classmethod
    def strip_identity(cls, v):
        if isinstance(v, str):
            v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator(*_OPTIONAL_TEXT, mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("created_date", "approved_date")
    @classmethod
    def utc_millis(cls, v):
        # Stored with millisecond precision in UTC
        if v is None:
            return v
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        v = v.astimezone(timezone.utc)
        return v.replace(microsecond=v.microsecond // 1000 * 1000)

    @property
    def effective_status(self) -> ApprovalStatus:
        # Records written before the approval gate carry no status
        return self.approval_status or ApprovalStatus.APPROVED


# --- Proposal requests ---

class StockInCreate(BaseModel):
    category: str
    item_name: str
    location: str
    serial_number: str = ""
    vendor: str = ""
    reference_number: str = ""
    quantity: int = Field(gt=0)
    unit_cost: float | None = Field(default=None, ge=0)
    transaction_date: date | None = None
    note: str = ""
    created_by: str = "unknown"


class StockOutCreate(BaseModel):
    category: str
    item_name: str
    location: str
    serial_number: str = ""
    quantity: int = Field(gt=0)
    reason_type: ReasonType
    reason: str = ""
    issued_to: str = ""
    to_location: str = ""
    scrap_vendor: str = ""
    transaction_date: date | None = None
    note: str = ""
    created_by: str = "unknown"


class ApprovalAction(BaseModel):
    actor: str = Field(min_length=1)


# --- Read side ---

class MovementOut(BaseModel):
    id: int
    type: str
    quantity: int
    created_at: datetime | None = None
    version: int
    source_id: int | None = None
    is_ledger: bool
    approval_status: ApprovalStatus | None = None
    meta: StockMovementMeta | None = None

    model_config = {"from_attributes": True}


class InventorySummary(BaseModel):
    key: str
    category: str
    item_name: str
    serial_number: str | None = None
    location: str
    qty: int
    unit_cost: float
    total_value: float
