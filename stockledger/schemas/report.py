from pydantic import BaseModel


class LocationBalance(BaseModel):
    location: str
    opening_qty: int
    closing_qty: int


class OutSummaryRow(BaseModel):
    key: str
    category: str
    item_name: str
    serial_number: str | None = None
    from_location: str
    to_location: str
    reason_type: str
    qty: int


class MovementTotals(BaseModel):
    total_in_qty: int
    total_out_qty: int
    total_units: int
    total_value: float


class MonthlyReport(BaseModel):
    month: str
    period_start: str
    period_end: str
    balances: list[LocationBalance]
