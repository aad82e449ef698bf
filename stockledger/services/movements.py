from dataclasses import dataclass
from datetime import date, datetime
from typing import NamedTuple

from sqlalchemy.orm import Session

from stockledger.models.stock_transaction import ApprovalStatus, Direction, StockTransaction
from stockledger.schemas.stock import StockMovementMeta
from stockledger.services import meta_codec
from stockledger.services.record_store import RecordStore


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


class InventoryKey(NamedTuple):
    """Case-insensitive identity of one stock line."""

    category: str
    item_name: str
    location: str
    serial_number: str

    @classmethod
    def of(cls, category: str, item_name: str, location: str, serial_number: str | None = None) -> "InventoryKey":
        return cls(_norm(category), _norm(item_name), _norm(location), _norm(serial_number))

    @classmethod
    def from_meta(cls, meta: StockMovementMeta) -> "InventoryKey":
        return cls.of(meta.category, meta.item_name, meta.location, meta.serial_number)

    def __str__(self) -> str:
        return "||".join(self)


@dataclass(frozen=True)
class Movement:
    """A ledger record together with its decoded attributes (None when undecodable)."""

    id: int
    type: str
    quantity: int
    created_at: datetime | None
    version: int
    source_id: int | None
    meta: StockMovementMeta | None

    @classmethod
    def from_record(cls, record: StockTransaction) -> "Movement":
        return cls(
            id=record.id,
            type=record.type,
            quantity=int(record.quantity or 0),
            created_at=record.created_at,
            version=record.version,
            source_id=record.source_id,
            meta=meta_codec.decode(record.reason),
        )

    @property
    def is_ledger(self) -> bool:
        return self.meta is not None and self.type in (Direction.IN.value, Direction.OUT.value)

    @property
    def approval_status(self) -> ApprovalStatus | None:
        return self.meta.effective_status if self.meta else None

    @property
    def is_approved(self) -> bool:
        return self.is_ledger and self.approval_status == ApprovalStatus.APPROVED

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type == Direction.IN.value else -self.quantity

    @property
    def effective_date(self) -> date:
        if self.meta and self.meta.transaction_date:
            return self.meta.transaction_date
        if self.created_at:
            return self.created_at.date()
        return date.today()

    @property
    def key(self) -> InventoryKey | None:
        return InventoryKey.from_meta(self.meta) if self.meta else None


@dataclass(frozen=True)
class LedgerFilter:
    from_date: date | None = None
    to_date: date | None = None
    location: str | None = None

    def in_range(self, movement: Movement) -> bool:
        d = movement.effective_date
        if self.from_date and d < self.from_date:
            return False
        if self.to_date and d > self.to_date:
            return False
        return True

    def at_location(self, movement: Movement) -> bool:
        """Match on the movement's own location (summaries, balances)."""
        if not self.location:
            return True
        return bool(movement.meta) and _norm(movement.meta.location) == _norm(self.location)

    def touches_location(self, movement: Movement) -> bool:
        """Match on location, from-location or to-location (movement lists)."""
        if not self.location:
            return True
        m = movement.meta
        if not m:
            return False
        target = _norm(self.location)
        return target in (_norm(m.location), _norm(m.from_location), _norm(m.to_location))


def load_movements(db: Session) -> list[Movement]:
    """Snapshot the whole log, oldest first."""
    return [Movement.from_record(r) for r in RecordStore(db).list()]
