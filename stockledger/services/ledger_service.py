import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from stockledger.models.stock_transaction import (
    GATED_REASONS,
    ApprovalStatus,
    Direction,
    ReasonType,
    StockTransaction,
)
from stockledger.schemas.stock import StockInCreate, StockMovementMeta, StockOutCreate
from stockledger.services import inventory_service, meta_codec
from stockledger.services.errors import InsufficientStock, LedgerValidationError
from stockledger.services.movements import InventoryKey, Movement, load_movements
from stockledger.services.record_store import RecordStore
from stockledger.services.webhook_service import send_webhook_sync

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_key_locks: dict[InventoryKey, threading.Lock] = {}


@contextmanager
def key_lock(key: InventoryKey):
    """Serialize check-then-write sequences on one stock line."""
    with _registry_lock:
        lock = _key_locks.setdefault(key, threading.Lock())
    with lock:
        yield


def utc_now() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def _validate_out(meta: StockMovementMeta) -> StockMovementMeta:
    if meta.reason_type is None:
        raise LedgerValidationError("Reason type is required for stock OUT")
    is_transfer = meta.reason_type == ReasonType.TRANSFER
    is_scrap = meta.reason_type == ReasonType.SCRAP
    if is_scrap and not meta.scrap_vendor:
        raise LedgerValidationError("Scrap Vendor is required for scrap")
    if is_transfer:
        if not meta.to_location:
            raise LedgerValidationError("To Location is required for transfer")
        if meta.to_location.lower() == meta.location.lower():
            raise LedgerValidationError("To Location must differ from the source location")

    status = ApprovalStatus.PENDING if meta.reason_type in GATED_REASONS else ApprovalStatus.APPROVED
    return meta.model_copy(update={
        "from_location": meta.location,
        "to_location": meta.to_location if is_transfer else None,
        "scrap_vendor": meta.scrap_vendor if is_scrap else None,
        "approval_status": status,
    })


def propose_movement(db: Session, direction: Direction | str, meta: StockMovementMeta, quantity: int) -> Movement:
    """Validate a movement against current stock and append it.

    Raises LedgerValidationError or InsufficientStock; nothing is written then.
    """
    direction = Direction(direction)
    if quantity <= 0:
        raise LedgerValidationError("Quantity must be a positive integer")

    if direction == Direction.IN:
        update = {"approval_status": ApprovalStatus.APPROVED}
        if meta.total_cost is None and meta.unit_cost is not None:
            update["total_cost"] = round(quantity * meta.unit_cost, 2)
        meta = meta.model_copy(update=update)
    else:
        meta = _validate_out(meta)

    meta = meta.model_copy(update={
        "quantity": quantity,
        "created_by": meta.created_by or "unknown",
        "created_date": meta.created_date or utc_now(),
    })

    key = InventoryKey.from_meta(meta)
    with key_lock(key):
        if direction == Direction.OUT:
            available = inventory_service.available_qty(load_movements(db), key)
            if quantity > available:
                logger.info("Rejected stock OUT of %d for %s: only %d available", quantity, key, available)
                raise InsufficientStock(available=available, requested=quantity)
        try:
            record_id = RecordStore(db).create(direction.value, quantity, meta_codec.encode(meta))
            db.commit()
        except Exception:
            db.rollback()
            raise

    record = RecordStore(db).get(record_id)
    movement = Movement.from_record(record)
    logger.info(
        "Stock %s #%d: %d x %s (%s)",
        direction.value.upper(), movement.id, quantity, key, meta.approval_status.value,
    )
    if meta.approval_status == ApprovalStatus.PENDING:
        send_webhook_sync("stock.pending", movement)
    return movement


def propose_stock_in(db: Session, data: StockInCreate) -> Movement:
    meta = StockMovementMeta(
        category=data.category,
        item_name=data.item_name,
        location=data.location,
        serial_number=data.serial_number,
        vendor=data.vendor,
        reference_number=data.reference_number,
        unit_cost=data.unit_cost,
        transaction_date=data.transaction_date or date.today(),
        note=data.note,
        created_by=data.created_by,
    )
    return propose_movement(db, Direction.IN, meta, data.quantity)


def propose_stock_out(db: Session, data: StockOutCreate) -> Movement:
    meta = StockMovementMeta(
        category=data.category,
        item_name=data.item_name,
        location=data.location,
        serial_number=data.serial_number,
        reason_type=data.reason_type,
        reason=data.reason,
        issued_to=data.issued_to,
        to_location=data.to_location,
        scrap_vendor=data.scrap_vendor,
        transaction_date=data.transaction_date or date.today(),
        note=data.note,
        created_by=data.created_by,
    )
    return propose_movement(db, Direction.OUT, meta, data.quantity)


def get_movement(db: Session, movement_id: int) -> Movement | None:
    record: StockTransaction | None = RecordStore(db).get(movement_id)
    return Movement.from_record(record) if record else None
