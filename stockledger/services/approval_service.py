"""Approval gate for scrap and transfer movements.

pending -> approved | rejected, both terminal. Approving a transfer also
appends the receiving IN at the destination; the status update and the
receipt are committed together.
"""

import logging
import time

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.models.activity_log import ActivityLog
from stockledger.models.stock_transaction import ApprovalStatus, Direction, ReasonType
from stockledger.schemas.stock import StockMovementMeta
from stockledger.services import inventory_service, meta_codec
from stockledger.services.errors import InsufficientStock, InvalidTransition
from stockledger.services.ledger_service import get_movement, key_lock, utc_now
from stockledger.services.movements import Movement, load_movements
from stockledger.services.record_store import RecordStore
from stockledger.services.webhook_service import send_webhook_sync

logger = logging.getLogger(__name__)


def _generate_transfer_reference() -> str:
    return f"{settings.TRANSFER_REF_PREFIX}-{int(time.time() * 1000)}"


def log_activity(db: Session, actor: str, action: str, movement_id: int | None = None, detail: str = "") -> None:
    db.add(ActivityLog(actor=actor, action=action, movement_id=movement_id, detail=detail))


def get_activity_logs(db: Session, movement_id: int | None = None, limit: int = 100) -> list[ActivityLog]:
    q = db.query(ActivityLog)
    if movement_id is not None:
        q = q.filter(ActivityLog.movement_id == movement_id)
    return q.order_by(ActivityLog.created_at.desc()).limit(limit).all()


def pending_approvals(movements: list[Movement]) -> list[Movement]:
    return [
        m for m in movements
        if m.is_ledger
        and m.type == Direction.OUT.value
        and m.approval_status == ApprovalStatus.PENDING
        and m.meta.reason_type in (ReasonType.SCRAP, ReasonType.TRANSFER)
    ]


def link_transfer(store: RecordStore, out: Movement, approved_meta: StockMovementMeta) -> int:
    """Append the receiving IN for an approved transfer OUT. Returns its id."""
    if store.find_by_source(out.id) is not None:
        raise InvalidTransition(f"Transfer {out.id} already has a linked receipt")
    origin = approved_meta.from_location or approved_meta.location
    receipt = approved_meta.model_copy(update={
        "location": approved_meta.to_location,
        "note": f"Transfer received from {origin}",
        "reason": f"Transfer received from {origin}",
        "reference_number": _generate_transfer_reference(),
        "approval_status": ApprovalStatus.APPROVED,
        "quantity": out.quantity,
    })
    return store.create(Direction.IN.value, out.quantity, meta_codec.encode(receipt), source_id=out.id)


def _resolve(db: Session, movement_id: int, actor: str, target: ApprovalStatus) -> dict | None:
    movement = get_movement(db, movement_id)
    if movement is None or not movement.is_ledger:
        return None

    verb = "approve" if target == ApprovalStatus.APPROVED else "reject"
    linked_id = None
    with key_lock(movement.key):
        snapshot = load_movements(db)
        current = next(m for m in snapshot if m.id == movement_id)
        if current.type != Direction.OUT.value:
            raise InvalidTransition(f"Cannot {verb} stock movement of type '{current.type}'")
        if current.approval_status != ApprovalStatus.PENDING:
            raise InvalidTransition(
                f"Cannot {verb} stock movement in '{current.approval_status.value}' status"
            )
        if target == ApprovalStatus.APPROVED:
            available = inventory_service.available_qty(snapshot, current.key)
            if current.quantity > available:
                raise InsufficientStock(available=available, requested=current.quantity)

        resolved = current.meta.model_copy(update={
            "approval_status": target,
            "approved_by": actor,
            "approved_date": utc_now(),
        })
        store = RecordStore(db)
        try:
            store.update(current.id, meta_codec.encode(resolved), expected_version=current.version)
            if target == ApprovalStatus.APPROVED and resolved.reason_type == ReasonType.TRANSFER:
                linked_id = link_transfer(store, current, resolved)
            log_activity(
                db, actor, f"stock_{verb}", current.id,
                f"{current.type.upper()} {current.quantity} x {current.key}",
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    result = get_movement(db, movement_id)
    linked = get_movement(db, linked_id) if linked_id else None
    logger.info("Stock movement #%d %sd by %s", movement_id, verb, actor)
    if linked:
        logger.info("Transfer #%d linked to receipt #%d at %s", movement_id, linked.id, linked.meta.location)
    send_webhook_sync(f"stock.{target.value}", result)
    return {"movement": result, "linked": linked}


def approve(db: Session, movement_id: int, actor: str) -> dict | None:
    """Approve a pending movement; a transfer also gets its destination receipt.

    Returns None when the movement does not exist or is not a ledger record.
    """
    return _resolve(db, movement_id, actor, ApprovalStatus.APPROVED)


def reject(db: Session, movement_id: int, actor: str) -> dict | None:
    return _resolve(db, movement_id, actor, ApprovalStatus.REJECTED)
