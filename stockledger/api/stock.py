from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.database import get_db
from stockledger.schemas.stock import (
    ApprovalAction,
    InventorySummary,
    MovementOut,
    StockInCreate,
    StockOutCreate,
)
from stockledger.services import approval_service, inventory_service, ledger_service, report_service
from stockledger.services.errors import InsufficientStock, InvalidTransition, StaleRecordError
from stockledger.services.movements import InventoryKey, LedgerFilter, Movement, load_movements

router = APIRouter(prefix="/stock", tags=["Stock"])


def _out(movement: Movement) -> MovementOut:
    return MovementOut.model_validate(movement, from_attributes=True)


def _insufficient(e: InsufficientStock) -> HTTPException:
    return HTTPException(400, {"message": str(e), "available": e.available, "requested": e.requested})


@router.post("/in", response_model=MovementOut, status_code=201)
def stock_in(data: StockInCreate, db: Session = Depends(get_db)):
    try:
        return _out(ledger_service.propose_stock_in(db, data))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/out", response_model=MovementOut, status_code=201)
def stock_out(data: StockOutCreate, db: Session = Depends(get_db)):
    try:
        return _out(ledger_service.propose_stock_out(db, data))
    except InsufficientStock as e:
        raise _insufficient(e)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/movements", response_model=list[MovementOut])
def list_movements(
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    location: str | None = None,
    limit: int = 500,
    db: Session = Depends(get_db),
):
    movements = report_service.filter_movements(
        load_movements(db), LedgerFilter(from_date=from_date, to_date=to_date, location=location)
    )
    movements.reverse()
    return [_out(m) for m in movements[:limit]]


@router.get("/movements/{movement_id}", response_model=MovementOut)
def get_movement(movement_id: int, db: Session = Depends(get_db)):
    movement = ledger_service.get_movement(db, movement_id)
    if not movement:
        raise HTTPException(404, "Stock movement not found")
    return _out(movement)


@router.get("/pending", response_model=list[MovementOut])
def pending_approvals(db: Session = Depends(get_db)):
    return [_out(m) for m in approval_service.pending_approvals(load_movements(db))]


def _resolve(action, movement_id: int, data: ApprovalAction, db: Session) -> dict:
    try:
        result = action(db, movement_id, data.actor)
    except InsufficientStock as e:
        raise _insufficient(e)
    except (InvalidTransition, StaleRecordError) as e:
        raise HTTPException(409, str(e))
    if not result:
        raise HTTPException(404, "Stock movement not found")
    return {
        "movement": _out(result["movement"]),
        "linked": _out(result["linked"]) if result["linked"] else None,
    }


@router.post("/movements/{movement_id}/approve")
def approve_movement(movement_id: int, data: ApprovalAction, db: Session = Depends(get_db)):
    return _resolve(approval_service.approve, movement_id, data, db)


@router.post("/movements/{movement_id}/reject")
def reject_movement(movement_id: int, data: ApprovalAction, db: Session = Depends(get_db)):
    return _resolve(approval_service.reject, movement_id, data, db)


@router.get("/summary", response_model=list[InventorySummary])
def inventory_summary(
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    location: str | None = None,
    db: Session = Depends(get_db),
):
    return inventory_service.summarize(
        load_movements(db), LedgerFilter(from_date=from_date, to_date=to_date, location=location)
    )


@router.get("/low-stock", response_model=list[InventorySummary])
def low_stock(threshold: int | None = None, location: str | None = None, db: Session = Depends(get_db)):
    rows = inventory_service.summarize(load_movements(db), LedgerFilter(location=location))
    return inventory_service.low_stock(rows, settings.LOW_STOCK_THRESHOLD if threshold is None else threshold)


@router.get("/locations", response_model=list[str])
def locations(db: Session = Depends(get_db)):
    return report_service.known_locations(load_movements(db))


@router.get("/items/history", response_model=list[MovementOut])
def item_history(
    category: str,
    item_name: str,
    location: str,
    serial_number: str = "",
    limit: int = 30,
    db: Session = Depends(get_db),
):
    key = InventoryKey.of(category, item_name, location, serial_number)
    return [_out(m) for m in report_service.item_history(load_movements(db), key, limit=limit)]


@router.get("/movements/{movement_id}/activity")
def movement_activity(movement_id: int, db: Session = Depends(get_db)):
    return [
        {
            "actor": log.actor,
            "action": log.action,
            "detail": log.detail,
            "created_at": log.created_at.isoformat() if log.created_at else None,
        }
        for log in approval_service.get_activity_logs(db, movement_id=movement_id)
    ]
