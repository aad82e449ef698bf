from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from stockledger.database import get_db
from stockledger.schemas.report import MonthlyReport, MovementTotals, OutSummaryRow
from stockledger.services import report_service
from stockledger.services.movements import LedgerFilter, load_movements

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/monthly-balances", response_model=MonthlyReport)
def monthly_balances(
    month: str = Query(..., description="YYYY-MM"),
    location: str | None = None,
    db: Session = Depends(get_db),
):
    try:
        start, end = report_service.month_bounds(month)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {
        "month": month,
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
        "balances": report_service.monthly_balances(load_movements(db), start, end, location=location),
    }


@router.get("/out-summary", response_model=list[OutSummaryRow])
def out_summary(
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    location: str | None = None,
    db: Session = Depends(get_db),
):
    return report_service.out_summary(
        load_movements(db), LedgerFilter(from_date=from_date, to_date=to_date, location=location)
    )


@router.get("/totals", response_model=MovementTotals)
def totals(
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    location: str | None = None,
    db: Session = Depends(get_db),
):
    return report_service.movement_totals(
        load_movements(db), LedgerFilter(from_date=from_date, to_date=to_date, location=location)
    )


def _export_rows(db: Session, from_date: date | None, to_date: date | None, location: str | None) -> list[dict]:
    rows = report_service.export_rows(
        load_movements(db), LedgerFilter(from_date=from_date, to_date=to_date, location=location)
    )
    if not rows:
        raise HTTPException(404, "No rows to export")
    return rows


@router.get("/export.csv")
def export_csv(
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    location: str | None = None,
    db: Session = Depends(get_db),
):
    rows = _export_rows(db, from_date, to_date, location)
    filename = f"stock-transactions-{date.today().isoformat()}.csv"
    return StreamingResponse(
        iter([report_service.export_csv(rows)]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/export.xlsx")
def export_xlsx(
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    location: str | None = None,
    db: Session = Depends(get_db),
):
    rows = _export_rows(db, from_date, to_date, location)
    filename = f"stock-transactions-{date.today().isoformat()}.xlsx"
    return StreamingResponse(
        iter([report_service.export_xlsx(rows)]),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
