import calendar
import csv
import io
from datetime import date

from openpyxl import Workbook

from stockledger.config import settings
from stockledger.models.stock_transaction import Direction
from stockledger.schemas.report import LocationBalance, MovementTotals, OutSummaryRow
from stockledger.services import inventory_service
from stockledger.services.movements import InventoryKey, LedgerFilter, Movement

EXPORT_COLUMNS = [
    "type", "date", "category", "item_name", "serial_number", "quantity", "reason_type",
    "from_location", "to_location", "scrap_vendor", "reason", "approval_status", "created_by",
]


def month_bounds(month: str) -> tuple[date, date]:
    """'2024-03' -> (2024-03-01, 2024-03-31)."""
    try:
        year_str, month_str = month.split("-")
        year, mon = int(year_str), int(month_str)
        last_day = calendar.monthrange(year, mon)[1]
    except ValueError:
        raise ValueError(f"Invalid month '{month}', expected YYYY-MM")
    return date(year, mon, 1), date(year, mon, last_day)


def filter_movements(movements: list[Movement], ledger_filter: LedgerFilter | None = None) -> list[Movement]:
    """Date range plus location/from/to match; undecodable rows pass only an unfiltered location."""
    if not ledger_filter:
        return list(movements)
    return [m for m in movements if ledger_filter.in_range(m) and ledger_filter.touches_location(m)]


def monthly_balances(
    movements: list[Movement],
    period_start: date,
    period_end: date,
    location: str | None = None,
) -> list[LocationBalance]:
    """Opening = approved movements before the period; closing = opening + those within it."""
    at = LedgerFilter(location=location)
    rows: dict[str, dict] = {}
    for mv in movements:
        if not mv.is_approved or not at.at_location(mv):
            continue
        d = mv.effective_date
        if d > period_end:
            continue
        loc = mv.meta.location
        row = rows.setdefault(loc.lower(), {"location": loc, "opening_qty": 0, "closing_qty": 0})
        if d < period_start:
            row["opening_qty"] += mv.signed_quantity
        row["closing_qty"] += mv.signed_quantity
    return [LocationBalance(**r) for r in sorted(rows.values(), key=lambda r: r["location"].lower())]


def out_summary(movements: list[Movement], ledger_filter: LedgerFilter | None = None) -> list[OutSummaryRow]:
    rows: dict[str, dict] = {}
    for mv in filter_movements(movements, ledger_filter):
        if not mv.is_approved or mv.type != Direction.OUT.value:
            continue
        m = mv.meta
        from_location = m.from_location or m.location
        to_location = m.to_location or "-"
        reason_type = m.reason_type.value if m.reason_type else "out"
        key = "|".join([m.category, m.item_name, m.serial_number or "", from_location, to_location, reason_type])
        row = rows.setdefault(key, {
            "key": key,
            "category": m.category,
            "item_name": m.item_name,
            "serial_number": m.serial_number,
            "from_location": from_location,
            "to_location": to_location,
            "reason_type": reason_type,
            "qty": 0,
        })
        row["qty"] += mv.quantity
    return [OutSummaryRow(**r) for r in sorted(rows.values(), key=lambda r: r["item_name"].lower())]


def movement_totals(movements: list[Movement], ledger_filter: LedgerFilter | None = None) -> MovementTotals:
    approved = [m for m in filter_movements(movements, ledger_filter) if m.is_approved]
    summary = inventory_service.summarize(
        movements, LedgerFilter(location=ledger_filter.location) if ledger_filter else None
    )
    return MovementTotals(
        total_in_qty=sum(m.quantity for m in approved if m.type == Direction.IN.value),
        total_out_qty=sum(m.quantity for m in approved if m.type == Direction.OUT.value),
        total_units=sum(r.qty for r in summary),
        total_value=round(sum(r.total_value for r in summary), 2),
    )


def item_history(movements: list[Movement], key: InventoryKey, limit: int = 30) -> list[Movement]:
    """Approved movements of one stock line, newest first."""
    matching = [m for m in movements if m.is_approved and m.key == key]
    matching.sort(key=lambda m: (m.effective_date, m.id), reverse=True)
    return matching[:limit]


def known_locations(movements: list[Movement]) -> list[str]:
    seen: dict[str, str] = {}
    for name in [settings.DEFAULT_LOCATION] + [
        loc
        for m in movements if m.meta
        for loc in (m.meta.location, m.meta.from_location, m.meta.to_location)
    ]:
        if name:
            seen.setdefault(name.lower(), name)
    return sorted(seen.values(), key=str.lower)


def export_rows(movements: list[Movement], ledger_filter: LedgerFilter | None = None) -> list[dict]:
    rows = []
    for mv in filter_movements(movements, ledger_filter):
        m = mv.meta
        rows.append({
            "type": mv.type.upper(),
            "date": mv.effective_date.isoformat(),
            "category": m.category if m else "",
            "item_name": m.item_name if m else "",
            "serial_number": (m.serial_number or "") if m else "",
            "quantity": mv.quantity,
            "reason_type": m.reason_type.value if m and m.reason_type else "",
            "from_location": (m.from_location or m.location) if m else "",
            "to_location": (m.to_location or "") if m else "",
            "scrap_vendor": (m.scrap_vendor or "") if m else "",
            "reason": (m.reason or m.note or "") if m else "",
            "approval_status": mv.approval_status.value if mv.approval_status else "",
            "created_by": (m.created_by or "") if m else "",
        })
    return rows


def export_csv(rows: list[dict]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=EXPORT_COLUMNS, quoting=csv.QUOTE_ALL)
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def export_xlsx(rows: list[dict]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "StockTransactions"
    ws.append(EXPORT_COLUMNS)
    for row in rows:
        ws.append([row[col] for col in EXPORT_COLUMNS])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
