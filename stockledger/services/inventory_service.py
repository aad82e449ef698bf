from dataclasses import dataclass

from stockledger.models.stock_transaction import Direction
from stockledger.schemas.stock import InventorySummary
from stockledger.services.movements import InventoryKey, LedgerFilter, Movement


@dataclass
class _Line:
    category: str
    item_name: str
    serial_number: str | None
    location: str
    qty: int = 0
    unit_cost: float = 0.0


def _chronological(movements: list[Movement]) -> list[Movement]:
    return sorted(
        movements,
        key=lambda m: (m.effective_date, m.created_at is not None, m.created_at or 0, m.id),
    )


def fold(movements: list[Movement], ledger_filter: LedgerFilter | None = None) -> dict[InventoryKey, _Line]:
    """Signed quantity and latest unit cost per key, over approved movements only."""
    lines: dict[InventoryKey, _Line] = {}
    for mv in _chronological(movements):
        if not mv.is_approved:
            continue
        if ledger_filter and not (ledger_filter.in_range(mv) and ledger_filter.at_location(mv)):
            continue
        m = mv.meta
        line = lines.get(mv.key)
        if line is None:
            line = _Line(
                category=m.category,
                item_name=m.item_name,
                serial_number=m.serial_number,
                location=m.location,
            )
            lines[mv.key] = line
        line.qty += mv.signed_quantity
        if mv.type == Direction.IN.value and m.unit_cost:
            line.unit_cost = m.unit_cost
    return lines


def summarize(movements: list[Movement], ledger_filter: LedgerFilter | None = None) -> list[InventorySummary]:
    rows = [
        InventorySummary(
            key=str(key),
            category=line.category,
            item_name=line.item_name,
            serial_number=line.serial_number,
            location=line.location,
            qty=line.qty,
            unit_cost=line.unit_cost,
            total_value=round(line.qty * line.unit_cost, 2),
        )
        for key, line in fold(movements, ledger_filter).items()
        if line.qty > 0
    ]
    return sorted(rows, key=lambda r: (r.item_name.lower(), r.location.lower(), r.key))


def available_qty(movements: list[Movement], key: InventoryKey) -> int:
    line = fold(movements).get(key)
    return max(line.qty, 0) if line else 0


def low_stock(rows: list[InventorySummary], threshold: int) -> list[InventorySummary]:
    if threshold <= 0:
        return []
    return [r for r in rows if r.qty <= threshold]
