from collections.abc import Callable

from sqlalchemy import update
from sqlalchemy.orm import Session

from stockledger.models.stock_transaction import StockTransaction
from stockledger.services.errors import StaleRecordError


class RecordStore:
    """Generic list/create/update access to the stock transaction table.

    Writes are flushed, not committed: the caller owns the unit of work and
    commits once, so a transfer approval and its paired receipt land together.
    """

    def __init__(self, db: Session):
        self.db = db

    def list(self, predicate: Callable[[StockTransaction], bool] | None = None) -> list[StockTransaction]:
        rows = self.db.query(StockTransaction).order_by(StockTransaction.id.asc()).all()
        if predicate:
            rows = [r for r in rows if predicate(r)]
        return rows

    def get(self, record_id: int) -> StockTransaction | None:
        return self.db.query(StockTransaction).filter(StockTransaction.id == record_id).first()

    def find_by_source(self, source_id: int) -> StockTransaction | None:
        return self.db.query(StockTransaction).filter(StockTransaction.source_id == source_id).first()

    def create(self, type: str, quantity: int, reason: str, source_id: int | None = None) -> int:
        record = StockTransaction(type=type, quantity=quantity, reason=reason, source_id=source_id)
        self.db.add(record)
        self.db.flush()
        return record.id

    def update(self, record_id: int, reason: str, expected_version: int | None = None) -> None:
        """Replace the encoded attributes. Only `reason` is ever updated."""
        stmt = (
            update(StockTransaction)
            .where(StockTransaction.id == record_id)
            .values(reason=reason, version=StockTransaction.version + 1)
        )
        if expected_version is not None:
            stmt = stmt.where(StockTransaction.version == expected_version)
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            if expected_version is None:
                raise ValueError(f"Stock transaction {record_id} not found")
            raise StaleRecordError(record_id, expected_version)
