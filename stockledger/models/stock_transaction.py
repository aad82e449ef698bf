from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.database import Base


class Direction(str, PyEnum):
    IN = "in"
    OUT = "out"


class ReasonType(str, PyEnum):
    ISSUE = "issue"
    RETURN = "return"
    TRANSFER = "transfer"
    SCRAP = "scrap"


class ApprovalStatus(str, PyEnum):
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"


# OUT reasons that must pass the approval gate before they count
GATED_REASONS = frozenset({ReasonType.SCRAP, ReasonType.TRANSFER})


class StockTransaction(Base):
    """One append-only ledger record. Structured attributes live encoded in `reason`."""

    __tablename__ = "stock_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String, nullable=False)  # in, out
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, default="")
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    # Set on a transfer receipt: the OUT it was linked from
    source_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("stock_transactions.id"), unique=True, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
