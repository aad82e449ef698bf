"""
Shared fixtures.

Provides:
- An in-memory SQLite session with all tables created
- A TestClient wired to that session
- Factories for proposing stock IN / OUT movements
- A builder for in-memory Movement objects used by the pure fold tests
"""

from datetime import date, datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import stockledger.models.activity_log  # noqa: F401
import stockledger.models.stock_transaction  # noqa: F401
from stockledger.database import Base, get_db
from stockledger.main import app
from stockledger.models.stock_transaction import ApprovalStatus, Direction, ReasonType
from stockledger.schemas.stock import StockMovementMeta
from stockledger.services import ledger_service
from stockledger.services.movements import Movement


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _meta(**overrides) -> StockMovementMeta:
    fields = {
        "category": "laptop",
        "item_name": "Latitude 7420",
        "location": "Main Office",
        "transaction_date": date(2024, 3, 5),
        "created_by": "it@corp.example",
    }
    fields.update(overrides)
    return StockMovementMeta(**fields)


@pytest.fixture
def stock_in(session):
    """Propose an approved IN movement."""

    def _stock_in(quantity: int, unit_cost: float | None = None, **meta):
        return ledger_service.propose_movement(
            session, Direction.IN, _meta(unit_cost=unit_cost, **meta), quantity
        )

    return _stock_in


@pytest.fixture
def stock_out(session):
    """Propose an OUT movement; issue unless told otherwise."""

    def _stock_out(quantity: int, reason_type: ReasonType = ReasonType.ISSUE, **meta):
        return ledger_service.propose_movement(
            session, Direction.OUT, _meta(reason_type=reason_type, **meta), quantity
        )

    return _stock_out


@pytest.fixture
def make_movement():
    """Build a Movement without touching the database."""
    counter = {"id": 0}

    def _make(
        type: str,
        quantity: int,
        status: ApprovalStatus | None = ApprovalStatus.APPROVED,
        created_at: datetime | None = None,
        **meta,
    ) -> Movement:
        counter["id"] += 1
        return Movement(
            id=counter["id"],
            type=type,
            quantity=quantity,
            created_at=created_at or datetime(2024, 3, 1, tzinfo=timezone.utc),
            version=1,
            source_id=None,
            meta=_meta(approval_status=status, **meta),
        )

    return _make
