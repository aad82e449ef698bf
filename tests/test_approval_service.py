"""
Tests for the approval gate and transfer linking.

Verifies:
- pending -> approved / rejected, terminal afterwards
- Approving a transfer appends exactly one receipt at the destination
- Transfer conservation across locations
- Rejected movements never count
- Optimistic version check on record updates
"""

import pytest

from stockledger.models.activity_log import ActivityLog
from stockledger.models.stock_transaction import ApprovalStatus, ReasonType, StockTransaction
from stockledger.services import approval_service, inventory_service, meta_codec
from stockledger.services.errors import InsufficientStock, InvalidTransition, StaleRecordError
from stockledger.services.movements import InventoryKey, load_movements
from stockledger.services.record_store import RecordStore

MAIN = InventoryKey.of("laptop", "Latitude 7420", "Main Office")
BRANCH = InventoryKey.of("laptop", "Latitude 7420", "Branch Office")


def _qty(session, key) -> int:
    return inventory_service.available_qty(load_movements(session), key)


class TestApprove:
    """Tests for approve()."""

    def test_scrap_approval_reduces_stock(self, session, stock_in, stock_out):
        stock_in(5)
        scrap = stock_out(2, ReasonType.SCRAP, scrap_vendor="Recycler Ltd")
        assert _qty(session, MAIN) == 5

        result = approval_service.approve(session, scrap.id, "manager@corp.example")

        movement = result["movement"]
        assert movement.approval_status == ApprovalStatus.APPROVED
        assert movement.meta.approved_by == "manager@corp.example"
        assert movement.meta.approved_date is not None
        assert movement.version == 2
        assert result["linked"] is None
        assert _qty(session, MAIN) == 3

    def test_identity_fields_unchanged(self, session, stock_in, stock_out):
        stock_in(5)
        scrap = stock_out(2, ReasonType.SCRAP, scrap_vendor="Recycler Ltd")
        movement = approval_service.approve(session, scrap.id, "boss")["movement"]
        assert movement.quantity == scrap.quantity
        assert movement.type == scrap.type
        assert movement.key == scrap.key
        assert movement.meta.created_date == scrap.meta.created_date

    def test_unknown_movement(self, session):
        assert approval_service.approve(session, 999, "boss") is None

    def test_undecodable_record(self, session):
        store = RecordStore(session)
        record_id = store.create("out", 1, "Issued asset AST-001 to John")
        session.commit()
        assert approval_service.approve(session, record_id, "boss") is None

    def test_approved_movement_cannot_be_approved(self, session, stock_in):
        receipt = stock_in(5)
        with pytest.raises(InvalidTransition):
            approval_service.approve(session, receipt.id, "boss")

    def test_pending_in_cannot_be_approved(self, session):
        store = RecordStore(session)
        meta = meta_codec.decode(
            "v2|c=laptop|i=Latitude%207420|l=Main%20Office|d=2024-03-05|n=|by=|cd="
            "|rt=transfer|tl=Branch%20Office|as=pending"
        )
        record_id = store.create("in", 4, meta_codec.encode(meta))
        session.commit()

        with pytest.raises(InvalidTransition):
            approval_service.approve(session, record_id, "boss")
        with pytest.raises(InvalidTransition):
            approval_service.reject(session, record_id, "boss")

        assert session.query(StockTransaction).count() == 1
        assert _qty(session, BRANCH) == 0
        assert load_movements(session)[0].version == 1

    def test_activity_logged(self, session, stock_in, stock_out):
        stock_in(5)
        scrap = stock_out(1, ReasonType.SCRAP, scrap_vendor="Recycler Ltd")
        approval_service.approve(session, scrap.id, "boss")
        logs = approval_service.get_activity_logs(session, movement_id=scrap.id)
        assert [(log.actor, log.action) for log in logs] == [("boss", "stock_approve")]

    def test_stock_drawn_down_since_proposal(self, session, stock_in, stock_out):
        stock_in(3)
        scrap = stock_out(2, ReasonType.SCRAP, scrap_vendor="Recycler Ltd")
        stock_out(2)
        with pytest.raises(InsufficientStock) as exc:
            approval_service.approve(session, scrap.id, "boss")
        assert exc.value.available == 1
        assert load_movements(session)[1].approval_status == ApprovalStatus.PENDING


class TestReject:
    """Tests for reject()."""

    def test_rejected_never_counts(self, session, stock_in, stock_out):
        stock_in(5)
        transfer = stock_out(2, ReasonType.TRANSFER, to_location="Branch Office")
        result = approval_service.reject(session, transfer.id, "boss")

        assert result["movement"].approval_status == ApprovalStatus.REJECTED
        assert result["movement"].meta.approved_by == "boss"
        assert result["linked"] is None
        assert _qty(session, MAIN) == 5
        assert _qty(session, BRANCH) == 0
        assert session.query(StockTransaction).count() == 2

    def test_rejected_is_terminal(self, session, stock_in, stock_out):
        stock_in(5)
        transfer = stock_out(2, ReasonType.TRANSFER, to_location="Branch Office")
        approval_service.reject(session, transfer.id, "boss")
        with pytest.raises(InvalidTransition):
            approval_service.approve(session, transfer.id, "boss")
        with pytest.raises(InvalidTransition):
            approval_service.reject(session, transfer.id, "boss")
        assert session.query(StockTransaction).count() == 2


class TestTransferLinking:
    """Tests for the paired receipt."""

    def test_receipt_created(self, session, stock_in, stock_out):
        stock_in(10, unit_cost=50000, serial_number="")
        transfer = stock_out(2, ReasonType.TRANSFER, to_location="Branch Office")

        linked = approval_service.approve(session, transfer.id, "boss")["linked"]

        assert linked.type == "in"
        assert linked.quantity == 2
        assert linked.source_id == transfer.id
        assert linked.approval_status == ApprovalStatus.APPROVED
        assert linked.meta.location == "Branch Office"
        assert linked.meta.category == "laptop"
        assert linked.meta.item_name == "Latitude 7420"
        assert linked.meta.note == "Transfer received from Main Office"
        assert linked.meta.reference_number.startswith("TRF-")
        assert linked.meta.transaction_date == transfer.meta.transaction_date

    def test_conservation(self, session, stock_in, stock_out):
        stock_in(10)
        stock_in(4, location="Branch Office")
        transfer = stock_out(3, ReasonType.TRANSFER, to_location="Branch Office")
        total_before = _qty(session, MAIN) + _qty(session, BRANCH)

        approval_service.approve(session, transfer.id, "boss")

        assert _qty(session, MAIN) == 7
        assert _qty(session, BRANCH) == 7
        assert _qty(session, MAIN) + _qty(session, BRANCH) == total_before

    def test_double_approval_does_not_relink(self, session, stock_in, stock_out):
        stock_in(10)
        transfer = stock_out(3, ReasonType.TRANSFER, to_location="Branch Office")
        approval_service.approve(session, transfer.id, "boss")
        with pytest.raises(InvalidTransition):
            approval_service.approve(session, transfer.id, "boss")
        receipts = session.query(StockTransaction).filter(StockTransaction.source_id == transfer.id).all()
        assert len(receipts) == 1
        assert _qty(session, BRANCH) == 3

    def test_link_refuses_second_receipt(self, session, stock_in, stock_out):
        stock_in(10)
        transfer = stock_out(3, ReasonType.TRANSFER, to_location="Branch Office")
        approval_service.approve(session, transfer.id, "boss")
        store = RecordStore(session)
        with pytest.raises(InvalidTransition):
            approval_service.link_transfer(store, transfer, transfer.meta)

    def test_failed_link_rolls_back_approval(self, session, stock_in, stock_out, monkeypatch):
        stock_in(10)
        transfer = stock_out(3, ReasonType.TRANSFER, to_location="Branch Office")

        def broken_link(store, out, meta):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(approval_service, "link_transfer", broken_link)
        with pytest.raises(RuntimeError):
            approval_service.approve(session, transfer.id, "boss")

        movement = next(m for m in load_movements(session) if m.id == transfer.id)
        assert movement.approval_status == ApprovalStatus.PENDING
        assert movement.version == 1
        assert session.query(ActivityLog).count() == 0
        assert _qty(session, MAIN) == 10


class TestScenario:
    """IN 10 @ 50000, issue 3, transfer 2 to Branch Office."""

    def test_latitude_walkthrough(self, session, stock_in, stock_out):
        stock_in(10, unit_cost=50000)
        [row] = inventory_service.summarize(load_movements(session))
        assert (row.qty, row.total_value) == (10, 500000)

        stock_out(3, ReasonType.ISSUE)
        assert _qty(session, MAIN) == 7

        transfer = stock_out(2, ReasonType.TRANSFER, to_location="Branch Office")
        assert _qty(session, MAIN) == 7

        approval_service.approve(session, transfer.id, "boss")
        assert _qty(session, MAIN) == 5
        assert _qty(session, BRANCH) == 2


class TestRecordStore:
    """Optimistic version check on update."""

    def test_stale_version(self, session, stock_in):
        receipt = stock_in(1)
        store = RecordStore(session)
        with pytest.raises(StaleRecordError):
            store.update(receipt.id, meta_codec.encode(receipt.meta), expected_version=99)

    def test_update_bumps_version(self, session, stock_in):
        receipt = stock_in(1)
        store = RecordStore(session)
        store.update(receipt.id, meta_codec.encode(receipt.meta), expected_version=1)
        session.commit()
        assert store.get(receipt.id).version == 2

    def test_pending_listing(self, session, stock_in, stock_out):
        stock_in(10)
        stock_out(1)
        scrap = stock_out(1, ReasonType.SCRAP, scrap_vendor="Recycler Ltd")
        transfer = stock_out(1, ReasonType.TRANSFER, to_location="Branch Office")
        pending = approval_service.pending_approvals(load_movements(session))
        assert [m.id for m in pending] == [scrap.id, transfer.id]
