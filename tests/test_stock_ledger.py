"""Tests for the stock ledger: appends, reason signs, immutability, adjustments."""

import pytest
from datetime import timedelta

from stock_engine.core.dates import local_today
from stock_engine.core.errors import InsufficientStock, InvalidQuantity, ProductNotFound
from stock_engine.models.stock import LedgerReason, StockLedgerEntry
from stock_engine.services.allocation_service import AllocationService
from stock_engine.services.stock_ledger_service import StockLedgerService


class TestAppend:
    """append() validation and bulk pool folding."""

    def test_opening_stock_is_an_add_bulk_entry(self, db_session, test_product):
        entries = StockLedgerService(db_session).history(test_product.id)
        assert len(entries) == 1
        assert entries[0].reason == LedgerReason.ADD_BULK.value
        assert entries[0].qty_delta == 50
        assert entries[0].affects_bulk is True

    def test_bulk_pool_is_fold_of_bulk_deltas(self, db_session, test_product):
        ledger = StockLedgerService(db_session)
        ledger.append(test_product.id, 10, LedgerReason.ADD_BULK, actor="t")
        ledger.append(test_product.id, -5, LedgerReason.REMOVE_BULK, actor="t")
        # Informational entries do not move the pool
        ledger.append(test_product.id, 3, LedgerReason.ADD_TRACKED, actor="t")
        ledger.append(test_product.id, 0, LedgerReason.RESERVATION_SIDE_EFFECT_NONE, actor="t")
        db_session.commit()
        assert ledger.bulk_pool(test_product.id) == 55

    def test_reason_accepts_string_value(self, db_session, test_product):
        ledger = StockLedgerService(db_session)
        ledger.append(test_product.id, 2, "add-bulk", actor="t")
        db_session.commit()
        assert ledger.bulk_pool(test_product.id) == 52

    @pytest.mark.parametrize("reason,delta", [
        (LedgerReason.ADD_BULK, -1),
        (LedgerReason.REMOVE_BULK, 3),
        (LedgerReason.CONVERT_TO_TRACKED, 2),
        (LedgerReason.ADD_TRACKED, 0),
        (LedgerReason.MANUAL_ADJUST, 0),
        (LedgerReason.RESERVATION_SIDE_EFFECT_NONE, 1),
    ])
    def test_wrong_sign_rejected(self, db_session, test_product, reason, delta):
        with pytest.raises(InvalidQuantity):
            StockLedgerService(db_session).append(test_product.id, delta, reason, actor="t")

    @pytest.mark.parametrize("delta", [1.5, "3", True, None])
    def test_non_integer_delta_rejected(self, db_session, test_product, delta):
        with pytest.raises(InvalidQuantity):
            StockLedgerService(db_session).append(test_product.id, delta, LedgerReason.ADD_BULK)

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            StockLedgerService(db_session).append(999, 1, LedgerReason.ADD_BULK)

    def test_pool_cannot_go_negative(self, db_session, test_product):
        ledger = StockLedgerService(db_session)
        with pytest.raises(InsufficientStock) as exc_info:
            ledger.append(test_product.id, -51, LedgerReason.REMOVE_BULK, actor="t")
        assert exc_info.value.available == 50
        assert ledger.bulk_pool(test_product.id) == 50

    def test_actor_and_note_recorded(self, db_session, test_product):
        ledger = StockLedgerService(db_session)
        entry_id = ledger.append(
            test_product.id, 4, LedgerReason.ADD_BULK, note="Delivery #88", actor="alex@example.com"
        )
        db_session.commit()
        entry = db_session.get(StockLedgerEntry, entry_id)
        assert entry.actor == "alex@example.com"
        assert entry.notes == "Delivery #88"
        assert entry.ts is not None


class TestImmutability:
    def test_update_refused(self, db_session, test_product):
        entry = StockLedgerService(db_session).history(test_product.id)[0]
        entry.qty_delta = 500
        with pytest.raises(RuntimeError):
            db_session.flush()
        db_session.rollback()

    def test_delete_refused(self, db_session, test_product):
        entry = StockLedgerService(db_session).history(test_product.id)[0]
        db_session.delete(entry)
        with pytest.raises(RuntimeError):
            db_session.flush()
        db_session.rollback()


class TestHistory:
    def test_newest_first_with_paging(self, db_session, test_product):
        ledger = StockLedgerService(db_session)
        for qty in (1, 2, 3):
            ledger.append(test_product.id, qty, LedgerReason.ADD_BULK, actor="t")
        db_session.commit()

        page = ledger.history(test_product.id, skip=0, limit=2)
        assert [e.qty_delta for e in page] == [3, 2]
        rest = ledger.history(test_product.id, skip=2, limit=10)
        assert [e.qty_delta for e in rest] == [1, 50]


class TestManualAdjust:
    def test_positive_adjustment(self, db_session, test_product):
        ledger = StockLedgerService(db_session)
        entry = ledger.adjust(test_product.id, 7, note="Found in warehouse", actor="manager")
        assert entry.reason == LedgerReason.MANUAL_ADJUST.value
        assert ledger.bulk_pool(test_product.id) == 57

    def test_adjustment_bumps_version(self, db_session, test_product):
        before = test_product.version
        StockLedgerService(db_session).adjust(test_product.id, -2, actor="manager")
        db_session.refresh(test_product)
        assert test_product.version == before + 1

    def test_negative_adjustment_limited_by_future_holds(self, db_session, test_product):
        start = local_today() + timedelta(days=10)
        AllocationService(db_session).reserve_bulk(
            test_product.id, 45, start, start + timedelta(days=2), job_id="J-FUTURE", actor="t"
        )
        ledger = StockLedgerService(db_session)
        with pytest.raises(InsufficientStock) as exc_info:
            ledger.adjust(test_product.id, -6, actor="manager")
        assert exc_info.value.available == 5
        assert ledger.bulk_pool(test_product.id) == 50

        ledger.adjust(test_product.id, -5, actor="manager")
        assert ledger.bulk_pool(test_product.id) == 45

    def test_zero_adjustment_rejected(self, db_session, test_product):
        with pytest.raises(InvalidQuantity):
            StockLedgerService(db_session).adjust(test_product.id, 0, actor="manager")
