"""Tests for storage locations: per-location bulk stock, transfers and location admin."""

import pytest

from stock_engine.core.errors import (
    DuplicateLocation,
    InsufficientStock,
    InvalidQuantity,
    InvalidTransfer,
    LocationInactive,
    LocationInUse,
    LocationNotFound,
)
from stock_engine.models.stock import LedgerReason
from stock_engine.services.conversion_service import ConversionService
from stock_engine.services.product_service import ProductService
from stock_engine.services.stock_aggregator_service import StockAggregatorService
from stock_engine.services.stock_ledger_service import StockLedgerService
from stock_engine.services.storage_location_service import StorageLocationService


@pytest.fixture
def warehouse(db_session):
    return StorageLocationService(db_session).create(name="Main Warehouse", code="WH1")


@pytest.fixture
def truck(db_session):
    return StorageLocationService(db_session).create(name="Truck 7")


@pytest.fixture
def stored_product(make_product, warehouse):
    """50 bulk units, all booked into the main warehouse."""
    return make_product(name="Barricade", bulk=50, default_storage_location_id=warehouse.id)


def _balances(db_session, product_id):
    return {
        line["storage_location_id"]: line["quantity"]
        for line in StorageLocationService(db_session).stock_by_location(product_id)
    }


class TestLocationAdmin:
    def test_create_and_list(self, db_session, warehouse, truck):
        names = [loc.name for loc in StorageLocationService(db_session).list_locations()]
        assert names == ["Main Warehouse", "Truck 7"]
        assert warehouse.active is True

    def test_duplicate_name(self, db_session, warehouse):
        with pytest.raises(DuplicateLocation):
            StorageLocationService(db_session).create(name="Main Warehouse")

    def test_duplicate_code_on_rename(self, db_session, warehouse, truck):
        with pytest.raises(DuplicateLocation):
            StorageLocationService(db_session).update(truck.id, {"code": "WH1"})

    def test_unknown_location(self, db_session):
        with pytest.raises(LocationNotFound):
            StorageLocationService(db_session).get(404)

    def test_deactivate_empty_location(self, db_session, truck):
        location = StorageLocationService(db_session).update(truck.id, {"active": False})
        assert location.active is False
        assert StorageLocationService(db_session).list_locations() == []
        assert len(StorageLocationService(db_session).list_locations(active_only=False)) == 1

    def test_deactivate_refused_while_holding_stock(self, db_session, stored_product, warehouse, truck):
        service = StorageLocationService(db_session)
        service.transfer(stored_product.id, 5, warehouse.id, truck.id, actor="t")
        with pytest.raises(LocationInUse) as exc:
            service.deactivate(truck.id)
        assert exc.value.context["product_ids"] == [stored_product.id]

        service.transfer(stored_product.id, 5, truck.id, warehouse.id, actor="t")
        assert service.deactivate(truck.id).active is False

    def test_deactivate_refused_for_default_location(self, db_session, stored_product, warehouse, truck):
        service = StorageLocationService(db_session)
        service.transfer(stored_product.id, 50, warehouse.id, truck.id, actor="t")
        with pytest.raises(LocationInUse):
            service.deactivate(warehouse.id)


class TestStockByLocation:
    def test_opening_stock_goes_to_default_location(self, db_session, stored_product, warehouse):
        lines = StorageLocationService(db_session).stock_by_location(stored_product.id)
        assert lines == [{
            "storage_location_id": warehouse.id,
            "name": "Main Warehouse",
            "quantity": 50,
            "is_default": True,
        }]
        entry = StockLedgerService(db_session).history(stored_product.id)[0]
        assert entry.storage_location_id == warehouse.id

    def test_product_without_locations_is_unassigned(self, db_session, test_product):
        lines = StorageLocationService(db_session).stock_by_location(test_product.id)
        assert lines == [{
            "storage_location_id": None,
            "name": "Unassigned",
            "quantity": 50,
            "is_default": False,
        }]

    def test_balances_add_up_to_bulk_pool(self, db_session, stored_product, warehouse, truck):
        StorageLocationService(db_session).transfer(stored_product.id, 12, warehouse.id, truck.id, actor="t")
        ConversionService(db_session).convert(stored_product.id, 4, actor="t")
        ConversionService(db_session).add_bulk(stored_product.id, 6, actor="t", storage_location_id=truck.id)

        balances = _balances(db_session, stored_product.id)
        assert balances == {warehouse.id: 34, truck.id: 18}
        totals = StockAggregatorService(db_session).current_totals(stored_product.id)
        assert sum(balances.values()) == totals.bulk_pool == 52

    def test_tracked_entries_carry_no_location(self, db_session, stored_product):
        ConversionService(db_session).add_tracked(stored_product.id, 2, actor="t")
        entry = StockLedgerService(db_session).history(stored_product.id)[0]
        assert entry.reason == LedgerReason.ADD_TRACKED.value
        assert entry.storage_location_id is None

    def test_location_contents(self, db_session, stored_product, make_product, warehouse, truck):
        other = make_product(name="Crowd Barrier", bulk=8, default_storage_location_id=truck.id)
        StorageLocationService(db_session).transfer(stored_product.id, 3, warehouse.id, truck.id, actor="t")

        contents = StorageLocationService(db_session).location_contents(truck.id)
        assert [(line["product_id"], line["quantity"]) for line in contents] == [
            (stored_product.id, 3),
            (other.id, 8),
        ]


class TestTransfer:
    def test_transfer_keeps_master_stock(self, db_session, stored_product, warehouse, truck):
        before = StockAggregatorService(db_session).current_totals(stored_product.id)
        version = stored_product.version

        StorageLocationService(db_session).transfer(stored_product.id, 20, warehouse.id, truck.id, actor="sam")

        after = StockAggregatorService(db_session).current_totals(stored_product.id)
        assert after.master_stock == before.master_stock == 50
        assert after.bulk_pool_available == before.bulk_pool_available
        assert _balances(db_session, stored_product.id) == {warehouse.id: 30, truck.id: 20}

        db_session.refresh(stored_product)
        assert stored_product.version == version + 1

    def test_transfer_is_a_pair_of_entries(self, db_session, stored_product, warehouse, truck):
        StorageLocationService(db_session).transfer(stored_product.id, 7, warehouse.id, truck.id, actor="sam")
        newest = StockLedgerService(db_session).history(stored_product.id, limit=2)
        assert [(e.reason, e.qty_delta, e.storage_location_id) for e in newest] == [
            (LedgerReason.TRANSFER.value, 7, truck.id),
            (LedgerReason.TRANSFER.value, -7, warehouse.id),
        ]
        assert all(e.actor == "sam" for e in newest)
        assert StockAggregatorService(db_session).integrity_report(stored_product.id)["ok"] is True

    def test_more_than_source_holds(self, db_session, stored_product, warehouse, truck):
        with pytest.raises(InsufficientStock) as exc:
            StorageLocationService(db_session).transfer(stored_product.id, 51, warehouse.id, truck.id, actor="t")
        assert exc.value.storage_location_id == warehouse.id
        assert exc.value.available == 50
        assert _balances(db_session, stored_product.id) == {warehouse.id: 50}

    def test_same_location(self, db_session, stored_product, warehouse):
        with pytest.raises(InvalidTransfer):
            StorageLocationService(db_session).transfer(
                stored_product.id, 1, warehouse.id, warehouse.id, actor="t"
            )

    @pytest.mark.parametrize("quantity", [0, -4, 2.5])
    def test_invalid_quantity(self, db_session, stored_product, warehouse, truck, quantity):
        with pytest.raises(InvalidQuantity):
            StorageLocationService(db_session).transfer(
                stored_product.id, quantity, warehouse.id, truck.id, actor="t"
            )

    def test_inactive_destination(self, db_session, stored_product, warehouse, truck):
        StorageLocationService(db_session).deactivate(truck.id)
        with pytest.raises(LocationInactive):
            StorageLocationService(db_session).transfer(stored_product.id, 2, warehouse.id, truck.id, actor="t")
        assert _balances(db_session, stored_product.id) == {warehouse.id: 50}

    def test_unknown_destination(self, db_session, stored_product, warehouse):
        with pytest.raises(LocationNotFound):
            StorageLocationService(db_session).transfer(stored_product.id, 2, warehouse.id, 999, actor="t")

    def test_transfer_out_of_unassigned(self, db_session, test_product, truck):
        StorageLocationService(db_session).transfer(test_product.id, 15, None, truck.id, actor="t")
        assert _balances(db_session, test_product.id) == {truck.id: 15, None: 35}


class TestLocatedRemovals:
    def test_remove_bulk_limited_to_location_balance(self, db_session, stored_product, warehouse, truck):
        StorageLocationService(db_session).transfer(stored_product.id, 10, warehouse.id, truck.id, actor="t")
        with pytest.raises(InsufficientStock) as exc:
            ConversionService(db_session).remove_bulk(
                stored_product.id, 15, actor="t", storage_location_id=truck.id
            )
        assert exc.value.storage_location_id == truck.id
        assert exc.value.available == 10

        totals = ConversionService(db_session).remove_bulk(
            stored_product.id, 10, actor="t", storage_location_id=truck.id
        )
        assert totals.bulk_pool == 40
        assert _balances(db_session, stored_product.id) == {warehouse.id: 40}

    def test_convert_draws_from_default_location(self, db_session, stored_product, warehouse, truck):
        StorageLocationService(db_session).transfer(stored_product.id, 48, warehouse.id, truck.id, actor="t")
        with pytest.raises(InsufficientStock):
            ConversionService(db_session).convert(stored_product.id, 3, actor="t")
        ConversionService(db_session).convert(stored_product.id, 3, actor="t", storage_location_id=truck.id)
        assert _balances(db_session, stored_product.id) == {warehouse.id: 2, truck.id: 45}

    def test_negative_adjustment_at_location(self, db_session, stored_product, warehouse, truck):
        StorageLocationService(db_session).transfer(stored_product.id, 5, warehouse.id, truck.id, actor="t")
        entry = StockLedgerService(db_session).adjust(
            stored_product.id, -2, note="Count", actor="t", storage_location_id=truck.id
        )
        assert entry.storage_location_id == truck.id
        assert _balances(db_session, stored_product.id) == {warehouse.id: 45, truck.id: 3}


class TestDefaultLocation:
    def test_setting_default_moves_unassigned_stock(self, db_session, test_product, warehouse):
        ProductService(db_session).update(
            test_product.id, {"default_storage_location_id": warehouse.id}, actor="pat"
        )
        assert _balances(db_session, test_product.id) == {warehouse.id: 50}
        reasons = [e.reason for e in StockLedgerService(db_session).history(test_product.id, limit=2)]
        assert reasons == [LedgerReason.TRANSFER.value, LedgerReason.TRANSFER.value]
        assert StockAggregatorService(db_session).current_totals(test_product.id).master_stock == 50

    def test_changing_default_leaves_stock_in_place(self, db_session, stored_product, warehouse, truck):
        product = ProductService(db_session).update(
            stored_product.id, {"default_storage_location_id": truck.id}
        )
        assert product.default_storage_location_id == truck.id
        assert _balances(db_session, stored_product.id) == {warehouse.id: 50, truck.id: 0}

        ConversionService(db_session).add_bulk(stored_product.id, 4, actor="t")
        assert _balances(db_session, stored_product.id)[truck.id] == 4

    def test_clearing_default(self, db_session, stored_product):
        product = ProductService(db_session).update(stored_product.id, {"default_storage_location_id": None})
        assert product.default_storage_location_id is None
        ConversionService(db_session).add_bulk(stored_product.id, 3, actor="t")
        assert _balances(db_session, stored_product.id)[None] == 3

    def test_inactive_location_cannot_be_default(self, db_session, test_product, truck):
        StorageLocationService(db_session).deactivate(truck.id)
        with pytest.raises(LocationInactive):
            ProductService(db_session).update(test_product.id, {"default_storage_location_id": truck.id})
        with pytest.raises(LocationInactive):
            ProductService(db_session).create(name="Lectern", actor="t", default_storage_location_id=truck.id)
