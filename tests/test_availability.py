"""Tests for window availability and the daily calendar."""

import pytest
from datetime import date, timedelta

from stock_engine.core.errors import InvalidDateRange, InvalidQuantity, ProductNotFound
from stock_engine.models.reservations import Reservation
from stock_engine.services.allocation_service import AllocationService
from stock_engine.services.availability_service import (
    AvailabilityService,
    peak_commitment,
)
from stock_engine.services.conversion_service import ConversionService
from stock_engine.services.unit_registry_service import UnitRegistryService


@pytest.fixture
def tracked_product(db_session, make_product):
    """Five tracked units, ten bulk."""
    product = make_product(name="Wireless Mic", bulk=15)
    ConversionService(db_session).convert(product.id, 5, actor="t")
    units = UnitRegistryService(db_session).list_by_product(product.id)
    return {"product": product, "units": units}


class TestAvailable:
    def test_single_day_defaults(self, db_session, tracked_product):
        product = tracked_product["product"]
        result = AvailabilityService(db_session).available(product.id, date(2024, 1, 10))
        assert result.start_date == result.end_date == date(2024, 1, 10)
        assert result.bulk_free == 10
        assert len(result.tracked_free) == 5
        assert result.total_free == 15

    def test_end_before_start(self, db_session, tracked_product):
        with pytest.raises(InvalidDateRange):
            AvailabilityService(db_session).available(
                tracked_product["product"].id, date(2024, 1, 10), date(2024, 1, 9)
            )

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            AvailabilityService(db_session).available(404, date(2024, 1, 10))

    def test_specific_units_excluded_during_hold(self, db_session, tracked_product):
        product, units = tracked_product["product"], tracked_product["units"]
        u1, u2, u3, u4, u5 = [u.id for u in units]
        AllocationService(db_session).reserve_specific(
            [u1, u2, u3], date(2024, 1, 10), date(2024, 1, 15), job_id="J1", actor="t"
        )

        result = AvailabilityService(db_session).available(product.id, date(2024, 1, 12))
        assert sorted(result.tracked_free_ids) == sorted([u4, u5])

        after = AvailabilityService(db_session).available(product.id, date(2024, 1, 16))
        assert len(after.tracked_free) == 5

    def test_bulk_holds_sum_over_window(self, db_session, tracked_product):
        product = tracked_product["product"]
        allocation = AllocationService(db_session)
        allocation.reserve_bulk(product.id, 4, date(2024, 3, 1), date(2024, 3, 2), job_id="A", actor="t")
        allocation.reserve_bulk(product.id, 3, date(2024, 3, 5), date(2024, 3, 6), job_id="B", actor="t")

        service = AvailabilityService(db_session)
        assert service.available(product.id, date(2024, 3, 1)).bulk_free == 6
        assert service.available(product.id, date(2024, 3, 3), date(2024, 3, 4)).bulk_free == 10
        assert service.available(product.id, date(2024, 3, 1), date(2024, 3, 6)).bulk_free == 3

    def test_open_ended_hold_blocks_all_later_days(self, db_session, tracked_product):
        product = tracked_product["product"]
        AllocationService(db_session).reserve_bulk(
            product.id, 10, date(2024, 6, 1), None, job_id="LONG", actor="t"
        )
        service = AvailabilityService(db_session)
        assert service.available(product.id, date(2024, 5, 31)).bulk_free == 10
        assert service.available(product.id, date(2030, 1, 1)).bulk_free == 0

    def test_out_of_service_units_never_counted(self, db_session, tracked_product):
        product, units = tracked_product["product"], tracked_product["units"]
        registry = UnitRegistryService(db_session)
        registry.set_status(units[0].id, "maintenance")
        registry.set_status(units[1].id, "retired")

        result = AvailabilityService(db_session).available(product.id, date(2024, 1, 1))
        assert units[0].id not in result.tracked_free_ids
        assert units[1].id not in result.tracked_free_ids
        assert len(result.tracked_free) == 3

    def test_released_hold_frees_units(self, db_session, tracked_product):
        product, units = tracked_product["product"], tracked_product["units"]
        allocation = AllocationService(db_session)
        reservation_id = allocation.reserve_specific(
            [units[0].id], date(2024, 2, 1), date(2024, 2, 2), job_id="J", actor="t"
        )
        allocation.release(reservation_id)
        result = AvailabilityService(db_session).available(product.id, date(2024, 2, 1))
        assert len(result.tracked_free) == 5

    def test_exclude_reservation(self, db_session, tracked_product):
        product = tracked_product["product"]
        reservation_id = AllocationService(db_session).reserve_bulk(
            product.id, 10, date(2024, 4, 1), date(2024, 4, 3), job_id="J", actor="t"
        )
        service = AvailabilityService(db_session)
        assert service.available(product.id, date(2024, 4, 2)).bulk_free == 0
        assert service.available(
            product.id, date(2024, 4, 2), exclude_reservation_id=reservation_id
        ).bulk_free == 10

    def test_wider_window_never_has_more_free(self, db_session, tracked_product):
        product, units = tracked_product["product"], tracked_product["units"]
        allocation = AllocationService(db_session)
        allocation.reserve_specific([units[0].id], date(2024, 7, 3), date(2024, 7, 4), job_id="A", actor="t")
        allocation.reserve_bulk(product.id, 2, date(2024, 7, 8), date(2024, 7, 9), job_id="B", actor="t")

        service = AvailabilityService(db_session)
        narrow = service.available(product.id, date(2024, 7, 5), date(2024, 7, 6))
        wide = service.available(product.id, date(2024, 7, 1), date(2024, 7, 10))
        assert set(wide.tracked_free_ids) <= set(narrow.tracked_free_ids)
        assert wide.bulk_free <= narrow.bulk_free
        assert wide.total_free <= narrow.total_free


class TestDaily:
    def test_calendar_statuses(self, db_session, make_product):
        product = make_product(name="Barrier", bulk=5)
        AllocationService(db_session).reserve_bulk(
            product.id, 3, date(2024, 9, 2), date(2024, 9, 2), job_id="A", actor="t"
        )
        AllocationService(db_session).reserve_bulk(
            product.id, 2, date(2024, 9, 3), date(2024, 9, 3), job_id="B", actor="t"
        )
        AllocationService(db_session).reserve_bulk(
            product.id, 3, date(2024, 9, 3), date(2024, 9, 3), job_id="C", actor="t"
        )

        days = AvailabilityService(db_session).daily(
            product.id, date(2024, 9, 1), date(2024, 9, 3), requested=4
        )
        assert [d["day"] for d in days] == [date(2024, 9, 1), date(2024, 9, 2), date(2024, 9, 3)]
        assert [d["status"] for d in days] == ["available", "partial", "unavailable"]
        assert [d["total_free"] for d in days] == [5, 2, 0]

    def test_range_limit(self, db_session, test_product):
        with pytest.raises(InvalidDateRange):
            AvailabilityService(db_session).daily(
                test_product.id, date(2024, 1, 1), date(2024, 1, 1) + timedelta(days=400)
            )

    def test_requested_must_be_positive(self, db_session, test_product):
        with pytest.raises(InvalidQuantity):
            AvailabilityService(db_session).daily(test_product.id, date(2024, 1, 1), requested=0)

    def test_daily_matches_window_query(self, db_session, tracked_product):
        product, units = tracked_product["product"], tracked_product["units"]
        AllocationService(db_session).reserve_specific(
            [units[0].id, units[1].id], date(2024, 8, 2), date(2024, 8, 2), job_id="A", actor="t"
        )
        service = AvailabilityService(db_session)
        for day in service.daily(product.id, date(2024, 8, 1), date(2024, 8, 3)):
            single = service.available(product.id, day["day"])
            assert day["tracked_free"] == len(single.tracked_free)
            assert day["bulk_free"] == single.bulk_free


class TestPeakCommitment:
    def _res(self, start, end, quantity):
        return Reservation(start_date=start, end_date=end, quantity=quantity)

    def test_non_overlapping_holds_do_not_add_up(self):
        holds = [
            self._res(date(2024, 1, 1), date(2024, 1, 2), 5),
            self._res(date(2024, 1, 5), date(2024, 1, 6), 7),
        ]
        assert peak_commitment(holds, date(2024, 1, 1)) == 7

    def test_overlapping_holds_add_up(self):
        holds = [
            self._res(date(2024, 1, 1), date(2024, 1, 10), 5),
            self._res(date(2024, 1, 5), None, 7),
        ]
        assert peak_commitment(holds, date(2024, 1, 1)) == 12

    def test_holds_ended_before_since_are_ignored(self):
        holds = [self._res(date(2023, 12, 1), date(2023, 12, 2), 9)]
        assert peak_commitment(holds, date(2024, 1, 1)) == 0
