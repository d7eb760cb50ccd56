"""Tests for tracked units: code issue, statuses, removal."""

import pytest
from datetime import timedelta

from stock_engine.core.dates import local_today
from stock_engine.core.errors import (
    DuplicateUnitCode,
    InvalidQuantity,
    InvalidUnitStatus,
    UnitUnavailable,
)
from stock_engine.models.unit import Unit, UnitCodeSequence, UnitStatus
from stock_engine.services.allocation_service import AllocationService
from stock_engine.services.unit_registry_service import (
    UnitRegistryService,
    format_code,
    parse_suffix,
)


class TestCodeHelpers:
    def test_format_code(self):
        assert format_code("1000", 7, 4) == "1000-0007"
        assert format_code("CAM", 12345, 4) == "CAM-12345"

    def test_parse_suffix(self):
        assert parse_suffix("1000-0042", "1000") == "0042"
        assert parse_suffix("2000-0042", "1000") is None
        assert parse_suffix("1000-abc", "1000") is None


class TestCreateUnits:
    def test_sequential_codes_with_default_prefix(self, db_session, test_product):
        registry = UnitRegistryService(db_session)
        units = registry.create_units(test_product.id, 3)
        db_session.commit()
        assert [u.code for u in units] == ["1000-0001", "1000-0002", "1000-0003"]
        assert all(u.status == UnitStatus.AVAILABLE.value for u in units)

        more = registry.create_units(test_product.id, 2)
        db_session.commit()
        assert [u.code for u in more] == ["1000-0004", "1000-0005"]

    def test_prefix_sequences_are_independent(self, db_session, test_product):
        registry = UnitRegistryService(db_session)
        registry.create_units(test_product.id, 2, category_prefix="1000")
        cams = registry.create_units(test_product.id, 1, category_prefix="CAM")
        db_session.commit()
        assert cams[0].code == "CAM-0001"

    def test_product_prefix_used_when_none_given(self, db_session, make_product):
        product = make_product(name="Truss", default_category_prefix="TR")
        units = UnitRegistryService(db_session).create_units(product.id, 1)
        db_session.commit()
        assert units[0].code == "TR-0001"

    def test_resumes_after_highest_existing_code(self, db_session, test_product):
        db_session.add(Unit(product_id=test_product.id, code="1000-0041", category_prefix="1000"))
        db_session.add(Unit(product_id=test_product.id, code="1000-0007", category_prefix="1000"))
        db_session.commit()

        units = UnitRegistryService(db_session).create_units(test_product.id, 1)
        db_session.commit()
        assert units[0].code == "1000-0042"

    def test_width_follows_previous_code(self, db_session, test_product):
        db_session.add(Unit(product_id=test_product.id, code="7-98", category_prefix="7"))
        db_session.commit()

        units = UnitRegistryService(db_session).create_units(test_product.id, 3, category_prefix="7")
        db_session.commit()
        assert [u.code for u in units] == ["7-99", "7-100", "7-101"]
        sequence = db_session.query(UnitCodeSequence).filter_by(category_prefix="7").one()
        assert sequence.last_value == 101
        assert sequence.width == 3

    def test_attributes_copied(self, db_session, test_product):
        units = UnitRegistryService(db_session).create_units(
            test_product.id, 2, attributes={"colour": "black"}
        )
        db_session.commit()
        assert units[0].attributes == {"colour": "black"}
        assert units[0].attributes is not units[1].attributes

    @pytest.mark.parametrize("count", [0, -1, 2.5, True])
    def test_invalid_count(self, db_session, test_product, count):
        with pytest.raises(InvalidQuantity):
            UnitRegistryService(db_session).create_units(test_product.id, count)

    def test_bypassed_sequence_raises_duplicate(self, db_session, test_product):
        registry = UnitRegistryService(db_session)
        registry.create_units(test_product.id, 1)
        db_session.commit()
        # Someone wrote a unit without going through the sequence
        db_session.add(Unit(product_id=test_product.id, code="1000-0002", category_prefix="1000"))
        db_session.commit()

        with pytest.raises(DuplicateUnitCode):
            registry.create_units(test_product.id, 1)
        db_session.rollback()


class TestStatuses:
    @pytest.fixture
    def units(self, db_session, test_product):
        created = UnitRegistryService(db_session).create_units(test_product.id, 3)
        db_session.commit()
        return created

    def test_maintenance_and_back(self, db_session, units):
        registry = UnitRegistryService(db_session)
        unit = registry.set_status(units[0].id, "maintenance")
        assert unit.status == "maintenance"
        unit = registry.set_status(units[0].id, "available")
        assert unit.status == "available"

    def test_reserved_cannot_be_set_directly(self, db_session, units):
        with pytest.raises(InvalidUnitStatus):
            UnitRegistryService(db_session).set_status(units[0].id, "reserved")

    def test_unknown_status(self, db_session, units):
        with pytest.raises(InvalidUnitStatus):
            UnitRegistryService(db_session).set_status(units[0].id, "lost")

    def test_available_on_unit_held_today_becomes_reserved(self, db_session, units):
        today = local_today()
        registry = UnitRegistryService(db_session)
        registry.set_status(units[0].id, "maintenance")
        AllocationService(db_session).reserve_specific(
            [units[1].id], today, today, job_id="J1", actor="t"
        )
        # Unit 0 is not held; unit 1 is
        assert registry.set_status(units[0].id, "available").status == "available"
        registry.set_status(units[1].id, "maintenance")
        assert registry.set_status(units[1].id, "available").status == "reserved"

    def test_set_status_unknown_unit(self, db_session, units):
        with pytest.raises(UnitUnavailable):
            UnitRegistryService(db_session).set_status(9999, "maintenance")

    def test_list_by_status(self, db_session, test_product, units):
        registry = UnitRegistryService(db_session)
        registry.set_status(units[2].id, "retired")
        retired = registry.list_by_product(test_product.id, status="retired")
        assert [u.id for u in retired] == [units[2].id]
        assert len(registry.list_by_product(test_product.id)) == 3

    def test_sync_statuses_rolls_over(self, db_session, test_product, units):
        today = local_today()
        tomorrow = today + timedelta(days=1)
        AllocationService(db_session).reserve_specific(
            [units[0].id], tomorrow, tomorrow, job_id="J1", actor="t"
        )
        registry = UnitRegistryService(db_session)
        assert registry.get(units[0].id).status == "available"

        changed = registry.sync_statuses(test_product.id, as_of=tomorrow)
        assert changed == {test_product.id: 1}
        assert registry.get(units[0].id).status == "reserved"

        changed = registry.sync_statuses(test_product.id, as_of=today)
        assert changed == {test_product.id: 1}
        assert registry.get(units[0].id).status == "available"


class TestRemoveUnits:
    def test_removed_units_are_soft_deleted(self, db_session, test_product):
        registry = UnitRegistryService(db_session)
        units = registry.create_units(test_product.id, 2)
        db_session.commit()

        registry.remove_units(test_product.id, [units[0].id])
        db_session.commit()
        assert registry.get(units[0].id) is None
        assert len(registry.list_by_product(test_product.id)) == 1
        assert len(registry.list_by_product(test_product.id, include_removed=True)) == 2

    def test_unit_of_other_product_refused(self, db_session, test_product, make_product):
        other = make_product(name="Other")
        unit = UnitRegistryService(db_session).create_units(other.id, 1)[0]
        db_session.commit()
        with pytest.raises(UnitUnavailable) as exc_info:
            UnitRegistryService(db_session).remove_units(test_product.id, [unit.id])
        assert exc_info.value.reason == "not found"

    def test_held_unit_refused(self, db_session, test_product):
        registry = UnitRegistryService(db_session)
        unit = registry.create_units(test_product.id, 1)[0]
        db_session.commit()
        start = local_today() + timedelta(days=30)
        AllocationService(db_session).reserve_specific([unit.id], start, None, job_id="J1", actor="t")
        with pytest.raises(UnitUnavailable) as exc_info:
            registry.remove_units(test_product.id, [unit.id])
        assert exc_info.value.reason == "reserved"

    def test_new_codes_never_reuse_removed_ones(self, db_session, test_product):
        registry = UnitRegistryService(db_session)
        units = registry.create_units(test_product.id, 2)
        db_session.commit()
        registry.remove_units(test_product.id, [units[1].id])
        db_session.commit()
        assert registry.create_units(test_product.id, 1)[0].code == "1000-0003"
