"""
Inventory & transaction engine tests.

Verifies:
- check_in / check_out / transfer update the right counters
- Rejected movements leave no ledger row and no counter change
- set_quantity writes one adjustment with the right direction and note
- Cached quantities always equal the signed ledger sum
"""

import pytest
from sqlalchemy.exc import IntegrityError

from invtrack.errors import InsufficientStockError, NotFoundError, ValidationError
from invtrack.models import InventoryRecord, InventoryTransaction, AuditLog
from invtrack.services import concurrency, inventory_service, query_executor

from conftest import make_product


def _txn_count(db_session):
    return db_session.query(InventoryTransaction).count()


class TestCheckIn:

    def test_creates_record_and_ledger_row(self, db_session, product, main_storage, admin_user):
        txn = inventory_service.record_transaction(
            "check_in", product.id, 12,
            destination_location_id=main_storage.id,
            batch_number="B-1",
            actor_id=admin_user.id,
        )

        assert txn.id.startswith("trx-")
        assert txn.type == "check_in"
        assert txn.source_location_id is None
        assert txn.destination_location_id == main_storage.id
        assert inventory_service.get_quantity(product.id, main_storage.id) == 12

    def test_accumulates(self, db_session, product, main_storage):
        inventory_service.record_transaction("check_in", product.id, 5, destination_location_id=main_storage.id)
        inventory_service.record_transaction("check_in", product.id, 7, destination_location_id=main_storage.id)

        assert inventory_service.get_quantity(product.id, main_storage.id) == 12
        assert db_session.query(InventoryRecord).count() == 1

    def test_requires_destination(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.record_transaction("check_in", product.id, 5)
        assert _txn_count(db_session) == 0

    def test_writes_audit_entry(self, db_session, product, main_storage, admin_user):
        txn = inventory_service.record_transaction(
            "check_in", product.id, 3, destination_location_id=main_storage.id, actor_id=admin_user.id,
        )
        entry = db_session.query(AuditLog).filter_by(entity_id=txn.id).one()
        assert entry.user_id == admin_user.id
        assert entry.entity_type == "inventory_transaction"


class TestQuantityValidation:

    @pytest.mark.parametrize("bad", [0, -1, 1.5, "abc", "2.0", True])
    def test_rejects_non_positive_or_non_integer(self, db_session, product, main_storage, bad):
        with pytest.raises(ValidationError):
            inventory_service.record_transaction("check_in", product.id, bad, destination_location_id=main_storage.id)
        assert _txn_count(db_session) == 0
        assert db_session.query(InventoryRecord).count() == 0

    def test_accepts_integer_string(self, db_session, product, main_storage):
        inventory_service.record_transaction("check_in", product.id, "4", destination_location_id=main_storage.id)
        assert inventory_service.get_quantity(product.id, main_storage.id) == 4


class TestAdjustmentType:

    def test_sets_target_quantity(self, db_session, product, main_storage):
        inventory_service.record_transaction("check_in", product.id, 10, destination_location_id=main_storage.id)

        txn = inventory_service.record_transaction(
            "adjustment", product.id, 4, destination_location_id=main_storage.id,
        )

        assert txn.type == "adjustment"
        assert txn.quantity == 6
        assert txn.source_location_id == main_storage.id
        assert txn.notes == "Manual quantity adjustment from 10 to 4"
        assert inventory_service.get_quantity(product.id, main_storage.id) == 4
        assert inventory_service.reconcile_ledger() == []

    def test_location_may_be_given_as_source(self, db_session, product, main_storage):
        txn = inventory_service.record_transaction("adjustment", product.id, 3, source_location_id=main_storage.id)
        assert txn.destination_location_id == main_storage.id
        assert inventory_service.get_quantity(product.id, main_storage.id) == 3

    def test_unchanged_target_returns_none(self, db_session, product, main_storage):
        inventory_service.set_quantity(product.id, main_storage.id, 5)
        assert inventory_service.record_transaction(
            "adjustment", product.id, 5, destination_location_id=main_storage.id,
        ) is None
        assert _txn_count(db_session) == 1

    def test_rejects_negative_target_and_two_locations(self, db_session, product, main_storage, outlet):
        with pytest.raises(ValidationError):
            inventory_service.record_transaction("adjustment", product.id, -1, destination_location_id=main_storage.id)
        with pytest.raises(ValidationError):
            inventory_service.record_transaction(
                "adjustment", product.id, 2,
                source_location_id=main_storage.id, destination_location_id=outlet.id,
            )
        with pytest.raises(ValidationError):
            inventory_service.record_transaction("adjustment", product.id, 2)
        assert _txn_count(db_session) == 0


class TestTypeValidation:

    def test_rejects_unknown_type(self, db_session, product, main_storage):
        with pytest.raises(ValidationError):
            inventory_service.record_transaction("teleport", product.id, 3, destination_location_id=main_storage.id)

    def test_unknown_product(self, db_session, main_storage):
        with pytest.raises(NotFoundError):
            inventory_service.record_transaction("check_in", "prod-missing", 3, destination_location_id=main_storage.id)

    def test_unknown_location(self, db_session, product):
        with pytest.raises(NotFoundError):
            inventory_service.record_transaction("check_in", product.id, 3, destination_location_id="loc-missing")


class TestCheckOut:

    def test_decrements(self, db_session, product, main_storage):
        inventory_service.record_transaction("check_in", product.id, 10, destination_location_id=main_storage.id)
        inventory_service.record_transaction("check_out", product.id, 4, source_location_id=main_storage.id)

        assert inventory_service.get_quantity(product.id, main_storage.id) == 6

    def test_to_zero_keeps_record(self, db_session, product, main_storage):
        inventory_service.record_transaction("check_in", product.id, 4, destination_location_id=main_storage.id)
        inventory_service.record_transaction("check_out", product.id, 4, source_location_id=main_storage.id)

        record = inventory_service.get_record(product.id, main_storage.id)
        assert record.quantity == 0

    def test_insufficient_stock_changes_nothing(self, db_session, product, main_storage):
        inventory_service.record_transaction("check_in", product.id, 3, destination_location_id=main_storage.id)

        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.record_transaction("check_out", product.id, 4, source_location_id=main_storage.id)

        assert exc.value.available == 3
        assert exc.value.requested == 4
        assert inventory_service.get_quantity(product.id, main_storage.id) == 3
        assert _txn_count(db_session) == 1

    def test_without_record_is_not_found(self, db_session, product, main_storage):
        with pytest.raises(NotFoundError):
            inventory_service.record_transaction("check_out", product.id, 1, source_location_id=main_storage.id)
        assert _txn_count(db_session) == 0


class TestTransfer:

    def test_moves_between_locations(self, db_session, product, main_storage, outlet):
        inventory_service.record_transaction("check_in", product.id, 10, destination_location_id=main_storage.id)

        txn = inventory_service.record_transaction(
            "transfer", product.id, 4,
            source_location_id=main_storage.id,
            destination_location_id=outlet.id,
        )

        assert txn.type == "transfer"
        assert inventory_service.get_quantity(product.id, main_storage.id) == 6
        assert inventory_service.get_quantity(product.id, outlet.id) == 4

    def test_same_location_rejected(self, db_session, product, main_storage):
        inventory_service.record_transaction("check_in", product.id, 10, destination_location_id=main_storage.id)
        with pytest.raises(ValidationError):
            inventory_service.record_transaction(
                "transfer", product.id, 1,
                source_location_id=main_storage.id,
                destination_location_id=main_storage.id,
            )

    def test_insufficient_source_leaves_both_untouched(self, db_session, product, main_storage, outlet):
        inventory_service.record_transaction("check_in", product.id, 2, destination_location_id=main_storage.id)

        with pytest.raises(InsufficientStockError):
            inventory_service.record_transaction(
                "transfer", product.id, 5,
                source_location_id=main_storage.id,
                destination_location_id=outlet.id,
            )

        assert inventory_service.get_quantity(product.id, main_storage.id) == 2
        assert inventory_service.get_quantity(product.id, outlet.id) == 0
        assert db_session.query(InventoryRecord).filter_by(location_id=outlet.id).count() == 0

    def test_audit_failure_rolls_back_both_counters(self, db_session, product, main_storage, outlet, monkeypatch):
        inventory_service.record_transaction("check_in", product.id, 10, destination_location_id=main_storage.id)
        entries = _txn_count(db_session)
        audits = db_session.query(AuditLog).count()

        def fail(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(inventory_service.audit_service, "record", fail)

        with pytest.raises(RuntimeError):
            inventory_service.record_transaction(
                "transfer", product.id, 4,
                source_location_id=main_storage.id,
                destination_location_id=outlet.id,
            )

        assert inventory_service.get_quantity(product.id, main_storage.id) == 10
        assert inventory_service.get_quantity(product.id, outlet.id) == 0
        assert db_session.query(InventoryRecord).filter_by(location_id=outlet.id).count() == 0
        assert _txn_count(db_session) == entries
        assert db_session.query(AuditLog).count() == audits
        assert inventory_service.reconcile_ledger() == []


class TestSetQuantity:

    def test_initial_setup(self, db_session, product, main_storage, admin_user):
        record = inventory_service.set_quantity(product.id, main_storage.id, 12, actor_id=admin_user.id)

        assert record.quantity == 12
        assert record.last_counted is not None
        txn = db_session.query(InventoryTransaction).one()
        assert txn.type == "adjustment"
        assert txn.quantity == 12
        assert txn.destination_location_id == main_storage.id
        assert txn.source_location_id is None
        assert txn.notes == "Initial inventory setup"

    def test_decrease_uses_source(self, db_session, product, main_storage):
        inventory_service.set_quantity(product.id, main_storage.id, 12)
        inventory_service.set_quantity(product.id, main_storage.id, 9)

        txn = (
            db_session.query(InventoryTransaction)
            .order_by(InventoryTransaction.created_at.desc())
            .first()
        )
        assert txn.quantity == 3
        assert txn.source_location_id == main_storage.id
        assert txn.destination_location_id is None
        assert txn.notes == "Manual quantity adjustment from 12 to 9"
        assert inventory_service.get_quantity(product.id, main_storage.id) == 9

    def test_zero_delta_writes_no_ledger_row(self, db_session, product, main_storage):
        inventory_service.set_quantity(product.id, main_storage.id, 5)
        inventory_service.set_quantity(product.id, main_storage.id, 5)

        assert _txn_count(db_session) == 1

    def test_set_to_zero(self, db_session, product, main_storage):
        inventory_service.set_quantity(product.id, main_storage.id, 5)
        record = inventory_service.set_quantity(product.id, main_storage.id, 0)
        assert record.quantity == 0

    def test_negative_target_rejected(self, db_session, product, main_storage):
        with pytest.raises(ValidationError):
            inventory_service.set_quantity(product.id, main_storage.id, -1)
        assert db_session.query(InventoryRecord).count() == 0


class TestLedgerConsistency:

    def test_reconcile_clean_after_mixed_movements(self, db_session, product, main_storage, outlet):
        inventory_service.set_quantity(product.id, main_storage.id, 20)
        inventory_service.record_transaction("check_in", product.id, 5, destination_location_id=main_storage.id)
        inventory_service.record_transaction(
            "transfer", product.id, 8, source_location_id=main_storage.id, destination_location_id=outlet.id,
        )
        inventory_service.record_transaction("check_out", product.id, 3, source_location_id=outlet.id)
        inventory_service.set_quantity(product.id, main_storage.id, 15)

        assert inventory_service.get_quantity(product.id, main_storage.id) == 15
        assert inventory_service.get_quantity(product.id, outlet.id) == 5
        assert inventory_service.reconcile_ledger() == []

    def test_reconcile_reports_drift(self, db_session, product, main_storage):
        inventory_service.set_quantity(product.id, main_storage.id, 10)
        record = inventory_service.get_record(product.id, main_storage.id)
        record.quantity = 7
        db_session.commit()

        mismatches = inventory_service.reconcile_ledger()
        assert mismatches == [{
            "product_id": product.id,
            "location_id": main_storage.id,
            "cached_quantity": 7,
            "ledger_quantity": 10,
        }]


class TestLevels:

    def test_levels_filter_by_category_parent(self, db_session, categories, main_storage):
        cab = make_product(db_session, "Cab", category_id="cat-101")
        scotch = make_product(db_session, "Scotch", category_id="cat-201")
        inventory_service.set_quantity(cab.id, main_storage.id, 3)
        inventory_service.set_quantity(scotch.id, main_storage.id, 4)

        rows = inventory_service.get_levels(category_id="cat-001")

        assert [r["product_name"] for r in rows] == ["Cab"]
        assert rows[0]["category_name"] == "Red Wine"
        assert rows[0]["location_name"] == "Main Storage"

    def test_levels_search_and_low_stock(self, db_session, categories, main_storage):
        low = make_product(db_session, "Low Merlot", barcode="MER1", minimum_stock=5)
        ok = make_product(db_session, "Plenty Pinot", barcode="PIN1", minimum_stock=5)
        inventory_service.set_quantity(low.id, main_storage.id, 5)
        inventory_service.set_quantity(ok.id, main_storage.id, 6)

        assert [r["product_name"] for r in inventory_service.get_levels(search="PIN")] == ["Plenty Pinot"]
        low_rows = inventory_service.get_levels(low_stock_only=True)
        assert [r["product_name"] for r in low_rows] == ["Low Merlot"]
        assert low_rows[0]["is_low_stock"] is True

    def test_inactive_products_hidden(self, db_session, product, main_storage):
        inventory_service.set_quantity(product.id, main_storage.id, 3)
        product.is_active = False
        db_session.commit()

        assert inventory_service.get_levels() == []

    def test_summary(self, db_session, product, main_storage):
        inventory_service.set_quantity(product.id, main_storage.id, 10)

        summary = inventory_service.get_summary()

        assert summary["total_quantity"] == 10
        assert summary["total_value_cents"] == 20000
        assert summary["total_value"] == "200.00"
        assert summary["low_stock_count"] == 0
        assert summary["categories"][0]["category_name"] == "Red Wine"

    def test_product_levels(self, db_session, product, main_storage, outlet):
        inventory_service.set_quantity(product.id, main_storage.id, 10)
        inventory_service.set_quantity(product.id, outlet.id, 2)

        rows = inventory_service.get_product_levels(product.id)
        assert {r["location_name"]: r["quantity"] for r in rows} == {"Main Storage": 10, "Bar Outlet": 2}


class TestQueryExecutor:

    def test_execute_reports_rowcount(self, db_session, product, main_storage):
        inventory_service.set_quantity(product.id, main_storage.id, 4)

        affected = query_executor.execute(
            "UPDATE inventory SET quantity = :qty WHERE product_id = :pid",
            {"qty": 7, "pid": product.id},
        )
        db_session.commit()

        assert affected == 1
        row = query_executor.query_one(
            "SELECT quantity FROM inventory WHERE product_id = :pid", {"pid": product.id}
        )
        assert row == {"quantity": 7}
        assert query_executor.query_one("SELECT id FROM inventory WHERE product_id = :pid", {"pid": "none"}) is None


class TestFirstInsertRace:
    """Two writers creating the same (product, location) counter."""

    def test_duplicate_counter_insert_is_retried(self, db_session, product, main_storage, monkeypatch):
        inventory_service.set_quantity(product.id, main_storage.id, 5)
        real_lookup = inventory_service._get_record_for_update
        state = {"lost_race": True, "attempts": 0}

        # The first attempt does not see the committed row and tries to insert its own
        def lookup(product_id, location_id):
            if state["lost_race"]:
                return None
            return real_lookup(product_id, location_id)

        def sleep(seconds):
            state["attempts"] += 1
            state["lost_race"] = False

        monkeypatch.setattr(inventory_service, "_get_record_for_update", lookup)
        monkeypatch.setattr(concurrency.time, "sleep", sleep)

        inventory_service.record_transaction("check_in", product.id, 3, destination_location_id=main_storage.id)

        assert state["attempts"] == 1
        assert inventory_service.get_quantity(product.id, main_storage.id) == 8
        assert db_session.query(InventoryRecord).filter_by(product_id=product.id).count() == 1
        assert inventory_service.reconcile_ledger() == []

    def test_other_integrity_errors_are_not_retried(self, db_session, monkeypatch):
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)
        calls = []

        def duplicate_barcode():
            calls.append(1)
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: products.barcode"))

        with pytest.raises(IntegrityError):
            concurrency.run_with_retry(duplicate_barcode)
        assert len(calls) == 1

    def test_counter_collision_gives_up_after_attempts(self, db_session, monkeypatch):
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)
        calls = []

        def always_collides():
            calls.append(1)
            raise IntegrityError(
                "INSERT", {}, Exception("UNIQUE constraint failed: inventory.product_id, inventory.location_id")
            )

        with pytest.raises(IntegrityError):
            concurrency.run_with_retry(always_collides, attempts=3)
        assert len(calls) == 3
