"""
Reporting engine tests.

Valuation figures are integer cents: quantity * unit price (or cost).
"""

import pytest

from invtrack.errors import NotFoundError, ValidationError
from invtrack.services import inventory_service, reporting_service

from conftest import make_product


@pytest.fixture
def stocked_catalog(db_session, categories, main_storage, outlet):
    """
    Wine: 10 x Cab @ $20.00 / $12.00 cost.
    Liquor: 2 x Scotch @ $50.00 / $30.00 cost, at its minimum of 2.
    """
    cab = make_product(db_session, "Cab", category_id="cat-101", price_cents=2000, cost_cents=1200, minimum_stock=3)
    scotch = make_product(db_session, "Scotch", category_id="cat-201", price_cents=5000, cost_cents=3000,
                          minimum_stock=2)
    inventory_service.set_quantity(cab.id, main_storage.id, 10)
    inventory_service.set_quantity(scotch.id, main_storage.id, 2)
    return {"cab": cab, "scotch": scotch}


class TestValuation:

    def test_totals(self, db_session, stocked_catalog):
        report = reporting_service.inventory_valuation()

        summary = report["summary"]
        assert summary["total_quantity"] == 12
        assert summary["total_value_cents"] == 30000
        assert summary["total_cost_cents"] == 18000
        assert summary["total_profit_cents"] == 12000
        assert summary["total_value"] == "300.00"
        assert summary["product_count"] == 2
        assert "generated_at" in report

    def test_wine_only(self, db_session, stocked_catalog):
        report = reporting_service.inventory_valuation(category_id="cat-001")

        assert report["filters"] == {"category_id": "cat-001"}
        assert [r["category_name"] for r in report["categories"]] == ["Red Wine"]
        assert report["summary"]["total_value_cents"] == 20000
        assert report["summary"]["total_cost_cents"] == 12000
        assert report["summary"]["total_profit"] == "80.00"

    def test_inactive_excluded(self, db_session, stocked_catalog):
        stocked_catalog["scotch"].is_active = False
        db_session.commit()
        assert reporting_service.inventory_valuation()["summary"]["total_value_cents"] == 20000

    def test_empty(self, db_session):
        summary = reporting_service.inventory_valuation()["summary"]
        assert summary["total_value_cents"] == 0
        assert summary["total_value"] == "0.00"


class TestLowStock:

    def test_boundary_included(self, db_session, stocked_catalog):
        report = reporting_service.low_stock()
        assert [r["product_name"] for r in report["items"]] == ["Scotch"]
        assert report["items"][0]["shortfall"] == 0

    def test_ordered_by_shortfall(self, db_session, stocked_catalog, main_storage):
        inventory_service.set_quantity(stocked_catalog["cab"].id, main_storage.id, 0)

        names = [r["product_name"] for r in reporting_service.low_stock()["items"]]
        assert names == ["Cab", "Scotch"]

    def test_location_filter(self, db_session, stocked_catalog, outlet):
        assert reporting_service.low_stock(location_id=outlet.id)["count"] == 0


class TestHistory:

    def test_history_rows_and_total(self, db_session, stocked_catalog, main_storage, outlet):
        inventory_service.record_transaction(
            "transfer", stocked_catalog["cab"].id, 4,
            source_location_id=main_storage.id, destination_location_id=outlet.id,
        )

        report = reporting_service.transaction_history(limit=2)
        assert report["total"] == 3
        assert len(report["transactions"]) == 2
        assert report["transactions"][0]["type"] == "transfer"
        assert report["transactions"][0]["destination_location_name"] == "Bar Outlet"

        outlet_only = reporting_service.transaction_history(location_id=outlet.id)
        assert outlet_only["total"] == 1

        adjustments = reporting_service.transaction_history(type_="adjustment")
        assert adjustments["total"] == 2

    def test_date_range(self, db_session, stocked_catalog):
        assert reporting_service.transaction_history(end="2000-01-01")["total"] == 0
        assert reporting_service.transaction_history(start="2000-01-01")["total"] == 2

    def test_bad_range(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.transaction_history(start="yesterday")
        with pytest.raises(ValidationError):
            reporting_service.transaction_history(start="2024-02-01", end="2024-01-01")


class TestSavedReports:

    def test_save_and_run(self, db_session, stocked_catalog, admin_user):
        report = reporting_service.save_report(
            name="Wine value",
            report_type="valuation",
            parameters={"category_id": "cat-001"},
            actor_id=admin_user.id,
        )
        assert report.last_run is None

        out = reporting_service.run_report(report.id)

        assert out["report"]["last_run"] is not None
        assert out["result"]["summary"]["total_value_cents"] == 20000

    @pytest.mark.parametrize("rtype", ["inventory", "transaction", "low_stock"])
    def test_every_type_runs(self, db_session, stocked_catalog, rtype):
        report = reporting_service.save_report(name=rtype, report_type=rtype)
        out = reporting_service.run_report(report.id)
        assert "generated_at" in out["result"]

    def test_unknown_type_rejected_at_save(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.save_report(name="x", report_type="custom")

    def test_deactivated_report_cannot_run(self, db_session):
        report = reporting_service.save_report(name="x", report_type="low_stock")
        reporting_service.deactivate_report(report.id)

        assert reporting_service.list_reports() == []
        with pytest.raises(NotFoundError):
            reporting_service.run_report(report.id)


class TestReportParameters:

    def test_bad_limit_rejected_at_save(self, db_session):
        with pytest.raises(ValidationError, match="limit"):
            reporting_service.save_report(name="x", report_type="transaction", parameters={"limit": "abc"})
        with pytest.raises(ValidationError, match="limit"):
            reporting_service.save_report(name="x", report_type="transaction", parameters={"limit": 0})

    def test_string_false_is_false(self, db_session, stocked_catalog):
        report = reporting_service.save_report(
            name="All stock",
            report_type="inventory",
            parameters={"low_stock_only": "false"},
        )
        assert report.parameter_dict == {"low_stock_only": False}

        out = reporting_service.run_report(report.id)

        names = sorted(row["product_name"] for row in out["result"]["items"])
        assert names == ["Cab", "Scotch"]

    def test_string_true_filters(self, db_session, stocked_catalog):
        report = reporting_service.save_report(
            name="Low", report_type="inventory", parameters={"low_stock_only": "true"}
        )
        out = reporting_service.run_report(report.id)
        assert [row["product_name"] for row in out["result"]["items"]] == ["Scotch"]

    def test_values_are_normalized(self, db_session):
        report = reporting_service.save_report(
            name="Moves",
            report_type="transaction",
            parameters={"limit": "25", "offset": "0", "type": "Check_In", "start": "2024-01-01", "product_id": None},
        )
        assert report.parameter_dict == {"limit": 25, "offset": 0, "type": "check_in", "start": "2024-01-01"}

    @pytest.mark.parametrize("rtype, params", [
        ("valuation", {"limit": 10}),
        ("low_stock", {"search": "cab"}),
        ("inventory", {"start": "2024-01-01"}),
    ])
    def test_unknown_key_rejected(self, db_session, rtype, params):
        with pytest.raises(ValidationError, match="Unknown parameter"):
            reporting_service.save_report(name="x", report_type=rtype, parameters=params)

    def test_bad_values_rejected(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.save_report(name="x", report_type="inventory", parameters={"low_stock_only": "maybe"})
        with pytest.raises(ValidationError):
            reporting_service.save_report(name="x", report_type="transaction", parameters={"type": "theft"})
        with pytest.raises(ValidationError):
            reporting_service.save_report(
                name="x", report_type="transaction", parameters={"start": "2024-02-01", "end": "2024-01-01"}
            )
        with pytest.raises(ValidationError):
            reporting_service.save_report(name="x", report_type="valuation", parameters=["cat-001"])
