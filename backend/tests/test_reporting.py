"""Monthly report and CSV rendering."""

import csv
import io

import pytest

from conftest import local_iso
from watchshop.services import cob_service, expense_service, reporting_service, sales_service
from watchshop.services.ledger_service import compute_ledger
from watchshop.services.reporting_service import ReportError


def _sale(amount, method, when):
    sales_service.record_sale({"amount": amount, "payment_method": method, "occurred_at": when}, None)


class TestMonthlyReport:

    def test_month_boundaries_follow_business_timezone(self, seed):
        _sale("100", "Cash", local_iso("2024-02-29", 23, 59))
        _sale("200", "Cash", local_iso("2024-03-01", 0, 0))
        _sale("300", "UPI", local_iso("2024-03-31", 23, 59))
        _sale("400", "Cash", local_iso("2024-04-01", 0, 0))

        report = reporting_service.monthly_report(2024, 3)
        assert report["sales"] == {"count": 2, "amount": "500.00"}
        assert report["start"] == "2024-03-01"
        assert report["end"] == "2024-04-01"
        assert set(report["paymentBreakdown"]["income"]) == {"Cash", "UPI"}

    def test_december_rolls_into_next_year(self, seed):
        _sale("50", "Card", local_iso("2024-12-31", 22))
        report = reporting_service.monthly_report(2024, 12)
        assert report["end"] == "2025-01-01"
        assert report["sales"]["count"] == 1

    def test_counts_closed_days(self, seed):
        cob_service.close_business_day("2024-03-01", None, seed["manager"].id)
        cob_service.close_business_day("2024-03-02", None, seed["manager"].id)
        assert reporting_service.monthly_report(2024, 3)["closedDays"] == 2
        assert reporting_service.monthly_report(2024, 2)["closedDays"] == 0

    @pytest.mark.parametrize("year,month", [(2024, 0), (2024, 13), (0, 5)])
    def test_invalid_month(self, db_session, year, month):
        with pytest.raises(ReportError):
            reporting_service.monthly_report(year, month)


class TestCsv:

    def test_summary_rows(self, seed):
        _sale("1000", "Cash", local_iso("2024-03-01", 10))
        expense_service.record_expense(
            {"description": "Glue", "amount": "25", "payment_method": "UPI", "occurred_at": local_iso("2024-03-01", 11)},
            None,
        )
        rows = list(csv.reader(io.StringIO(reporting_service.summary_csv(compute_ledger("2024-03-01").to_dict()))))
        assert rows[0] == ["Field", "Value"]
        values = dict(rows[1:])
        assert values["Sales Total"] == "1000.00"
        assert values["Income - Cash"] == "1000.00 (1)"
        assert values["Expenses - UPI"] == "25.00 (1)"

    def test_empty_section(self, db_session):
        body = reporting_service.section_csv(compute_ledger("2024-03-01"), "expenses")
        assert list(csv.reader(io.StringIO(body))) == [["ID", "Reference", "Occurred At", "Payment Method", "Amount"]]

    def test_unknown_section(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.section_csv(compute_ledger("2024-03-01"), "summary")
