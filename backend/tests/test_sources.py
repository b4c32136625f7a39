"""
Transaction source tests: sales, service jobs and expenses.
"""

import pytest

from conftest import local_iso
from watchshop.extensions import db
from watchshop.models import AuditEvent, Sale
from watchshop.services import expense_service, sales_service, service_job_service
from watchshop.services.sales_service import SaleError
from watchshop.services.service_job_service import ServiceJobError
from watchshop.services.ledger_service import compute_ledger
from watchshop.validation import ConflictError, ValidationError


DAY = "2024-03-01"


class TestSales:

    def test_record_generates_invoice_number(self, seed):
        sale = sales_service.record_sale(
            {"amount": "1500", "payment_method": "Card", "occurred_at": local_iso(DAY, 10)},
            seed["staff"].id,
        )
        assert sale.invoice_number.startswith("INV-")
        assert sale.status == "completed"
        assert sale.amount_cents == 150000
        assert db.session.query(AuditEvent).filter_by(event_type="sale.recorded", entity_id=sale.id).count() == 1

    def test_duplicate_invoice_number(self, seed):
        payload = {"amount": "10", "payment_method": "Cash", "invoice_number": "INV-1", "occurred_at": local_iso(DAY, 10)}
        sales_service.record_sale(payload, None)
        with pytest.raises(ConflictError):
            sales_service.record_sale(payload, None)

    def test_defaults_to_now(self, seed):
        sale = sales_service.record_sale({"amount": "10", "payment_method": "Cash"}, None)
        assert sale.occurred_at is not None

    def test_cancel_removes_from_ledger(self, seed):
        sale = sales_service.record_sale(
            {"amount": "100", "payment_method": "Cash", "occurred_at": local_iso(DAY, 10)}, None
        )
        assert compute_ledger(DAY).sales_total_cents == 10000

        cancelled = sales_service.cancel_sale(sale.id, seed["manager"].id, "wrong strap")
        assert cancelled.status == "cancelled"
        assert cancelled.status_reason == "wrong strap"
        assert compute_ledger(DAY).sales_total_cents == 0

    def test_refund_then_cancel_rejected(self, seed):
        sale = sales_service.record_sale(
            {"amount": "100", "payment_method": "Cash", "occurred_at": local_iso(DAY, 10)}, None
        )
        sales_service.refund_sale(sale.id, None)
        with pytest.raises(SaleError):
            sales_service.cancel_sale(sale.id, None)
        assert db.session.get(Sale, sale.id).status == "refunded"

    def test_missing_sale(self, seed):
        with pytest.raises(SaleError, match="not found"):
            sales_service.cancel_sale(12345, None)

    def test_list_by_business_date(self, seed):
        sales_service.record_sale({"amount": "1", "payment_method": "Cash", "occurred_at": local_iso(DAY, 23, 30)}, None)
        sales_service.record_sale({"amount": "2", "payment_method": "Cash", "occurred_at": local_iso("2024-03-02", 0, 30)}, None)
        assert [s.amount_cents for s in sales_service.list_sales(DAY)] == [100]


class TestServiceJobs:

    def test_lifecycle_and_payment(self, seed):
        job = service_job_service.open_service_job(
            {"service_type": "repair", "customer_name": "K. Rao", "amount": "800"}, seed["staff"].id
        )
        assert job.status == "pending"
        assert not job.is_paid

        job = service_job_service.update_service_status(job.id, "in-progress", None)
        job = service_job_service.update_service_status(job.id, "on-hold", None)
        job = service_job_service.update_service_status(job.id, "in-progress", None)
        job = service_job_service.update_service_status(job.id, "completed", None)
        assert job.completed_at is not None
        assert compute_ledger(DAY).services_count == 0

        job = service_job_service.record_service_payment(
            job.id, {"payment_method": "Card", "amount": "750", "occurred_at": local_iso(DAY, 17)}, None
        )
        assert job.is_paid
        assert job.amount_cents == 75000
        assert compute_ledger(DAY).services_total_cents == 75000

    def test_completed_is_final(self, seed):
        job = service_job_service.open_service_job({}, None)
        service_job_service.update_service_status(job.id, "completed", None)
        with pytest.raises(ServiceJobError):
            service_job_service.update_service_status(job.id, "in-progress", None)

    def test_unknown_status(self, seed):
        job = service_job_service.open_service_job({}, None)
        with pytest.raises(ValidationError):
            service_job_service.update_service_status(job.id, "shipped", None)

    def test_payment_recorded_once(self, seed):
        job = service_job_service.open_service_job({"amount": "100"}, None)
        payment = {"payment_method": "Cash", "occurred_at": local_iso(DAY, 9)}
        service_job_service.record_service_payment(job.id, payment, None)
        with pytest.raises(ServiceJobError, match="already recorded"):
            service_job_service.record_service_payment(job.id, payment, None)

    def test_cancelled_job_cannot_be_paid(self, seed):
        job = service_job_service.open_service_job({"amount": "100"}, None)
        service_job_service.cancel_service_job(job.id, None, "customer collected unrepaired")
        with pytest.raises(ServiceJobError):
            service_job_service.record_service_payment(job.id, {"payment_method": "Cash"}, None)

    def test_cancelling_paid_job_on_open_day_removes_income(self, seed):
        job = service_job_service.open_service_job({"amount": "100"}, None)
        service_job_service.record_service_payment(
            job.id, {"payment_method": "UPI", "occurred_at": local_iso(DAY, 9)}, None
        )
        service_job_service.cancel_service_job(job.id, None)
        assert compute_ledger(DAY).services_total_cents == 0


class TestExpenses:

    def test_record_and_list(self, seed):
        expense_service.record_expense(
            {"description": "Electricity", "category": "utilities", "amount": "1200",
             "payment_method": "Bank Transfer", "occurred_at": local_iso(DAY, 9)},
            seed["manager"].id,
        )
        expense_service.record_expense(
            {"description": "Tea", "amount": "40", "payment_method": "Cash", "occurred_at": local_iso(DAY, 16)},
            None,
        )
        expenses = expense_service.list_expenses(DAY)
        assert [e.category for e in expenses] == ["utilities", "miscellaneous"]
        assert [e.description for e in expense_service.list_expenses(DAY, "utilities")] == ["Electricity"]
        assert expenses[0].to_dict()["created_by"] == "manager"

    def test_invalid_payload(self, seed):
        with pytest.raises(ValidationError):
            expense_service.record_expense({"amount": "10", "payment_method": "Cash"}, None)
