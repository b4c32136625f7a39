"""
Close-of-business tests.

Verifies:
- OPEN -> CLOSED transition and the frozen summary
- AlreadyClosed / InvalidDate rejections
- Balance chain across consecutive closures
- Compensating re-check when the day changes mid-closure
- Closed dates refuse source writes (DateClosed)
"""

from datetime import datetime, timedelta

import pytest

from conftest import days_from_today, local_dt, local_iso
from watchshop.extensions import db
from watchshop.models import AuditEvent, COBRecord, Sale
from watchshop.services import (
    cob_service,
    expense_service,
    sales_service,
    service_job_service,
)
from watchshop.services.ledger_errors import AlreadyClosed, DataUnavailable, DateClosed, InvalidDate
from watchshop.services.ledger_service import LedgerEntry, TransactionKind, compute_ledger


DAY = "2024-03-01"


def record_sale(amount, method, when, user_id=None):
    return sales_service.record_sale(
        {"amount": amount, "payment_method": method, "occurred_at": when}, user_id
    )


def record_expense(amount, method, when, user_id=None):
    return expense_service.record_expense(
        {"description": "Shop supplies", "amount": amount, "payment_method": method, "occurred_at": when},
        user_id,
    )


# =============================================================================
# STATE MACHINE
# =============================================================================


class TestCloseBusinessDay:

    def test_close_open_day(self, seed):
        manager = seed["manager"]
        record_sale("1000", "Cash", local_iso(DAY, 10))

        assert cob_service.get_business_day_state(DAY) == cob_service.STATE_OPEN
        record = cob_service.close_business_day(DAY, "Drawer counted", manager.id)

        assert cob_service.get_business_day_state(DAY) == cob_service.STATE_CLOSED
        assert record.business_date.isoformat() == DAY
        assert record.notes == "Drawer counted"
        assert record.closed_by_user_id == manager.id
        assert record.closed_at is not None
        assert record.summary["salesTotal"] == "1000.00"
        assert record.closing_cash_balance_cents == 100000

    def test_snapshot_matches_live_computation(self, seed):
        record_sale("1000", "Cash", local_iso(DAY, 10))
        record_expense("200", "UPI", local_iso(DAY, 11))

        record = cob_service.close_business_day(DAY, None, seed["manager"].id)
        assert record.summary == compute_ledger(DAY).to_dict()

    def test_zero_transaction_day_can_be_closed(self, seed):
        record = cob_service.close_business_day(DAY, None, seed["manager"].id)
        assert record.summary["netIncome"] == "0.00"
        assert record.closing_cash_balance_cents == 0
        assert record.closing_account_balance_cents == 0

    def test_today_can_be_closed(self, seed):
        today = days_from_today(0)
        record = cob_service.close_business_day(today, None, seed["manager"].id)
        assert record.business_date == today

    def test_closure_writes_audit_event(self, seed):
        record = cob_service.close_business_day(DAY, "eod", seed["manager"].id)
        event = db.session.query(AuditEvent).filter_by(event_type="ledger.cob_closed").one()
        assert event.entity_id == record.id
        assert event.actor_user_id == seed["manager"].id
        assert event.note == "eod"

    def test_injected_clock(self, seed):
        now = local_dt(DAY, 21)
        record = cob_service.close_business_day(DAY, None, seed["manager"].id, now=now)
        assert record.closed_at == now


class TestRejections:

    def test_already_closed(self, seed):
        record_sale("250", "Cash", local_iso(DAY, 10))
        frozen = cob_service.close_business_day(DAY, None, seed["manager"].id).summary_json
        with pytest.raises(AlreadyClosed):
            cob_service.close_business_day(DAY, "again", seed["admin"].id)
        assert db.session.query(COBRecord).count() == 1

        stored = cob_service.get_cob_record(DAY)
        assert stored.notes is None
        assert stored.closed_by_user_id == seed["manager"].id
        assert stored.summary_json == frozen

    def test_future_date_rejected(self, seed):
        with pytest.raises(InvalidDate):
            cob_service.close_business_day(days_from_today(1), None, seed["manager"].id)
        assert db.session.query(COBRecord).count() == 0

    def test_future_relative_to_injected_clock(self, seed):
        with pytest.raises(InvalidDate):
            cob_service.close_business_day("2024-03-02", None, seed["manager"].id, now=local_dt(DAY, 23, 59))

    def test_date_before_latest_closure_rejected(self, seed):
        cob_service.close_business_day("2024-03-05", None, seed["manager"].id)
        with pytest.raises(InvalidDate):
            cob_service.close_business_day(DAY, None, seed["manager"].id)

    def test_malformed_date(self, seed):
        with pytest.raises(ValueError):
            cob_service.close_business_day("2024-03-01T10:00", None, seed["manager"].id)

    def test_unique_constraint_maps_to_already_closed(self, seed, monkeypatch):
        cob_service.close_business_day(DAY, None, seed["manager"].id)
        # Simulate losing the race: the pre-check saw no record
        monkeypatch.setattr(cob_service, "get_cob_record", lambda day: None)
        with pytest.raises(AlreadyClosed):
            cob_service.close_business_day(DAY, None, seed["admin"].id)
        assert db.session.query(COBRecord).count() == 1


class TestBalanceChain:

    def test_next_day_opens_with_previous_closing(self, seed):
        uid = seed["manager"].id
        record_sale("1000", "Cash", local_iso(DAY, 10))
        record_sale("300", "Card", local_iso(DAY, 11))
        cob_service.close_business_day(DAY, None, uid)

        record_expense("150", "Cash", local_iso("2024-03-02", 9))
        summary = compute_ledger("2024-03-02")
        assert summary.opening_cash_balance_cents == 100000
        assert summary.opening_account_balance_cents == 30000
        assert summary.cash_balance_cents == 85000
        assert summary.account_balance_cents == 30000

    def test_empty_gap_days_carry_latest_closure(self, seed):
        uid = seed["manager"].id
        record_sale("500", "UPI", local_iso(DAY, 10))
        cob_service.close_business_day(DAY, None, uid)

        record = cob_service.close_business_day("2024-03-04", None, uid)
        assert record.summary["openingAccountBalance"] == "500.00"
        assert record.closing_account_balance_cents == 50000

    def test_close_past_unclosed_trading_day_rejected(self, seed):
        uid = seed["manager"].id
        record_sale("100", "Cash", local_iso(DAY, 10))
        cob_service.close_business_day(DAY, None, uid)
        record_sale("200", "Cash", local_iso("2024-03-02", 10))
        record_sale("50", "Cash", local_iso("2024-03-03", 10))

        with pytest.raises(InvalidDate, match="2024-03-02"):
            cob_service.close_business_day("2024-03-03", None, uid)
        assert cob_service.get_business_day_state("2024-03-03") == cob_service.STATE_OPEN
        assert cob_service.latest_closed_date().isoformat() == DAY

        # the skipped day is still writable and closable
        record_sale("5", "Cash", local_iso("2024-03-02", 18))
        cob_service.close_business_day("2024-03-02", None, uid)
        record = cob_service.close_business_day("2024-03-03", None, uid)
        assert record.summary["cashBalance"] == "355.00"

    def test_first_closure_rejected_when_earlier_days_traded(self, seed):
        uid = seed["manager"].id
        record_expense("40", "Cash", local_iso("2024-02-28", 10))
        with pytest.raises(InvalidDate, match="2024-02-28"):
            cob_service.close_business_day(DAY, None, uid)
        assert db.session.query(COBRecord).count() == 0

    def test_cancelled_sale_in_gap_does_not_block(self, seed):
        uid = seed["manager"].id
        cob_service.close_business_day(DAY, None, uid)
        sale = record_sale("80", "Cash", local_iso("2024-03-02", 10))
        sales_service.cancel_sale(sale.id, None)

        record = cob_service.close_business_day("2024-03-03", None, uid)
        assert record.closing_cash_balance_cents == 0


class TestRecheck:

    def _source(self, amounts):
        """Source returning a different amount on each call for DAY, from the list."""
        calls = {"n": 0}

        def fetch(start, end):
            when = local_dt(DAY, 10)
            if not start <= when < end:
                return []
            amount = amounts[min(calls["n"], len(amounts) - 1)]
            calls["n"] += 1
            return [LedgerEntry(TransactionKind.SALE, 1, amount, "Cash", when)]

        return fetch, calls

    def test_retry_succeeds_once_day_settles(self, seed):
        fetch, calls = self._source([100, 200, 200, 200])
        record = cob_service.close_business_day(
            DAY, None, seed["manager"].id, sources={TransactionKind.SALE: fetch}
        )
        assert record.summary["salesTotal"] == "2.00"
        assert calls["n"] == 4

    def test_gives_up_when_day_keeps_changing(self, seed):
        fetch, calls = self._source(list(range(1, 100)))
        with pytest.raises(DataUnavailable):
            cob_service.close_business_day(
                DAY, None, seed["manager"].id,
                sources={TransactionKind.SALE: fetch},
                recheck_attempts=2,
            )
        assert calls["n"] == 4
        assert cob_service.get_cob_record(DAY) is None
        assert db.session.query(AuditEvent).filter_by(event_type="ledger.cob_closed").count() == 0

    def test_source_failure_leaves_day_open(self, seed):
        from sqlalchemy.exc import OperationalError

        def broken(start, end):
            raise OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(DataUnavailable):
            cob_service.close_business_day(DAY, None, seed["manager"].id, sources={TransactionKind.SALE: broken})
        assert cob_service.get_business_day_state(DAY) == cob_service.STATE_OPEN


# =============================================================================
# CLOSED DATES REFUSE WRITES
# =============================================================================


class TestClosedDateWrites:

    @pytest.fixture
    def closed(self, seed):
        sale = record_sale("1000", "Cash", local_iso(DAY, 10))
        cob_service.close_business_day(DAY, None, seed["manager"].id)
        return sale

    def test_new_sale_on_closed_date(self, closed):
        with pytest.raises(DateClosed):
            record_sale("10", "Cash", local_iso(DAY, 18))

    def test_new_sale_before_closed_date(self, closed):
        with pytest.raises(DateClosed):
            record_sale("10", "Cash", local_iso("2024-02-20", 18))

    def test_new_sale_after_closed_date(self, closed):
        sale = record_sale("10", "Cash", local_iso("2024-03-02", 9))
        assert sale.id is not None

    def test_expense_on_closed_date(self, closed):
        with pytest.raises(DateClosed):
            record_expense("10", "Cash", local_iso(DAY, 18))

    def test_cancel_sale_on_closed_date(self, closed):
        with pytest.raises(DateClosed):
            sales_service.cancel_sale(closed.id, None, "customer changed mind")
        assert db.session.get(Sale, closed.id).status == "completed"

    def test_refund_sale_on_closed_date(self, closed):
        with pytest.raises(DateClosed):
            sales_service.refund_sale(closed.id, None)

    def test_service_payment_on_closed_date(self, closed):
        job = service_job_service.open_service_job({"service_type": "battery", "amount": "500"}, None)
        with pytest.raises(DateClosed):
            service_job_service.record_service_payment(
                job.id, {"payment_method": "UPI", "occurred_at": local_iso(DAY, 12)}, None
            )

    def test_cancel_paid_service_on_closed_date(self, seed):
        job = service_job_service.open_service_job({"amount": "500"}, None)
        service_job_service.record_service_payment(
            job.id, {"payment_method": "UPI", "occurred_at": local_iso(DAY, 12)}, None
        )
        cob_service.close_business_day(DAY, None, seed["manager"].id)
        with pytest.raises(DateClosed):
            service_job_service.cancel_service_job(job.id, None)

    def test_frozen_summary_survives_later_writes(self, closed):
        record_sale("999", "Cash", local_iso("2024-03-02", 9))
        assert cob_service.get_cob_record(DAY).summary["salesTotal"] == "1000.00"


class TestQueries:

    def test_list_and_latest(self, seed):
        uid = seed["manager"].id
        for day in ("2024-03-01", "2024-03-02", "2024-03-03"):
            cob_service.close_business_day(day, None, uid)

        assert cob_service.latest_closed_date().isoformat() == "2024-03-03"
        dates = [r.business_date.isoformat() for r in cob_service.list_cob_records("2024-03-02", None)]
        assert dates == ["2024-03-02", "2024-03-03"]
        assert len(cob_service.list_cob_records()) == 3

    def test_latest_closed_date_none_when_nothing_closed(self, db_session):
        assert cob_service.latest_closed_date() is None
        cob_service.ensure_date_open(datetime(2024, 3, 1).date())
