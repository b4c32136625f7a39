# Overview: Service-layer operations for the daily ledger; aggregates transaction sources per business date.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Sale, ServiceJob, Expense, COBRecord
from ..models.transactions import (
    PAYMENT_CASH,
    SALE_COMPLETED,
    SERVICE_CANCELLED,
)
from ..validation import format_cents
from .ledger_errors import DataUnavailable
from watchshop.time_utils import business_day_window, parse_business_date, to_utc_z
"""
Ledger invariants (authoritative)

- A business date is the local calendar day [D 00:00, D+1 00:00) in the
  configured BUSINESS_TIMEZONE; timestamps are stored UTC-naive.
- Eligibility: completed sales; non-cancelled services with a recorded
  payment; every expense.
- net income = sales + services - expenses.
- Cash bucket is method "Cash"; every other method is the account bucket.
- Balances carry forward from the latest COB record strictly before the
  date (0 when none exists).
- All-or-nothing: a failing source fails the whole computation.
- Pure read: nothing is written.
"""


class TransactionKind(str, Enum):
    SALE = "sale"
    SERVICE = "service"
    EXPENSE = "expense"

    @property
    def is_income(self) -> bool:
        return self is not TransactionKind.EXPENSE


@dataclass(frozen=True)
class LedgerEntry:
    """One eligible record, reduced to the shape the ledger needs."""
    kind: TransactionKind
    record_id: int
    amount_cents: int
    payment_method: str
    occurred_at: datetime
    reference: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "id": self.record_id,
            "reference": self.reference,
            "amount": format_cents(self.amount_cents),
            "amount_cents": self.amount_cents,
            "paymentMethod": self.payment_method,
            "occurredAt": to_utc_z(self.occurred_at),
        }


@dataclass
class MethodTotal:
    count: int = 0
    amount_cents: int = 0

    def add(self, amount_cents: int) -> None:
        self.count += 1
        self.amount_cents += amount_cents

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "amount": format_cents(self.amount_cents),
            "amount_cents": self.amount_cents,
        }


@dataclass
class LedgerSummary:
    business_date: date
    sales_total_cents: int = 0
    services_total_cents: int = 0
    expenses_total_cents: int = 0
    sales_count: int = 0
    services_count: int = 0
    expenses_count: int = 0
    income_breakdown: dict[str, MethodTotal] = field(default_factory=dict)
    expense_breakdown: dict[str, MethodTotal] = field(default_factory=dict)
    opening_cash_balance_cents: int = 0
    opening_account_balance_cents: int = 0
    cash_balance_cents: int = 0
    account_balance_cents: int = 0
    entries: list[LedgerEntry] = field(default_factory=list)

    @property
    def income_total_cents(self) -> int:
        return self.sales_total_cents + self.services_total_cents

    @property
    def net_income_cents(self) -> int:
        return self.income_total_cents - self.expenses_total_cents

    def entries_of(self, kind: TransactionKind) -> list[LedgerEntry]:
        return [e for e in self.entries if e.kind is kind]

    def to_dict(self, include_entries: bool = False) -> dict:
        data = {
            "date": self.business_date.isoformat(),
            "salesTotal": format_cents(self.sales_total_cents),
            "servicesTotal": format_cents(self.services_total_cents),
            "expensesTotal": format_cents(self.expenses_total_cents),
            "netIncome": format_cents(self.net_income_cents),
            "salesCount": self.sales_count,
            "servicesCount": self.services_count,
            "expensesCount": self.expenses_count,
            "paymentBreakdown": {
                "income": {m: t.to_dict() for m, t in self.income_breakdown.items()},
                "expenses": {m: t.to_dict() for m, t in self.expense_breakdown.items()},
            },
            "openingCashBalance": format_cents(self.opening_cash_balance_cents),
            "openingAccountBalance": format_cents(self.opening_account_balance_cents),
            "cashBalance": format_cents(self.cash_balance_cents),
            "accountBalance": format_cents(self.account_balance_cents),
        }
        if include_entries:
            data["entries"] = [e.to_dict() for e in self.entries]
        return data


# A source returns the eligible entries whose occurred_at lies in [start, end)
LedgerSource = Callable[[datetime, datetime], list[LedgerEntry]]


# =============================================================================
# DEFAULT SOURCES
# =============================================================================

def fetch_sale_entries(start: datetime, end: datetime) -> list[LedgerEntry]:
    rows = db.session.query(Sale).filter(
        Sale.status == SALE_COMPLETED,
        Sale.occurred_at >= start,
        Sale.occurred_at < end,
    ).order_by(Sale.occurred_at, Sale.id).all()
    return [
        LedgerEntry(TransactionKind.SALE, s.id, s.amount_cents, s.payment_method, s.occurred_at, s.invoice_number)
        for s in rows
    ]


def fetch_service_entries(start: datetime, end: datetime) -> list[LedgerEntry]:
    rows = db.session.query(ServiceJob).filter(
        ServiceJob.status != SERVICE_CANCELLED,
        ServiceJob.payment_method.isnot(None),
        ServiceJob.occurred_at >= start,
        ServiceJob.occurred_at < end,
    ).order_by(ServiceJob.occurred_at, ServiceJob.id).all()
    return [
        LedgerEntry(TransactionKind.SERVICE, j.id, j.amount_cents, j.payment_method, j.occurred_at, j.ticket_number)
        for j in rows
    ]


def fetch_expense_entries(start: datetime, end: datetime) -> list[LedgerEntry]:
    rows = db.session.query(Expense).filter(
        Expense.occurred_at >= start,
        Expense.occurred_at < end,
    ).order_by(Expense.occurred_at, Expense.id).all()
    return [
        LedgerEntry(TransactionKind.EXPENSE, e.id, e.amount_cents, e.payment_method, e.occurred_at, e.description)
        for e in rows
    ]


DEFAULT_SOURCES: Mapping[TransactionKind, LedgerSource] = {
    TransactionKind.SALE: fetch_sale_entries,
    TransactionKind.SERVICE: fetch_service_entries,
    TransactionKind.EXPENSE: fetch_expense_entries,
}

_KIND_ORDER = {kind: i for i, kind in enumerate(TransactionKind)}


# =============================================================================
# AGGREGATION
# =============================================================================

def business_timezone(tz: str | tzinfo | None = None) -> str | tzinfo:
    """Explicit timezone, else the app's BUSINESS_TIMEZONE."""
    if tz is not None:
        return tz
    return current_app.config.get("BUSINESS_TIMEZONE", "UTC")


def collect_entries(
    start: datetime,
    end: datetime,
    sources: Mapping[TransactionKind, LedgerSource] | None = None,
) -> list[LedgerEntry]:
    """
    Read every source for [start, end) and merge into one stable order
    (occurred_at, then kind, then id).

    Raises DataUnavailable if any source fails.
    """
    sources = DEFAULT_SOURCES if sources is None else sources
    entries: list[LedgerEntry] = []
    for kind, fetch in sources.items():
        try:
            entries.extend(fetch(start, end))
        except SQLAlchemyError as exc:
            current_app.logger.exception("Ledger source %s failed", kind.value)
            raise DataUnavailable(f"{kind.value} records are unavailable, try again") from exc
    entries.sort(key=lambda e: (e.occurred_at, _KIND_ORDER[e.kind], e.record_id))
    return entries


def get_prior_closing_balances(business_date: date) -> tuple[int, int]:
    """
    (cash_cents, account_cents) from the latest COB record strictly before
    business_date, or (0, 0) when no earlier closure exists.
    """
    try:
        prior = db.session.query(COBRecord).filter(
            COBRecord.business_date < business_date
        ).order_by(COBRecord.business_date.desc()).first()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Prior closure lookup failed")
        raise DataUnavailable("closing balances are unavailable, try again") from exc

    if prior is None:
        return 0, 0
    return prior.closing_cash_balance_cents, prior.closing_account_balance_cents


def summarize_entries(
    business_date: date,
    entries: Iterable[LedgerEntry],
    opening_cash_cents: int = 0,
    opening_account_cents: int = 0,
) -> LedgerSummary:
    """Fold entries into totals, per-method breakdowns and balances."""
    summary = LedgerSummary(
        business_date=business_date,
        opening_cash_balance_cents=opening_cash_cents,
        opening_account_balance_cents=opening_account_cents,
    )

    cash_delta = 0
    account_delta = 0
    for entry in entries:
        summary.entries.append(entry)
        if entry.kind is TransactionKind.SALE:
            summary.sales_total_cents += entry.amount_cents
            summary.sales_count += 1
        elif entry.kind is TransactionKind.SERVICE:
            summary.services_total_cents += entry.amount_cents
            summary.services_count += 1
        else:
            summary.expenses_total_cents += entry.amount_cents
            summary.expenses_count += 1

        breakdown = summary.income_breakdown if entry.kind.is_income else summary.expense_breakdown
        breakdown.setdefault(entry.payment_method, MethodTotal()).add(entry.amount_cents)

        signed = entry.amount_cents if entry.kind.is_income else -entry.amount_cents
        if entry.payment_method == PAYMENT_CASH:
            cash_delta += signed
        else:
            account_delta += signed

    summary.cash_balance_cents = opening_cash_cents + cash_delta
    summary.account_balance_cents = opening_account_cents + account_delta
    return summary


def compute_ledger(
    business_date: date | str,
    *,
    tz: str | tzinfo | None = None,
    sources: Mapping[TransactionKind, LedgerSource] | None = None,
) -> LedgerSummary:
    """
    Compute the LedgerSummary for one business date.

    Args:
        business_date: Calendar date (date or "YYYY-MM-DD")
        tz: Business timezone; defaults to app config BUSINESS_TIMEZONE
        sources: Transaction sources by kind; defaults to the database tables

    Raises:
        ValueError: malformed date
        DataUnavailable: any source (or the prior-balance lookup) failed
    """
    day = parse_business_date(business_date)
    start, end = business_day_window(day, business_timezone(tz))

    entries = collect_entries(start, end, sources)
    opening_cash, opening_account = get_prior_closing_balances(day)

    return summarize_entries(day, entries, opening_cash, opening_account)
