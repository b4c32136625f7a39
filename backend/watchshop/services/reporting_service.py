# Overview: Service-layer operations for reporting; monthly roll-ups and CSV exports of the ledger.

from __future__ import annotations

import csv
import io
from datetime import date, tzinfo
from typing import Mapping

from ..extensions import db
from ..models import COBRecord
from ..validation import format_cents
from .ledger_service import (
    LedgerSource,
    LedgerSummary,
    TransactionKind,
    business_timezone,
    collect_entries,
    summarize_entries,
)
from watchshop.time_utils import business_day_window, to_utc_z


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


EXPORT_SECTIONS = ("summary", "sales", "services", "expenses")

_SECTION_KINDS = {
    "sales": TransactionKind.SALE,
    "services": TransactionKind.SERVICE,
    "expenses": TransactionKind.EXPENSE,
}


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ReportError("month must be between 1 and 12")
    if not 1 <= year <= 9998:
        raise ReportError("year is out of range")
    first = date(year, month, 1)
    following = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return first, following


def monthly_report(
    year: int,
    month: int,
    *,
    tz: str | tzinfo | None = None,
    sources: Mapping[TransactionKind, LedgerSource] | None = None,
) -> dict:
    """
    Count and amount per category (sales, services, expenses) over one
    calendar month of business dates, with the month's payment breakdown.

    Same eligibility rules as the daily ledger; balances are not carried
    (a month is not a closing unit).
    """
    first, following = _month_bounds(year, month)
    zone = business_timezone(tz)
    start, _ = business_day_window(first, zone)
    end, _ = business_day_window(following, zone)

    summary = summarize_entries(first, collect_entries(start, end, sources))

    closed_days = db.session.query(db.func.count(COBRecord.id)).filter(
        COBRecord.business_date >= first,
        COBRecord.business_date < following,
    ).scalar()

    breakdown = summary.to_dict()["paymentBreakdown"]
    return {
        "year": year,
        "month": month,
        "start": first.isoformat(),
        "end": following.isoformat(),
        "sales": {"count": summary.sales_count, "amount": format_cents(summary.sales_total_cents)},
        "services": {"count": summary.services_count, "amount": format_cents(summary.services_total_cents)},
        "expenses": {"count": summary.expenses_count, "amount": format_cents(summary.expenses_total_cents)},
        "netIncome": format_cents(summary.net_income_cents),
        "paymentBreakdown": breakdown,
        "closedDays": closed_days or 0,
    }


# =============================================================================
# CSV EXPORTS
# =============================================================================

def summary_csv(summary: dict) -> str:
    """
    Two-column CSV of a LedgerSummary dict (live, or frozen from a COBRecord).
    """
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(["Field", "Value"])
    writer.writerow(["Date", summary["date"]])
    writer.writerow(["Sales Total", summary["salesTotal"]])
    writer.writerow(["Sales Count", summary.get("salesCount", "")])
    writer.writerow(["Services Total", summary["servicesTotal"]])
    writer.writerow(["Services Count", summary.get("servicesCount", "")])
    writer.writerow(["Expenses Total", summary["expensesTotal"]])
    writer.writerow(["Expenses Count", summary.get("expensesCount", "")])
    writer.writerow(["Net Income", summary["netIncome"]])
    writer.writerow(["Opening Cash Balance", summary.get("openingCashBalance", "")])
    writer.writerow(["Opening Account Balance", summary.get("openingAccountBalance", "")])
    writer.writerow(["Cash Balance", summary["cashBalance"]])
    writer.writerow(["Account Balance", summary["accountBalance"]])

    breakdown = summary.get("paymentBreakdown", {})
    for side, label in (("income", "Income"), ("expenses", "Expenses")):
        for method, totals in breakdown.get(side, {}).items():
            writer.writerow([f"{label} - {method}", f"{totals['amount']} ({totals['count']})"])
    return out.getvalue()


def section_csv(summary: LedgerSummary, section: str) -> str:
    """One row per ledger entry of the requested kind."""
    kind = _SECTION_KINDS.get(section)
    if kind is None:
        raise ReportError(f"section must be one of: {', '.join(EXPORT_SECTIONS)}")

    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(["ID", "Reference", "Occurred At", "Payment Method", "Amount"])
    for entry in summary.entries_of(kind):
        writer.writerow([
            entry.record_id,
            entry.reference or "",
            to_utc_z(entry.occurred_at),
            entry.payment_method,
            format_cents(entry.amount_cents),
        ])
    return out.getvalue()
