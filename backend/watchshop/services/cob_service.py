# Overview: Close-of-business state machine; freezes a day's ledger and carries balances forward.

"""
Close-of-Business (COB)

WHY: Once a day is closed its totals are the books. The closure stores the
server-computed LedgerSummary and the closing balances the next day opens
with, and from then on the transaction sources refuse writes dated on or
before the latest closed date.

STATE MACHINE (per business date):
    OPEN --close_business_day--> CLOSED   (terminal, no reopen)

RACES:
- Two closures of the same date: the unique constraint on
  cob_records.business_date lets exactly one commit; the loser gets
  AlreadyClosed.
- A write landing while the day is being closed: after the record is
  flushed the ledger is recomputed; if it moved, the closure is rolled back
  and retried (COB_RECHECK_ATTEMPTS), then fails with DataUnavailable.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, tzinfo
from typing import Mapping, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import COBRecord
from .audit_service import append_audit_event
from .ledger_errors import AlreadyClosed, DataUnavailable, DateClosed, InvalidDate, LedgerError
from .ledger_service import LedgerSource, TransactionKind, business_timezone, collect_entries, compute_ledger
from watchshop.time_utils import business_date_of, business_day_window, business_today, parse_business_date, utcnow


STATE_OPEN = "OPEN"
STATE_CLOSED = "CLOSED"


# =============================================================================
# QUERIES
# =============================================================================

def get_cob_record(business_date: date | str) -> COBRecord | None:
    day = parse_business_date(business_date)
    return db.session.query(COBRecord).filter_by(business_date=day).first()


def get_business_day_state(business_date: date | str) -> str:
    return STATE_CLOSED if get_cob_record(business_date) else STATE_OPEN


def latest_closed_date() -> date | None:
    return db.session.query(db.func.max(COBRecord.business_date)).scalar()


def list_cob_records(start: date | str | None = None, end: date | str | None = None) -> list[COBRecord]:
    """Closure history, oldest first, optionally bounded (inclusive)."""
    query = db.session.query(COBRecord)
    if start is not None:
        query = query.filter(COBRecord.business_date >= parse_business_date(start))
    if end is not None:
        query = query.filter(COBRecord.business_date <= parse_business_date(end))
    return query.order_by(COBRecord.business_date.asc()).all()


def ensure_date_open(business_date: date) -> None:
    """
    Guard for source writes.

    Raises DateClosed when business_date is on or before the latest closed
    date (closures form a chain; everything up to the last one is frozen).
    """
    latest = latest_closed_date()
    if latest is not None and business_date <= latest:
        current_app.logger.warning(
            "Rejected write into closed business date %s (closed through %s)", business_date, latest
        )
        raise DateClosed(f"Business date {business_date.isoformat()} is closed")


def ensure_timestamp_open(occurred_at: datetime, tz: str | tzinfo | None = None) -> date:
    """ensure_date_open for a UTC-naive timestamp; returns its business date."""
    day = business_date_of(occurred_at, business_timezone(tz))
    ensure_date_open(day)
    return day


def unclosed_days_with_entries(
    business_date: date,
    latest: date | None,
    *,
    tz: str | tzinfo | None = None,
    sources: Mapping[TransactionKind, LedgerSource] | None = None,
) -> list[date]:
    """
    Business dates strictly between the latest closure and business_date
    that hold eligible entries (all earlier history when nothing is closed).

    Closing past any of them is refused: the day would freeze with its
    money outside every closing balance.
    """
    zone = business_timezone(tz)
    end, _ = business_day_window(business_date, zone)
    if latest is None:
        start = datetime.min
    else:
        start, _ = business_day_window(latest + timedelta(days=1), zone)
    if start >= end:
        return []
    days = {business_date_of(entry.occurred_at, zone) for entry in collect_entries(start, end, sources)}
    return sorted(days)


# =============================================================================
# CLOSURE
# =============================================================================

def close_business_day(
    business_date: date | str,
    notes: Optional[str],
    closed_by_user_id: int,
    *,
    tz: str | tzinfo | None = None,
    sources: Mapping[TransactionKind, LedgerSource] | None = None,
    now: Optional[datetime] = None,
    recheck_attempts: Optional[int] = None,
) -> COBRecord:
    """
    Close a business date.

    Args:
        business_date: Date to close (date or "YYYY-MM-DD")
        notes: Free-text handover notes
        closed_by_user_id: Actor (taken from the session, never the body)
        tz / sources: Passed through to compute_ledger
        now: Clock override for "today" and closed_at
        recheck_attempts: Defaults to COB_RECHECK_ATTEMPTS

    Raises:
        ValueError: malformed date
        AlreadyClosed: a record for the date exists (or won the race)
        InvalidDate: date is after today, or before the latest closure,
            or an earlier unclosed date has transactions
        DataUnavailable: sources failed, or the day kept changing
    """
    day = parse_business_date(business_date)
    zone = business_timezone(tz)
    now = now or utcnow()

    if get_cob_record(day) is not None:
        raise AlreadyClosed(f"Business date {day.isoformat()} is already closed")

    today = business_today(zone, now=now)
    if day > today:
        raise InvalidDate(f"Cannot close {day.isoformat()}: it is after today ({today.isoformat()})")

    latest = latest_closed_date()
    if latest is not None and day < latest:
        raise InvalidDate(
            f"Cannot close {day.isoformat()}: business dates through {latest.isoformat()} are already closed"
        )

    pending = unclosed_days_with_entries(day, latest, tz=zone, sources=sources)
    if pending:
        listed = ", ".join(d.isoformat() for d in pending)
        current_app.logger.warning("Refused to close %s past unclosed trading days: %s", day.isoformat(), listed)
        raise InvalidDate(
            f"Cannot close {day.isoformat()}: earlier business dates have unclosed transactions ({listed}); close them first"
        )

    if recheck_attempts is None:
        recheck_attempts = current_app.config.get("COB_RECHECK_ATTEMPTS", 3)
    attempts = max(1, int(recheck_attempts))

    for attempt in range(1, attempts + 1):
        try:
            record = _attempt_close(day, notes, closed_by_user_id, zone, sources, now)
        except LedgerError:
            db.session.rollback()
            raise

        if record is not None:
            current_app.logger.info(
                "Closed business date %s (net %s, cash %s, account %s) by user %s",
                day.isoformat(),
                record.summary["netIncome"],
                record.summary["cashBalance"],
                record.summary["accountBalance"],
                closed_by_user_id,
            )
            return record

        current_app.logger.warning(
            "Ledger for %s changed during closure, retrying (%s/%s)", day.isoformat(), attempt, attempts
        )

    raise DataUnavailable(
        f"Ledger for {day.isoformat()} kept changing during closure, try again"
    )


def _attempt_close(day, notes, closed_by_user_id, zone, sources, now) -> COBRecord | None:
    """
    One closure attempt. Returns the committed record, or None (after
    rolling back) when the recomputed summary no longer matches.
    """
    summary = compute_ledger(day, tz=zone, sources=sources)
    frozen = summary.to_dict()

    record = COBRecord(
        business_date=day,
        summary_json=json.dumps(frozen, sort_keys=True),
        closing_cash_balance_cents=summary.cash_balance_cents,
        closing_account_balance_cents=summary.account_balance_cents,
        notes=notes or None,
        closed_by_user_id=closed_by_user_id,
        closed_at=now,
    )
    db.session.add(record)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise AlreadyClosed(f"Business date {day.isoformat()} is already closed")

    check = compute_ledger(day, tz=zone, sources=sources)
    if check.to_dict(include_entries=True) != summary.to_dict(include_entries=True):
        db.session.rollback()
        return None

    append_audit_event(
        event_type="ledger.cob_closed",
        event_category="ledger",
        entity_type="cob_record",
        entity_id=record.id,
        actor_user_id=closed_by_user_id,
        occurred_at=now,
        note=notes,
        payload={
            "date": frozen["date"],
            "netIncome": frozen["netIncome"],
            "cashBalance": frozen["cashBalance"],
            "accountBalance": frozen["accountBalance"],
        },
    )

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise AlreadyClosed(f"Business date {day.isoformat()} is already closed")

    return record
