# Overview: Service-layer operations for shop expenses; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date, tzinfo

from flask import current_app

from ..extensions import db
from ..models import Expense
from ..validation import validate_transaction
from .audit_service import append_audit_event
from .cob_service import ensure_timestamp_open
from .ledger_service import business_timezone
from watchshop.time_utils import business_day_window, parse_business_date, utcnow


def record_expense(payload: dict, user_id: int | None, *, tz: str | tzinfo | None = None) -> Expense:
    """
    Validate and record an expense.

    Expenses have no lifecycle: once the day is closed they are frozen with it.
    """
    data = validate_transaction("expense", payload)
    occurred_at = data.get("occurred_at") or utcnow()
    ensure_timestamp_open(occurred_at, tz)

    expense = Expense(
        description=data["description"],
        category=data.get("category", "miscellaneous"),
        amount_cents=data["amount_cents"],
        payment_method=data["payment_method"],
        occurred_at=occurred_at,
        created_by_user_id=user_id,
    )
    db.session.add(expense)
    db.session.flush()

    append_audit_event(
        event_type="expense.recorded",
        event_category="expenses",
        entity_type="expense",
        entity_id=expense.id,
        actor_user_id=user_id,
        occurred_at=occurred_at,
        payload={"amount_cents": expense.amount_cents, "category": expense.category},
    )
    db.session.commit()

    current_app.logger.info(
        "Recorded expense %s (%s cents, %s)", expense.id, expense.amount_cents, expense.payment_method
    )
    return expense


def list_expenses(business_date: date | str | None = None, category: str | None = None, *, tz=None) -> list[Expense]:
    query = db.session.query(Expense)
    if business_date is not None:
        start, end = business_day_window(parse_business_date(business_date), business_timezone(tz))
        query = query.filter(Expense.occurred_at >= start, Expense.occurred_at < end)
    if category:
        query = query.filter(Expense.category == category)
    return query.order_by(Expense.occurred_at.asc(), Expense.id.asc()).all()
