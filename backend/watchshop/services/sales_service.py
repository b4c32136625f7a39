# Overview: Service-layer operations for counter sales; encapsulates business logic and database work.

"""
Sales

WHY: Sales are the main income source of the ledger. A sale is recorded
as completed; cancelling or refunding it takes it out of its day's totals,
so every write checks that the sale's business date is still open.
"""

from __future__ import annotations

import secrets
from datetime import date, datetime, tzinfo

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale
from ..models.transactions import SALE_CANCELLED, SALE_COMPLETED, SALE_REFUNDED
from ..validation import ConflictError, validate_transaction
from .audit_service import append_audit_event
from .cob_service import ensure_timestamp_open
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import business_timezone
from watchshop.time_utils import business_day_window, parse_business_date, utcnow


class SaleError(Exception):
    """Raised when a sale operation violates the sale lifecycle."""
    pass


def generate_invoice_number(occurred_at: datetime) -> str:
    return f"INV-{occurred_at:%Y%m%d}-{secrets.token_hex(3).upper()}"


def record_sale(payload: dict, user_id: int | None, *, tz: str | tzinfo | None = None) -> Sale:
    """
    Validate and record a completed sale.

    Raises:
        ValidationError: bad payload
        DateClosed: occurred_at falls on a closed business date
        ConflictError: duplicate invoice number
    """
    data = validate_transaction("sale", payload)
    occurred_at = data.get("occurred_at") or utcnow()
    ensure_timestamp_open(occurred_at, tz)

    invoice_number = data.get("invoice_number") or generate_invoice_number(occurred_at)
    if db.session.query(Sale.id).filter_by(invoice_number=invoice_number).first():
        raise ConflictError(f"Invoice number {invoice_number} already exists")

    sale = Sale(
        invoice_number=invoice_number,
        customer_name=data.get("customer_name"),
        item_description=data.get("item_description"),
        amount_cents=data["amount_cents"],
        payment_method=data["payment_method"],
        status=SALE_COMPLETED,
        occurred_at=occurred_at,
        created_by_user_id=user_id,
    )
    db.session.add(sale)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Invoice number {invoice_number} already exists")

    append_audit_event(
        event_type="sale.recorded",
        event_category="sales",
        entity_type="sale",
        entity_id=sale.id,
        actor_user_id=user_id,
        occurred_at=occurred_at,
        payload={"amount_cents": sale.amount_cents, "payment_method": sale.payment_method},
    )
    db.session.commit()

    current_app.logger.info("Recorded sale %s (%s cents, %s)", sale.invoice_number, sale.amount_cents, sale.payment_method)
    return sale


def _change_status(sale_id: int, new_status: str, user_id: int | None, reason: str | None, tz) -> Sale:
    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise SaleError("Sale not found")
        if sale.status != SALE_COMPLETED:
            raise SaleError(f"Sale is {sale.status}; only completed sales can be {new_status}")

        ensure_timestamp_open(sale.occurred_at, tz)

        now = utcnow()
        sale.status = new_status
        sale.status_changed_at = now
        sale.status_changed_by_user_id = user_id
        sale.status_reason = reason

        append_audit_event(
            event_type=f"sale.{new_status}",
            event_category="sales",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=user_id,
            occurred_at=now,
            note=reason,
        )
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info("Sale %s marked %s", sale.invoice_number, new_status)
    return sale


def cancel_sale(sale_id: int, user_id: int | None, reason: str | None = None, *, tz=None) -> Sale:
    return _change_status(sale_id, SALE_CANCELLED, user_id, reason, tz)


def refund_sale(sale_id: int, user_id: int | None, reason: str | None = None, *, tz=None) -> Sale:
    return _change_status(sale_id, SALE_REFUNDED, user_id, reason, tz)


def list_sales(business_date: date | str | None = None, status: str | None = None, *, tz=None) -> list[Sale]:
    query = db.session.query(Sale)
    if business_date is not None:
        start, end = business_day_window(parse_business_date(business_date), business_timezone(tz))
        query = query.filter(Sale.occurred_at >= start, Sale.occurred_at < end)
    if status:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.occurred_at.asc(), Sale.id.asc()).all()
