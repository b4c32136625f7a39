# Overview: Service-layer operations for watch service (repair) jobs; encapsulates business logic and database work.

"""
Service Jobs

WHY: A repair is booked long before it is paid. The workflow status moves
independently of the money; the job enters the ledger on the business date
its payment is recorded, and leaves it again only if cancelled.

LIFECYCLE:
    pending -> in-progress <-> on-hold -> completed
    any non-final state -> cancelled
"""

from __future__ import annotations

import secrets
from datetime import date, tzinfo

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ServiceJob
from ..models.transactions import (
    SERVICE_CANCELLED,
    SERVICE_COMPLETED,
    SERVICE_IN_PROGRESS,
    SERVICE_ON_HOLD,
    SERVICE_PENDING,
    SERVICE_STATUSES,
)
from ..validation import ConflictError, ValidationError, validate_transaction
from .audit_service import append_audit_event
from .cob_service import ensure_timestamp_open
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import business_timezone
from watchshop.time_utils import business_day_window, parse_business_date, utcnow


ALLOWED_TRANSITIONS = {
    SERVICE_PENDING: {SERVICE_IN_PROGRESS, SERVICE_ON_HOLD, SERVICE_COMPLETED, SERVICE_CANCELLED},
    SERVICE_IN_PROGRESS: {SERVICE_ON_HOLD, SERVICE_COMPLETED, SERVICE_CANCELLED},
    SERVICE_ON_HOLD: {SERVICE_IN_PROGRESS, SERVICE_COMPLETED, SERVICE_CANCELLED},
    SERVICE_COMPLETED: set(),
    SERVICE_CANCELLED: set(),
}


class ServiceJobError(Exception):
    """Raised when a service job operation violates its lifecycle."""
    pass


def generate_ticket_number() -> str:
    return f"SRV-{utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def open_service_job(payload: dict, user_id: int | None) -> ServiceJob:
    """
    Book a job in. Unpaid jobs are not in any ledger, so no date check here.
    """
    data = validate_transaction("service", payload)
    ticket_number = data.get("ticket_number") or generate_ticket_number()

    job = ServiceJob(
        ticket_number=ticket_number,
        customer_name=data.get("customer_name"),
        service_type=data.get("service_type", "repair"),
        description=data.get("description"),
        amount_cents=data.get("amount_cents", 0),
        status=SERVICE_PENDING,
        created_by_user_id=user_id,
    )
    db.session.add(job)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Ticket number {ticket_number} already exists")

    append_audit_event(
        event_type="service.opened",
        event_category="services",
        entity_type="service_job",
        entity_id=job.id,
        actor_user_id=user_id,
    )
    db.session.commit()
    return job


def _get_locked(job_id: int) -> ServiceJob:
    job = lock_for_update(db.session.query(ServiceJob).filter_by(id=job_id)).first()
    if not job:
        raise ServiceJobError("Service job not found")
    return job


def update_service_status(job_id: int, new_status: str, user_id: int | None, reason: str | None = None, *, tz=None) -> ServiceJob:
    """
    Move a job through its workflow.

    Cancelling a paid job removes its payment from the ledger, so that is
    only allowed while the payment's business date is open.
    """
    if new_status not in SERVICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SERVICE_STATUSES)}")

    def _op() -> ServiceJob:
        job = _get_locked(job_id)
        if new_status not in ALLOWED_TRANSITIONS[job.status]:
            raise ServiceJobError(f"Cannot move service job from {job.status} to {new_status}")

        if new_status == SERVICE_CANCELLED and job.is_paid:
            ensure_timestamp_open(job.occurred_at, tz)

        now = utcnow()
        job.status = new_status
        if new_status == SERVICE_COMPLETED:
            job.completed_at = now
        elif new_status == SERVICE_CANCELLED:
            job.cancelled_at = now
            job.cancel_reason = reason

        append_audit_event(
            event_type=f"service.{new_status}",
            event_category="services",
            entity_type="service_job",
            entity_id=job.id,
            actor_user_id=user_id,
            occurred_at=now,
            note=reason,
        )
        db.session.commit()
        return job

    job = run_with_retry(_op)
    current_app.logger.info("Service job %s is now %s", job.ticket_number, job.status)
    return job


def cancel_service_job(job_id: int, user_id: int | None, reason: str | None = None, *, tz=None) -> ServiceJob:
    return update_service_status(job_id, SERVICE_CANCELLED, user_id, reason, tz=tz)


def record_service_payment(job_id: int, payload: dict, user_id: int | None, *, tz: str | tzinfo | None = None) -> ServiceJob:
    """
    Record the customer's payment. The payment time becomes the job's
    ledger timestamp; an optional amount overrides the quoted amount.
    """
    data = validate_transaction("service_payment", payload)
    occurred_at = data.get("occurred_at") or utcnow()

    def _op() -> ServiceJob:
        job = _get_locked(job_id)
        if job.status == SERVICE_CANCELLED:
            raise ServiceJobError("Cannot record payment for a cancelled service job")
        if job.is_paid:
            raise ServiceJobError("Payment already recorded for this service job")

        ensure_timestamp_open(occurred_at, tz)

        if "amount_cents" in data:
            job.amount_cents = data["amount_cents"]
        job.payment_method = data["payment_method"]
        job.occurred_at = occurred_at

        append_audit_event(
            event_type="service.paid",
            event_category="services",
            entity_type="service_job",
            entity_id=job.id,
            actor_user_id=user_id,
            occurred_at=occurred_at,
            payload={"amount_cents": job.amount_cents, "payment_method": job.payment_method},
        )
        db.session.commit()
        return job

    job = run_with_retry(_op)
    current_app.logger.info(
        "Recorded payment for service job %s (%s cents, %s)", job.ticket_number, job.amount_cents, job.payment_method
    )
    return job


def list_service_jobs(business_date: date | str | None = None, status: str | None = None, *, tz=None) -> list[ServiceJob]:
    """Jobs paid on business_date when given, otherwise every job."""
    query = db.session.query(ServiceJob)
    if business_date is not None:
        start, end = business_day_window(parse_business_date(business_date), business_timezone(tz))
        query = query.filter(ServiceJob.occurred_at >= start, ServiceJob.occurred_at < end)
    if status:
        query = query.filter(ServiceJob.status == status)
    return query.order_by(ServiceJob.created_at.asc(), ServiceJob.id.asc()).all()

