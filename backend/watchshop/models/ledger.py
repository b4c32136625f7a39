from __future__ import annotations

import json

from ..extensions import db
from watchshop.time_utils import to_utc_z


class COBRecord(db.Model):
    """
    Close-of-business record for one business date.

    WHY: Freezes the day's ledger summary and carries the closing cash and
    account balances forward to the next business date.

    INVARIANTS:
    - At most one record per business_date (unique constraint, not just an
      application check, so racing closures cannot both succeed).
    - Permanent: there is no update or delete path.
    - The balances are duplicated out of summary_json so the prior-closure
      lookup is a plain indexed query.
    """
    __tablename__ = "cob_records"
    __table_args__ = (
        db.UniqueConstraint("business_date", name="uq_cob_records_business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_date = db.Column(db.Date, nullable=False, index=True)

    # Frozen LedgerSummary (as produced by LedgerSummary.to_dict())
    summary_json = db.Column(db.Text, nullable=False)

    closing_cash_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_account_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Handover notes for the next business day
    notes = db.Column(db.Text, nullable=True)

    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    closed_by = db.relationship("User", foreign_keys=[closed_by_user_id])

    @property
    def summary(self) -> dict:
        return json.loads(self.summary_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.business_date.isoformat(),
            "summary": self.summary,
            "notes": self.notes,
            "closedBy": self.closed_by.username if self.closed_by else None,
            "closed_by_user_id": self.closed_by_user_id,
            "closedAt": to_utc_z(self.closed_at),
        }


class AuditEvent(db.Model):
    """
    Append-only audit trail for ledger-relevant actions.

    - No domain logic here.
    - occurred_at is business time; created_at is system time (DB default).
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_category_occurred", "event_category", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., ledger.cob_closed, sale.cancelled
    event_category = db.Column(db.String(32), nullable=False, index=True)  # ledger, sales, services, expenses

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
