from __future__ import annotations

from ..extensions import db
from watchshop.time_utils import to_utc_z


# Closed set of tender labels shared by every transaction source
PAYMENT_CASH = "Cash"
PAYMENT_CARD = "Card"
PAYMENT_UPI = "UPI"
PAYMENT_BANK_TRANSFER = "Bank Transfer"
PAYMENT_MULTIPLE = "Multiple"

PAYMENT_METHODS = (
    PAYMENT_CASH,
    PAYMENT_CARD,
    PAYMENT_UPI,
    PAYMENT_BANK_TRANSFER,
    PAYMENT_MULTIPLE,
)

SALE_COMPLETED = "completed"
SALE_CANCELLED = "cancelled"
SALE_REFUNDED = "refunded"
SALE_STATUSES = (SALE_COMPLETED, SALE_CANCELLED, SALE_REFUNDED)

SERVICE_PENDING = "pending"
SERVICE_IN_PROGRESS = "in-progress"
SERVICE_ON_HOLD = "on-hold"
SERVICE_COMPLETED = "completed"
SERVICE_CANCELLED = "cancelled"
SERVICE_STATUSES = (
    SERVICE_PENDING,
    SERVICE_IN_PROGRESS,
    SERVICE_ON_HOLD,
    SERVICE_COMPLETED,
    SERVICE_CANCELLED,
)

SERVICE_TYPES = ("repair", "battery", "strap", "polish", "warranty", "other")

EXPENSE_CATEGORIES = (
    "office-supplies",
    "utilities",
    "rent",
    "maintenance",
    "tools-equipment",
    "marketing",
    "travel",
    "food-beverages",
    "professional-services",
    "insurance",
    "taxes",
    "miscellaneous",
)


class Sale(db.Model):
    """
    Watch sale at the counter.

    Only COMPLETED sales count toward the ledger. Cancelling or refunding
    a sale takes it out of the day's totals, so both are blocked once the
    sale's business date is closed.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_occurred", "status", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable invoice number (e.g., "INV-20240301-0001")
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)
    customer_name = db.Column(db.String(128), nullable=True)
    item_description = db.Column(db.String(255), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)

    # Business time (drives the ledger date) vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status_changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    status_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "item_description": self.item_description,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "status_changed_at": to_utc_z(self.status_changed_at) if self.status_changed_at else None,
            "status_reason": self.status_reason,
            "version_id": self.version_id,
        }


class ServiceJob(db.Model):
    """
    Watch service / repair job.

    LIFECYCLE: pending -> in-progress <-> on-hold -> completed, or cancelled
    from any non-final state.

    Ledger inclusion is independent of the workflow status: a job counts
    once a payment is recorded (payment_method set) and it is not
    cancelled. occurred_at is the payment time, NULL until paid.
    """
    __tablename__ = "services"
    __table_args__ = (
        db.Index("ix_services_status_occurred", "status", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Acknowledgement slip handed to the customer
    ticket_number = db.Column(db.String(64), nullable=False, unique=True)
    customer_name = db.Column(db.String(128), nullable=True)
    service_type = db.Column(db.String(32), nullable=False, default="repair")
    description = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SERVICE_PENDING, index=True)

    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_paid(self) -> bool:
        return self.payment_method is not None and self.occurred_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_number": self.ticket_number,
            "customer_name": self.customer_name,
            "service_type": self.service_type,
            "description": self.description,
            "status": self.status,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "is_paid": self.is_paid,
            "occurred_at": to_utc_z(self.occurred_at) if self.occurred_at else None,
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }


class Expense(db.Model):
    """Shop expense (outflow). Every expense counts toward the ledger."""
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False, default="miscellaneous", index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.username if self.created_by else None,
        }
