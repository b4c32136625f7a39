from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from dataclasses import dataclass, field
from typing import Any, Callable

from watchshop.time_utils import parse_iso_datetime
from watchshop.models.transactions import (
    PAYMENT_METHODS,
    SERVICE_TYPES,
    EXPENSE_CATEGORIES,
)


# Maximum amount: 99,999,999.99 (9,999,999,999 cents)
MAX_AMOUNT_CENTS = 9_999_999_999

Q2 = Decimal("0.01")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate invoice number)."""


def parse_amount_cents(value: Any, field_name: str = "amount", *, allow_zero: bool = True) -> int:
    """
    Parse a decimal currency amount ("1000", "1000.50", 1000.5) into cents.

    Rejects booleans, non-finite values, negatives and more than two
    decimal places.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a decimal amount")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a decimal amount")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a decimal amount")
    if amount != amount.quantize(Q2, rounding=ROUND_HALF_UP):
        raise ValidationError(f"{field_name} cannot have more than 2 decimal places")
    if amount < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    if amount == 0 and not allow_zero:
        raise ValidationError(f"{field_name} must be greater than zero")

    cents = int(amount * 100)
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field_name} cannot exceed {MAX_AMOUNT_CENTS / 100:,.2f}")
    return cents


def format_cents(cents: int) -> str:
    """Render cents as a fixed two-place decimal string ("1300.00")."""
    return str((Decimal(cents) / 100).quantize(Q2))


def _text(max_length: int) -> Callable[[str, Any], str]:
    def coerce(name: str, value: Any) -> str:
        text = str(value).strip()
        if len(text) > max_length:
            raise ValidationError(f"{name} exceeds max length {max_length}")
        return text
    return coerce


def _choice(options: tuple[str, ...]) -> Callable[[str, Any], str]:
    def coerce(name: str, value: Any) -> str:
        if value not in options:
            raise ValidationError(f"{name} must be one of: {', '.join(options)}")
        return value
    return coerce


def _timestamp(name: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        dt = parse_iso_datetime(str(value))
    except ValueError:
        dt = None
    if dt is None:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")
    return dt


def _amount(name: str, value: Any) -> int:
    return parse_amount_cents(value, name)


def _positive_amount(name: str, value: Any) -> int:
    return parse_amount_cents(value, name, allow_zero=False)


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Schema for one payload variant:
    - fields: writable field -> coercer (the allowlist is the security boundary)
    - required: fields that must be present and non-null
    - renames: input name -> column name (amount -> amount_cents)
    """
    fields: dict[str, Callable[[str, Any], Any]]
    required: frozenset[str] = frozenset()
    renames: dict[str, str] = field(default_factory=dict)


_AMOUNT_RENAMES = {"amount": "amount_cents"}

PAYLOAD_POLICIES: dict[str, PayloadPolicy] = {
    "sale": PayloadPolicy(
        fields={
            "invoice_number": _text(64),
            "customer_name": _text(128),
            "item_description": _text(255),
            "amount": _amount,
            "payment_method": _choice(PAYMENT_METHODS),
            "occurred_at": _timestamp,
        },
        required=frozenset({"amount", "payment_method"}),
        renames=_AMOUNT_RENAMES,
    ),
    "service": PayloadPolicy(
        fields={
            "ticket_number": _text(64),
            "customer_name": _text(128),
            "service_type": _choice(SERVICE_TYPES),
            "description": _text(255),
            "amount": _amount,
        },
        renames=_AMOUNT_RENAMES,
    ),
    "service_payment": PayloadPolicy(
        fields={
            "amount": _amount,
            "payment_method": _choice(PAYMENT_METHODS),
            "occurred_at": _timestamp,
        },
        required=frozenset({"payment_method"}),
        renames=_AMOUNT_RENAMES,
    ),
    "expense": PayloadPolicy(
        fields={
            "description": _text(255),
            "category": _choice(EXPENSE_CATEGORIES),
            "amount": _positive_amount,
            "payment_method": _choice(PAYMENT_METHODS),
            "occurred_at": _timestamp,
        },
        required=frozenset({"description", "amount", "payment_method"}),
        renames=_AMOUNT_RENAMES,
    ),
}


def validate_transaction(kind: str, payload: Any) -> dict:
    """
    Validate and normalize an incoming JSON payload for one record kind.

    Single dispatch point for every transaction source: the kind tag picks
    the policy, unknown fields are rejected, required fields enforced and
    each value coerced. Returns a dict keyed by column name.
    """
    policy = PAYLOAD_POLICIES.get(kind)
    if policy is None:
        raise ValidationError(f"Unknown record kind: {kind}")

    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required if payload.get(f) is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cleaned: dict = {}
    for key, raw in payload.items():
        coerce = policy.fields.get(key)
        if coerce is None:
            raise ValidationError(f"Field not allowed: {key}")
        if raw is None:
            continue
        value = coerce(key, raw)
        if isinstance(value, str) and key in policy.required and value == "":
            raise ValidationError(f"{key} cannot be blank")
        cleaned[policy.renames.get(key, key)] = value

    return cleaned
