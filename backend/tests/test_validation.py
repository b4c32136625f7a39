"""Payload validation and money parsing."""

from datetime import datetime

import pytest

from watchshop.validation import (
    MAX_AMOUNT_CENTS,
    ValidationError,
    format_cents,
    parse_amount_cents,
    validate_transaction,
)


class TestParseAmountCents:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1000", 100000),
            ("1000.5", 100050),
            ("0.01", 1),
            (1000, 100000),
            (12.34, 1234),
            ("0", 0),
            (" 7.00 ", 700),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_amount_cents(value) == expected

    @pytest.mark.parametrize("value", ["-1", "1.005", "abc", "", None, True, "NaN", "Infinity"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_amount_cents(value)

    def test_zero_can_be_refused(self):
        with pytest.raises(ValidationError):
            parse_amount_cents("0", allow_zero=False)

    def test_upper_bound(self):
        assert parse_amount_cents("99999999.99") == MAX_AMOUNT_CENTS
        with pytest.raises(ValidationError):
            parse_amount_cents("100000000.00")


class TestFormatCents:

    @pytest.mark.parametrize(
        "cents,expected",
        [(0, "0.00"), (1, "0.01"), (130000, "1300.00"), (-5000, "-50.00"), (123456789, "1234567.89")],
    )
    def test_format(self, cents, expected):
        assert format_cents(cents) == expected


class TestValidateTransaction:

    def test_sale_normalized(self):
        data = validate_transaction("sale", {
            "amount": "1000.00",
            "payment_method": "Cash",
            "customer_name": "  R. Iyer ",
            "occurred_at": "2024-03-01T04:30:00Z",
        })
        assert data == {
            "amount_cents": 100000,
            "payment_method": "Cash",
            "customer_name": "R. Iyer",
            "occurred_at": datetime(2024, 3, 1, 4, 30),
        }

    def test_offset_timestamps_converted_to_utc(self):
        data = validate_transaction("expense", {
            "description": "Tea",
            "amount": "20",
            "payment_method": "Cash",
            "occurred_at": "2024-03-01T10:00:00+05:30",
        })
        assert data["occurred_at"] == datetime(2024, 3, 1, 4, 30)

    def test_unknown_kind(self):
        with pytest.raises(ValidationError, match="Unknown record kind"):
            validate_transaction("invoice", {})

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError, match="Field not allowed: status"):
            validate_transaction("sale", {"amount": "1", "payment_method": "Cash", "status": "refunded"})

    def test_missing_required_fields(self):
        with pytest.raises(ValidationError, match="amount, payment_method"):
            validate_transaction("sale", {})

    def test_blank_required_string(self):
        with pytest.raises(ValidationError, match="description cannot be blank"):
            validate_transaction("expense", {"description": "   ", "amount": "5", "payment_method": "Cash"})

    def test_payment_method_is_closed_set(self):
        with pytest.raises(ValidationError, match="payment_method must be one of"):
            validate_transaction("sale", {"amount": "1", "payment_method": "Cheque"})

    def test_expense_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            validate_transaction("expense", {"description": "x", "amount": "0", "payment_method": "Cash"})

    def test_expense_category_checked(self):
        with pytest.raises(ValidationError, match="category"):
            validate_transaction("expense", {
                "description": "x", "amount": "1", "payment_method": "Cash", "category": "bribes",
            })

    def test_bad_timestamp(self):
        with pytest.raises(ValidationError, match="occurred_at"):
            validate_transaction("sale", {"amount": "1", "payment_method": "Cash", "occurred_at": "yesterday"})

    def test_none_values_skipped(self):
        data = validate_transaction("service", {"customer_name": None, "amount": "10"})
        assert data == {"amount_cents": 1000}

    def test_non_dict_payload(self):
        with pytest.raises(ValidationError, match="Invalid JSON payload"):
            validate_transaction("sale", ["amount", 1])

    def test_service_payment_requires_method(self):
        with pytest.raises(ValidationError, match="payment_method"):
            validate_transaction("service_payment", {"amount": "10"})
