# Overview: Pytest coverage for input coercion helpers.

from datetime import datetime

import pytest

from tierflow.errors import ValidationError
from tierflow.time_utils import parse_iso_datetime, to_utc_z
from tierflow.validation import (
    MAX_PRICE_CENTS,
    coerce_int,
    coerce_positive_int,
    money_to_cents,
    optional_int,
    optional_text,
    require_text,
)


class TestIntegers:
    @pytest.mark.parametrize("value, expected", [(5, 5), ("42", 42), (" 7 ", 7), ("-3", -3)])
    def test_accepts_plain_integers(self, value, expected):
        assert coerce_int(value, "quantity") == expected

    @pytest.mark.parametrize("value", [None, True, 2.5, "2.5", "1e3", "", "abc", [1]])
    def test_rejects_everything_else(self, value):
        with pytest.raises(ValidationError) as exc:
            coerce_int(value, "quantity")
        assert exc.value.field == "quantity"

    def test_positive_bounds(self):
        assert coerce_positive_int("3", "quantity", maximum=3) == 3
        with pytest.raises(ValidationError):
            coerce_positive_int(0, "quantity")
        with pytest.raises(ValidationError):
            coerce_positive_int(4, "quantity", maximum=3)

    @pytest.mark.parametrize("value, expected", [
        ("7", 7), (7, 7), (None, None), ("", None), ("abc", None), ("null", None), ("1.0", None), (True, None),
    ])
    def test_optional_int_is_lenient(self, value, expected):
        assert optional_int(value) == expected


class TestMoney:
    @pytest.mark.parametrize("value, expected", [
        ("50", 5000), (50, 5000), ("49.99", 4999), (49.99, 4999), ("0.01", 1), (" 12.5 ", 1250),
    ])
    def test_converts_to_cents(self, value, expected):
        assert money_to_cents(value) == expected

    @pytest.mark.parametrize("value", ["12.345", "0", "-5", "abc", "NaN", None, False])
    def test_rejects_bad_amounts(self, value):
        with pytest.raises(ValidationError) as exc:
            money_to_cents(value)
        assert exc.value.field == "price"

    def test_ceiling(self):
        assert money_to_cents("9999999.99") == MAX_PRICE_CENTS
        with pytest.raises(ValidationError):
            money_to_cents("10000000")


class TestText:
    def test_require_text_strips(self):
        assert require_text("  Discontinued  ", "reason") == "Discontinued"

    @pytest.mark.parametrize("value", [None, "", "   ", 5])
    def test_require_text_rejects_blank(self, value):
        with pytest.raises(ValidationError) as exc:
            require_text(value, "reason")
        assert exc.value.field == "reason"

    def test_length_limits(self):
        with pytest.raises(ValidationError):
            require_text("x" * 11, "reason", max_length=10)
        with pytest.raises(ValidationError):
            optional_text("x" * 11, "notes", max_length=10)

    def test_optional_text_blank_is_none(self):
        assert optional_text("   ", "notes") is None
        assert optional_text(None, "notes") is None


class TestTimestamps:
    def test_parse_normalizes_to_utc(self):
        assert parse_iso_datetime("2026-10-17T12:00:00+02:00") == datetime(2026, 10, 17, 10, 0)
        assert parse_iso_datetime("2026-10-17T10:00:00Z") == datetime(2026, 10, 17, 10, 0)
        assert parse_iso_datetime("2026-10-17T10:00") == datetime(2026, 10, 17, 10, 0)
        assert parse_iso_datetime("  ") is None

    def test_render_with_z(self):
        assert to_utc_z(datetime(2026, 10, 17, 10, 0, 5, 999)) == "2026-10-17T10:00:05Z"
        assert to_utc_z(None) is None
