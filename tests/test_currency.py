from decimal import Decimal

import pytest
from django.template import Context, Template

from apps.common.currency import currency_decimals, format_currency, format_order_number, to_decimal, truncate


@pytest.mark.parametrize(
    "amount,currency,expected",
    [
        (10000, "IDR", "Rp 10.000"),
        (128500, "IDR", "Rp 128.500"),
        ("1234.5", "AUD", "A$1,234.50"),
        (Decimal("0.5"), "IDR", "Rp 1"),
        (-5000, "IDR", "-Rp 5.000"),
        (1000, "SGD", "SGD 1,000.00"),
        (None, "IDR", "Rp 0"),
        ("not a number", "AUD", "A$0.00"),
    ],
)
def test_format_currency(amount, currency, expected):
    assert format_currency(amount, currency) == expected


def test_currency_decimals_defaults_to_two():
    assert currency_decimals("IDR") == 0
    assert currency_decimals("aud") == 2
    assert currency_decimals("XYZ") == 2


def test_to_decimal_goes_through_str_for_floats():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("") == 0
    assert to_decimal(" 12.50 ") == Decimal("12.50")


@pytest.mark.parametrize("raw", ["NaN", "Infinity", "-inf", Decimal("NaN")])
def test_non_finite_amounts_render_as_zero(raw):
    assert to_decimal(raw) == 0
    assert format_currency(raw, "IDR") == "Rp 0"
    assert format_currency(raw, "AUD") == "A$0.00"


def test_order_number_prefix_is_added_once():
    assert format_order_number("ABCD", "0012") == "ABCD-0012"
    assert format_order_number("ABCD", "ABCD-0012") == "ABCD-0012"


def test_truncate():
    assert truncate("x" * 60) == "x" * 50 + "..."
    assert truncate("short") == "short"
    assert truncate(None) == ""


def test_money_filter():
    out = Template("{% load currency %}{{ amount|money:'AUD' }} {{ other|money }}").render(
        Context({"amount": "15", "other": 128500})
    )
    assert out == "A$15.00 Rp 128.500"
