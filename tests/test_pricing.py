"""
定价计算测试
"""
from decimal import Decimal

import pytest

from wf_core.utils.pricing import (
    expiry_urgency,
    gross_margin_from_price,
    landed_cost,
    markup_from_price,
    min_margin_price,
    price_from_markup,
    profit_margin,
    round_money,
    round_pct,
    to_decimal,
    turnover_rate,
)


def test_to_decimal_avoids_float_noise():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal(None) == Decimal("0")


def test_round_money_half_up():
    assert round_money("2.345") == Decimal("2.35")
    assert round_money(1) == Decimal("1.00")


def test_round_pct_keeps_none():
    assert round_pct(None) is None
    assert round_pct(Decimal("33.3333")) == 33.33


def test_markup_and_price_are_inverse():
    assert markup_from_price("2.00", "3.00") == Decimal("50")
    assert price_from_markup("2.00", 50) == Decimal("3.00")
    assert price_from_markup("3.33", "12.5") == Decimal("3.75")


def test_markup_undefined_for_zero_cost():
    assert markup_from_price(0, "5.00") is None


def test_gross_margin_is_relative_to_price():
    assert gross_margin_from_price("2.00", "2.50") == Decimal("20")
    assert gross_margin_from_price("2.00", 0) is None


def test_min_margin_price():
    assert min_margin_price("10.00", 1.0) == Decimal("10.10")


def test_profit_margin_uses_landed_cost():
    assert landed_cost("2.00", "0.50") == Decimal("2.50")
    assert landed_cost("2.00") == Decimal("2.00")
    assert profit_margin("2.00", "0.50", "3.00") == Decimal("20")
    assert profit_margin("0", "0", "3.00") is None


def test_turnover_rate():
    assert turnover_rate(4, 6) == Decimal("40")
    assert turnover_rate(0, 0) == Decimal("0")


@pytest.mark.parametrize("days, expected", [
    (0, "critical"),
    (7, "critical"),
    (8, "warning"),
    (14, "warning"),
    (15, "info"),
])
def test_expiry_urgency_thresholds(days, expected):
    assert expiry_urgency(days) == expected
