from decimal import Decimal

import pytest
from common.exceptions import ValidationError
from common.money import CurrencyMismatch, Money, sum_money


def test_of_and_amount_use_currency_exponent():
    assert Money.of("19.99", "usd").minor == Decimal("1999")
    assert Money.of("19.99", "usd").currency == "USD"
    assert Money.of("500", "JPY").minor == Decimal("500")
    assert Money.of("500", "JPY").amount == Decimal("500")
    assert str(Money.of("3.5", "EUR")) == "EUR 3.50"


def test_rounding_is_half_up_and_only_at_the_boundary():
    price = Money.of("0.10", "USD")
    tax = price.percentage_of("5")  # half a cent
    assert tax.minor == Decimal("0.5")
    assert tax.rounded().minor == Decimal("1")
    assert (tax * 3).amount == Decimal("0.02")
    assert Money(Decimal("-0.5"), "USD").rounded().minor == Decimal("-1")


def test_arithmetic_and_comparison():
    a = Money.of("10.00", "USD")
    b = Money.of("2.50", "USD")
    assert (a - b).amount == Decimal("7.50")
    assert (b * 4) == a
    assert a.min(b) == b
    assert a.max(b) == a
    assert b < a
    assert (-b).is_negative()
    assert sum_money([a, b, b], "USD").amount == Decimal("15.00")
    assert sum_money([], "USD").is_zero()


def test_currency_mismatch_is_rejected():
    with pytest.raises(CurrencyMismatch):
        Money.of("1", "USD") + Money.of("1", "EUR")
    with pytest.raises(CurrencyMismatch):
        Money.of("1", "USD").compare(Money.of("1", "EUR"))


@pytest.mark.parametrize("bad", [1.5, True, "abc", None])
def test_non_decimal_inputs_are_rejected(bad):
    with pytest.raises(ValidationError):
        Money.of(bad, "USD")
