from decimal import Decimal

import pytest

from staking_ledger.domain.money import Gwei


def test_sum_is_exact_beyond_float_precision():
    amounts = [Gwei(2**60 + 1), Gwei(2**60 + 1), Gwei(1)]

    assert Gwei.sum(amounts) == Gwei(2**61 + 3)


def test_sum_of_nothing_is_zero():
    assert Gwei.sum([]) == Gwei.zero()
    assert not Gwei.zero()


def test_float_amounts_are_rejected():
    with pytest.raises(TypeError):
        Gwei(1.5)
    with pytest.raises(TypeError):
        Gwei.from_eth(0.1)


def test_eth_conversion():
    assert Gwei.from_eth("32") == Gwei(32_000_000_000)
    assert Gwei.from_eth(Decimal("0.05")) == Gwei(50_000_000)
    assert Gwei(1_500_000_000).to_eth() == Decimal("1.5")


def test_sub_gwei_eth_amount_is_rejected():
    with pytest.raises(ValueError):
        Gwei.from_eth("0.0000000001")


def test_ratio_guards_zero_denominator():
    assert Gwei(5).ratio(Gwei(0)) == 0.0
    assert Gwei(1).ratio(Gwei(4)) == pytest.approx(0.25)


def test_arithmetic_and_ordering():
    a = Gwei(10)
    b = Gwei(25)

    assert b - a == Gwei(15)
    assert a - b == Gwei(-15)
    assert abs(a - b) == Gwei(15)
    assert a * 3 == Gwei(30)
    assert 3 * a == Gwei(30)
    assert a < b
    assert max([a, b]) == b


def test_of_accepts_digit_strings():
    assert Gwei.of(" 1234 ") == Gwei(1234)
    assert Gwei.of(Gwei(7)) == Gwei(7)
    with pytest.raises(ValueError):
        Gwei.of("12.5")
