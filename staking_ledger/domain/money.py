"""Gwei-denominated monetary amounts.

Balances and rewards are carried as arbitrary-precision integers of gwei so
that summation never loses precision. Amounts only become floats through
``Gwei.ratio``, at the final division step of a rate computation.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable

GWEI_PER_ETH = 10**9


@dataclass(frozen=True, order=True)
class Gwei:
    """Immutable integer amount of gwei (10^9 gwei = 1 ETH)."""

    amount: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"Gwei amount must be an int, got {type(self.amount).__name__}")

    @classmethod
    def zero(cls) -> Gwei:
        return cls(0)

    @classmethod
    def of(cls, value: Gwei | int | str) -> Gwei:
        """Coerce an int, a digit string or an existing amount."""
        if isinstance(value, Gwei):
            return value
        if isinstance(value, str):
            try:
                return cls(int(value.strip()))
            except ValueError as exc:
                raise ValueError(f"Not an integer gwei amount: {value!r}") from exc
        return cls(value)

    @classmethod
    def from_eth(cls, value: Decimal | str | int) -> Gwei:
        if isinstance(value, float):
            raise TypeError("ETH amounts must be given as Decimal, str or int, not float")
        try:
            scaled = Decimal(str(value)) * GWEI_PER_ETH
        except InvalidOperation as exc:
            raise ValueError(f"Not a decimal ETH amount: {value!r}") from exc
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{value} ETH is not a whole number of gwei")
        return cls(int(scaled))

    @classmethod
    def sum(cls, amounts: Iterable[Gwei]) -> Gwei:
        total = 0
        for item in amounts:
            total += item.amount
        return cls(total)

    def to_eth(self) -> Decimal:
        return Decimal(self.amount) / GWEI_PER_ETH

    def ratio(self, other: Gwei) -> float:
        """Return ``self / other`` as a float, or 0.0 when ``other`` is zero."""
        if other.amount == 0:
            return 0.0
        return self.amount / other.amount

    def __add__(self, other: Gwei) -> Gwei:
        if not isinstance(other, Gwei):
            return NotImplemented
        return Gwei(self.amount + other.amount)

    def __sub__(self, other: Gwei) -> Gwei:
        if not isinstance(other, Gwei):
            return NotImplemented
        return Gwei(self.amount - other.amount)

    def __mul__(self, factor: int) -> Gwei:
        if isinstance(factor, bool) or not isinstance(factor, int):
            return NotImplemented
        return Gwei(self.amount * factor)

    __rmul__ = __mul__

    def __neg__(self) -> Gwei:
        return Gwei(-self.amount)

    def __abs__(self) -> Gwei:
        return Gwei(abs(self.amount))

    def __bool__(self) -> bool:
        return self.amount != 0

    def __int__(self) -> int:
        return self.amount

    def __str__(self) -> str:
        return str(self.amount)
