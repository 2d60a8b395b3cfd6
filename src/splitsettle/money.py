"""Exact integer money representation.

All arithmetic happens on integer minor units (cents for USD, whole yen for
JPY). Nothing in this module touches floating point.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction

from pydantic import BaseModel, ConfigDict, StrictInt, field_validator

from .currencies import get_currency_info
from .exceptions import CurrencyMismatch

Ratio = int | Decimal | Fraction


def round_half_away(value: Fraction) -> int:
    """Round an exact rational to the nearest integer, ties away from zero."""
    magnitude = math.floor(abs(value) + Fraction(1, 2))
    return magnitude if value >= 0 else -magnitude


class Money(BaseModel):
    """An amount of a single currency, stored as integer minor units."""

    model_config = ConfigDict(frozen=True)

    minor_units: StrictInt
    currency: str

    @field_validator("currency")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return value.strip().upper()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(minor_units=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount: Decimal | str, currency: str) -> "Money":
        """
        Convert a major-unit decimal amount into minor units.

        Uses ROUND_HALF_UP (ties away from zero) at the currency's precision.

        Args:
            amount: Amount in major units, e.g. Decimal("12.34")
            currency: ISO currency code

        Returns:
            Money with integer minor units
        """
        info = get_currency_info(currency)
        scaled = Decimal(amount).scaleb(info.precision)
        units = int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return cls(minor_units=units, currency=info.code)

    def to_decimal(self) -> Decimal:
        """Amount in major units (exact)."""
        precision = get_currency_info(self.currency).precision
        return Decimal(self.minor_units).scaleb(-precision)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def add(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(
            minor_units=self.minor_units + other.minor_units, currency=self.currency
        )

    def subtract(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(
            minor_units=self.minor_units - other.minor_units, currency=self.currency
        )

    def negate(self) -> "Money":
        return Money(minor_units=-self.minor_units, currency=self.currency)

    def is_zero(self) -> bool:
        return self.minor_units == 0

    def compare(self, other: "Money") -> int:
        """Return -1, 0 or 1 as self is less than, equal to or greater than other."""
        self._check_currency(other)
        return (self.minor_units > other.minor_units) - (
            self.minor_units < other.minor_units
        )

    def multiply_by_ratio(
        self, numerator: Ratio, denominator: Ratio
    ) -> tuple["Money", Fraction]:
        """
        Scale by numerator/denominator, rounding to the nearest minor unit.

        Ties round away from zero. The exact rounding remainder
        (exact result minus rounded result) is returned alongside the amount
        so callers can redistribute it.

        Args:
            numerator: Ratio numerator (int, Decimal or Fraction)
            denominator: Ratio denominator, must be non-zero

        Returns:
            Tuple of (rounded Money, remainder in minor units)
        """
        denominator = Fraction(denominator)
        if denominator == 0:
            raise ValueError("Ratio denominator must be non-zero")

        exact = self.minor_units * Fraction(numerator) / denominator
        rounded = round_half_away(exact)
        return Money(minor_units=rounded, currency=self.currency), exact - rounded

    def __add__(self, other: "Money") -> "Money":
        return self.add(other)

    def __sub__(self, other: "Money") -> "Money":
        return self.subtract(other)

    def __neg__(self) -> "Money":
        return self.negate()

    def __str__(self) -> str:
        return f"{self.minor_units} {self.currency}"
