"""Tests for currency normalization."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from splitsettle.exceptions import (
    RateUnavailable,
    RoundingError,
    StaleRate,
    UnsupportedCurrency,
)
from splitsettle.models import ExchangeRate, ResolvedSplit
from splitsettle.money import Money
from splitsettle.normalizer import CurrencyNormalizer, reconcile_rounding

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class FixedRates:
    """Rate provider backed by a dict, recording every lookup."""

    def __init__(self, rates: dict[tuple[str, str], str], as_of: datetime = NOW):
        self.rates = rates
        self.as_of = as_of
        self.calls: list[tuple[str, str]] = []

    def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        self.calls.append((from_currency, to_currency))
        key = (from_currency, to_currency)
        if key not in self.rates:
            raise RateUnavailable(f"No rate for {from_currency}->{to_currency}")
        return ExchangeRate(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=Decimal(self.rates[key]),
            as_of=self.as_of,
        )


@pytest.fixture
def rates():
    return FixedRates(
        {
            ("EUR", "USD"): "1.1",
            ("USD", "JPY"): "151.237",
            ("JPY", "USD"): "0.0066",
            ("USD", "KWD"): "0.3075",
        }
    )


@pytest.fixture
def normalizer(rates):
    return CurrencyNormalizer(rates, clock=lambda: NOW)


class TestNormalize:
    """Single-amount conversion."""

    def test_same_currency_skips_provider(self):
        """No rate lookup happens when source and target match."""
        provider = MagicMock()
        normalizer = CurrencyNormalizer(provider)

        amount = Money(minor_units=1234, currency="USD")
        assert normalizer.normalize(amount, "usd") == amount
        provider.get_rate.assert_not_called()

    def test_converts_with_rounding(self, normalizer):
        # 10.00 EUR * 1.1 = 11.00 USD
        assert normalizer.normalize(
            Money(minor_units=1000, currency="EUR"), "USD"
        ) == Money(minor_units=1100, currency="USD")
        # 0.05 EUR * 1.1 = 0.055 USD -> ties away from zero
        assert normalizer.normalize(
            Money(minor_units=5, currency="EUR"), "USD"
        ).minor_units == 6
        assert normalizer.normalize(
            Money(minor_units=-5, currency="EUR"), "USD"
        ).minor_units == -6

    def test_precision_change(self, normalizer):
        """USD cents become whole yen and three-decimal dinars."""
        assert normalizer.normalize(
            Money(minor_units=1000, currency="USD"), "JPY"
        ) == Money(minor_units=1512, currency="JPY")
        assert normalizer.normalize(
            Money(minor_units=1000, currency="USD"), "KWD"
        ) == Money(minor_units=3075, currency="KWD")
        # 1500 yen * 0.0066 = 9.90 USD
        assert normalizer.normalize(
            Money(minor_units=1500, currency="JPY"), "USD"
        ) == Money(minor_units=990, currency="USD")

    def test_unsupported_currency(self, normalizer):
        with pytest.raises(UnsupportedCurrency):
            normalizer.normalize(Money(minor_units=1, currency="USD"), "ZZZ")

    def test_rate_unavailable(self, normalizer):
        with pytest.raises(RateUnavailable):
            normalizer.normalize(Money(minor_units=100, currency="GBP"), "USD")

    def test_wrong_pair_from_provider(self):
        provider = MagicMock()
        provider.get_rate.return_value = ExchangeRate(
            from_currency="GBP", to_currency="USD", rate=Decimal("1.27"), as_of=NOW
        )
        normalizer = CurrencyNormalizer(provider)
        with pytest.raises(RateUnavailable):
            normalizer.normalize(Money(minor_units=100, currency="EUR"), "USD")


class TestRateFreshness:
    """Rates older than max_rate_age are refused."""

    def test_fresh_rate_accepted(self, rates):
        normalizer = CurrencyNormalizer(
            rates, max_rate_age=timedelta(hours=1), clock=lambda: NOW
        )
        rate = normalizer.get_rate("EUR", "USD")
        assert rate.rate == Decimal("1.1")

    def test_stale_rate(self):
        provider = FixedRates(
            {("EUR", "USD"): "1.1"}, as_of=NOW - timedelta(days=2)
        )
        normalizer = CurrencyNormalizer(
            provider, max_rate_age=timedelta(days=1), clock=lambda: NOW
        )
        with pytest.raises(StaleRate):
            normalizer.normalize(Money(minor_units=100, currency="EUR"), "USD")

    def test_stale_rate_is_rate_unavailable(self):
        """Callers catching RateUnavailable also see stale rates."""
        assert issubclass(StaleRate, RateUnavailable)

    def test_naive_timestamp_treated_as_utc(self):
        provider = FixedRates(
            {("EUR", "USD"): "1.1"}, as_of=datetime(2026, 1, 15, 11, 30)
        )
        normalizer = CurrencyNormalizer(
            provider, max_rate_age=timedelta(hours=1), clock=lambda: NOW
        )
        assert normalizer.get_rate("EUR", "USD").rate == Decimal("1.1")


class TestNormalizeAllocation:
    """Vector conversion preserves totals."""

    def test_zero_sum_stays_zero_sum(self, normalizer):
        # -5.5 rounds to -6 twice; the +1 residual lands on the largest entry
        nets = {"a": 10, "b": -5, "c": -5}
        converted = normalizer.normalize_allocation(nets, "EUR", "USD")
        assert sum(converted.values()) == 0
        assert converted == {"a": 12, "b": -6, "c": -6}

    def test_total_preserved(self, normalizer):
        amounts = {f"u{i}": 5 for i in range(7)}
        converted = normalizer.normalize_allocation(amounts, "EUR", "USD")
        # 35 * 1.1 = 38.5 -> 39
        assert sum(converted.values()) == 39
        assert converted["u0"] == 3
        assert all(converted[f"u{i}"] == 6 for i in range(1, 7))

    def test_same_currency_is_a_copy(self, normalizer, rates):
        amounts = {"a": 3, "b": -3}
        converted = normalizer.normalize_allocation(amounts, "USD", "USD")
        assert converted == amounts
        assert converted is not amounts
        assert rates.calls == []

    def test_reconcile_tie_goes_to_smallest_key(self):
        assert reconcile_rounding({"b": 5, "a": -5}, 1) == {"a": -4, "b": 5}

    def test_reconcile_out_of_bound(self):
        with pytest.raises(RoundingError):
            reconcile_rounding({"a": 1, "b": 1}, 10)


class TestNormalizeSplits:
    """Resolved splits are converted per expense."""

    def test_expense_stays_zero_sum(self, normalizer):
        splits = [
            ResolvedSplit(
                expense_id="e1",
                user_id=user,
                paid=Money(minor_units=paid, currency="EUR"),
                owed=Money(minor_units=owed, currency="EUR"),
            )
            for user, paid, owed in [("a", 100, 34), ("b", 0, 33), ("c", 0, 33)]
        ]
        converted = normalizer.normalize_splits(splits, "USD")

        assert [s.user_id for s in converted] == ["a", "b", "c"]
        assert all(s.paid.currency == "USD" for s in converted)
        assert sum(s.paid.minor_units for s in converted) == 110
        assert sum(s.owed.minor_units for s in converted) == 110
        assert sum(s.net.minor_units for s in converted) == 0

    def test_mixed_currency_splits(self, normalizer):
        splits = [
            ResolvedSplit(
                expense_id="e1",
                user_id="a",
                paid=Money(minor_units=1000, currency="EUR"),
                owed=Money(minor_units=0, currency="EUR"),
            ),
            ResolvedSplit(
                expense_id="e2",
                user_id="a",
                paid=Money(minor_units=0, currency="USD"),
                owed=Money(minor_units=500, currency="USD"),
            ),
        ]
        converted = normalizer.normalize_splits(splits, "USD")
        assert [s.net.minor_units for s in converted] == [1100, -500]
