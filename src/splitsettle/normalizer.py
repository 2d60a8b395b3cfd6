"""Currency normalization into a single reporting currency.

Conversion is exact rational arithmetic on minor units followed by a single
round-half-away-from-zero step at the target currency's precision. When a
whole vector of amounts is converted (an expense's splits, a group's
balances) the rounding residual against the converted total is folded into
the largest entry, so the converted vector sums exactly like the original.
"""

import logging
from collections.abc import Callable, Hashable, Mapping
from datetime import UTC, datetime, timedelta
from fractions import Fraction
from typing import Protocol, TypeVar

from .currencies import CurrencyInfo, get_currency_info
from .exceptions import RateUnavailable, RoundingError, StaleRate
from .models import ExchangeRate, ResolvedSplit
from .money import Money, round_half_away

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


class RateProvider(Protocol):
    """Anything that can quote an exchange rate between two currencies."""

    def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        """Return the current rate, or raise RateUnavailable."""
        ...


def convert_exact(
    minor_units: int, rate: ExchangeRate, source: CurrencyInfo, target: CurrencyInfo
) -> Fraction:
    """Convert minor units of source into (unrounded) minor units of target."""
    scale = Fraction(10) ** (target.precision - source.precision)
    return minor_units * Fraction(rate.rate) * scale


def reconcile_rounding(values: dict[K, int], expected_total: int) -> dict[K, int]:
    """
    Fold a rounding residual into the entry with the largest absolute value.

    Ties go to the smallest key. Each converted entry is off by at most half
    a minor unit, so the residual can never exceed the number of entries;
    anything larger means the inputs were not what the caller claims.

    Args:
        values: Independently rounded amounts (mutated in place)
        expected_total: What the amounts must add up to

    Returns:
        The same dict, adjusted

    Raises:
        RoundingError: If the residual is outside its bound
    """
    residual = expected_total - sum(values.values())
    if residual == 0:
        return values

    if abs(residual) > max(len(values), 1):
        logger.error(
            f"Normalization residual {residual} exceeds bound for "
            f"{len(values)} entries (expected total {expected_total})"
        )
        raise RoundingError(
            f"Rounding residual {residual} exceeds bound of {len(values)} minor units"
        )

    target_key = min(values, key=lambda k: (-abs(values[k]), k))
    values[target_key] += residual
    logger.debug(f"Applied rounding adjustment of {residual} to {target_key}")
    return values


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CurrencyNormalizer:
    """Converts amounts into a target currency using an injected rate provider.

    Performs no caching; that is the provider's concern.
    """

    def __init__(
        self,
        provider: RateProvider,
        max_rate_age: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the normalizer."""
        self.provider = provider
        self.max_rate_age = max_rate_age
        self.clock = clock

    def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        """
        Fetch a rate from the provider and check it is usable.

        Raises:
            UnsupportedCurrency: If either code is unknown
            RateUnavailable: If the provider has no rate or quotes the wrong pair
            StaleRate: If the rate is older than max_rate_age
        """
        source = get_currency_info(from_currency)
        target = get_currency_info(to_currency)

        rate = self.provider.get_rate(source.code, target.code)

        if (rate.from_currency.upper(), rate.to_currency.upper()) != (
            source.code,
            target.code,
        ):
            raise RateUnavailable(
                f"Provider returned {rate.from_currency}->{rate.to_currency} "
                f"for {source.code}->{target.code}"
            )

        if self.max_rate_age is not None:
            as_of = rate.as_of
            if as_of.tzinfo is None:
                as_of = as_of.replace(tzinfo=UTC)
            age = self.clock() - as_of
            if age > self.max_rate_age:
                raise StaleRate(
                    f"Rate {source.code}->{target.code} is {age} old "
                    f"(limit {self.max_rate_age})"
                )

        return rate

    def normalize(self, amount: Money, target_currency: str) -> Money:
        """
        Convert a single amount into target_currency.

        Same-currency amounts are returned unchanged without a rate lookup.
        """
        target = get_currency_info(target_currency)
        source = get_currency_info(amount.currency)
        if source.code == target.code:
            return amount

        rate = self.get_rate(source.code, target.code)
        converted = round_half_away(
            convert_exact(amount.minor_units, rate, source, target)
        )
        return Money(minor_units=converted, currency=target.code)

    def normalize_allocation(
        self, amounts: Mapping[K, int], currency: str, target_currency: str
    ) -> dict[K, int]:
        """
        Convert a vector of amounts, preserving its total exactly.

        The converted entries sum to the converted (rounded) total of the
        original entries, so a zero-sum vector stays zero-sum.

        Args:
            amounts: Minor units keyed by any orderable key
            currency: Currency of all the amounts
            target_currency: Currency to convert into

        Returns:
            Converted minor units under the same keys
        """
        target = get_currency_info(target_currency)
        source = get_currency_info(currency)
        if source.code == target.code or not amounts:
            return dict(amounts)

        rate = self.get_rate(source.code, target.code)
        converted = {
            key: round_half_away(convert_exact(value, rate, source, target))
            for key, value in amounts.items()
        }
        expected_total = round_half_away(
            convert_exact(sum(amounts.values()), rate, source, target)
        )
        return reconcile_rounding(converted, expected_total)

    def normalize_splits(
        self, splits: list[ResolvedSplit], target_currency: str
    ) -> list[ResolvedSplit]:
        """
        Convert resolved splits into target_currency.

        Splits are converted per (expense, currency) group so that each
        expense's converted paid and owed columns still sum to the same
        converted total, keeping its balance effect zero-sum.
        """
        target = get_currency_info(target_currency).code

        groups: dict[tuple[str, str], list[int]] = {}
        for index, split in enumerate(splits):
            groups.setdefault((split.expense_id, split.paid.currency), []).append(index)

        result: list[ResolvedSplit | None] = [None] * len(splits)
        for (_expense_id, currency), indexes in groups.items():
            paid = self.normalize_allocation(
                {(splits[i].user_id, i): splits[i].paid.minor_units for i in indexes},
                currency,
                target,
            )
            owed = self.normalize_allocation(
                {(splits[i].user_id, i): splits[i].owed.minor_units for i in indexes},
                currency,
                target,
            )
            for i in indexes:
                key = (splits[i].user_id, i)
                result[i] = ResolvedSplit(
                    expense_id=splits[i].expense_id,
                    user_id=splits[i].user_id,
                    paid=Money(minor_units=paid[key], currency=target),
                    owed=Money(minor_units=owed[key], currency=target),
                )

        return [split for split in result if split is not None]
