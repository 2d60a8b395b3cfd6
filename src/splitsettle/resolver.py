"""Resolve an expense into per-member paid and owed amounts.

Rounding remainders are always handed out in ascending user-ID order, so two
resolutions of the same expense agree to the minor unit no matter how the
payers and splits were listed.
"""

import logging
import math
from collections import Counter
from decimal import Decimal
from fractions import Fraction
from typing import assert_never, cast

from .currencies import get_currency_info
from .exceptions import (
    CurrencyMismatch,
    InvalidExpense,
    InvalidPercentageSum,
    InvalidShares,
    PayerSumMismatch,
    SplitSumMismatch,
)
from .models import Expense, ResolvedSplit, Settlement, SplitEntry
from .money import Money

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)


def validate_expense(expense: Expense) -> None:
    """
    Check the preconditions every split type shares.

    Raises:
        InvalidExpense: Non-positive total, no split recipients, or a
            recipient listed twice
        UnsupportedCurrency: The expense currency is not in the reference table
        CurrencyMismatch: A payer or EXACT amount in another currency
        PayerSumMismatch: Payers don't cover the total exactly
    """
    total = expense.total_amount
    get_currency_info(total.currency)

    if total.minor_units <= 0:
        raise InvalidExpense(f"Expense {expense.id} must have a positive total")

    if not expense.splits:
        raise InvalidExpense(f"Expense {expense.id} has no split recipients")

    duplicates = [
        user for user, count in Counter(s.user_id for s in expense.splits).items()
        if count > 1
    ]
    if duplicates:
        raise InvalidExpense(
            f"Expense {expense.id} lists split recipients more than once: "
            f"{', '.join(sorted(duplicates))}"
        )

    paid = Money.zero(total.currency)
    for payer in expense.payers:
        paid = paid.add(payer.amount)  # raises CurrencyMismatch
    if paid.minor_units != total.minor_units:
        raise PayerSumMismatch(expense.id, paid.minor_units, total.minor_units)


def _distribute_residual(
    owed: dict[str, int], remainders: dict[str, Fraction], residual: int
) -> None:
    """
    Hand out residual minor units one at a time in ascending user-ID order.

    Shares arrive floored, so the residual is never negative. Only members
    with a fractional remainder are eligible, the same members EQUAL would
    top up.
    """
    eligible = [user for user in sorted(owed) if remainders[user] > 0]
    for user in eligible[:residual]:
        owed[user] += 1


def _owed_equal(total: Money, entries: list[SplitEntry]) -> dict[str, int]:
    users = sorted(entry.user_id for entry in entries)
    base, remainder = divmod(total.minor_units, len(users))
    # First `remainder` members in ascending user-ID order absorb one extra unit
    return {user: base + (1 if i < remainder else 0) for i, user in enumerate(users)}


def _owed_exact(expense: Expense, entries: list[SplitEntry]) -> dict[str, int]:
    total = expense.total_amount
    owed: dict[str, int] = {}
    for entry in entries:
        amount = cast(Money, entry.amount)
        if amount.currency != total.currency:
            raise CurrencyMismatch(total.currency, amount.currency)
        if amount.minor_units < 0:
            raise InvalidExpense(
                f"Exact split for user {entry.user_id} on expense {expense.id} "
                f"is negative"
            )
        owed[entry.user_id] = amount.minor_units

    owed_total = sum(owed.values())
    if owed_total != total.minor_units:
        raise SplitSumMismatch(expense.id, owed_total, total.minor_units)
    return owed


def _owed_by_weight(
    total: Money, weights: dict[str, Decimal], denominator: Decimal
) -> dict[str, int]:
    owed: dict[str, int] = {}
    remainders: dict[str, Fraction] = {}
    for user, weight in weights.items():
        share, remainder = total.multiply_by_ratio(weight, denominator)
        # Floor the rounded share so every residual unit is handed out upward
        adjustment = math.floor(remainder)
        owed[user] = share.minor_units + adjustment
        remainders[user] = remainder - adjustment

    _distribute_residual(owed, remainders, total.minor_units - sum(owed.values()))
    return owed


def _owed_percentage(expense: Expense, entries: list[SplitEntry]) -> dict[str, int]:
    percentages: dict[str, Decimal] = {}
    for entry in entries:
        percentage = cast(Decimal, entry.percentage)
        if percentage < 0:
            raise InvalidPercentageSum(
                f"Percentage for user {entry.user_id} on expense {expense.id} "
                f"is negative"
            )
        percentages[entry.user_id] = percentage

    percentage_total = sum(percentages.values(), Decimal(0))
    if percentage_total != HUNDRED:
        raise InvalidPercentageSum(
            f"Percentages on expense {expense.id} total {percentage_total}, "
            f"expected 100"
        )
    return _owed_by_weight(expense.total_amount, percentages, HUNDRED)


def _owed_shares(expense: Expense, entries: list[SplitEntry]) -> dict[str, int]:
    shares: dict[str, Decimal] = {}
    for entry in entries:
        share = cast(Decimal, entry.shares)
        if share <= 0:
            raise InvalidShares(
                f"Share for user {entry.user_id} on expense {expense.id} "
                f"must be positive, got {share}"
            )
        shares[entry.user_id] = share

    if not shares:
        raise InvalidShares(f"Expense {expense.id} has no shares")
    return _owed_by_weight(expense.total_amount, shares, sum(shares.values()))


def compute_owed(expense: Expense) -> dict[str, int]:
    """Minor units each split recipient consumes, by split type."""
    split_type = expense.split_type
    if split_type == "EQUAL":
        return _owed_equal(expense.total_amount, expense.splits)
    elif split_type == "EXACT":
        return _owed_exact(expense, expense.splits)
    elif split_type == "PERCENTAGE":
        return _owed_percentage(expense, expense.splits)
    elif split_type == "SHARES":
        return _owed_shares(expense, expense.splits)
    else:
        assert_never(split_type)


def resolve_expense(expense: Expense) -> list[ResolvedSplit]:
    """
    Resolve an expense into one ResolvedSplit per participant.

    Participants are the union of payers and split recipients, returned in
    ascending user-ID order. Resolution is all-or-nothing: any validation
    fault is raised before a single split is produced.

    Args:
        expense: The expense to resolve

    Returns:
        Resolved splits whose paid and owed columns each sum to the total

    Raises:
        ValidationFault: If the expense is rejected
        CurrencyMismatch: If amounts mix currencies
    """
    validate_expense(expense)

    currency = expense.total_amount.currency
    paid: dict[str, int] = {}
    for payer in expense.payers:
        paid[payer.user_id] = paid.get(payer.user_id, 0) + payer.amount.minor_units

    owed = compute_owed(expense)

    # Holds for every split type; a failure here is a bug in this module
    assert sum(owed.values()) == expense.total_amount.minor_units

    participants = sorted(set(paid) | set(owed))
    resolved = [
        ResolvedSplit(
            expense_id=expense.id,
            user_id=user,
            paid=Money(minor_units=paid.get(user, 0), currency=currency),
            owed=Money(minor_units=owed.get(user, 0), currency=currency),
        )
        for user in participants
    ]

    logger.debug(
        f"Resolved expense {expense.id} ({expense.split_type}) "
        f"into {len(resolved)} splits"
    )
    return resolved


def settlement_splits(settlement: Settlement) -> list[ResolvedSplit]:
    """
    Express a completed settlement payment as resolved splits.

    The payer's net rises by the amount and the recipient's falls by it,
    so settlements flow through the same apply/retract path as expenses.
    """
    zero = Money.zero(settlement.amount.currency)
    return [
        ResolvedSplit(
            expense_id=settlement.id,
            user_id=settlement.from_user_id,
            paid=settlement.amount,
            owed=zero,
        ),
        ResolvedSplit(
            expense_id=settlement.id,
            user_id=settlement.to_user_id,
            paid=zero,
            owed=settlement.amount,
        ),
    ]
