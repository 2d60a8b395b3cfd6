"""Greedy debt simplification.

Repeatedly matches the largest remaining creditor with the largest remaining
debtor (ties broken by ascending user ID) and emits one transfer for the
smaller of the two amounts. Not globally optimal, but deterministic and
bounded by (creditors + debtors - 1) transfers.
"""

import heapq
import logging
from collections.abc import Mapping

from .exceptions import CurrencyMismatch, UnbalancedInput
from .models import Balance, Transfer
from .money import Money

logger = logging.getLogger(__name__)


def simplify_net_balances(balances: Mapping[str, int], currency: str) -> list[Transfer]:
    """
    Compute transfers that zero a set of net balances in one currency.

    Args:
        balances: Net minor units per user (positive = owed money)
        currency: Currency of every balance

    Returns:
        Transfers in the order they were matched

    Raises:
        UnbalancedInput: If the balances don't sum to zero
    """
    imbalance = sum(balances.values())
    if imbalance != 0:
        logger.error(
            f"Refusing to simplify unbalanced {currency} balances "
            f"(off by {imbalance}): {dict(balances)}"
        )
        raise UnbalancedInput(currency, imbalance)

    # heapq is a min-heap; negate amounts so the largest comes out first
    creditors = [(-net, user) for user, net in balances.items() if net > 0]
    debtors = [(net, user) for user, net in balances.items() if net < 0]
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transfers: list[Transfer] = []
    while creditors and debtors:
        neg_credit, creditor = heapq.heappop(creditors)
        neg_debt, debtor = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        amount = min(credit, debt)
        if amount > 0:
            transfers.append(
                Transfer(
                    from_user_id=debtor,
                    to_user_id=creditor,
                    amount=Money(minor_units=amount, currency=currency),
                )
            )

        if credit > amount:
            heapq.heappush(creditors, (-(credit - amount), creditor))
        if debt > amount:
            heapq.heappush(debtors, (-(debt - amount), debtor))

    logger.debug(
        f"Simplified {len(balances)} {currency} balances "
        f"into {len(transfers)} transfers"
    )
    return transfers


def simplify_debts(balances: list[Balance]) -> list[Transfer]:
    """
    Compute settlement transfers for one group's single-currency balances.

    Args:
        balances: Balance rows, all in the same currency

    Returns:
        Transfers that bring every balance to zero (empty if already settled)

    Raises:
        CurrencyMismatch: If the rows mix currencies
        UnbalancedInput: If the rows don't sum to zero
    """
    if not balances:
        return []

    currency = balances[0].currency
    nets: dict[str, int] = {}
    for balance in balances:
        if balance.currency != currency:
            raise CurrencyMismatch(currency, balance.currency)
        nets[balance.user_id] = nets.get(balance.user_id, 0) + balance.net_minor_units

    return simplify_net_balances(nets, currency)
