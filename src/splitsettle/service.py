"""Service layer exposing the balance and settlement engine.

This module composes the resolver, normalizer, ledger and simplifier into
the operations the surrounding application calls.
"""

import logging
from typing import Protocol

from .currencies import format_amount, get_currency_info
from .exceptions import ExpenseNotFound, InvalidExpense
from .ledger import BalanceLedger, GroupState, build_state
from .models import (
    Balance,
    Expense,
    GroupBalanceLine,
    ResolvedSplit,
    Settlement,
    Transfer,
    UserBalance,
)
from .money import Money
from .normalizer import CurrencyNormalizer
from .resolver import resolve_expense, settlement_splits
from .simplifier import simplify_net_balances

logger = logging.getLogger(__name__)


class ExpenseStore(Protocol):
    """Source of truth for a group's expenses and completed settlements."""

    def list_expenses(self, group_id: str) -> list[Expense]: ...

    def get_expense(self, expense_id: str) -> Expense | None: ...

    def list_settlements(self, group_id: str) -> list[Settlement]: ...


class SettlementEngine:
    """Turns recorded expenses into balances and settlement transfers."""

    def __init__(
        self,
        normalizer: CurrencyNormalizer,
        store: ExpenseStore | None = None,
        ledger: BalanceLedger | None = None,
        reporting_currency: str | None = None,
    ):
        """Initialize the engine."""
        self.normalizer = normalizer
        self.store = store
        self.ledger = ledger or BalanceLedger(normalizer)
        self.reporting_currency = reporting_currency

    # ========================================================================
    # Expense resolution and balance updates
    # ========================================================================

    def resolve_expense(self, expense: Expense) -> list[ResolvedSplit]:
        """Resolve an expense into per-member paid and owed amounts."""
        return resolve_expense(expense)

    def apply_to_balances(
        self,
        group_id: str,
        splits: list[ResolvedSplit],
        reporting_currency: str | None = None,
    ) -> list[Balance]:
        """Add resolved splits to a group's running balances."""
        return self.ledger.apply(group_id, splits, reporting_currency)

    def retract_from_balances(
        self,
        group_id: str,
        splits: list[ResolvedSplit],
        reporting_currency: str | None = None,
    ) -> list[Balance]:
        """Remove previously applied splits from a group's running balances."""
        return self.ledger.retract(group_id, splits, reporting_currency)

    def add_expense(self, expense: Expense) -> list[Balance]:
        """
        Resolve an expense and apply it to its group.

        Nothing is applied if resolution fails.
        """
        splits = self.resolve_expense(expense)
        balances = self.apply_to_balances(expense.group_id, splits)
        logger.info(
            f"Added expense {expense.id} ({expense.total_amount}) "
            f"to group {expense.group_id}"
        )
        return balances

    def remove_expense(self, expense: Expense) -> list[Balance]:
        """Retract an expense's effect from its group."""
        splits = self.resolve_expense(expense)
        balances = self.retract_from_balances(expense.group_id, splits)
        logger.info(f"Removed expense {expense.id} from group {expense.group_id}")
        return balances

    def edit_expense(self, old: Expense, new: Expense) -> list[Balance]:
        """
        Replace an expense with an edited version.

        Both versions are resolved first, then the old effect is retracted
        and the new one applied while holding the group's lock, so readers
        never observe the half-edited state.
        """
        if old.id != new.id or old.group_id != new.group_id:
            raise InvalidExpense(
                f"Edit must keep the expense id and group ({old.id} -> {new.id})"
            )

        old_splits = self.resolve_expense(old)
        new_splits = self.resolve_expense(new)
        with self.ledger.lock_for(new.group_id):
            self.ledger.retract(old.group_id, old_splits)
            balances = self.ledger.apply(new.group_id, new_splits)

        logger.info(f"Edited expense {new.id} in group {new.group_id}")
        return balances

    def record_settlement(self, settlement: Settlement) -> list[Balance]:
        """Apply a completed settlement payment to its group."""
        balances = self.apply_to_balances(
            settlement.group_id, settlement_splits(settlement)
        )
        logger.info(
            f"Recorded settlement {settlement.id}: {settlement.from_user_id} paid "
            f"{settlement.to_user_id} {format_amount(settlement.amount)}"
        )
        return balances

    def get_expense(self, expense_id: str) -> Expense:
        """Look up a single expense in the store."""
        if self.store is None:
            raise ValueError("No expense store configured")
        expense = self.store.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFound(expense_id)
        return expense

    def rebuild_group(self, group_id: str) -> list[Balance]:
        """
        Recompute a group's balances from the store by full replay.

        Every expense and settlement is resolved before the fresh state is
        swapped in; a failure leaves the existing balances untouched.
        """
        if self.store is None:
            raise ValueError("No expense store configured")

        with self.ledger.lock_for(group_id):
            expenses = self.store.list_expenses(group_id)
            settlements = self.store.list_settlements(group_id)

            splits: list[ResolvedSplit] = []
            for expense in expenses:
                splits.extend(resolve_expense(expense))
            for settlement in settlements:
                splits.extend(settlement_splits(settlement))

            self.ledger.replace_group(group_id, build_state(splits))

        logger.info(
            f"Rebuilt group {group_id} from {len(expenses)} expenses "
            f"and {len(settlements)} settlements"
        )
        return self.ledger.get_group_balances(group_id)

    # ========================================================================
    # Reporting
    # ========================================================================

    def _target_currency(self, reporting_currency: str | None) -> str | None:
        target = reporting_currency or self.reporting_currency
        return get_currency_info(target).code if target else None

    def _normalized_nets(self, state: GroupState, target: str) -> dict[str, int]:
        """Sum each member's nets across currencies, converted into target."""
        by_currency: dict[str, dict[str, int]] = {}
        for (user, currency), entry in state.items():
            by_currency.setdefault(currency, {})[user] = entry.net

        nets: dict[str, int] = {}
        for currency in sorted(by_currency):
            converted = self.normalizer.normalize_allocation(
                by_currency[currency], currency, target
            )
            for user, value in converted.items():
                nets[user] = nets.get(user, 0) + value
        return nets

    def get_group_balances(
        self, group_id: str, reporting_currency: str | None = None
    ) -> list[GroupBalanceLine]:
        """
        Non-zero balances of a group for display.

        Args:
            group_id: The group
            reporting_currency: Convert everything into this currency; when
                neither this nor the engine default is set, one row is
                returned per member per currency

        Returns:
            Rows sorted by user then currency
        """
        state = self.ledger.snapshot(group_id)
        target = self._target_currency(reporting_currency)

        if target is None:
            rows = [
                (user, currency, entry.net)
                for (user, currency), entry in sorted(state.items())
            ]
        else:
            nets = self._normalized_nets(state, target)
            rows = [(user, target, nets[user]) for user in sorted(nets)]

        return [
            GroupBalanceLine(
                user_id=user,
                currency=currency,
                net=net,
                display_amount=format_amount(
                    Money(minor_units=net, currency=currency)
                ),
            )
            for user, currency, net in rows
            if net != 0
        ]

    def get_user_balance(self, group_id: str, user_id: str) -> list[UserBalance]:
        """Gross paid, gross owed and net for one member, per currency."""
        return self.ledger.get_user_balances(group_id, user_id)

    def simplify_debts(
        self, group_id: str, reporting_currency: str | None = None
    ) -> list[Transfer]:
        """
        Compute the transfers that settle a group.

        With a reporting currency, all balances are normalized first and
        settled together. Otherwise each currency is settled independently
        and the transfers are returned grouped by currency code.
        """
        state = self.ledger.snapshot(group_id)
        target = self._target_currency(reporting_currency)

        if target is not None:
            transfers = simplify_net_balances(
                self._normalized_nets(state, target), target
            )
        else:
            by_currency: dict[str, dict[str, int]] = {}
            for (user, currency), entry in state.items():
                by_currency.setdefault(currency, {})[user] = entry.net
            transfers = []
            for currency in sorted(by_currency):
                transfers.extend(
                    simplify_net_balances(by_currency[currency], currency)
                )

        logger.info(f"Group {group_id} settles with {len(transfers)} transfers")
        return transfers
