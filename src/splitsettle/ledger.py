"""Running per-group balances.

Every update is integer addition on (paid, owed, net) counters keyed by
(user, currency), so applying a split set and retracting it are exact
inverses and any replay order produces the same totals.

Writers to a group are serialized by that group's lock. Readers take the
same lock only long enough to copy the counters and then work on the copy.
"""

import logging
import threading
from collections.abc import Iterable

from pydantic import BaseModel

from .models import Balance, ResolvedSplit, UserBalance
from .normalizer import CurrencyNormalizer

logger = logging.getLogger(__name__)


class BalanceEntry(BaseModel):
    """Gross and net counters for one member in one currency."""

    paid: int = 0
    owed: int = 0
    net: int = 0


# (user_id, currency) -> counters
GroupState = dict[tuple[str, str], BalanceEntry]


class BalanceLedger:
    """In-memory balance aggregate, one state per group."""

    def __init__(self, normalizer: CurrencyNormalizer | None = None):
        """Initialize an empty ledger."""
        self.normalizer = normalizer
        self._groups: dict[str, GroupState] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def lock_for(self, group_id: str) -> threading.RLock:
        """The lock serializing writes to group_id."""
        with self._registry_lock:
            lock = self._locks.get(group_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[group_id] = lock
            return lock

    # ========================================================================
    # Writes
    # ========================================================================

    def _prepare(
        self, splits: Iterable[ResolvedSplit], reporting_currency: str | None
    ) -> list[ResolvedSplit]:
        prepared = list(splits)
        if reporting_currency is None:
            return prepared
        if self.normalizer is None:
            raise ValueError("A reporting currency needs a CurrencyNormalizer")
        return self.normalizer.normalize_splits(prepared, reporting_currency)

    def _update(
        self, group_id: str, splits: list[ResolvedSplit], sign: int
    ) -> list[Balance]:
        # Build every delta before touching state, so a bad split leaves
        # the group untouched.
        deltas: dict[tuple[str, str], tuple[int, int, int]] = {}
        for split in splits:
            net = split.net.minor_units
            key = (split.user_id, split.paid.currency)
            paid, owed, total_net = deltas.get(key, (0, 0, 0))
            deltas[key] = (
                paid + split.paid.minor_units,
                owed + split.owed.minor_units,
                total_net + net,
            )

        with self.lock_for(group_id):
            state = self._groups.setdefault(group_id, {})
            for key, (paid, owed, net) in deltas.items():
                entry = state.setdefault(key, BalanceEntry())
                entry.paid += sign * paid
                entry.owed += sign * owed
                entry.net += sign * net
            return _balances(group_id, state)

    def apply(
        self,
        group_id: str,
        splits: Iterable[ResolvedSplit],
        reporting_currency: str | None = None,
    ) -> list[Balance]:
        """
        Add the effect of resolved splits to a group's balances.

        Args:
            group_id: Group the splits belong to
            splits: Resolved splits of one or more expenses
            reporting_currency: If given, splits are normalized into this
                currency before being recorded

        Returns:
            The group's non-zero balances after the update
        """
        prepared = self._prepare(splits, reporting_currency)
        balances = self._update(group_id, prepared, 1)
        logger.info(f"Applied {len(prepared)} splits to group {group_id}")
        return balances

    def retract(
        self,
        group_id: str,
        splits: Iterable[ResolvedSplit],
        reporting_currency: str | None = None,
    ) -> list[Balance]:
        """
        Remove the effect of previously applied splits (exact inverse of apply).

        When a reporting currency was used on apply, the same rate snapshot
        must be in effect for the retraction to cancel exactly.
        """
        prepared = self._prepare(splits, reporting_currency)
        balances = self._update(group_id, prepared, -1)
        logger.info(f"Retracted {len(prepared)} splits from group {group_id}")
        return balances

    def replace_group(self, group_id: str, state: GroupState) -> None:
        """Swap in a freshly rebuilt state for a group."""
        with self.lock_for(group_id):
            self._groups[group_id] = state

    # ========================================================================
    # Reads
    # ========================================================================

    def snapshot(self, group_id: str) -> GroupState:
        """A private copy of a group's counters."""
        with self.lock_for(group_id):
            state = self._groups.get(group_id, {})
            return {key: entry.model_copy() for key, entry in state.items()}

    def get_group_balances(self, group_id: str) -> list[Balance]:
        """Non-zero balances for a group, sorted by user then currency."""
        return _balances(group_id, self.snapshot(group_id))

    def get_user_balances(self, group_id: str, user_id: str) -> list[UserBalance]:
        """Gross paid/owed and net totals for one member, per currency."""
        state = self.snapshot(group_id)
        return [
            UserBalance(
                group_id=group_id,
                user_id=user,
                currency=currency,
                total_paid=entry.paid,
                total_owed=entry.owed,
                net_minor_units=entry.net,
            )
            for (user, currency), entry in sorted(state.items())
            if user == user_id
        ]

    def currencies(self, group_id: str) -> list[str]:
        """Currencies that have ever been recorded for a group."""
        return sorted({currency for _user, currency in self.snapshot(group_id)})


def _balances(group_id: str, state: GroupState) -> list[Balance]:
    return [
        Balance(
            group_id=group_id,
            user_id=user,
            currency=currency,
            net_minor_units=entry.net,
        )
        for (user, currency), entry in sorted(state.items())
        if entry.net != 0
    ]


def build_state(splits: Iterable[ResolvedSplit]) -> GroupState:
    """Fold splits into a fresh group state (used for full replays)."""
    state: GroupState = {}
    for split in splits:
        entry = state.setdefault((split.user_id, split.paid.currency), BalanceEntry())
        entry.paid += split.paid.minor_units
        entry.owed += split.owed.minor_units
        entry.net += split.net.minor_units
    return state
