"""SplitSettle - Balance aggregation and debt settlement for shared group expenses."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .ledger import BalanceLedger
from .models import (
    Balance,
    Expense,
    GroupBalanceLine,
    Payer,
    ResolvedSplit,
    Settlement,
    SplitEntry,
    Transfer,
)
from .money import Money
from .normalizer import CurrencyNormalizer
from .resolver import resolve_expense
from .service import SettlementEngine
from .simplifier import simplify_debts

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "BalanceLedger",
    "Balance",
    "Expense",
    "GroupBalanceLine",
    "Payer",
    "ResolvedSplit",
    "Settlement",
    "SplitEntry",
    "Transfer",
    "Money",
    "CurrencyNormalizer",
    "resolve_expense",
    "SettlementEngine",
    "simplify_debts",
]
