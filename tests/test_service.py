"""Tests for the SettlementEngine service layer."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from splitsettle.clients.rates import StaticRateProvider
from splitsettle.db import Database
from splitsettle.exceptions import (
    ExpenseNotFound,
    InvalidExpense,
    PayerSumMismatch,
    RateUnavailable,
    UnsupportedCurrency,
)
from splitsettle.models import Expense, Payer, Settlement, SplitEntry
from splitsettle.money import Money
from splitsettle.normalizer import CurrencyNormalizer
from splitsettle.service import SettlementEngine


@pytest.fixture
def mock_db(tmp_path):
    """Create a temporary database."""
    db_path = tmp_path / "test.db"
    db = Database(db_path)
    yield db
    db.close()


@pytest.fixture
def normalizer():
    """Normalizer with a single EUR->USD rate of 1.1."""
    return CurrencyNormalizer(StaticRateProvider({("EUR", "USD"): Decimal("1.1")}))


@pytest.fixture
def engine(normalizer, mock_db):
    """Create a SettlementEngine backed by the temporary database."""
    return SettlementEngine(normalizer, store=mock_db)


def equal_expense(
    id: str,
    payer: str,
    units: int,
    currency: str = "USD",
    users: tuple[str, ...] = ("A", "B"),
    minutes: int = 0,
) -> Expense:
    """An expense paid by one member and split equally."""
    return Expense(
        id=id,
        group_id="trip",
        description=f"Expense {id}",
        total_amount=Money(minor_units=units, currency=currency),
        split_type="EQUAL",
        payers=[
            Payer(user_id=payer, amount=Money(minor_units=units, currency=currency))
        ],
        splits=[SplitEntry(user_id=user) for user in users],
        created_at=datetime(2026, 2, 1, tzinfo=UTC) + timedelta(minutes=minutes),
    )


def transfers_as_tuples(transfers):
    return [
        (t.from_user_id, t.to_user_id, t.amount.minor_units, t.amount.currency)
        for t in transfers
    ]


class TestSingleCurrencyFlow:
    """Resolve, apply and settle within one currency."""

    def test_three_way_dinner(self, engine):
        """100 USD split equally three ways, paid by A."""
        balances = engine.add_expense(
            equal_expense("e1", "A", 100, users=("A", "B", "C"))
        )

        assert {b.user_id: b.net_minor_units for b in balances} == {
            "A": 66,
            "B": -33,
            "C": -33,
        }
        assert transfers_as_tuples(engine.simplify_debts("trip")) == [
            ("B", "A", 33, "USD"),
            ("C", "A", 33, "USD"),
        ]

    def test_invalid_expense_changes_nothing(self, engine):
        engine.add_expense(equal_expense("e1", "A", 100))
        before = engine.ledger.get_group_balances("trip")

        bad = equal_expense("e2", "B", 500)
        bad.payers = [Payer(user_id="B", amount=Money(minor_units=400, currency="USD"))]
        with pytest.raises(PayerSumMismatch):
            engine.add_expense(bad)

        assert engine.ledger.get_group_balances("trip") == before

    def test_unknown_currency_rejected(self, engine):
        with pytest.raises(UnsupportedCurrency):
            engine.add_expense(equal_expense("e1", "A", 100, currency="XYZ"))
        assert engine.get_group_balances("trip") == []

    def test_remove_expense(self, engine):
        expense = equal_expense("e1", "A", 100)
        engine.add_expense(expense)
        assert engine.remove_expense(expense) == []

    def test_edit_expense(self, engine):
        old = equal_expense("e1", "A", 100)
        engine.add_expense(old)
        new = equal_expense("e1", "A", 300)

        balances = engine.edit_expense(old, new)
        assert {b.user_id: b.net_minor_units for b in balances} == {"A": 150, "B": -150}

    def test_edit_must_keep_identity(self, engine):
        with pytest.raises(InvalidExpense):
            engine.edit_expense(
                equal_expense("e1", "A", 100), equal_expense("e2", "A", 100)
            )

    def test_record_settlement_clears_debt(self, engine):
        engine.add_expense(equal_expense("e1", "A", 100, users=("A", "B", "C")))
        for debtor in ("B", "C"):
            engine.record_settlement(
                Settlement(
                    id=f"s-{debtor}",
                    group_id="trip",
                    from_user_id=debtor,
                    to_user_id="A",
                    amount=Money(minor_units=33, currency="USD"),
                )
            )

        assert engine.get_group_balances("trip") == []
        assert engine.simplify_debts("trip") == []


class TestMultiCurrency:
    """Balances in more than one currency."""

    @pytest.fixture
    def loaded(self, engine):
        engine.add_expense(equal_expense("eur", "A", 1000, currency="EUR"))
        engine.add_expense(equal_expense("usd", "B", 500, currency="USD"))
        return engine

    def test_per_currency_by_default(self, loaded):
        lines = loaded.get_group_balances("trip")
        assert [(line.user_id, line.currency, line.net) for line in lines] == [
            ("A", "EUR", 500),
            ("A", "USD", -250),
            ("B", "EUR", -500),
            ("B", "USD", 250),
        ]
        assert lines[0].display_amount == "€5.00"
        assert lines[1].display_amount == "-$2.50"

        assert transfers_as_tuples(loaded.simplify_debts("trip")) == [
            ("B", "A", 500, "EUR"),
            ("A", "B", 250, "USD"),
        ]

    def test_normalized_to_reporting_currency(self, loaded):
        """10 EUR and 5 USD at 1.1 net out to a single 3 USD transfer."""
        lines = loaded.get_group_balances("trip", reporting_currency="USD")
        assert [(line.user_id, line.currency, line.net) for line in lines] == [
            ("A", "USD", 300),
            ("B", "USD", -300),
        ]
        assert sum(line.net for line in lines) == 0
        assert lines[0].display_amount == "$3.00"

        assert transfers_as_tuples(
            loaded.simplify_debts("trip", reporting_currency="usd")
        ) == [("B", "A", 300, "USD")]

    def test_engine_default_reporting_currency(self, normalizer):
        engine = SettlementEngine(normalizer, reporting_currency="USD")
        engine.add_expense(equal_expense("eur", "A", 1000, currency="EUR"))
        assert transfers_as_tuples(engine.simplify_debts("trip")) == [
            ("B", "A", 550, "USD")
        ]

    def test_missing_rate(self, loaded):
        loaded.add_expense(equal_expense("gbp", "A", 100, currency="GBP"))
        with pytest.raises(RateUnavailable):
            loaded.simplify_debts("trip", reporting_currency="USD")

    def test_user_balance(self, loaded):
        rows = loaded.get_user_balance("trip", "A")
        assert [(r.currency, r.total_paid, r.total_owed) for r in rows] == [
            ("EUR", 1000, 500),
            ("USD", 0, 250),
        ]


class TestStoreBackedEngine:
    """Rebuilding balances from the database."""

    def test_rebuild_group(self, engine, mock_db):
        mock_db.save_expense(equal_expense("e1", "A", 100, users=("A", "B", "C")))
        mock_db.save_expense(equal_expense("e2", "B", 60, users=("B", "C"), minutes=5))
        mock_db.save_settlement(
            Settlement(
                id="s1",
                group_id="trip",
                from_user_id="C",
                to_user_id="A",
                amount=Money(minor_units=33, currency="USD"),
            )
        )

        balances = engine.rebuild_group("trip")
        assert {b.user_id: b.net_minor_units for b in balances} == {
            "A": 33,
            "B": -3,
            "C": -30,
        }

    def test_rebuild_replaces_stale_state(self, engine, mock_db):
        engine.add_expense(equal_expense("ghost", "A", 999))
        mock_db.save_expense(equal_expense("e1", "A", 100))

        balances = engine.rebuild_group("trip")
        assert {b.user_id: b.net_minor_units for b in balances} == {"A": 50, "B": -50}

    def test_rebuild_keeps_state_on_failure(self, engine, mock_db):
        engine.add_expense(equal_expense("e1", "A", 100))
        before = engine.ledger.get_group_balances("trip")

        broken = equal_expense("e2", "A", 100)
        broken.splits = []
        mock_db.save_expense(broken)

        with pytest.raises(InvalidExpense):
            engine.rebuild_group("trip")
        assert engine.ledger.get_group_balances("trip") == before

    def test_get_expense(self, engine, mock_db):
        expense = equal_expense("e1", "A", 100)
        mock_db.save_expense(expense)
        assert engine.get_expense("e1") == expense

    def test_get_expense_not_found(self, engine):
        with pytest.raises(ExpenseNotFound):
            engine.get_expense("missing")

    def test_no_store_configured(self, normalizer):
        with pytest.raises(ValueError):
            SettlementEngine(normalizer).rebuild_group("trip")
