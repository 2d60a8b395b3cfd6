"""SQLite database operations for SplitSettle."""

import sqlite3
from datetime import datetime
from decimal import Decimal
from pathlib import Path

from .models import ExchangeRate, Expense, Settlement
from .money import Money


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Expenses table (full record kept as JSON)
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_expenses_group ON expenses (group_id)"
        )

        # Completed settlements table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlements (
                id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL,
                from_user_id TEXT NOT NULL,
                to_user_id TEXT NOT NULL,
                minor_units INTEGER NOT NULL,
                currency TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        # Exchange rate cache table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS exchange_rates (
                from_currency TEXT NOT NULL,
                to_currency TEXT NOT NULL,
                rate TEXT NOT NULL,
                as_of TIMESTAMP NOT NULL,
                fetched_at TIMESTAMP NOT NULL,
                PRIMARY KEY (from_currency, to_currency)
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Expense operations
    # ========================================================================

    def save_expense(self, expense: Expense):
        """Insert or replace an expense record."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO expenses (id, group_id, payload, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                group_id = excluded.group_id,
                payload = excluded.payload,
                created_at = excluded.created_at
            """,
            (
                expense.id,
                expense.group_id,
                expense.model_dump_json(),
                expense.created_at.isoformat(),
            ),
        )
        self.conn.commit()

    def get_expense(self, expense_id: str) -> Expense | None:
        """Get an expense by id."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT payload FROM expenses WHERE id = ?", (expense_id,))
        row = cursor.fetchone()
        return Expense.model_validate_json(row["payload"]) if row else None

    def list_expenses(self, group_id: str) -> list[Expense]:
        """Get all expenses of a group, oldest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT payload FROM expenses
            WHERE group_id = ?
            ORDER BY created_at, id
            """,
            (group_id,),
        )
        return [
            Expense.model_validate_json(row["payload"]) for row in cursor.fetchall()
        ]

    def delete_expense(self, expense_id: str) -> bool:
        """Delete an expense. Returns False if it did not exist."""
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    # ========================================================================
    # Settlement operations
    # ========================================================================

    def save_settlement(self, settlement: Settlement):
        """Save a completed settlement."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO settlements (
                id, group_id, from_user_id, to_user_id,
                minor_units, currency, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                settlement.id,
                settlement.group_id,
                settlement.from_user_id,
                settlement.to_user_id,
                settlement.amount.minor_units,
                settlement.amount.currency,
                settlement.created_at.isoformat(),
            ),
        )
        self.conn.commit()

    def list_settlements(self, group_id: str) -> list[Settlement]:
        """Get all settlements of a group, oldest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, group_id, from_user_id, to_user_id,
                   minor_units, currency, created_at
            FROM settlements
            WHERE group_id = ?
            ORDER BY created_at, id
            """,
            (group_id,),
        )
        return [
            Settlement(
                id=row["id"],
                group_id=row["group_id"],
                from_user_id=row["from_user_id"],
                to_user_id=row["to_user_id"],
                amount=Money(minor_units=row["minor_units"], currency=row["currency"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in cursor.fetchall()
        ]

    # ========================================================================
    # Exchange rate cache operations
    # ========================================================================

    def save_exchange_rate(self, rate: ExchangeRate, fetched_at: datetime):
        """Cache an exchange rate."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO exchange_rates (
                from_currency, to_currency, rate, as_of, fetched_at
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(from_currency, to_currency) DO UPDATE SET
                rate = excluded.rate,
                as_of = excluded.as_of,
                fetched_at = excluded.fetched_at
            """,
            (
                rate.from_currency,
                rate.to_currency,
                str(rate.rate),
                rate.as_of.isoformat(),
                fetched_at.isoformat(),
            ),
        )
        self.conn.commit()

    def get_exchange_rate(
        self, from_currency: str, to_currency: str
    ) -> tuple[ExchangeRate, datetime] | None:
        """Get a cached rate and the time it was fetched."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT from_currency, to_currency, rate, as_of, fetched_at
            FROM exchange_rates
            WHERE from_currency = ? AND to_currency = ?
            """,
            (from_currency, to_currency),
        )
        row = cursor.fetchone()
        if not row:
            return None

        rate = ExchangeRate(
            from_currency=row["from_currency"],
            to_currency=row["to_currency"],
            rate=Decimal(row["rate"]),
            as_of=datetime.fromisoformat(row["as_of"]),
        )
        return rate, datetime.fromisoformat(row["fetched_at"])
