"""Pydantic domain models for SplitSettle."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .money import Money

SplitType = Literal["EQUAL", "EXACT", "PERCENTAGE", "SHARES"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Expense Models
# ============================================================================


class Payer(BaseModel):
    """One payer's contribution to an expense."""

    user_id: str
    amount: Money

    @model_validator(mode="after")
    def _non_negative(self) -> "Payer":
        if self.amount.minor_units < 0:
            raise ValueError(f"Payer {self.user_id} has a negative amount")
        return self


class SplitEntry(BaseModel):
    """A split recipient and the parameter its split type needs.

    EQUAL entries carry only user_id; EXACT needs amount; PERCENTAGE needs
    percentage; SHARES needs shares.
    """

    user_id: str
    amount: Money | None = None
    percentage: Decimal | None = None
    shares: Decimal | None = None


_REQUIRED_FIELD: dict[str, str | None] = {
    "EQUAL": None,
    "EXACT": "amount",
    "PERCENTAGE": "percentage",
    "SHARES": "shares",
}


class Expense(BaseModel):
    """A recorded group expense."""

    id: str
    group_id: str
    description: str = ""
    total_amount: Money
    split_type: SplitType
    payers: list[Payer]
    splits: list[SplitEntry]
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _splits_match_type(self) -> "Expense":
        required = _REQUIRED_FIELD[self.split_type]
        if required is None:
            return self
        for entry in self.splits:
            if getattr(entry, required) is None:
                raise ValueError(
                    f"{self.split_type} split for user {entry.user_id} "
                    f"is missing '{required}'"
                )
        return self


class ResolvedSplit(BaseModel):
    """What one participant paid and consumed on one expense."""

    model_config = ConfigDict(frozen=True)

    expense_id: str
    user_id: str
    paid: Money
    owed: Money

    @model_validator(mode="after")
    def _single_currency(self) -> "ResolvedSplit":
        if self.paid.currency != self.owed.currency:
            raise ValueError(
                f"Split for user {self.user_id} on {self.expense_id} mixes "
                f"{self.paid.currency} and {self.owed.currency}"
            )
        return self

    @property
    def net(self) -> Money:
        """paid - owed (positive means the group owes this member)."""
        return self.paid.subtract(self.owed)


# ============================================================================
# Balance Models
# ============================================================================


class Balance(BaseModel):
    """Running net position of one member in one currency."""

    group_id: str
    user_id: str
    currency: str
    net_minor_units: int


class UserBalance(BaseModel):
    """Per-currency totals for one member, including gross paid and owed."""

    group_id: str
    user_id: str
    currency: str
    total_paid: int
    total_owed: int
    net_minor_units: int


class GroupBalanceLine(BaseModel):
    """A display row returned by get_group_balances."""

    user_id: str
    currency: str
    net: int
    display_amount: str


class Transfer(BaseModel):
    """A recommended payment that settles part of the group's debts."""

    from_user_id: str
    to_user_id: str
    amount: Money


# ============================================================================
# Currency Models
# ============================================================================


class ExchangeRate(BaseModel):
    """A conversion rate snapshot supplied by a rate provider."""

    from_currency: str
    to_currency: str
    rate: Decimal = Field(gt=0)
    as_of: datetime


# ============================================================================
# Settlement Models
# ============================================================================


class Settlement(BaseModel):
    """A completed payment from one member to another inside a group."""

    id: str
    group_id: str
    from_user_id: str
    to_user_id: str
    amount: Money
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _valid_payment(self) -> "Settlement":
        if self.from_user_id == self.to_user_id:
            raise ValueError("A settlement needs two different members")
        if self.amount.minor_units <= 0:
            raise ValueError("Settlement amount must be positive")
        return self
