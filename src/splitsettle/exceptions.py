"""Custom exceptions for SplitSettle."""


class SplitSettleError(Exception):
    """Base exception for all SplitSettle errors."""

    pass


# ============================================================================
# Input-validation faults (expense rejected, no balance mutation)
# ============================================================================


class ValidationFault(SplitSettleError):
    """Raised when an expense cannot be resolved because its input is invalid."""

    pass


class InvalidExpense(ValidationFault):
    """Raised when an expense is structurally unusable (bad total, no recipients)."""

    pass


class PayerSumMismatch(ValidationFault):
    """Raised when payer amounts don't add up to the expense total."""

    def __init__(self, expense_id: str, paid: int, total: int):
        self.expense_id = expense_id
        self.paid = paid
        self.total = total
        super().__init__(
            f"Payers of expense {expense_id} cover {paid} minor units, "
            f"expected {total}"
        )


class SplitSumMismatch(ValidationFault):
    """Raised when EXACT split amounts don't add up to the expense total."""

    def __init__(self, expense_id: str, owed: int, total: int):
        self.expense_id = expense_id
        self.owed = owed
        self.total = total
        super().__init__(
            f"Exact splits of expense {expense_id} sum to {owed} minor units, "
            f"expected {total}"
        )


class InvalidPercentageSum(ValidationFault):
    """Raised when PERCENTAGE splits don't total exactly 100."""

    pass


class InvalidShares(ValidationFault):
    """Raised when a SHARES split has no shares or a non-positive share."""

    pass


# ============================================================================
# Currency faults
# ============================================================================


class CurrencyFault(SplitSettleError):
    """Base class for currency-related errors."""

    pass


class CurrencyMismatch(CurrencyFault):
    """Raised when two amounts in different currencies are combined directly."""

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"Cannot combine {left} with {right} without conversion")


class UnsupportedCurrency(CurrencyFault):
    """Raised when a currency code is not in the reference table."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Unsupported currency: {code}")


class RateUnavailable(CurrencyFault):
    """Raised when the exchange rate provider cannot supply a rate."""

    pass


class StaleRate(RateUnavailable):
    """Raised when the supplied exchange rate is older than allowed."""

    pass


# ============================================================================
# Invariant faults (internal consistency, never user-facing)
# ============================================================================


class InvariantFault(SplitSettleError):
    """Raised when derived state violates an internal invariant."""

    pass


class UnbalancedInput(InvariantFault):
    """Raised when balances handed to the simplifier don't sum to zero."""

    def __init__(self, currency: str, imbalance: int):
        self.currency = currency
        self.imbalance = imbalance
        super().__init__(
            f"Balances in {currency} sum to {imbalance} minor units instead of zero"
        )


class RoundingError(InvariantFault):
    """Raised when a normalization residual exceeds its theoretical bound."""

    pass


# ============================================================================
# Store errors
# ============================================================================


class ExpenseNotFound(SplitSettleError):
    """Raised when an expense id is not present in the store."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} not found")
