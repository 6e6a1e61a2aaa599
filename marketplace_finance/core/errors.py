"""
Error taxonomy for the finance core.

Validation errors reject bad input before any calculation runs. Policy errors
are expected business outcomes that callers surface as rejected requests.
Invariant violations abort the operation and need manual reconciliation.
"""

from decimal import Decimal
from typing import Optional


class FinanceError(Exception):
    """Base class for every error raised by the finance core."""


# Validation errors

class ValidationError(FinanceError):
    """Raised when input has an invalid shape or value."""


class InvalidPricingInput(ValidationError):
    """Raised when a pricing input cannot be priced."""
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class InvalidBenchmark(ValidationError):
    """Raised when a category benchmark is zero, negative or missing."""
    def __init__(self, message: str, benchmark: Optional[Decimal] = None):
        super().__init__(message)
        self.benchmark = benchmark


class InvalidPayoutAmount(ValidationError):
    """Raised when a payout amount is not a positive whole-cent number."""
    def __init__(self, amount, message: Optional[str] = None):
        super().__init__(
            message or f"Payout amount must be greater than zero. Requested: {amount}"
        )
        self.amount = amount


class InvalidDeviationInput(ValidationError):
    """Raised when an observed price or deviation threshold is invalid."""
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class InvalidLedgerEntry(ValidationError):
    """Raised when a ledger entry draft or escrow release is malformed."""
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class InvalidShippingInput(ValidationError):
    """Raised when parcel dimensions, weight or rates are invalid."""
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


# Policy errors

class PolicyError(FinanceError):
    """Raised when a request is valid but rejected by business policy."""


class BelowMinimumThreshold(PolicyError):
    """Raised when a payout is smaller than the minimum payout threshold."""
    def __init__(self, amount: Decimal, minimum: Decimal):
        super().__init__(
            f"Payout amount must be at least {minimum:,.2f}. Requested: {amount:,.2f}"
        )
        self.amount = amount
        self.minimum = minimum


class InsufficientBalance(PolicyError):
    """Raised when a payout exceeds the wallet's available balance."""
    def __init__(self, vendor_id: str, requested: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient available balance for vendor {vendor_id}. "
            f"Available: {available:,.2f}, Requested: {requested:,.2f}"
        )
        self.vendor_id = vendor_id
        self.requested = requested
        self.available = available


class EscrowNotReleased(PolicyError):
    """Raised when funds are promoted before their escrow hold has elapsed."""
    def __init__(self, vendor_id: str, release_date):
        super().__init__(
            f"Escrow hold for vendor {vendor_id} ends at {release_date.isoformat()}"
        )
        self.vendor_id = vendor_id
        self.release_date = release_date


# Invariant violations

class InvariantViolation(FinanceError):
    """Raised when applying an entry would break a wallet invariant."""


class NegativeBalanceViolation(InvariantViolation):
    """Raised when a balance would drop below zero."""
    def __init__(self, vendor_id: str, balance: str, resulting: Decimal):
        super().__init__(
            f"Entry would drive {balance} balance of vendor {vendor_id} to {resulting}"
        )
        self.vendor_id = vendor_id
        self.balance = balance
        self.resulting = resulting


class AccountingIdentityViolation(InvariantViolation):
    """Raised when lifetime totals no longer reconcile with the balances."""
    def __init__(self, vendor_id: str, expected: Decimal, actual: Decimal):
        super().__init__(
            f"Accounting identity broken for vendor {vendor_id}: "
            f"lifetime net {expected} != balances {actual}"
        )
        self.vendor_id = vendor_id
        self.expected = expected
        self.actual = actual


# Lookup and storage errors

class WalletNotFound(FinanceError):
    """Raised when no wallet has been provisioned for a vendor."""
    def __init__(self, vendor_id: str):
        super().__init__(f"No wallet provisioned for vendor {vendor_id}")
        self.vendor_id = vendor_id


class WalletAlreadyExists(FinanceError):
    """Raised when provisioning a wallet that already exists."""
    def __init__(self, vendor_id: str):
        super().__init__(f"Wallet already exists for vendor {vendor_id}")
        self.vendor_id = vendor_id


class ConcurrencyConflict(FinanceError):
    """Raised when a wallet changed between read and commit."""
    def __init__(self, vendor_id: str, expected_version: int):
        super().__init__(
            f"Wallet for vendor {vendor_id} is no longer at version {expected_version}"
        )
        self.vendor_id = vendor_id
        self.expected_version = expected_version
