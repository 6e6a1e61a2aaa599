"""
Data models for storage layer.

Defines vendor wallets and the append-only ledger.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

ZERO = Decimal("0.00")


class BalanceStatus(Enum):
    """Where the funds of a ledger entry sit in the wallet."""
    PENDING = "pending"      # held in escrow
    AVAILABLE = "available"  # cleared, withdrawable
    WITHDRAWN = "withdrawn"  # paid out


class TransactionType(Enum):
    """Financial event that produced a ledger entry."""
    SALE = "sale"
    COMMISSION = "commission"
    VAT = "vat"
    SHIPPING = "shipping"
    REFUND = "refund"
    PAYOUT = "payout"


@dataclass(frozen=True)
class VendorWallet:
    """Snapshot of a vendor's wallet at a given version.

    Wallets are immutable values: every mutation produces a new snapshot with
    ``version + 1``. The repository only accepts a snapshot whose base version
    still matches what is stored.
    """
    vendor_id: str
    created_at: datetime
    updated_at: datetime
    pending_balance: Decimal = ZERO
    available_balance: Decimal = ZERO
    lifetime_earnings: Decimal = ZERO
    lifetime_payouts: Decimal = ZERO
    lifetime_reversals: Decimal = ZERO
    version: int = 0

    @property
    def total_balance(self) -> Decimal:
        """Pending plus available funds."""
        return self.pending_balance + self.available_balance

    @property
    def lifetime_net(self) -> Decimal:
        """Earnings left after payouts and reversals."""
        return self.lifetime_earnings - self.lifetime_payouts - self.lifetime_reversals


@dataclass(frozen=True)
class LedgerEntryDraft:
    """Caller-supplied fields of a ledger entry before it is written."""
    transaction_type: TransactionType
    amount: Decimal
    vendor_amount: Decimal
    balance_status: BalanceStatus
    description: str = ""
    commission_amount: Decimal = ZERO
    vat_amount: Decimal = ZERO
    order_id: Optional[str] = None


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable record of one financial event on a vendor wallet.

    Entries are append-only. Corrections are new offsetting entries, never
    edits.
    """
    entry_id: str
    vendor_id: str
    transaction_type: TransactionType
    amount: Decimal
    vendor_amount: Decimal
    commission_amount: Decimal
    vat_amount: Decimal
    description: str
    balance_status: BalanceStatus
    created_at: datetime
    order_id: Optional[str] = None
    is_escrow_release: bool = False
