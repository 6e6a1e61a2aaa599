"""
Marketplace finance core.

Prices vendor listings into four revenue buckets, schedules escrow releases,
flags price outliers and keeps vendor wallets and their append-only ledger.
"""

from .config.loader import DEFAULT_POLICY, CategoryConfig, PolicyConfig, load_policy_config
from .core.deviation import PriceDeviationResult, check_deviation, compute_category_benchmark
from .core.escrow import EscrowResult, compute_release
from .core.ledger import LedgerAccountant
from .core.payout import PayoutProcessor
from .core.pricing import (
    ParentUplift,
    PricingBreakdown,
    PricingInput,
    UpliftKind,
    calculate_price,
    round_to_friendly_price,
)
from .core.shipping import ShippingFeeInput, ShippingFeeResult, calculate_shipping_fee
from .storage.models import (
    BalanceStatus,
    LedgerEntry,
    LedgerEntryDraft,
    TransactionType,
    VendorWallet,
)
from .storage.repository import InMemoryWalletRepository, SqliteWalletRepository

__all__ = [
    "DEFAULT_POLICY",
    "CategoryConfig",
    "PolicyConfig",
    "load_policy_config",
    "PriceDeviationResult",
    "check_deviation",
    "compute_category_benchmark",
    "EscrowResult",
    "compute_release",
    "LedgerAccountant",
    "PayoutProcessor",
    "ParentUplift",
    "PricingBreakdown",
    "PricingInput",
    "UpliftKind",
    "calculate_price",
    "round_to_friendly_price",
    "ShippingFeeInput",
    "ShippingFeeResult",
    "calculate_shipping_fee",
    "BalanceStatus",
    "LedgerEntry",
    "LedgerEntryDraft",
    "TransactionType",
    "VendorWallet",
    "InMemoryWalletRepository",
    "SqliteWalletRepository",
]
