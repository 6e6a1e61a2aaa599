"""
Vendor payout processing.

Validation order:
1. Amount must be a positive, finite, whole-cent number
2. Amount must reach the minimum payout threshold
3. Amount must be covered by the available balance

The balance check runs again inside the wallet's commit span, so two payouts
racing on the same pre-state can never both succeed.
"""

import logging
from decimal import Decimal
from typing import Optional

from marketplace_finance.storage.models import (
    BalanceStatus,
    LedgerEntry,
    LedgerEntryDraft,
    TransactionType,
    VendorWallet,
)
from .errors import BelowMinimumThreshold, InsufficientBalance, InvalidPayoutAmount
from .ledger import LedgerAccountant
from .money import Numeric, has_sub_cent_digits, to_finite_decimal

logger = logging.getLogger(__name__)


class PayoutProcessor:
    """Disburses available wallet funds through the LedgerAccountant."""

    def __init__(self, accountant: LedgerAccountant):
        self.accountant = accountant

    @property
    def minimum_payout_threshold(self) -> Decimal:
        return self.accountant.policy.minimum_payout_threshold

    def payout(self, vendor_id: str, amount: Numeric, note: Optional[str] = None) -> LedgerEntry:
        """Withdraw exactly ``amount`` from the vendor's available balance.

        Args:
            vendor_id: Vendor to pay
            amount: Amount to disburse, in whole cents
            note: Optional description for the ledger entry

        Returns:
            The PAYOUT ledger entry (WITHDRAWN, amount == -requested)

        Raises:
            InvalidPayoutAmount: If amount is not a finite number > 0, or has
                fractions of a cent
            BelowMinimumThreshold: If amount is under the policy minimum
            InsufficientBalance: If amount exceeds the available balance
            WalletNotFound: If the vendor has no wallet
        """
        try:
            requested = to_finite_decimal(amount)
        except ValueError as e:
            raise InvalidPayoutAmount(amount, f"Payout amount is invalid: {e}")
        if requested <= 0:
            raise InvalidPayoutAmount(requested)

        minimum = self.minimum_payout_threshold
        if requested < minimum:
            logger.warning(
                "Payout of %s for vendor %s below minimum %s", requested, vendor_id, minimum
            )
            raise BelowMinimumThreshold(requested, minimum)

        if has_sub_cent_digits(requested):
            raise InvalidPayoutAmount(
                requested, f"Payout amount must be in whole cents. Requested: {requested}"
            )

        def ensure_covered(wallet: VendorWallet) -> None:
            if requested > wallet.available_balance:
                logger.warning(
                    "Payout of %s for vendor %s exceeds available balance %s",
                    requested, vendor_id, wallet.available_balance,
                )
                raise InsufficientBalance(vendor_id, requested, wallet.available_balance)

        draft = LedgerEntryDraft(
            transaction_type=TransactionType.PAYOUT,
            amount=-requested,
            vendor_amount=-requested,
            balance_status=BalanceStatus.WITHDRAWN,
            description=note or f"Vendor payout of {requested:,.2f}",
        )
        entry = self.accountant.apply_entry(vendor_id, draft, precondition=ensure_covered)
        logger.info("Paid out %s to vendor %s (entry %s)", requested, vendor_id, entry.entry_id)
        return entry
