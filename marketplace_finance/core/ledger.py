"""
Ledger accounting for vendor wallets.

Applies ledger entries to wallets and enforces the balance rules:

- PENDING: pending += vendor_amount, positive amounts count as earnings
- AVAILABLE: available += vendor_amount, positive amounts count as earnings
- WITHDRAWN: available -= |vendor_amount|, payouts += |vendor_amount|

Negative PENDING/AVAILABLE amounts are reversals. Every applied entry must
leave both balances non-negative and keep the accounting identity
``earnings - payouts - reversals == pending + available``.

Mutations of one wallet are serialized by a per-wallet lock and, across
processes, by the repository's version check.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from marketplace_finance.config.loader import DEFAULT_POLICY, PolicyConfig
from marketplace_finance.storage.models import (
    BalanceStatus,
    LedgerEntry,
    LedgerEntryDraft,
    TransactionType,
    VendorWallet,
)
from marketplace_finance.storage.repository import WalletRepository
from .errors import (
    AccountingIdentityViolation,
    ConcurrencyConflict,
    EscrowNotReleased,
    InvalidLedgerEntry,
    InvariantViolation,
    NegativeBalanceViolation,
    WalletNotFound,
)
from .escrow import Clock, compute_release, utc_now
from .money import Numeric, has_sub_cent_digits, round_money, to_finite_decimal

logger = logging.getLogger(__name__)

# Checks run against the freshly loaded wallet before an entry is built.
Precondition = Callable[[VendorWallet], None]

MAX_DESCRIPTION_LENGTH = 500


class LedgerAccountant:
    """Applies ledger entries to vendor wallets.

    Usage:
        accountant = LedgerAccountant(InMemoryWalletRepository())
        accountant.open_wallet("vendor_1")
        accountant.apply_entry("vendor_1", LedgerEntryDraft(...))
    """

    def __init__(
        self,
        repository: WalletRepository,
        policy: Optional[PolicyConfig] = None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.policy = policy or DEFAULT_POLICY
        self.clock = clock
        self._locks: Dict[str, _WalletLock] = {}
        self._locks_guard = threading.Lock()

    def open_wallet(self, vendor_id: str) -> VendorWallet:
        """Provision an empty wallet for a vendor.

        Raises:
            WalletAlreadyExists: If the vendor already has a wallet
        """
        wallet = self.repository.create_wallet(vendor_id, self.clock())
        logger.info("Provisioned wallet for vendor %s", vendor_id)
        return wallet

    def get_wallet(self, vendor_id: str) -> VendorWallet:
        """Load a wallet.

        Raises:
            WalletNotFound: If no wallet exists for the vendor
        """
        wallet = self.repository.get_wallet(vendor_id)
        if wallet is None:
            raise WalletNotFound(vendor_id)
        return wallet

    def list_entries(self, vendor_id: str, limit: int = 100) -> List[LedgerEntry]:
        """Return the vendor's ledger entries, newest first."""
        return self.repository.list_entries(vendor_id, limit=limit)

    def apply_entry(
        self,
        vendor_id: str,
        draft: LedgerEntryDraft,
        precondition: Optional[Precondition] = None,
    ) -> LedgerEntry:
        """Write a ledger entry and apply it to the vendor's wallet.

        The entry and the wallet update commit together or not at all.

        Args:
            vendor_id: Vendor whose wallet is affected
            draft: Entry fields supplied by the caller
            precondition: Optional check run against the current wallet on
                every attempt, before the entry is built

        Returns:
            The written LedgerEntry

        Raises:
            InvalidLedgerEntry: If the draft has a zero amount, no description
                or fields of the wrong type
            WalletNotFound: If no wallet exists for the vendor
            NegativeBalanceViolation: If a balance would drop below zero
            AccountingIdentityViolation: If lifetime totals stop reconciling
            ConcurrencyConflict: If the wallet kept changing under us
        """
        return self._commit_with_retry(vendor_id, draft, precondition, is_escrow_release=False)

    def release_escrow(
        self,
        vendor_id: str,
        amount: Numeric,
        delivery_date: datetime,
        order_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> LedgerEntry:
        """Move funds from pending to available once their escrow hold is over.

        The release is a transfer: earnings are unchanged because the amount
        was already counted when it was posted as pending.

        Raises:
            InvalidLedgerEntry: If amount is not a positive whole-cent number
            EscrowNotReleased: If the hold period has not elapsed
            WalletNotFound: If no wallet exists for the vendor
            NegativeBalanceViolation: If pending funds do not cover the amount
        """
        try:
            value = to_finite_decimal(amount)
        except ValueError as e:
            raise InvalidLedgerEntry("amount", str(e))
        if value <= 0:
            raise InvalidLedgerEntry("amount", f"must be greater than zero, got {value}")
        if has_sub_cent_digits(value):
            raise InvalidLedgerEntry("amount", f"must be in whole cents, got {value}")

        escrow = compute_release(delivery_date, policy=self.policy, now=self.clock())
        if not escrow.is_released:
            logger.warning(
                "Escrow release for vendor %s rejected: hold ends %s",
                vendor_id, escrow.release_date.isoformat(),
            )
            raise EscrowNotReleased(vendor_id, escrow.release_date)

        draft = LedgerEntryDraft(
            transaction_type=TransactionType.SALE,
            amount=value,
            vendor_amount=value,
            balance_status=BalanceStatus.AVAILABLE,
            description=description or f"Escrow release of {value:,.2f}",
            order_id=order_id,
        )
        return self._commit_with_retry(vendor_id, draft, None, is_escrow_release=True)

    def _commit_with_retry(
        self,
        vendor_id: str,
        draft: LedgerEntryDraft,
        precondition: Optional[Precondition],
        is_escrow_release: bool,
    ) -> LedgerEntry:
        attempts = self.policy.max_commit_attempts
        validate_draft(draft)
        with self._wallet_lock(vendor_id):
            for attempt in range(1, attempts + 1):
                wallet = self.get_wallet(vendor_id)
                if precondition is not None:
                    precondition(wallet)

                now = self.clock()
                entry = _build_entry(vendor_id, draft, now, is_escrow_release)
                try:
                    updated = apply_to_wallet(wallet, entry, now)
                except InvariantViolation as e:
                    logger.error(
                        "Rejected %s entry for vendor %s: %s",
                        entry.transaction_type.value, vendor_id, e,
                    )
                    raise

                try:
                    self.repository.commit(updated, wallet.version, entry)
                except ConcurrencyConflict:
                    logger.warning(
                        "Commit conflict for vendor %s at version %d (attempt %d/%d)",
                        vendor_id, wallet.version, attempt, attempts,
                    )
                    if attempt == attempts:
                        raise
                    continue

                logger.info(
                    "Recorded %s entry %s for vendor %s: %s %s (wallet v%d)",
                    entry.transaction_type.value, entry.entry_id, vendor_id,
                    entry.balance_status.value, entry.vendor_amount, updated.version,
                )
                return entry

        raise AssertionError("unreachable")  # pragma: no cover

    @contextmanager
    def _wallet_lock(self, vendor_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.get(vendor_id)
            if lock is None:
                lock = self._locks[vendor_id] = _WalletLock()
            lock.holders += 1
        try:
            with lock.mutex:
                yield
        finally:
            with self._locks_guard:
                lock.holders -= 1
                if lock.holders == 0:
                    del self._locks[vendor_id]


class _WalletLock:
    """Mutex for one wallet plus the number of callers holding or awaiting it.

    The registry entry is dropped once nobody holds or awaits it, so the
    registry only contains wallets with in-flight mutations.
    """
    __slots__ = ("mutex", "holders")

    def __init__(self):
        self.mutex = threading.Lock()
        self.holders = 0


def validate_draft(draft: LedgerEntryDraft) -> None:
    """Reject drafts that would write a meaningless or malformed entry.

    Raises:
        InvalidLedgerEntry: Naming the offending field
    """
    if not isinstance(draft.transaction_type, TransactionType):
        raise InvalidLedgerEntry(
            "transaction_type", f"unknown transaction type {draft.transaction_type!r}"
        )
    if not isinstance(draft.balance_status, BalanceStatus):
        raise InvalidLedgerEntry(
            "balance_status", f"unknown balance status {draft.balance_status!r}"
        )
    for name in ("amount", "vendor_amount", "commission_amount", "vat_amount"):
        try:
            value = to_finite_decimal(getattr(draft, name))
        except ValueError as e:
            raise InvalidLedgerEntry(name, str(e))
        if name in ("amount", "vendor_amount") and round_money(value) == 0:
            raise InvalidLedgerEntry(name, "cannot be zero")
    description = draft.description.strip() if isinstance(draft.description, str) else ""
    if not description:
        raise InvalidLedgerEntry("description", "is required")
    if len(draft.description) > MAX_DESCRIPTION_LENGTH:
        raise InvalidLedgerEntry(
            "description", f"must not exceed {MAX_DESCRIPTION_LENGTH} characters"
        )


def apply_to_wallet(wallet: VendorWallet, entry: LedgerEntry, now: datetime) -> VendorWallet:
    """Return the wallet snapshot that results from applying ``entry``.

    Pure: the input wallet is not modified and nothing is persisted.

    Raises:
        NegativeBalanceViolation: If a balance would drop below zero
        AccountingIdentityViolation: If lifetime totals stop reconciling
    """
    amount = entry.vendor_amount
    pending = wallet.pending_balance
    available = wallet.available_balance
    earnings = wallet.lifetime_earnings
    payouts = wallet.lifetime_payouts
    reversals = wallet.lifetime_reversals

    if entry.is_escrow_release:
        pending -= abs(amount)
        available += abs(amount)
    elif entry.balance_status == BalanceStatus.PENDING:
        pending += amount
        if amount > 0:
            earnings += amount
        else:
            reversals += abs(amount)
    elif entry.balance_status == BalanceStatus.AVAILABLE:
        available += amount
        if amount > 0:
            earnings += amount
        else:
            reversals += abs(amount)
    elif entry.balance_status == BalanceStatus.WITHDRAWN:
        available -= abs(amount)
        payouts += abs(amount)
    else:
        raise ValueError(f"Unknown balance status: {entry.balance_status!r}")

    if pending < 0:
        raise NegativeBalanceViolation(wallet.vendor_id, "pending", pending)
    if available < 0:
        raise NegativeBalanceViolation(wallet.vendor_id, "available", available)

    updated = replace(
        wallet,
        pending_balance=pending,
        available_balance=available,
        lifetime_earnings=earnings,
        lifetime_payouts=payouts,
        lifetime_reversals=reversals,
        updated_at=now,
        version=wallet.version + 1,
    )

    if updated.lifetime_net != updated.total_balance:
        raise AccountingIdentityViolation(
            wallet.vendor_id, updated.lifetime_net, updated.total_balance
        )
    return updated


def _build_entry(
    vendor_id: str,
    draft: LedgerEntryDraft,
    now: datetime,
    is_escrow_release: bool,
) -> LedgerEntry:
    return LedgerEntry(
        entry_id=uuid.uuid4().hex,
        vendor_id=vendor_id,
        order_id=draft.order_id,
        transaction_type=draft.transaction_type,
        amount=round_money(draft.amount),
        vendor_amount=round_money(draft.vendor_amount),
        commission_amount=round_money(draft.commission_amount),
        vat_amount=round_money(draft.vat_amount),
        description=draft.description,
        balance_status=draft.balance_status,
        created_at=now,
        is_escrow_release=is_escrow_release,
    )
