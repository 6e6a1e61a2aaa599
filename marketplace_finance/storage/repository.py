"""
Repository pattern for wallet and ledger persistence.

Wallet writes are guarded by an optimistic version token: a commit only lands
when the stored wallet is still at the version the caller read. The wallet
update and the ledger append always commit together.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from marketplace_finance.core.errors import (
    ConcurrencyConflict,
    WalletAlreadyExists,
    WalletNotFound,
)
from .db import DEFAULT_DB_PATH, get_connection
from .models import BalanceStatus, LedgerEntry, TransactionType, VendorWallet

logger = logging.getLogger(__name__)


class WalletRepository(ABC):
    """Persistence boundary for vendor wallets and their ledger entries."""

    @abstractmethod
    def create_wallet(self, vendor_id: str, now: datetime) -> VendorWallet:
        """Provision an empty wallet at version 0.

        Raises:
            WalletAlreadyExists: If the vendor already has a wallet
        """

    @abstractmethod
    def get_wallet(self, vendor_id: str) -> Optional[VendorWallet]:
        """Load the current wallet snapshot, or None if not provisioned."""

    @abstractmethod
    def commit(self, wallet: VendorWallet, expected_version: int, entry: LedgerEntry) -> None:
        """Atomically replace the wallet and append the entry.

        Raises:
            WalletNotFound: If the wallet does not exist
            ConcurrencyConflict: If the stored version is not ``expected_version``
        """

    @abstractmethod
    def list_entries(self, vendor_id: str, limit: int = 100) -> List[LedgerEntry]:
        """Return ledger entries for a vendor, newest first."""


class InMemoryWalletRepository(WalletRepository):
    """Process-local repository, used by tests and embedding callers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._wallets: Dict[str, VendorWallet] = {}
        self._entries: List[LedgerEntry] = []

    def create_wallet(self, vendor_id: str, now: datetime) -> VendorWallet:
        with self._lock:
            if vendor_id in self._wallets:
                raise WalletAlreadyExists(vendor_id)
            wallet = VendorWallet(vendor_id=vendor_id, created_at=now, updated_at=now)
            self._wallets[vendor_id] = wallet
            return wallet

    def get_wallet(self, vendor_id: str) -> Optional[VendorWallet]:
        with self._lock:
            return self._wallets.get(vendor_id)

    def commit(self, wallet: VendorWallet, expected_version: int, entry: LedgerEntry) -> None:
        with self._lock:
            current = self._wallets.get(wallet.vendor_id)
            if current is None:
                raise WalletNotFound(wallet.vendor_id)
            if current.version != expected_version:
                raise ConcurrencyConflict(wallet.vendor_id, expected_version)
            self._wallets[wallet.vendor_id] = wallet
            self._entries.append(entry)

    def list_entries(self, vendor_id: str, limit: int = 100) -> List[LedgerEntry]:
        with self._lock:
            entries = [e for e in self._entries if e.vendor_id == vendor_id]
        return list(reversed(entries))[:limit]


class SqliteWalletRepository(WalletRepository):
    """SQLite-backed repository.

    Every operation opens its own connection, so one instance can be shared
    across threads.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def create_wallet(self, vendor_id: str, now: datetime) -> VendorWallet:
        wallet = VendorWallet(vendor_id=vendor_id, created_at=now, updated_at=now)
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            exists = conn.execute(
                "SELECT 1 FROM vendor_wallet WHERE vendor_id = ?", (vendor_id,)
            ).fetchone()
            if exists:
                conn.execute("ROLLBACK")
                raise WalletAlreadyExists(vendor_id)
            conn.execute("""
                INSERT INTO vendor_wallet
                (vendor_id, pending_balance, available_balance, lifetime_earnings,
                 lifetime_payouts, lifetime_reversals, created_at, updated_at, version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, _wallet_row(wallet))
            conn.execute("COMMIT")
            return wallet
        except WalletAlreadyExists:
            raise
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def get_wallet(self, vendor_id: str) -> Optional[VendorWallet]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT vendor_id, pending_balance, available_balance, lifetime_earnings,
                       lifetime_payouts, lifetime_reversals, created_at, updated_at, version
                FROM vendor_wallet
                WHERE vendor_id = ?
            """, (vendor_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return VendorWallet(
                vendor_id=row[0],
                pending_balance=Decimal(row[1]),
                available_balance=Decimal(row[2]),
                lifetime_earnings=Decimal(row[3]),
                lifetime_payouts=Decimal(row[4]),
                lifetime_reversals=Decimal(row[5]),
                created_at=datetime.fromisoformat(row[6]),
                updated_at=datetime.fromisoformat(row[7]),
                version=row[8],
            )
        finally:
            conn.close()

    def commit(self, wallet: VendorWallet, expected_version: int, entry: LedgerEntry) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute("""
                UPDATE vendor_wallet
                SET pending_balance = ?, available_balance = ?, lifetime_earnings = ?,
                    lifetime_payouts = ?, lifetime_reversals = ?, updated_at = ?, version = ?
                WHERE vendor_id = ? AND version = ?
            """, (
                str(wallet.pending_balance),
                str(wallet.available_balance),
                str(wallet.lifetime_earnings),
                str(wallet.lifetime_payouts),
                str(wallet.lifetime_reversals),
                wallet.updated_at.isoformat(),
                wallet.version,
                wallet.vendor_id,
                expected_version,
            ))
            if cursor.rowcount != 1:
                exists = conn.execute(
                    "SELECT 1 FROM vendor_wallet WHERE vendor_id = ?", (wallet.vendor_id,)
                ).fetchone()
                conn.execute("ROLLBACK")
                if exists is None:
                    raise WalletNotFound(wallet.vendor_id)
                raise ConcurrencyConflict(wallet.vendor_id, expected_version)

            conn.execute("""
                INSERT INTO ledger_entry
                (entry_id, vendor_id, order_id, transaction_type, amount, vendor_amount,
                 commission_amount, vat_amount, description, balance_status,
                 is_escrow_release, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entry.entry_id,
                entry.vendor_id,
                entry.order_id,
                entry.transaction_type.value,
                str(entry.amount),
                str(entry.vendor_amount),
                str(entry.commission_amount),
                str(entry.vat_amount),
                entry.description,
                entry.balance_status.value,
                1 if entry.is_escrow_release else 0,
                entry.created_at.isoformat(),
            ))
            conn.execute("COMMIT")
        except (WalletNotFound, ConcurrencyConflict):
            raise
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def list_entries(self, vendor_id: str, limit: int = 100) -> List[LedgerEntry]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT entry_id, vendor_id, order_id, transaction_type, amount,
                       vendor_amount, commission_amount, vat_amount, description,
                       balance_status, is_escrow_release, created_at
                FROM ledger_entry
                WHERE vendor_id = ?
                ORDER BY seq DESC LIMIT ?
            """, (vendor_id, limit))
            entries = []
            for row in cursor.fetchall():
                entries.append(LedgerEntry(
                    entry_id=row[0],
                    vendor_id=row[1],
                    order_id=row[2],
                    transaction_type=TransactionType(row[3]),
                    amount=Decimal(row[4]),
                    vendor_amount=Decimal(row[5]),
                    commission_amount=Decimal(row[6]),
                    vat_amount=Decimal(row[7]),
                    description=row[8],
                    balance_status=BalanceStatus(row[9]),
                    is_escrow_release=bool(row[10]),
                    created_at=datetime.fromisoformat(row[11]),
                ))
            return entries
        finally:
            conn.close()


def _wallet_row(wallet: VendorWallet) -> tuple:
    return (
        wallet.vendor_id,
        str(wallet.pending_balance),
        str(wallet.available_balance),
        str(wallet.lifetime_earnings),
        str(wallet.lifetime_payouts),
        str(wallet.lifetime_reversals),
        wallet.created_at.isoformat(),
        wallet.updated_at.isoformat(),
        wallet.version,
    )


# Global repository instance
_default_repository: Optional[SqliteWalletRepository] = None


def get_repository(db_path: str = DEFAULT_DB_PATH) -> SqliteWalletRepository:
    """Get a repository instance.

    This function provides a singleton instance of the SqliteWalletRepository.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of SqliteWalletRepository
    """
    global _default_repository
    if _default_repository is None or _default_repository.db_path != db_path:
        _default_repository = SqliteWalletRepository(db_path)
    return _default_repository


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the wallet and ledger tables if they don't exist.

    ``ledger_entry`` is an append-only ledger. No UPDATE or DELETE is ever
    issued against it. Money columns are TEXT so decimals stay exact.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS vendor_wallet (
                vendor_id TEXT PRIMARY KEY,
                pending_balance TEXT NOT NULL,
                available_balance TEXT NOT NULL,
                lifetime_earnings TEXT NOT NULL,
                lifetime_payouts TEXT NOT NULL,
                lifetime_reversals TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                version INTEGER NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ledger_entry (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                entry_id TEXT NOT NULL UNIQUE,
                vendor_id TEXT NOT NULL REFERENCES vendor_wallet(vendor_id),
                order_id TEXT,
                transaction_type TEXT NOT NULL,
                amount TEXT NOT NULL,
                vendor_amount TEXT NOT NULL,
                commission_amount TEXT NOT NULL,
                vat_amount TEXT NOT NULL,
                description TEXT NOT NULL,
                balance_status TEXT NOT NULL,
                is_escrow_release INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()
    logger.debug("Schema ready at %s", db_path)
