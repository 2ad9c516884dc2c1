"""
Per-account transaction ledger persisted through a key/value store
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from config import LEDGER_CAPACITY
from storage import KeyValueStore, transactions_key

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class TransactionKind(str, Enum):
    SINGLE_TRANSFER = "transfer"
    BATCH_TRANSFER = "batch"


@dataclass(frozen=True)
class Transaction:
    """A user-visible transaction. Two records with the same hash are the same transaction."""
    hash: str
    status: TransactionStatus
    kind: TransactionKind
    timestamp: int
    amount: Optional[str] = None
    recipient: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "hash": self.hash,
            "status": self.status.value,
            "type": self.kind.value,
            "timestamp": self.timestamp,
        }
        if self.amount is not None:
            data["amount"] = self.amount
        if self.recipient is not None:
            data["recipient"] = self.recipient
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            hash=data["hash"],
            status=TransactionStatus(data["status"]),
            kind=TransactionKind(data.get("type", TransactionKind.SINGLE_TRANSFER.value)),
            timestamp=int(data["timestamp"]),
            amount=data.get("amount"),
            recipient=data.get("recipient"),
        )


def dedupe_by_hash(transactions: Sequence[Transaction]) -> List[Transaction]:
    """Keep the first record seen for every hash, preserving order"""
    seen = set()
    unique = []
    for tx in transactions:
        if tx.hash in seen:
            continue
        seen.add(tx.hash)
        unique.append(tx)
    return unique


class LedgerCache:
    """Newest-first, hash-unique, capacity-bounded transaction list per account"""

    def __init__(self, store: KeyValueStore, capacity: int = LEDGER_CAPACITY):
        self.store = store
        self.capacity = capacity

    def load(self, account_address: str) -> List[Transaction]:
        raw = self.store.get(transactions_key(account_address))
        if not raw:
            return []

        try:
            return [Transaction.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to parse stored transactions for {account_address}: {e}")
            return []

    def append(self, account_address: str, transaction: Transaction) -> List[Transaction]:
        """Prepend a record unless its hash is already present, then truncate"""
        transactions = self.load(account_address)
        if any(tx.hash == transaction.hash for tx in transactions):
            logger.info(f"Transaction {transaction.hash} already recorded")
            return transactions

        transactions = [transaction] + transactions
        return self._save(account_address, transactions)

    def replace(
        self,
        account_address: str,
        reconciled: Sequence[Transaction],
        window_start: Optional[int] = None,
    ) -> List[Transaction]:
        """
        Store a reconciliation pass.

        Cached records older than ``window_start`` (epoch millis) were not covered
        by the scan and are kept; everything else is superseded by ``reconciled``.
        Without a known window start every cached record absent from the pass is kept.
        """
        cached = self.load(account_address)
        reconciled_hashes = {tx.hash for tx in reconciled}

        retained = [
            tx for tx in cached
            if tx.hash not in reconciled_hashes
            and (window_start is None or tx.timestamp < window_start)
        ]

        combined = sorted(list(reconciled) + retained, key=lambda tx: tx.timestamp, reverse=True)
        return self._save(account_address, combined)

    def _save(self, account_address: str, transactions: Sequence[Transaction]) -> List[Transaction]:
        limited = dedupe_by_hash(transactions)[:self.capacity]
        self.store.set(transactions_key(account_address), [tx.to_dict() for tx in limited])
        return limited
