"""
Transaction history reconciliation from the bundler and on-chain Transfer logs

Neither source is complete on its own. The bundler may not support
eth_getUserOperationsByAddress at all, and log scans are bounded to a recent
block window and split into chunks that can fail independently. Each source
therefore reports a SourceResult, and merge_sources combines whatever is
available into one hash-unique, newest-first list.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from chain import ChainReader, TransferLog
from config import HISTORY_LIMIT, LOG_CHUNK_SIZE, MAX_SCAN_DEPTH
from ledger import Transaction, TransactionKind, TransactionStatus, dedupe_by_hash, now_ms
from smart_account import ExecutionClient
from units import to_decimal_string

logger = logging.getLogger(__name__)

RELAY_SOURCE = "relay"
LOG_SOURCE = "logs"


@dataclass
class SourceResult:
    """Records from one history source, or an explicit unavailable marker"""
    name: str
    records: List[Transaction] = field(default_factory=list)
    available: bool = True
    reason: Optional[str] = None

    @classmethod
    def unavailable(cls, name: str, reason: str) -> "SourceResult":
        return cls(name=name, records=[], available=False, reason=reason)


@dataclass
class Reconciliation:
    transactions: List[Transaction]
    sources: List[SourceResult]
    # Epoch millis where the unbroken log scan from the head ends, None when unknown
    window_start: Optional[int] = None


def merge_sources(sources: Iterable[SourceResult], limit: int = HISTORY_LIMIT) -> List[Transaction]:
    """Concatenate available sources in order, dedupe by hash (first wins), newest first"""
    combined = []
    for source in sources:
        if source.available:
            combined.extend(source.records)

    unique = dedupe_by_hash(combined)
    unique.sort(key=lambda tx: tx.timestamp, reverse=True)
    return unique[:limit]


def dedupe_logs(logs: Iterable[TransferLog]) -> List[TransferLog]:
    """Two logs are the same event iff (transaction hash, log index) match"""
    seen = set()
    unique = []
    for log in logs:
        key = (log.transaction_hash, log.log_index)
        if key in seen:
            continue
        seen.add(key)
        unique.append(log)
    return unique


def scan_ranges(latest_block: int, max_depth: int, chunk_size: int) -> List[Tuple[int, int]]:
    """Inclusive (from, to) block ranges from the head backwards to the depth or genesis"""
    start_block = max(latest_block - max_depth, 0)
    ranges = []
    to_block = latest_block
    while to_block >= start_block:
        from_block = max(to_block - chunk_size + 1, start_block)
        ranges.append((from_block, to_block))
        to_block = from_block - 1
    return ranges


class HistoryReconciler:

    def __init__(
        self,
        client: ExecutionClient,
        chain: ChainReader,
        token_address: str,
        token_decimals: int,
        max_depth: int = MAX_SCAN_DEPTH,
        chunk_size: int = LOG_CHUNK_SIZE,
        limit: int = HISTORY_LIMIT,
        clock: Callable[[], int] = now_ms,
    ):
        self.client = client
        self.chain = chain
        self.token_address = token_address
        self.token_decimals = token_decimals
        self.max_depth = max_depth
        self.chunk_size = chunk_size
        self.limit = limit
        self.clock = clock

    async def reconcile(self, account_address: str) -> List[Transaction]:
        return (await self.run(account_address)).transactions

    async def run(self, account_address: str) -> Reconciliation:
        """One reconciliation pass. Never raises; a failing source contributes no records."""
        try:
            relay = await self.relay_source(account_address)
        except Exception as e:
            relay = SourceResult.unavailable(RELAY_SOURCE, str(e))

        try:
            logs, window_start = await self.log_source(account_address)
        except Exception as e:
            logs, window_start = SourceResult.unavailable(LOG_SOURCE, str(e)), None

        for source in (relay, logs):
            if not source.available:
                logger.warning(f"History source {source.name} unavailable: {source.reason}")

        transactions = merge_sources([relay, logs], self.limit)
        logger.info(
            f"Reconciled {len(transactions)} transactions for {account_address} "
            f"({len(relay.records)} relay, {len(logs.records)} log records)"
        )
        return Reconciliation(transactions=transactions, sources=[relay, logs], window_start=window_start)

    async def relay_source(self, account_address: str) -> SourceResult:
        """User operations reported by the bundler, if it supports the query"""
        try:
            operations = await self.client.get_user_operations(account_address)
        except Exception as e:
            return SourceResult.unavailable(RELAY_SOURCE, str(e))

        now = self.clock()
        try:
            records = [
                Transaction(
                    hash=op.get("transactionHash") or op.get("userOpHash") or f"userOp_{i}",
                    status=TransactionStatus.SUCCESS if op.get("success") else TransactionStatus.FAILED,
                    kind=TransactionKind.SINGLE_TRANSFER,
                    amount="0",
                    recipient=op.get("target") or None,
                    timestamp=self._relay_timestamp(op.get("timestamp"), now - i * 60000),
                )
                for i, op in enumerate(operations or [])
                if isinstance(op, dict)
            ]
        except Exception as e:
            return SourceResult.unavailable(RELAY_SOURCE, f"malformed relay records: {e}")
        return SourceResult(name=RELAY_SOURCE, records=records)

    async def log_source(self, account_address: str) -> Tuple[SourceResult, Optional[int]]:
        """Token Transfer logs to or from the account over the recent block window"""
        try:
            latest_block = await self.chain.block_number()
        except Exception as e:
            return SourceResult.unavailable(LOG_SOURCE, f"block number unavailable: {e}"), None

        ranges = scan_ranges(latest_block, self.max_depth, self.chunk_size)
        logs: List[TransferLog] = []
        failed_chunks = 0
        # Oldest block of the unbroken run of scanned chunks starting at the head
        covered_from: Optional[int] = None

        for from_block, to_block in ranges:
            outgoing, incoming = await asyncio.gather(
                self.chain.get_transfer_logs(
                    self.token_address, from_block, to_block, sender=account_address
                ),
                self.chain.get_transfer_logs(
                    self.token_address, from_block, to_block, recipient=account_address
                ),
                return_exceptions=True,
            )
            if isinstance(outgoing, Exception) or isinstance(incoming, Exception):
                failed_chunks += 1
                error = outgoing if isinstance(outgoing, Exception) else incoming
                logger.warning(f"Skipping blocks {from_block}-{to_block}: {error}")
                continue
            if failed_chunks == 0:
                covered_from = from_block
            logs.extend(outgoing)
            logs.extend(incoming)

        if ranges and failed_chunks == len(ranges):
            return SourceResult.unavailable(LOG_SOURCE, f"all {failed_chunks} log chunks failed"), None

        unique_logs = dedupe_logs(logs)
        lookups = {log.block_number for log in unique_logs}
        if covered_from is not None:
            lookups.add(covered_from)
        timestamps = await self._resolve_timestamps(lookups)

        now = self.clock()
        records = [
            Transaction(
                hash=log.transaction_hash,
                status=TransactionStatus.SUCCESS,
                kind=TransactionKind.SINGLE_TRANSFER,
                amount=to_decimal_string(log.value, self.token_decimals),
                recipient=log.recipient,
                timestamp=timestamps.get(log.block_number, now),
            )
            for log in unique_logs
        ]
        window_start = timestamps.get(covered_from) if covered_from is not None else None
        return SourceResult(name=LOG_SOURCE, records=records), window_start

    async def _resolve_timestamps(self, block_numbers: Iterable[int]) -> Dict[int, int]:
        """One timestamp lookup per distinct block. Failed lookups are left out."""
        blocks: Sequence[int] = sorted(set(block_numbers))
        results = await asyncio.gather(
            *(self.chain.get_block_timestamp(block) for block in blocks),
            return_exceptions=True,
        )

        timestamps = {}
        for block, result in zip(blocks, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to resolve timestamp of block {block}: {result}")
                continue
            timestamps[block] = result
        return timestamps

    @staticmethod
    def _relay_timestamp(value, fallback: int) -> int:
        if not value:
            return fallback
        try:
            # Relay timestamps are seconds, possibly hex encoded
            seconds = int(value, 16) if isinstance(value, str) and value.startswith("0x") else int(float(value))
        except (TypeError, ValueError, OverflowError):
            return fallback
        return seconds * 1000
