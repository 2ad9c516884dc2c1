"""
Operation batch executor: one user operation per ordered batch of calls
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Sequence

from config import EXPLORER_URL
from errors import ValidationError
from ledger import LedgerCache, Transaction, TransactionKind, TransactionStatus, now_ms
from smart_account import ExecutionClient
from user_operations import Call, encode_erc20_approve, encode_erc20_transfer

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def validate_recipient(recipient: str) -> str:
    if not isinstance(recipient, str) or not ADDRESS_PATTERN.match(recipient):
        raise ValidationError("Please enter a valid wallet address")
    return recipient


def validate_amount(amount: str) -> Decimal:
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amounts must be greater than 0")
    return value


def transfer_calls(token_address: str, recipient: str, amount: int) -> List[Call]:
    """Single transfer: one token.transfer call"""
    return [Call(target=token_address, data=encode_erc20_transfer(recipient, amount))]


def batch_transfer_calls(
    token_address: str, recipient: str, amount: int, approve_amount: int
) -> List[Call]:
    """Approve then transfer against the same token, always in that order"""
    return [
        Call(target=token_address, data=encode_erc20_approve(recipient, approve_amount)),
        Call(target=token_address, data=encode_erc20_transfer(recipient, amount)),
    ]


def receipt_transaction_hash(receipt: Optional[Dict], user_op_hash: str) -> str:
    """On-chain hash from a user operation receipt, or the operation hash when absent"""
    inner = (receipt or {}).get("receipt") or {}
    return inner.get("transactionHash") or user_op_hash


class OperationBatchExecutor:
    """Submits call batches and records confirmed ones in the ledger"""

    def __init__(
        self,
        client: ExecutionClient,
        ledger: LedgerCache,
        clock: Callable[[], int] = now_ms,
    ):
        self.client = client
        self.ledger = ledger
        self.clock = clock

    async def submit(
        self,
        account_address: str,
        calls: Sequence[Call],
        kind: TransactionKind,
        amount: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> str:
        """
        Submit calls as one user operation and wait for its receipt.

        Returns the on-chain transaction hash. Raises SubmissionError on
        rejection, revert or timeout, in which case nothing is recorded.
        """
        if not calls:
            raise ValidationError("At least one call is required")
        if any(call.value < 0 for call in calls):
            raise ValidationError("Call values must be non-negative")

        user_op_hash = await self.client.submit_batch(calls)
        logger.info(f"UserOperation {user_op_hash} submitted, waiting for receipt")

        receipt = await self.client.wait_for_receipt(user_op_hash)
        tx_hash = receipt_transaction_hash(receipt, user_op_hash)
        if tx_hash == user_op_hash:
            logger.warning(f"Receipt for {user_op_hash} has no transaction hash")

        self.ledger.append(account_address, Transaction(
            hash=tx_hash,
            status=TransactionStatus.SUCCESS,
            kind=kind,
            amount=amount,
            recipient=recipient,
            timestamp=self.clock(),
        ))
        logger.info(f"Transaction confirmed: {EXPLORER_URL}tx/{tx_hash}")
        return tx_hash
