"""
Smart wallet session: one signed-in identity, its Kernel account and ledger
"""

import logging
from typing import Any, Callable, List, Mapping, Optional

from balances import BalanceReader
from bundler import BundlerClient
from chain import ChainClient
from config import SmartWalletConfig
from errors import ValidationError, WalletError, WalletNotInitializedError
from executor import (
    OperationBatchExecutor,
    batch_transfer_calls,
    transfer_calls,
    validate_amount,
    validate_recipient,
)
from history import HistoryReconciler
from identity import Identity, resolve_identity
from kernel import SmartAccount, bootstrap
from ledger import LedgerCache, Transaction, TransactionKind, now_ms
from paymaster import PaymasterClient
from signer import derive_signer
from storage import USER_KEY, KeyValueStore
from units import parse_units, to_decimal_string

logger = logging.getLogger(__name__)

TX_IDLE = "idle"
TX_PENDING = "pending"
TX_SUCCESS = "success"
TX_ERROR = "error"


class WalletSession:
    """
    Session state for one identity.

    Owned by the caller and passed around explicitly. Every remote call is
    awaited on a single event loop, so state is only mutated between
    suspension points; concurrent sessions for the same account share the
    store with last-writer-wins semantics.
    """

    def __init__(
        self,
        claim: Optional[Mapping[str, Any]],
        config: SmartWalletConfig,
        store: KeyValueStore,
        chain: Optional[ChainClient] = None,
        bundler: Optional[BundlerClient] = None,
        paymaster: Optional[PaymasterClient] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.identity: Optional[Identity] = resolve_identity(claim)
        self.config = config
        self.store = store
        self.ledger = LedgerCache(store)
        self.clock = clock

        self._chain = chain
        self._bundler = bundler
        self._paymaster = paymaster

        self.account: Optional[SmartAccount] = None
        self.executor: Optional[OperationBatchExecutor] = None
        self.balances: Optional[BalanceReader] = None
        self.reconciler: Optional[HistoryReconciler] = None

        self.is_loading = False
        self.wallet_error: Optional[str] = None
        self.tx_hash: Optional[str] = None
        self.tx_status = TX_IDLE
        self.tx_message = ""
        self.transactions: List[Transaction] = []

    @property
    def wallet_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    async def initialize(self) -> Optional[SmartAccount]:
        """Derive the signer, bootstrap the account and load its cached ledger"""
        if self.account:
            return self.account

        if not self.identity:
            logger.info("No user email, wallet not initialized")
            self.wallet_error = "User email is required"
            return None

        self.is_loading = True
        self.wallet_error = None
        try:
            signer = derive_signer(self.identity.email)
            chain = self._chain or ChainClient(self.config.rpc_url)
            account = await bootstrap(
                signer, self.config, chain=chain, bundler=self._bundler, paymaster=self._paymaster
            )
        except WalletError as e:
            logger.error(f"Wallet initialization failed: {e}")
            self.wallet_error = str(e) or "Failed to initialize wallet"
            raise
        finally:
            self.is_loading = False

        self.account = account
        self.executor = OperationBatchExecutor(account.client, self.ledger, self.clock)
        self.balances = BalanceReader(chain, self.config.token_address, self.config.token_decimals)
        self.reconciler = HistoryReconciler(
            account.client,
            chain,
            self.config.token_address,
            self.config.token_decimals,
            clock=self.clock,
        )

        self.store.set(USER_KEY, {
            "email": self.identity.email,
            "name": self.identity.name,
            "picture": self.identity.picture,
            "smartWalletAddress": account.address,
        })
        self.transactions = self.ledger.load(account.address)

        logger.info(f"Wallet initialized with address {account.address}")
        return account

    async def send_transfer(self, recipient: str, amount: str) -> str:
        """Gasless single token transfer"""
        self._require_account()
        validate_recipient(recipient)
        validate_amount(amount)
        raw_amount = parse_units(amount, self.config.token_decimals)

        calls = transfer_calls(self.config.token_address, recipient, raw_amount)
        return await self._submit(
            calls,
            TransactionKind.SINGLE_TRANSFER,
            to_decimal_string(raw_amount, self.config.token_decimals),
            recipient,
            pending_message="Sending gasless transfer...",
            success_message="Gasless transfer completed successfully!",
            failure_message="Transfer failed",
        )

    async def batch_approve_and_transfer(self, recipient: str, amount: str, approve_amount: str) -> str:
        """Approve the recipient and transfer to it in one user operation"""
        self._require_account()
        validate_recipient(recipient)
        if validate_amount(approve_amount) < validate_amount(amount):
            raise ValidationError("Approve amount must be greater than or equal to transfer amount")
        raw_amount = parse_units(amount, self.config.token_decimals)
        raw_approve = parse_units(approve_amount, self.config.token_decimals)

        calls = batch_transfer_calls(self.config.token_address, recipient, raw_amount, raw_approve)
        return await self._submit(
            calls,
            TransactionKind.BATCH_TRANSFER,
            to_decimal_string(raw_amount, self.config.token_decimals),
            recipient,
            pending_message="Sending batched approval + transfer...",
            success_message="Batch transaction completed successfully!",
            failure_message="Batch transaction failed",
        )

    async def token_balance(self) -> str:
        if not self.balances:
            return "0"
        return await self.balances.token_balance(self.wallet_address)

    async def native_balance(self) -> str:
        if not self.balances:
            return "0"
        return await self.balances.native_balance(self.wallet_address)

    async def fetch_transaction_history(self) -> List[Transaction]:
        """Reconcile history from the bundler and chain logs, replacing the in-memory view"""
        if not self.reconciler or not self.account:
            return []

        result = await self.reconciler.run(self.account.address)
        self.transactions = result.transactions
        self.ledger.replace(self.account.address, result.transactions, result.window_start)
        return result.transactions

    def add_transaction(self, transaction: Transaction) -> None:
        if self.account:
            self.ledger.append(self.account.address, transaction)
        if all(tx.hash != transaction.hash for tx in self.transactions):
            self.transactions = [transaction] + self.transactions

    def clear_transaction_state(self) -> None:
        self.tx_hash = None
        self.tx_status = TX_IDLE
        self.tx_message = ""
        self.wallet_error = None

    def sign_out(self) -> None:
        self.store.remove(USER_KEY)
        self.account = None
        self.executor = None
        self.balances = None
        self.reconciler = None
        self.transactions = []
        self.clear_transaction_state()

    def _require_account(self) -> None:
        if not self.account or not self.executor:
            raise WalletNotInitializedError()

    async def _submit(
        self,
        calls,
        kind: TransactionKind,
        amount: str,
        recipient: str,
        pending_message: str,
        success_message: str,
        failure_message: str,
    ) -> str:
        self.is_loading = True
        self.tx_status = TX_PENDING
        self.tx_message = pending_message
        self.wallet_error = None

        try:
            tx_hash = await self.executor.submit(
                self.account.address, calls, kind, amount=amount, recipient=recipient
            )
        except Exception as e:
            logger.error(f"{failure_message}: {e}")
            message = str(e) or failure_message
            self.wallet_error = message
            self.tx_status = TX_ERROR
            self.tx_message = message
            raise
        finally:
            self.is_loading = False

        self.transactions = self.ledger.load(self.account.address)
        self.tx_hash = tx_hash
        self.tx_status = TX_SUCCESS
        self.tx_message = success_message
        return tx_hash
