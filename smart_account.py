"""
Kernel smart account execution client: sponsorship, signing, relay and receipts
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Protocol, Sequence

from eth_account.signers.local import LocalAccount

from bundler import BundlerClient
from chain import ChainClient
from config import SmartWalletConfig
from errors import ReadError, RpcError, SubmissionError
from paymaster import PaymasterClient
from user_operations import (
    DUMMY_ECDSA_SIGNATURE,
    Call,
    UserOperation,
    create_user_operation,
    sign_user_operation,
)

logger = logging.getLogger(__name__)


class ExecutionClient(Protocol):
    """What the session needs from an account-abstraction client"""

    async def submit_batch(self, calls: Sequence[Call]) -> str: ...

    async def wait_for_receipt(self, user_op_hash: str) -> Dict: ...

    async def get_user_operations(self, address: str) -> List[Dict]: ...


class KernelAccountClient:
    """Submits batches of calls from a Kernel account as sponsored user operations"""

    def __init__(
        self,
        config: SmartWalletConfig,
        address: str,
        signer: LocalAccount,
        factory: str,
        factory_data: bytes,
        chain: ChainClient,
        bundler: BundlerClient,
        paymaster: PaymasterClient,
    ):
        self.config = config
        self.address = address
        self.signer = signer
        self.factory = factory
        self.factory_data = factory_data
        self.chain = chain
        self.bundler = bundler
        self.paymaster = paymaster

    async def submit_batch(self, calls: Sequence[Call]) -> str:
        """Build, sponsor, sign and relay one user operation. Returns the user operation hash."""
        try:
            user_operation = await self._prepare_user_operation(calls)

            # Paymaster co-signs before the final signature covers its fields
            user_operation = await asyncio.to_thread(
                self.paymaster.sponsor_user_operation, user_operation
            )
            user_operation = sign_user_operation(
                user_operation, self.signer, self.config.entry_point_address, self.config.chain_id
            )

            return await asyncio.to_thread(self.bundler.send_user_operation, user_operation)
        except (RpcError, ReadError) as e:
            logger.error(f"Failed to submit UserOperation from {self.address}: {e}")
            raise SubmissionError(str(e)) from e

    async def wait_for_receipt(self, user_op_hash: str) -> Dict:
        """Poll the bundler until the operation is included, reverted or timed out"""
        deadline = time.monotonic() + self.config.receipt_timeout

        while True:
            try:
                receipt = await asyncio.to_thread(self.bundler.get_user_operation_receipt, user_op_hash)
            except RpcError as e:
                raise SubmissionError(str(e)) from e

            if receipt:
                if receipt.get("success") is False:
                    reason = receipt.get("reason") or "UserOperation reverted on-chain"
                    logger.error(f"UserOperation {user_op_hash} failed: {reason}")
                    raise SubmissionError(reason)
                logger.info(f"UserOperation {user_op_hash} included")
                return receipt

            if time.monotonic() >= deadline:
                raise SubmissionError(
                    f"Timed out waiting for UserOperation receipt {user_op_hash}"
                )
            await asyncio.sleep(self.config.receipt_poll_interval)

    async def get_user_operations(self, address: str) -> List[Dict]:
        return await asyncio.to_thread(self.bundler.get_user_operations_by_address, address)

    async def _prepare_user_operation(self, calls: Sequence[Call]) -> UserOperation:
        nonce = await self.chain.get_nonce(self.config.entry_point_address, self.address)
        deployed = await self.chain.is_deployed(self.address)

        user_operation = create_user_operation(
            smart_account=self.address,
            calls=calls,
            nonce=nonce,
            factory=None if deployed else self.factory,
            factory_data=self.factory_data,
        )
        user_operation.signature = DUMMY_ECDSA_SIGNATURE

        return await self._apply_gas_prices(user_operation)

    async def _apply_gas_prices(self, user_operation: UserOperation) -> UserOperation:
        """Update UserOperation with current gas prices from the bundler"""
        gas_prices: Optional[Dict] = await asyncio.to_thread(self.bundler.get_user_operation_gas_price)
        if gas_prices and 'standard' in gas_prices:
            prices = gas_prices['standard']
            if 'maxFeePerGas' in prices:
                user_operation.max_fee_per_gas = int(prices['maxFeePerGas'], 16)
            if 'maxPriorityFeePerGas' in prices:
                user_operation.max_priority_fee_per_gas = int(prices['maxPriorityFeePerGas'], 16)
        return user_operation
