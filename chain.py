"""
Read-only chain access through web3
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from web3 import Web3

from config import ENTRYPOINT_NONCE_ABI, ERC20_ABI, KERNEL_FACTORY_ABI
from errors import ReadError

logger = logging.getLogger(__name__)

TRANSFER_EVENT_TOPIC = Web3.to_hex(Web3.keccak(text="Transfer(address,address,uint256)"))


@dataclass(frozen=True)
class TransferLog:
    """Decoded ERC-20 Transfer event"""
    transaction_hash: str
    log_index: int
    block_number: int
    sender: str
    recipient: str
    value: int


def address_topic(address: str) -> str:
    """Left-pad an address into a 32-byte indexed topic"""
    return "0x" + "0" * 24 + address.lower().replace("0x", "")


def decode_transfer_log(log) -> TransferLog:
    topics = log["topics"]
    return TransferLog(
        transaction_hash=Web3.to_hex(log["transactionHash"]),
        log_index=int(log["logIndex"]),
        block_number=int(log["blockNumber"]),
        sender=Web3.to_checksum_address(bytes(topics[1])[-20:]),
        recipient=Web3.to_checksum_address(bytes(topics[2])[-20:]),
        value=int.from_bytes(bytes(log["data"]), "big") if log["data"] else 0,
    )


class ChainReader(Protocol):
    """The chain reads the balance reader and history reconciler depend on"""

    async def block_number(self) -> int: ...

    async def get_block_timestamp(self, block_number: int) -> int: ...

    async def get_transfer_logs(
        self,
        token_address: str,
        from_block: int,
        to_block: int,
        sender: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> List[TransferLog]: ...

    async def token_balance(self, token_address: str, owner: str) -> int: ...

    async def native_balance(self, owner: str) -> int: ...


class ChainClient:
    """
    Read-only chain client.

    web3 calls block, so every public method runs its call in a worker thread
    and is awaited from the event loop.
    """

    def __init__(self, rpc_url: str, web3: Optional[Web3] = None):
        self.rpc_url = rpc_url
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url))

    async def _read(self, description: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            raise ReadError(f"Failed to read {description}: {e}") from e

    async def block_number(self) -> int:
        return await self._read("block number", lambda: self.web3.eth.block_number)

    async def get_block_timestamp(self, block_number: int) -> int:
        """Block timestamp in epoch milliseconds"""
        block = await self._read(f"block {block_number}", self.web3.eth.get_block, block_number)
        return int(block["timestamp"]) * 1000

    async def get_transfer_logs(
        self,
        token_address: str,
        from_block: int,
        to_block: int,
        sender: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> List[TransferLog]:
        """Transfer events of a token, filtered by indexed sender and/or recipient"""
        topics = [
            TRANSFER_EVENT_TOPIC,
            address_topic(sender) if sender else None,
            address_topic(recipient) if recipient else None,
        ]
        logs = await self._read(
            f"transfer logs {from_block}-{to_block}",
            self.web3.eth.get_logs,
            {
                "address": Web3.to_checksum_address(token_address),
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": topics,
            },
        )
        return [decode_transfer_log(log) for log in logs]

    async def token_balance(self, token_address: str, owner: str) -> int:
        token = self.web3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
        return await self._read(
            f"token balance of {owner}",
            token.functions.balanceOf(Web3.to_checksum_address(owner)).call,
        )

    async def native_balance(self, owner: str) -> int:
        return await self._read(
            f"native balance of {owner}", self.web3.eth.get_balance, Web3.to_checksum_address(owner)
        )

    async def get_account_address(self, factory_address: str, init_data: bytes, salt: bytes) -> str:
        """Counterfactual account address from the factory's getAddress view"""
        factory = self.web3.eth.contract(
            address=Web3.to_checksum_address(factory_address), abi=KERNEL_FACTORY_ABI
        )
        address = await self._read(
            "counterfactual account address", factory.functions.getAddress(init_data, salt).call
        )
        return Web3.to_checksum_address(address)

    async def get_nonce(self, entry_point_address: str, sender: str, key: int = 0) -> int:
        """Get current nonce for smart account from EntryPoint"""
        entry_point_contract = self.web3.eth.contract(
            address=Web3.to_checksum_address(entry_point_address), abi=ENTRYPOINT_NONCE_ABI
        )
        nonce = await self._read(
            "account nonce",
            entry_point_contract.functions.getNonce(Web3.to_checksum_address(sender), key).call,
        )
        logger.info(f"Current nonce: {nonce}")
        return nonce

    async def is_deployed(self, address: str) -> bool:
        code = await self._read(
            f"code at {address}", self.web3.eth.get_code, Web3.to_checksum_address(address)
        )
        return len(code) > 0
