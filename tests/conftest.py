"""
Pytest fixtures for smart wallet tests: in-memory store and fake remote endpoints.
"""

from dataclasses import replace

import pytest
from web3 import Web3

from chain import TransferLog
from config import SmartWalletConfig
from errors import ReadError, RpcError
from storage import InMemoryStore

TOKEN = Web3.to_checksum_address("0x2b9ca0a8c773bb1b92a3ddae9f882fd14457dacc")
RECIPIENT = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
ONCHAIN_TX_HASH = "0x" + "ab" * 32


class FakeChain:
    """ChainReader plus the factory/nonce/code reads used by the execution client"""

    def __init__(self, latest_block=100, logs=None, failing_ranges=(), deployed=False):
        self.latest_block = latest_block
        self.logs = list(logs or [])
        self.failing_ranges = set(failing_ranges)
        self.deployed = deployed
        self.token_raw = 0
        self.native_raw = 0
        self.fail_balances = False
        self.fail_block_number = False
        self.address_calls = []
        self.nonce_calls = []
        self.log_calls = []
        self.timestamp_calls = []

    async def get_account_address(self, factory_address, init_data, salt):
        self.address_calls.append((factory_address, init_data, salt))
        digest = Web3.keccak(bytes.fromhex(factory_address[2:]) + init_data + salt)
        return Web3.to_checksum_address(digest[-20:])

    async def get_nonce(self, entry_point_address, sender, key=0):
        self.nonce_calls.append(sender)
        return 0

    async def is_deployed(self, address):
        return self.deployed

    async def block_number(self):
        if self.fail_block_number:
            raise ReadError("block number unavailable")
        return self.latest_block

    async def get_block_timestamp(self, block_number):
        self.timestamp_calls.append(block_number)
        return block_number * 1000

    async def get_transfer_logs(self, token_address, from_block, to_block, sender=None, recipient=None):
        self.log_calls.append((from_block, to_block, sender, recipient))
        if (from_block, to_block) in self.failing_ranges:
            raise ReadError(f"range {from_block}-{to_block} too large")
        return [
            log for log in self.logs
            if from_block <= log.block_number <= to_block
            and (sender is None or log.sender == sender)
            and (recipient is None or log.recipient == recipient)
        ]

    async def token_balance(self, token_address, owner):
        if self.fail_balances:
            raise ReadError("balanceOf reverted")
        return self.token_raw

    async def native_balance(self, owner):
        if self.fail_balances:
            raise ReadError("eth_getBalance failed")
        return self.native_raw


class FakeBundler:
    """Blocking bundler double with the BundlerClient surface"""

    def __init__(self, receipt=None, operations=None, operations_error=None, send_error=None):
        self.receipt = receipt if receipt is not None else {
            "success": True, "receipt": {"transactionHash": ONCHAIN_TX_HASH}
        }
        self.operations = operations or []
        self.operations_error = operations_error
        self.send_error = send_error
        self.sent = []

    def get_user_operation_gas_price(self):
        return {"standard": {"maxFeePerGas": "0x3b9aca00", "maxPriorityFeePerGas": "0x5f5e100"}}

    def send_user_operation(self, user_op):
        if self.send_error:
            raise RpcError(self.send_error, method="eth_sendUserOperation")
        self.sent.append(user_op)
        return Web3.to_hex(Web3.keccak(user_op.call_data + user_op.signature))

    def get_user_operation_receipt(self, user_op_hash):
        return self.receipt

    def get_user_operations_by_address(self, address):
        if self.operations_error:
            raise RpcError(self.operations_error, method="eth_getUserOperationsByAddress")
        return self.operations


class FakePaymaster:

    def __init__(self, error=None):
        self.error = error
        self.sponsored = []

    def sponsor_user_operation(self, user_op):
        if self.error:
            raise RpcError(self.error, method="zd_sponsorUserOperation")
        self.sponsored.append(user_op)
        return replace(
            user_op,
            paymaster="0x" + "77" * 20,
            paymaster_data=b"\x01\x02",
            paymaster_verification_gas_limit=50000,
            paymaster_post_op_gas_limit=10000,
            call_gas_limit=90000,
        )


class FakeExecutionClient:
    """ExecutionClient double for executor and reconciler tests"""

    def __init__(self, user_op_hash="0x" + "cd" * 32, receipt=None, submit_error=None,
                 operations=None, operations_error=None):
        self.user_op_hash = user_op_hash
        self.receipt = receipt if receipt is not None else {
            "success": True, "receipt": {"transactionHash": ONCHAIN_TX_HASH}
        }
        self.submit_error = submit_error
        self.operations = operations or []
        self.operations_error = operations_error
        self.submitted = []

    async def submit_batch(self, calls):
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(list(calls))
        return self.user_op_hash

    async def wait_for_receipt(self, user_op_hash):
        return self.receipt

    async def get_user_operations(self, address):
        if self.operations_error:
            raise self.operations_error
        return self.operations


def transfer_log(tx_hash, log_index=0, block_number=50, sender=OTHER, recipient=RECIPIENT, value=1_000_000):
    return TransferLog(
        transaction_hash=tx_hash,
        log_index=log_index,
        block_number=block_number,
        sender=sender,
        recipient=recipient,
        value=value,
    )


@pytest.fixture
def config():
    return SmartWalletConfig(
        bundler_url="https://bundler.example/rpc",
        paymaster_url="https://paymaster.example/rpc",
        rpc_url="https://rpc.example",
        token_address=TOKEN,
        receipt_timeout=0.05,
        receipt_poll_interval=0.01,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def bundler():
    return FakeBundler()


@pytest.fixture
def paymaster():
    return FakePaymaster()
