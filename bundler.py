"""
ZeroDev bundler integration and format conversion utilities for Kernel smart wallets
"""

import logging
from typing import Dict, List, Optional

from config import SmartWalletConfig
from rpc import JsonRpcClient
from user_operations import UserOperation, to_hex_bytes

logger = logging.getLogger(__name__)


def convert_user_operation_to_rpc_format(op: UserOperation) -> Dict:
    """Convert a UserOperation to the bundler JSON-RPC format (EntryPoint v0.7)"""
    rpc_dict = {
        "sender": op.sender,
        "nonce": hex(op.nonce),
        "callData": to_hex_bytes(op.call_data),
        "callGasLimit": hex(op.call_gas_limit),
        "verificationGasLimit": hex(op.verification_gas_limit),
        "preVerificationGas": hex(op.pre_verification_gas),
        "maxFeePerGas": hex(op.max_fee_per_gas),
        "maxPriorityFeePerGas": hex(op.max_priority_fee_per_gas),
        "signature": to_hex_bytes(op.signature) if op.signature else "0x",
    }

    # Factory fields only for a first, deploying operation
    if op.factory:
        rpc_dict.update({
            "factory": op.factory,
            "factoryData": to_hex_bytes(op.factory_data) if op.factory_data else "0x"
        })

    if op.paymaster:
        rpc_dict.update({
            "paymaster": op.paymaster,
            "paymasterVerificationGasLimit": hex(op.paymaster_verification_gas_limit),
            "paymasterPostOpGasLimit": hex(op.paymaster_post_op_gas_limit),
            "paymasterData": to_hex_bytes(op.paymaster_data) if op.paymaster_data else "0x"
        })

    return rpc_dict


class BundlerClient(JsonRpcClient):
    """Client for interacting with ERC-4337 bundlers (ZeroDev)"""

    name = "Bundler"

    def __init__(self, config: SmartWalletConfig):
        super().__init__(config.bundler_url)
        self.config = config

    def get_user_operation_gas_price(self) -> Optional[Dict]:
        """Get current gas prices from ZeroDev"""
        return self._make_request("zd_getUserOperationGasPrice", [])

    def send_user_operation(self, user_op: UserOperation) -> str:
        """Send a signed UserOperation to the bundler and return its hash"""
        logger.info("Sending UserOperation to bundler...")

        user_op_dict = convert_user_operation_to_rpc_format(user_op)
        logger.debug(f"Full UserOp to bundler: {user_op_dict}")
        user_op_hash = self._make_request(
            "eth_sendUserOperation", [user_op_dict, self.config.entry_point_address]
        )

        logger.info(f"UserOperation sent successfully: {user_op_hash}")
        return user_op_hash

    def get_user_operation_receipt(self, user_op_hash: str) -> Optional[Dict]:
        """Receipt for a user operation, or None while it is not yet included"""
        return self._make_request("eth_getUserOperationReceipt", [user_op_hash])

    def get_user_operations_by_address(self, address: str) -> List[Dict]:
        """User operations the bundler knows for an account. Not every bundler supports this."""
        result = self._make_request("eth_getUserOperationsByAddress", [address])
        return result if isinstance(result, list) else []
