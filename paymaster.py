"""
ZeroDev paymaster sponsorship for user operations
"""

import logging
from dataclasses import replace

from bundler import convert_user_operation_to_rpc_format
from config import SmartWalletConfig
from errors import RpcError
from rpc import JsonRpcClient
from user_operations import UserOperation, from_hex_bytes

logger = logging.getLogger(__name__)

# Gas fields the paymaster may re-estimate while sponsoring
_GAS_FIELDS = {
    "callGasLimit": "call_gas_limit",
    "verificationGasLimit": "verification_gas_limit",
    "preVerificationGas": "pre_verification_gas",
    "maxFeePerGas": "max_fee_per_gas",
    "maxPriorityFeePerGas": "max_priority_fee_per_gas",
    "paymasterVerificationGasLimit": "paymaster_verification_gas_limit",
    "paymasterPostOpGasLimit": "paymaster_post_op_gas_limit",
}


class PaymasterClient(JsonRpcClient):
    """Asks the paymaster to co-sign sponsorship data for a user operation"""

    name = "Paymaster"

    def __init__(self, config: SmartWalletConfig):
        super().__init__(config.paymaster_url)
        self.config = config

    def sponsor_user_operation(self, user_op: UserOperation) -> UserOperation:
        """Return a copy of user_op carrying paymaster fields and sponsored gas values"""
        logger.info(f"Requesting sponsorship for UserOperation from {user_op.sender}")

        result = self._make_request("zd_sponsorUserOperation", [{
            "chainId": self.config.chain_id,
            "userOp": convert_user_operation_to_rpc_format(user_op),
            "entryPointAddress": self.config.entry_point_address,
            "shouldOverrideFee": False,
            "shouldConsume": True,
        }])

        if not isinstance(result, dict) or not result.get("paymaster"):
            raise RpcError("Paymaster returned no sponsorship data", method="zd_sponsorUserOperation")

        updates = {}
        for rpc_key, field_name in _GAS_FIELDS.items():
            value = result.get(rpc_key)
            if value is not None:
                updates[field_name] = int(value, 16) if isinstance(value, str) else int(value)

        updates["paymaster"] = result.get("paymaster")
        updates["paymaster_data"] = from_hex_bytes(result.get("paymasterData"))

        logger.info(f"UserOperation sponsored by {updates['paymaster']}")
        return replace(user_op, **updates)
