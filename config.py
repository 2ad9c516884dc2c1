"""
Configuration for email-derived Kernel smart wallet operations
"""

import os
from dataclasses import dataclass

# Network constants
ENTRYPOINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"

# Kernel v3.1 deployment. The account address is derived from the validator,
# the kernel version and the entry point, so none of these may change.
KERNEL_VERSION = "0.3.1"
KERNEL_V3_1_IMPLEMENTATION = "0xBAC849bB641841b44E965fB01A4Bf5F074f84b4D"
KERNEL_V3_1_FACTORY = "0xaac5D4240AF87249B3f71BC8E4A2cae074A3E419"
KERNEL_V3_1_META_FACTORY = "0xd703aaE79538628d27099B8c4f621bE4CCd142d5"
ECDSA_VALIDATOR_V3_1 = "0x845ADb2C711129d4f3966735eD98a9F09fC4cE57"
ACCOUNT_INDEX = 0

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Appended to the email before hashing into the signer key
SIGNER_SALT = "zerodev-salt"

# Default gas limits for UserOperations, replaced by paymaster estimates
DEFAULT_GAS_LIMITS = {
    "call": 300000,
    "verification": 1000000,
    "pre_verification": 60000,
    "fee": 1100000
}

# History and ledger bounds
MAX_SCAN_DEPTH = 100_000
LOG_CHUNK_SIZE = 8_000  # under the common 10k block range limit
HISTORY_LIMIT = 50
LEDGER_CAPACITY = 100

BALANCE_DISPLAY_PLACES = 6

# Sepolia mock USDC
DEFAULT_TOKEN_ADDRESS = "0x2b9Ca0A8C773bb1B92A3dDAE9F882Fd14457DACc"
DEFAULT_TOKEN_DECIMALS = 6
DEFAULT_TOKEN_SYMBOL = "USDC"

SEPOLIA_CHAIN_ID = 11155111
SEPOLIA_RPC_URL = "https://sepolia.drpc.org"
EXPLORER_URL = "https://sepolia.etherscan.io/"

ERC20_ABI = [
    {
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    }
]

KERNEL_FACTORY_ABI = [{
    "inputs": [{"name": "data", "type": "bytes"}, {"name": "salt", "type": "bytes32"}],
    "name": "getAddress",
    "outputs": [{"name": "", "type": "address"}],
    "stateMutability": "view",
    "type": "function"
}]

ENTRYPOINT_NONCE_ABI = [{
    "inputs": [{"name": "sender", "type": "address"}, {"name": "key", "type": "uint192"}],
    "name": "getNonce",
    "outputs": [{"name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]


@dataclass
class SmartWalletConfig:
    """Configuration for smart wallet sessions"""

    bundler_url: str
    paymaster_url: str
    rpc_url: str = SEPOLIA_RPC_URL
    chain_id: int = SEPOLIA_CHAIN_ID
    entry_point_address: str = ENTRYPOINT_V07
    token_address: str = DEFAULT_TOKEN_ADDRESS
    token_decimals: int = DEFAULT_TOKEN_DECIMALS
    token_symbol: str = DEFAULT_TOKEN_SYMBOL
    storage_path: str = "wallet_storage.json"
    receipt_timeout: float = 120.0
    receipt_poll_interval: float = 1.0

    @classmethod
    def from_environment(cls) -> "SmartWalletConfig":
        """Build configuration from environment variables"""
        bundler_url = os.environ.get('ZERODEV_BUNDLER_URL')
        if not bundler_url:
            raise ValueError("ZERODEV_BUNDLER_URL environment variable is required")
        paymaster_url = os.environ.get('ZERODEV_PAYMASTER_URL')
        if not paymaster_url:
            raise ValueError("ZERODEV_PAYMASTER_URL environment variable is required")

        return cls(
            bundler_url=bundler_url,
            paymaster_url=paymaster_url,
            rpc_url=os.environ.get('RPC_URL', SEPOLIA_RPC_URL),
            chain_id=int(os.environ.get('CHAIN_ID', SEPOLIA_CHAIN_ID)),
            token_address=os.environ.get('TOKEN_ADDRESS', DEFAULT_TOKEN_ADDRESS),
            token_decimals=int(os.environ.get('TOKEN_DECIMALS', DEFAULT_TOKEN_DECIMALS)),
            token_symbol=os.environ.get('TOKEN_SYMBOL', DEFAULT_TOKEN_SYMBOL),
            storage_path=os.environ.get('WALLET_STORAGE_PATH', 'wallet_storage.json'),
            receipt_timeout=float(os.environ.get('RECEIPT_TIMEOUT', 120)),
            receipt_poll_interval=float(os.environ.get('RECEIPT_POLL_INTERVAL', 1)),
        )
