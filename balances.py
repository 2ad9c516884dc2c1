"""
Best-effort balance reads for display
"""

import logging
from typing import Optional

from web3 import Web3

from chain import ChainReader
from config import BALANCE_DISPLAY_PLACES
from units import format_decimal, format_units

logger = logging.getLogger(__name__)

ZERO_BALANCE = "0"


class BalanceReader:
    """Token and native balances as 6-decimal strings. Read failures yield "0"."""

    def __init__(self, chain: ChainReader, token_address: str, token_decimals: int):
        self.chain = chain
        self.token_address = token_address
        self.token_decimals = token_decimals

    async def token_balance(self, account_address: Optional[str]) -> str:
        if not account_address:
            return ZERO_BALANCE
        try:
            raw = await self.chain.token_balance(self.token_address, account_address)
        except Exception as e:
            logger.warning(f"Failed to get token balance for {account_address}: {e}")
            return ZERO_BALANCE
        return format_units(raw, self.token_decimals, BALANCE_DISPLAY_PLACES)

    async def native_balance(self, account_address: Optional[str]) -> str:
        if not account_address:
            return ZERO_BALANCE
        try:
            raw = await self.chain.native_balance(account_address)
        except Exception as e:
            logger.warning(f"Failed to get ETH balance for {account_address}: {e}")
            return ZERO_BALANCE
        return format_decimal(Web3.from_wei(raw, "ether"), BALANCE_DISPLAY_PLACES)
