"""
Kernel v3.1 smart account bootstrap

The account address is a pure function of the owner key and the pinned
(validator, kernel version, entry point) triple in config.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from eth_abi import encode
from eth_account.signers.local import LocalAccount
from web3 import Web3

from bundler import BundlerClient
from chain import ChainClient
from config import (
    ACCOUNT_INDEX,
    ECDSA_VALIDATOR_V3_1,
    ENTRYPOINT_V07,
    KERNEL_V3_1_FACTORY,
    KERNEL_V3_1_META_FACTORY,
    KERNEL_VERSION,
    ZERO_ADDRESS,
    SmartWalletConfig,
)
from errors import BootstrapError, ReadError
from paymaster import PaymasterClient
from smart_account import KernelAccountClient

logger = logging.getLogger(__name__)

KERNEL_INITIALIZE_SELECTOR = Web3.keccak(text="initialize(bytes21,address,bytes,bytes,bytes[])")[:4]
DEPLOY_WITH_FACTORY_SELECTOR = Web3.keccak(text="deployWithFactory(address,bytes,bytes32)")[:4]

# Kernel validator type prefix for a plain validator module
VALIDATOR_TYPE_VALIDATOR = b'\x01'


@dataclass(frozen=True)
class EcdsaValidator:
    """ECDSA validator module owned by a single EOA key"""
    owner: str
    address: str = ECDSA_VALIDATOR_V3_1
    entry_point: str = ENTRYPOINT_V07
    kernel_version: str = KERNEL_VERSION

    @property
    def identifier(self) -> bytes:
        """bytes21 root validator id: type prefix followed by the module address"""
        return VALIDATOR_TYPE_VALIDATOR + bytes.fromhex(self.address[2:])

    @property
    def enable_data(self) -> bytes:
        return bytes.fromhex(self.owner[2:])


@dataclass(frozen=True)
class SmartAccount:
    address: str
    validator: EcdsaValidator
    client: KernelAccountClient
    signer: LocalAccount = field(repr=False)


def create_ecdsa_validator(signer: LocalAccount) -> EcdsaValidator:
    try:
        owner = Web3.to_checksum_address(signer.address)
    except (AttributeError, TypeError, ValueError) as e:
        raise BootstrapError(f"Failed to create ECDSA validator: {e}") from e
    return EcdsaValidator(owner=owner)


def kernel_init_data(validator: EcdsaValidator) -> bytes:
    """Calldata for Kernel.initialize with the validator as root and no hook"""
    return KERNEL_INITIALIZE_SELECTOR + encode(
        ['bytes21', 'address', 'bytes', 'bytes', 'bytes[]'],
        [validator.identifier, ZERO_ADDRESS, validator.enable_data, b'', []]
    )


def account_salt(index: int = ACCOUNT_INDEX) -> bytes:
    return index.to_bytes(32, "big")


def kernel_factory_data(init_data: bytes, index: int = ACCOUNT_INDEX) -> bytes:
    """Meta factory calldata deploying the account on its first user operation"""
    return DEPLOY_WITH_FACTORY_SELECTOR + encode(
        ['address', 'bytes', 'bytes32'],
        [Web3.to_checksum_address(KERNEL_V3_1_FACTORY), init_data, account_salt(index)]
    )


def validate_endpoint(name: str, url: Optional[str]) -> None:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise BootstrapError(f"Malformed {name} endpoint: {url!r}")


async def bootstrap(
    signer: LocalAccount,
    config: SmartWalletConfig,
    chain: Optional[ChainClient] = None,
    bundler: Optional[BundlerClient] = None,
    paymaster: Optional[PaymasterClient] = None,
) -> SmartAccount:
    """
    Wrap the signer in a Kernel account and build its execution client.

    Only read calls are made: the address comes from the factory's getAddress
    view. Nothing is deployed until the first user operation carries the
    factory data.
    """
    validate_endpoint("bundler", config.bundler_url)
    validate_endpoint("paymaster", config.paymaster_url)
    if chain is None:
        validate_endpoint("RPC", config.rpc_url)

    chain = chain or ChainClient(config.rpc_url)
    validator = create_ecdsa_validator(signer)
    init_data = kernel_init_data(validator)

    try:
        address = await chain.get_account_address(KERNEL_V3_1_FACTORY, init_data, account_salt())
    except ReadError as e:
        raise BootstrapError(f"Failed to compute smart account address: {e}") from e

    client = KernelAccountClient(
        config=config,
        address=address,
        signer=signer,
        factory=KERNEL_V3_1_META_FACTORY,
        factory_data=kernel_factory_data(init_data),
        chain=chain,
        bundler=bundler or BundlerClient(config),
        paymaster=paymaster or PaymasterClient(config),
    )

    logger.info(f"Kernel account {address} bootstrapped for owner {validator.owner}")
    return SmartAccount(address=address, validator=validator, client=client, signer=signer)
