"""
UserOperation creation, Kernel call encoding and signing utilities
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from eth_abi import decode, encode
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from config import DEFAULT_GAS_LIMITS
from errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Call:
    """One elementary call executed by the smart account"""
    target: str
    data: bytes = b''
    value: int = 0


@dataclass
class UserOperation:
    """Unpacked EntryPoint v0.7 user operation"""
    sender: str
    nonce: int
    call_data: bytes
    factory: Optional[str] = None
    factory_data: bytes = b''
    call_gas_limit: int = DEFAULT_GAS_LIMITS["call"]
    verification_gas_limit: int = DEFAULT_GAS_LIMITS["verification"]
    pre_verification_gas: int = DEFAULT_GAS_LIMITS["pre_verification"]
    max_fee_per_gas: int = DEFAULT_GAS_LIMITS["fee"]
    max_priority_fee_per_gas: int = DEFAULT_GAS_LIMITS["fee"]
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: int = 0
    paymaster_post_op_gas_limit: int = 0
    paymaster_data: bytes = b''
    signature: bytes = b''


# Function selectors
EXECUTE_SELECTOR = Web3.keccak(text="execute(bytes32,bytes)")[:4]
ERC20_TRANSFER_SELECTOR = Web3.keccak(text="transfer(address,uint256)")[:4]
ERC20_APPROVE_SELECTOR = Web3.keccak(text="approve(address,uint256)")[:4]

# ERC-7579 execution modes: call type in the first byte, default exec type
SINGLE_CALL_MODE = b'\x00' * 32
BATCH_CALL_MODE = b'\x01' + b'\x00' * 31

# Placeholder signature with the right length and shape for ECDSA validation
DUMMY_ECDSA_SIGNATURE = bytes.fromhex(
    "f" * 31 + "0" * 32 + "7"  # r
    + "a" * 64                 # s
    + "1c"                     # v
)


def to_hex_bytes(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def from_hex_bytes(value) -> bytes:
    if value is None:
        return b''
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def encode_erc20_transfer(to_address: str, amount: int) -> bytes:
    return ERC20_TRANSFER_SELECTOR + encode(
        ['address', 'uint256'], [Web3.to_checksum_address(to_address), amount]
    )


def encode_erc20_approve(spender: str, amount: int) -> bytes:
    return ERC20_APPROVE_SELECTOR + encode(
        ['address', 'uint256'], [Web3.to_checksum_address(spender), amount]
    )


def encode_kernel_execute(calls: Sequence[Call]) -> bytes:
    """Encode calls into Kernel v3 execute(bytes32,bytes) calldata, preserving order"""
    if not calls:
        raise ValidationError("At least one call is required")
    for call in calls:
        if call.value < 0:
            raise ValidationError(f"Call value must be non-negative, got {call.value}")

    if len(calls) == 1:
        call = calls[0]
        execution = (
            bytes.fromhex(Web3.to_checksum_address(call.target)[2:])
            + call.value.to_bytes(32, "big")
            + call.data
        )
        mode = SINGLE_CALL_MODE
    else:
        execution = encode(
            ['(address,uint256,bytes)[]'],
            [[(Web3.to_checksum_address(c.target), c.value, c.data) for c in calls]]
        )
        mode = BATCH_CALL_MODE

    return EXECUTE_SELECTOR + encode(['bytes32', 'bytes'], [mode, execution])


def decode_kernel_execute(call_data: bytes) -> list:
    """
    Inverse of encode_kernel_execute, returning the ordered calls.

    Not used on the submission path; kept for inspecting built or relayed
    call data, e.g. when checking batch order.
    """
    if call_data[:4] != EXECUTE_SELECTOR:
        raise ValueError("Not a Kernel execute call")

    mode, execution = decode(['bytes32', 'bytes'], call_data[4:])
    if mode == SINGLE_CALL_MODE:
        target = Web3.to_checksum_address(execution[:20])
        value = int.from_bytes(execution[20:52], "big")
        return [Call(target=target, data=execution[52:], value=value)]

    (executions,) = decode(['(address,uint256,bytes)[]'], execution)
    return [
        Call(target=Web3.to_checksum_address(target), data=data, value=value)
        for target, value, data in executions
    ]


def create_user_operation(
    smart_account: str,
    calls: Sequence[Call],
    nonce: int,
    factory: Optional[str] = None,
    factory_data: bytes = b'',
) -> UserOperation:
    """Create a UserOperation executing calls in order as one atomic batch"""
    call_data = encode_kernel_execute(calls)

    logger.info(f"Created UserOperation for {smart_account} with {len(calls)} call(s), nonce {nonce}")

    return UserOperation(
        sender=smart_account,
        nonce=nonce,
        call_data=call_data,
        factory=factory,
        factory_data=factory_data if factory else b'',
    )


def pack_init_code(op: UserOperation) -> bytes:
    if not op.factory:
        return b''
    return bytes.fromhex(op.factory[2:]) + op.factory_data


def pack_paymaster_and_data(op: UserOperation) -> bytes:
    if not op.paymaster:
        return b''
    return (
        bytes.fromhex(op.paymaster[2:])
        + op.paymaster_verification_gas_limit.to_bytes(16, "big")
        + op.paymaster_post_op_gas_limit.to_bytes(16, "big")
        + op.paymaster_data
    )


def get_user_operation_hash(op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """EntryPoint v0.7 getUserOpHash computed locally"""
    account_gas_limits = (
        op.verification_gas_limit.to_bytes(16, "big") + op.call_gas_limit.to_bytes(16, "big")
    )
    gas_fees = (
        op.max_priority_fee_per_gas.to_bytes(16, "big") + op.max_fee_per_gas.to_bytes(16, "big")
    )

    packed = encode(
        ['address', 'uint256', 'bytes32', 'bytes32', 'bytes32', 'uint256', 'bytes32', 'bytes32'],
        [
            Web3.to_checksum_address(op.sender),
            op.nonce,
            Web3.keccak(pack_init_code(op)),
            Web3.keccak(op.call_data),
            account_gas_limits,
            op.pre_verification_gas,
            gas_fees,
            Web3.keccak(pack_paymaster_and_data(op)),
        ]
    )

    return bytes(Web3.keccak(encode(
        ['bytes32', 'address', 'uint256'],
        [Web3.keccak(packed), Web3.to_checksum_address(entry_point), chain_id]
    )))


def sign_user_operation(
    op: UserOperation, signer: LocalAccount, entry_point: str, chain_id: int
) -> UserOperation:
    """Sign the user operation hash as an EIP-191 message with the ECDSA owner key"""
    user_op_hash = get_user_operation_hash(op, entry_point, chain_id)
    signed = signer.sign_message(encode_defunct(primitive=user_op_hash))
    logger.info(f"Signed UserOperation {Web3.to_hex(user_op_hash)}")
    return replace(op, signature=bytes(signed.signature))
