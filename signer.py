"""
Deterministic signer derivation from an email identity
"""

import hashlib
import logging

from eth_account import Account
from eth_account.signers.local import LocalAccount

from config import SIGNER_SALT
from errors import DerivationError

logger = logging.getLogger(__name__)


def derive_private_key(email: str, salt: str = SIGNER_SALT) -> bytes:
    """SHA-256 of the email followed by the application salt"""
    if not email:
        raise DerivationError("Cannot derive a signer without an email")

    try:
        return hashlib.sha256((email + salt).encode("utf-8")).digest()
    except (ValueError, UnicodeError) as e:
        raise DerivationError(f"Signer key derivation failed: {e}") from e


def derive_signer(email: str, salt: str = SIGNER_SALT) -> LocalAccount:
    """Signing account for an email. Same email and salt always give the same key."""
    private_key = derive_private_key(email, salt)
    try:
        signer = Account.from_key(private_key)
    except (ValueError, TypeError) as e:
        raise DerivationError(f"Derived key is not a valid signing key: {e}") from e

    logger.info(f"Derived signer {signer.address}")
    return signer
