"""
Exception hierarchy for smart wallet sessions
"""

from typing import Optional


class WalletError(Exception):
    """Base class for smart wallet errors"""
    pass


class DerivationError(WalletError):
    """The signer key could not be derived from the identity"""
    pass


class BootstrapError(WalletError):
    """The smart account or its execution client could not be constructed"""
    pass


class SubmissionError(WalletError):
    """A user operation was rejected, reverted or never confirmed"""
    pass


class ReadError(WalletError):
    """A read-only chain call failed"""
    pass


class ValidationError(WalletError):
    """Input rejected before any remote call"""
    pass


class WalletNotInitializedError(WalletError):
    """An operation needed a bootstrapped account"""

    def __init__(self, message: str = "Wallet not initialized"):
        super().__init__(message)


class RpcError(WalletError):
    """JSON-RPC failure reported by a bundler or paymaster endpoint"""

    def __init__(self, message: str, method: Optional[str] = None, code: Optional[int] = None):
        super().__init__(message)
        self.method = method
        self.code = code
