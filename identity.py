"""
Identity claims produced by the external login flow
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class Identity:
    """Authenticated user. Only the email takes part in key derivation."""
    email: str
    name: str = ""
    picture: str = ""


def resolve_identity(claim: Optional[Mapping[str, Any]]) -> Optional[Identity]:
    """Turn a login claim into an Identity, or None when it carries no email"""
    if not claim:
        return None

    email = claim.get("email")
    if not isinstance(email, str) or not email:
        return None

    return Identity(
        email=email,
        name=claim.get("name") or "",
        picture=claim.get("picture") or "",
    )
