import hashlib

import pytest

from errors import DerivationError
from identity import Identity, resolve_identity
from signer import derive_private_key, derive_signer


def test_derive_is_deterministic():
    assert derive_private_key("a@x.com") == derive_private_key("a@x.com")
    assert derive_signer("a@x.com").address == derive_signer("a@x.com").address


def test_key_is_salted_sha256_of_email():
    expected = hashlib.sha256(b"a@x.comzerodev-salt").digest()
    assert derive_private_key("a@x.com") == expected
    assert len(expected) == 32


def test_different_emails_give_different_signers():
    assert derive_signer("a@x.com").address != derive_signer("b@x.com").address


def test_salt_changes_key():
    assert derive_private_key("a@x.com", salt="other") != derive_private_key("a@x.com")


def test_empty_email_is_rejected():
    with pytest.raises(DerivationError):
        derive_signer("")


def test_resolve_identity_keeps_display_fields():
    identity = resolve_identity({"email": "a@x.com", "name": "A", "picture": "https://img/a.png"})
    assert identity == Identity(email="a@x.com", name="A", picture="https://img/a.png")


@pytest.mark.parametrize("claim", [None, {}, {"name": "A"}, {"email": ""}, {"email": 42}])
def test_resolve_identity_without_email(claim):
    assert resolve_identity(claim) is None
