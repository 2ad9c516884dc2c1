import asyncio
import re
from dataclasses import replace

import pytest

from errors import BootstrapError, SubmissionError, ValidationError, WalletNotInitializedError
from ledger import Transaction, TransactionKind, TransactionStatus
from session import TX_ERROR, TX_IDLE, TX_SUCCESS, WalletSession
from storage import USER_KEY, transactions_key
from user_operations import decode_kernel_execute, encode_erc20_approve, encode_erc20_transfer

from conftest import FakeBundler, FakeChain, FakePaymaster, ONCHAIN_TX_HASH, OTHER, RECIPIENT, transfer_log

CLAIM = {"email": "a@x.com", "name": "Ada", "picture": "https://example.com/ada.png"}


@pytest.fixture
def session(config, store, chain, bundler, paymaster):
    wallet = WalletSession(CLAIM, config, store, chain=chain, bundler=bundler, paymaster=paymaster)
    asyncio.run(wallet.initialize())
    return wallet


def test_gasless_transfer_end_to_end(session, bundler, store):
    tx_hash = asyncio.run(session.send_transfer(RECIPIENT, "10.5"))

    assert re.match(r"^0x[0-9a-f]{64}$", tx_hash)
    assert session.tx_hash == tx_hash
    assert session.tx_status == TX_SUCCESS
    assert session.tx_message == "Gasless transfer completed successfully!"
    assert session.wallet_error is None

    op, = bundler.sent
    call, = decode_kernel_execute(op.call_data)
    assert call.data == encode_erc20_transfer(RECIPIENT, 10_500_000)

    recorded, = store.get(transactions_key(session.wallet_address))
    assert recorded["hash"] == tx_hash
    assert recorded["status"] == "success"
    assert recorded["type"] == "transfer"
    assert recorded["amount"] == "10.5"
    assert recorded["recipient"] == RECIPIENT
    assert [tx.hash for tx in session.transactions] == [tx_hash]


@pytest.mark.parametrize("amount,approve_amount", [("1", "1"), ("1", "5"), ("0.5", "100")])
def test_batch_is_approve_then_transfer(session, bundler, amount, approve_amount):
    asyncio.run(session.batch_approve_and_transfer(RECIPIENT, amount, approve_amount))

    op, = bundler.sent
    approve, transfer = decode_kernel_execute(op.call_data)
    assert approve.data[:4] == encode_erc20_approve(RECIPIENT, 0)[:4]
    assert transfer.data[:4] == encode_erc20_transfer(RECIPIENT, 0)[:4]
    assert session.transactions[0].kind == TransactionKind.BATCH_TRANSFER
    assert session.tx_message == "Batch transaction completed successfully!"


@pytest.mark.parametrize("recipient,amount", [
    ("0x123", "1"),
    ("not an address", "1"),
    (RECIPIENT, "0"),
    (RECIPIENT, "-2"),
    (RECIPIENT, "abc"),
    (RECIPIENT, "0.0000001"),
])
def test_invalid_transfer_input_has_no_side_effects(session, chain, bundler, paymaster, store, recipient, amount):
    nonce_calls = list(chain.nonce_calls)

    with pytest.raises(ValidationError):
        asyncio.run(session.send_transfer(recipient, amount))

    assert bundler.sent == []
    assert paymaster.sponsored == []
    assert chain.nonce_calls == nonce_calls
    assert store.get(transactions_key(session.wallet_address)) is None
    assert session.tx_status == TX_IDLE


def test_approve_below_amount_is_rejected(session, bundler):
    with pytest.raises(ValidationError, match="greater than or equal"):
        asyncio.run(session.batch_approve_and_transfer(RECIPIENT, "5", "1"))
    assert bundler.sent == []


def test_paymaster_rejection_leaves_ledger_empty(config, store, chain, bundler):
    wallet = WalletSession(
        CLAIM, config, store, chain=chain, bundler=bundler,
        paymaster=FakePaymaster(error="sponsorship policy rejected"),
    )
    asyncio.run(wallet.initialize())

    with pytest.raises(SubmissionError):
        asyncio.run(wallet.send_transfer(RECIPIENT, "1"))

    assert wallet.wallet_error == "sponsorship policy rejected"
    assert wallet.tx_status == TX_ERROR
    assert wallet.tx_message == "sponsorship policy rejected"
    assert wallet.tx_hash is None
    assert wallet.transactions == []
    assert store.get(transactions_key(wallet.wallet_address)) is None
    assert bundler.sent == []


def test_reverted_operation_records_nothing(config, store, chain, paymaster):
    bundler = FakeBundler(receipt={"success": False, "reason": "execution reverted"})
    wallet = WalletSession(CLAIM, config, store, chain=chain, bundler=bundler, paymaster=paymaster)
    asyncio.run(wallet.initialize())

    with pytest.raises(SubmissionError, match="execution reverted"):
        asyncio.run(wallet.send_transfer(RECIPIENT, "1"))
    assert wallet.transactions == []
    assert store.get(transactions_key(wallet.wallet_address)) is None


def test_initialize_persists_the_user_slot(session, store):
    assert store.get(USER_KEY) == {
        "email": "a@x.com",
        "name": "Ada",
        "picture": "https://example.com/ada.png",
        "smartWalletAddress": session.wallet_address,
    }
    assert session.is_loading is False


def test_initialize_is_deterministic(config, store):
    first = WalletSession(CLAIM, config, store, chain=FakeChain(), bundler=FakeBundler(), paymaster=FakePaymaster())
    second = WalletSession(
        {"email": "a@x.com"}, config, store, chain=FakeChain(), bundler=FakeBundler(), paymaster=FakePaymaster()
    )

    assert asyncio.run(first.initialize()).address == asyncio.run(second.initialize()).address


def test_initialize_loads_cached_ledger(config, store, chain, bundler, paymaster, session):
    asyncio.run(session.send_transfer(RECIPIENT, "1"))

    reopened = WalletSession(CLAIM, config, store, chain=chain, bundler=bundler, paymaster=paymaster)
    asyncio.run(reopened.initialize())

    assert [tx.hash for tx in reopened.transactions] == [ONCHAIN_TX_HASH]


def test_missing_email_does_not_initialize(config, store, chain):
    wallet = WalletSession({"name": "nobody"}, config, store, chain=chain)

    assert asyncio.run(wallet.initialize()) is None
    assert wallet.wallet_error == "User email is required"
    assert wallet.wallet_address is None
    assert chain.address_calls == []


def test_bootstrap_failure_is_reported(config, store, chain):
    wallet = WalletSession(CLAIM, replace(config, bundler_url="nope"), store, chain=chain)

    with pytest.raises(BootstrapError):
        asyncio.run(wallet.initialize())
    assert "Malformed bundler endpoint" in wallet.wallet_error
    assert wallet.is_loading is False
    assert store.get(USER_KEY) is None


def test_operations_require_initialization(config, store):
    wallet = WalletSession(CLAIM, config, store)

    with pytest.raises(WalletNotInitializedError, match="Wallet not initialized"):
        asyncio.run(wallet.send_transfer(RECIPIENT, "1"))
    with pytest.raises(WalletNotInitializedError):
        asyncio.run(wallet.batch_approve_and_transfer(RECIPIENT, "1", "1"))
    assert asyncio.run(wallet.token_balance()) == "0"
    assert asyncio.run(wallet.fetch_transaction_history()) == []


def test_balances_through_session(session, chain):
    chain.token_raw = 2_000_000

    assert asyncio.run(session.token_balance()) == "2.000000"
    assert asyncio.run(session.native_balance()) == "0.000000"


def test_fetch_transaction_history_replaces_and_persists(config, store, bundler, paymaster):
    chain = FakeChain(latest_block=100)
    wallet = WalletSession(CLAIM, config, store, chain=chain, bundler=bundler, paymaster=paymaster)
    asyncio.run(wallet.initialize())
    chain.logs = [transfer_log("0x" + "12" * 32, block_number=99, sender=OTHER, recipient=wallet.wallet_address)]

    transactions = asyncio.run(wallet.fetch_transaction_history())

    assert [tx.hash for tx in transactions] == ["0x" + "12" * 32]
    assert wallet.transactions == transactions
    assert [tx["hash"] for tx in store.get(transactions_key(wallet.wallet_address))] == ["0x" + "12" * 32]


def test_add_transaction_dedupes(session):
    record = Transaction(
        hash="0x" + "01" * 32,
        status=TransactionStatus.PENDING,
        kind=TransactionKind.SINGLE_TRANSFER,
        timestamp=1,
    )
    session.add_transaction(record)
    session.add_transaction(record)

    assert session.transactions == [record]
    assert session.ledger.load(session.wallet_address) == [record]


def test_sign_out_clears_session(session, store):
    address = session.wallet_address
    asyncio.run(session.send_transfer(RECIPIENT, "1"))

    session.sign_out()

    assert store.get(USER_KEY) is None
    assert session.wallet_address is None
    assert session.transactions == []
    assert session.tx_status == TX_IDLE
    assert session.tx_hash is None
    # the ledger stays cached for the next sign-in
    assert store.get(transactions_key(address)) is not None


@pytest.mark.parametrize("typed,recorded", [(" 10.5", "10.5"), ("1E+1", "10"), ("2.500", "2.5")])
def test_ledger_records_the_normalized_amount(session, typed, recorded):
    asyncio.run(session.send_transfer(RECIPIENT, typed))

    assert session.transactions[0].amount == recorded


def test_batch_records_the_normalized_amount(session):
    asyncio.run(session.batch_approve_and_transfer(RECIPIENT, "0.50", "1"))

    assert session.transactions[0].amount == "0.5"
