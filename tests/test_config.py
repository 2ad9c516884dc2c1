import pytest

from config import DEFAULT_TOKEN_ADDRESS, SEPOLIA_CHAIN_ID, SmartWalletConfig

ENV_VARS = [
    "ZERODEV_BUNDLER_URL", "ZERODEV_PAYMASTER_URL", "ZERODEV_PROJECT_ID", "RPC_URL", "CHAIN_ID",
    "TOKEN_ADDRESS", "TOKEN_DECIMALS", "TOKEN_SYMBOL", "WALLET_STORAGE_PATH",
    "RECEIPT_TIMEOUT", "RECEIPT_POLL_INTERVAL",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_endpoints_are_required(monkeypatch):
    with pytest.raises(ValueError, match="ZERODEV_BUNDLER_URL"):
        SmartWalletConfig.from_environment()

    monkeypatch.setenv("ZERODEV_BUNDLER_URL", "https://bundler.example")
    with pytest.raises(ValueError, match="ZERODEV_PAYMASTER_URL"):
        SmartWalletConfig.from_environment()


def test_defaults(monkeypatch):
    monkeypatch.setenv("ZERODEV_BUNDLER_URL", "https://bundler.example")
    monkeypatch.setenv("ZERODEV_PAYMASTER_URL", "https://paymaster.example")

    config = SmartWalletConfig.from_environment()

    assert config.chain_id == SEPOLIA_CHAIN_ID
    assert config.token_address == DEFAULT_TOKEN_ADDRESS
    assert config.token_decimals == 6
    assert config.token_symbol == "USDC"
    assert config.receipt_timeout == 120


def test_overrides(monkeypatch):
    monkeypatch.setenv("ZERODEV_BUNDLER_URL", "https://bundler.example")
    monkeypatch.setenv("ZERODEV_PAYMASTER_URL", "https://paymaster.example")
    monkeypatch.setenv("CHAIN_ID", "1")
    monkeypatch.setenv("TOKEN_DECIMALS", "18")
    monkeypatch.setenv("RECEIPT_POLL_INTERVAL", "0.5")

    config = SmartWalletConfig.from_environment()

    assert config.chain_id == 1
    assert config.token_decimals == 18
    assert config.receipt_poll_interval == 0.5
