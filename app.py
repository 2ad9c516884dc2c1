"""
Email Smart Wallet HTTP API

A small Flask service that demonstrates:
1. Email-derived Kernel smart accounts (EntryPoint v0.7, Kernel v3.1)
2. Gasless single and batched token transfers sponsored by a ZeroDev paymaster
3. Transaction history reconciled from the bundler and on-chain Transfer logs
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from flask import Flask, jsonify, request

from config import SmartWalletConfig
from errors import (
    BootstrapError,
    DerivationError,
    SubmissionError,
    ValidationError,
    WalletNotInitializedError,
)
from identity import resolve_identity
from session import WalletSession
from storage import JsonFileStore, KeyValueStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Server defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

SessionFactory = Callable[[Mapping[str, Any]], WalletSession]


def run_async(coroutine):
    """Drive a session coroutine to completion from a Flask worker thread"""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    return loop.run_until_complete(coroutine)


class WalletApiHandler:
    """Maps HTTP requests onto per-email wallet sessions"""

    def __init__(
        self,
        config: Optional[SmartWalletConfig] = None,
        store: Optional[KeyValueStore] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.config = config or SmartWalletConfig.from_environment()
        self.store = store or JsonFileStore(self.config.storage_path)
        self.session_factory = session_factory or (
            lambda claim: WalletSession(claim, self.config, self.store)
        )
        self.sessions: Dict[str, WalletSession] = {}

        self.app = Flask(__name__)
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up Flask routes"""
        self.app.route("/session", methods=["POST"])(self.create_session)
        self.app.route("/session/<email>", methods=["DELETE"])(self.delete_session)
        self.app.route("/wallet/<email>/balances", methods=["GET"])(self.get_balances)
        self.app.route("/wallet/<email>/transfer", methods=["POST"])(self.transfer)
        self.app.route("/wallet/<email>/batch-transfer", methods=["POST"])(self.batch_transfer)
        self.app.route("/wallet/<email>/transactions", methods=["GET"])(self.get_transactions)
        self.app.route(
            "/wallet/<email>/transactions/refresh", methods=["POST"]
        )(self.refresh_transactions)
        self.app.route("/health", methods=["GET"])(self.health_check)

    def _session(self, email: str) -> Optional[WalletSession]:
        return self.sessions.get(email)

    def _not_found(self, email: str):
        return jsonify({"error": f"No wallet session for {email}"}), 404

    def _session_state(self, session: WalletSession) -> Dict[str, Any]:
        return {
            "walletAddress": session.wallet_address,
            "txHash": session.tx_hash,
            "txStatus": session.tx_status,
            "txMessage": session.tx_message,
            "error": session.wallet_error,
        }

    def create_session(self):
        """Bootstrap the wallet for a login claim {email, name, picture}"""
        claim = request.get_json(silent=True)
        identity = resolve_identity(claim if isinstance(claim, dict) else None)
        if identity is None:
            return jsonify({"error": "User email is required"}), 400
        email = identity.email

        session = self.sessions.get(email) or self.session_factory(claim)
        try:
            run_async(session.initialize())
        except (DerivationError, BootstrapError) as e:
            logger.error(f"Wallet bootstrap failed for {email}: {e}")
            return jsonify({"error": str(e)}), 502

        self.sessions[email] = session
        return jsonify({
            "email": identity.email,
            "name": identity.name,
            "picture": identity.picture,
            "smartWalletAddress": session.wallet_address,
        })

    def delete_session(self, email: str):
        session = self.sessions.pop(email, None)
        if session is None:
            return self._not_found(email)
        session.sign_out()
        return "", 204

    def get_balances(self, email: str):
        session = self._session(email)
        if session is None:
            return self._not_found(email)

        return jsonify({
            "token": run_async(session.token_balance()),
            "native": run_async(session.native_balance()),
            "symbol": self.config.token_symbol,
        })

    def transfer(self, email: str):
        body = request.get_json(silent=True) or {}
        return self._handle_submission(
            email,
            lambda session: session.send_transfer(body.get("recipient", ""), body.get("amount", "")),
        )

    def batch_transfer(self, email: str):
        body = request.get_json(silent=True) or {}
        return self._handle_submission(
            email,
            lambda session: session.batch_approve_and_transfer(
                body.get("recipient", ""), body.get("amount", ""), body.get("approveAmount", "")
            ),
        )

    def _handle_submission(self, email: str, submit: Callable[[WalletSession], Any]):
        session = self._session(email)
        if session is None:
            return self._not_found(email)

        session.clear_transaction_state()
        try:
            tx_hash = run_async(submit(session))
        except ValidationError as e:
            return jsonify({**self._session_state(session), "error": str(e)}), 400
        except WalletNotInitializedError as e:
            return jsonify({**self._session_state(session), "error": str(e)}), 409
        except SubmissionError as e:
            return jsonify({**self._session_state(session), "error": str(e)}), 502

        return jsonify({"txHash": tx_hash, **self._session_state(session)})

    def get_transactions(self, email: str):
        session = self._session(email)
        if session is None:
            return self._not_found(email)
        return jsonify({"transactions": [tx.to_dict() for tx in session.transactions]})

    def refresh_transactions(self, email: str):
        session = self._session(email)
        if session is None:
            return self._not_found(email)
        transactions = run_async(session.fetch_transaction_history())
        return jsonify({"transactions": [tx.to_dict() for tx in transactions]})

    def health_check(self):
        """Dead-simple health check endpoint"""
        return "OK", 200

    def run(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        """Run the Flask application"""
        self.app.run(host=host, port=port)


if __name__ == "__main__":
    handler = WalletApiHandler()
    handler.run()
