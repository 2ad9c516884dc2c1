"""
Blocking JSON-RPC transport shared by the bundler and paymaster clients
"""

import logging
from typing import Any, List

import requests

from errors import RpcError

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """Posts JSON-RPC 2.0 requests and raises RpcError with the remote message as-is"""

    name = "JSON-RPC"

    def __init__(self, url: str, timeout: float = 30):
        self.url = url
        self.timeout = timeout
        self._request_id = 0

    def _make_request(self, method: str, params: List) -> Any:
        """Make JSON-RPC request and return its result"""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id
        }

        try:
            response = requests.post(
                self.url,
                json=payload,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"{self.name} request {method} failed: {e}")
            raise RpcError(f"{self.name} unreachable: {e}", method=method) from e

        try:
            result = response.json()
        except ValueError:
            result = None

        if isinstance(result, dict) and 'error' in result:
            error = result['error'] or {}
            message = error.get('message', 'Unknown error') if isinstance(error, dict) else str(error)
            code = error.get('code') if isinstance(error, dict) else None
            logger.error(f"{self.name} error for {method}: {message}")
            raise RpcError(message, method=method, code=code)

        if response.status_code != 200:
            logger.error(f"{self.name} HTTP error for {method}: {response.status_code}")
            raise RpcError(f"{self.name} HTTP error: {response.status_code}", method=method)

        if not isinstance(result, dict) or 'result' not in result:
            raise RpcError(f"Malformed {self.name} response for {method}", method=method)

        return result['result']
