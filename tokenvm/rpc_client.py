"""Client for the token JSON-RPC service."""

from __future__ import annotations

import itertools
import json
import logging
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from typing import Any, Optional

from tokenvm.encoding import id_to_string
from tokenvm.rpc_server import (
    JSONRPC_ENDPOINT,
    NAMESPACE,
    AssetNotFoundError,
    AssetReply,
    TxNotFoundError,
    TxReply,
)

_log = logging.getLogger(__name__)


class RPCError(Exception):
    """An error reported by the remote service."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class JSONRPCClient:
    def __init__(
        self,
        uri: str,
        chain_id: bytes,
        namespace: str = NAMESPACE,
        timeout: float = 10.0,
    ) -> None:
        self.uri = uri.removesuffix("/") + JSONRPC_ENDPOINT
        self.chain_id = bytes(chain_id)
        self.namespace = namespace
        self.timeout = timeout
        self._genesis: Any = None
        self._ids = itertools.count(1)

    def _send(self, method: str, params: dict[str, Any]) -> Any:
        body = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": f"{self.namespace}.{method}",
                "params": params,
                "id": next(self._ids),
            }
        ).encode("utf-8")
        request = urllib.request.Request(
            self.uri,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            raw = exc.read()
            if not raw:
                raise RPCError(f"HTTP {exc.code}") from None
        try:
            data = json.loads(raw)
        except ValueError:
            raise RPCError("malformed response") from None
        error = data.get("error") if isinstance(data, dict) else None
        if error:
            if isinstance(error, dict):
                raise RPCError(str(error.get("message", "")), error.get("code"))
            raise RPCError(str(error))
        if not isinstance(data, dict):
            raise RPCError("malformed response")
        return data.get("result") or {}

    def genesis(self) -> Any:
        """Fetch the genesis once and reuse it afterwards."""
        if self._genesis is not None:
            return self._genesis
        self._genesis = self._send("genesis", {}).get("genesis")
        return self._genesis

    def tx(self, tx_id: bytes) -> Optional[TxReply]:
        """Return the transaction status, or None if the node does not know it."""
        try:
            result = self._send("tx", {"txId": id_to_string(tx_id)})
        except RPCError as exc:
            if str(TxNotFoundError()) in str(exc):
                return None
            raise
        return TxReply.from_json(result)

    def asset(self, asset: bytes) -> Optional[AssetReply]:
        """Return the asset description, or None if it does not exist."""
        try:
            result = self._send("asset", {"asset": id_to_string(asset)})
        except RPCError as exc:
            if str(AssetNotFoundError()) in str(exc):
                return None
            raise
        return AssetReply.from_json(result)

    def balance(self, address: str, asset: bytes) -> int:
        result = self._send("balance", {"address": address, "asset": id_to_string(asset)})
        return int(result.get("amount", 0))

    def orders(self, pair: str) -> list[Any]:
        result = self._send("orders", {"pair": pair})
        return list(result.get("orders") or [])

    def loan(self, asset: bytes, destination: bytes) -> int:
        result = self._send(
            "loan",
            {"asset": id_to_string(asset), "destination": id_to_string(destination)},
        )
        return int(result.get("amount", 0))

    @staticmethod
    def _wait(check: Callable[[], bool], interval: float, timeout: Optional[float]) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not check():
            if deadline is None:
                time.sleep(interval)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError("timed out waiting for condition")
            time.sleep(min(interval, remaining))

    def wait_for_balance(
        self,
        address: str,
        asset: bytes,
        minimum: int,
        interval: float = 1.0,
        timeout: Optional[float] = None,
    ) -> None:
        """Block until the address holds at least ``minimum`` of the asset."""

        def reached() -> bool:
            if self.balance(address, asset) >= minimum:
                return True
            _log.info("waiting for %d balance: %s", minimum, address)
            return False

        self._wait(reached, interval, timeout)

    def wait_for_transaction(
        self,
        tx_id: bytes,
        interval: float = 1.0,
        timeout: Optional[float] = None,
    ) -> bool:
        """Block until the transaction is known and return whether it succeeded."""
        outcome: list[TxReply] = []

        def found() -> bool:
            reply = self.tx(tx_id)
            if reply is None:
                return False
            outcome.append(reply)
            return True

        self._wait(found, interval, timeout)
        return outcome[-1].success