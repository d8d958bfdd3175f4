"""JSON-RPC service exposing token state: transactions, assets, balances, orders and loans."""

from __future__ import annotations

import base64
import dataclasses
import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from tokenvm.encoding import HRP, ID_LEN, IDError, address, id_from_string, parse_address
from tokenvm.storage import AssetRecord, TransactionRecord

JSONRPC_ENDPOINT = "/tokenapi"
NAMESPACE = "tokenvm"
ORDERS_TO_SEND = 128

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000


class TxNotFoundError(LookupError):
    """Raised when a transaction is not known to the node."""

    def __init__(self, message: str = "tx not found") -> None:
        super().__init__(message)


class AssetNotFoundError(LookupError):
    """Raised when an asset does not exist in state."""

    def __init__(self, message: str = "asset not found") -> None:
        super().__init__(message)


class Controller(Protocol):
    """What the service needs from the node it runs in."""

    def genesis(self) -> Any: ...

    def get_transaction(self, tx_id: bytes) -> Optional[TransactionRecord]: ...

    def get_asset_from_state(self, asset: bytes) -> Optional[AssetRecord]: ...

    def get_balance_from_state(self, public_key: bytes, asset: bytes) -> int: ...

    def orders(self, pair: str, limit: int) -> Iterable[Any]: ...

    def get_loan_from_state(self, asset: bytes, destination: bytes) -> int: ...


@dataclass(frozen=True)
class TxReply:
    timestamp: int
    success: bool
    units: int

    def to_json(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "success": self.success, "units": self.units}

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> TxReply:
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            success=bool(data.get("success", False)),
            units=int(data.get("units", 0)),
        )


@dataclass(frozen=True)
class AssetReply:
    metadata: bytes
    supply: int
    owner: str
    warp: bool

    def to_json(self) -> dict[str, Any]:
        return {
            "metadata": base64.b64encode(self.metadata).decode("ascii"),
            "supply": self.supply,
            "owner": self.owner,
            "warp": self.warp,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> AssetReply:
        raw = data.get("metadata")
        return cls(
            metadata=base64.b64decode(raw) if raw else b"",
            supply=int(data.get("supply", 0)),
            owner=str(data.get("owner", "")),
            warp=bool(data.get("warp", False)),
        )


class _InvalidParams(ValueError):
    pass


def _json_ready(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _normalize_params(params: Any) -> Mapping[str, Any]:
    if params is None:
        return {}
    if isinstance(params, list):
        if not params:
            return {}
        params = params[0]
    if not isinstance(params, Mapping):
        raise _InvalidParams("params must be an object")
    return params


def _id_param(params: Mapping[str, Any], name: str) -> bytes:
    value = params.get(name)
    if value is None:
        return bytes(ID_LEN)
    if not isinstance(value, str):
        raise _InvalidParams(f"{name} must be a string")
    try:
        return id_from_string(value)
    except IDError as exc:
        raise _InvalidParams(f"invalid {name}: {exc}") from None


def _str_param(params: Mapping[str, Any], name: str) -> str:
    value = params.get(name, "")
    if not isinstance(value, str):
        raise _InvalidParams(f"{name} must be a string")
    return value


def _error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


class JSONRPCServer:
    """Answers token queries against a controller, directly or over JSON-RPC."""

    def __init__(self, controller: Controller, hrp: str = HRP, namespace: str = NAMESPACE) -> None:
        self.controller = controller
        self.hrp = hrp
        self.namespace = namespace
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "genesis": lambda _params: {"genesis": _json_ready(self.genesis())},
            "tx": lambda p: self.tx(_id_param(p, "txId")).to_json(),
            "asset": lambda p: self.asset(_id_param(p, "asset")).to_json(),
            "balance": lambda p: {
                "amount": self.balance(_str_param(p, "address"), _id_param(p, "asset"))
            },
            "orders": lambda p: {"orders": self.orders(_str_param(p, "pair"))},
            "loan": lambda p: {
                "amount": self.loan(_id_param(p, "asset"), _id_param(p, "destination"))
            },
        }

    def genesis(self) -> Any:
        return self.controller.genesis()

    def tx(self, tx_id: bytes) -> TxReply:
        record = self.controller.get_transaction(tx_id)
        if record is None:
            raise TxNotFoundError()
        return TxReply(record.timestamp, record.success, record.units)

    def asset(self, asset: bytes) -> AssetReply:
        record = self.controller.get_asset_from_state(asset)
        if record is None:
            raise AssetNotFoundError()
        return AssetReply(record.metadata, record.supply, address(record.owner, self.hrp), record.warp)

    def balance(self, address: str, asset: bytes) -> int:
        public_key = parse_address(address, self.hrp)
        return self.controller.get_balance_from_state(public_key, asset)

    def orders(self, pair: str) -> list[Any]:
        return [_json_ready(order) for order in self.controller.orders(pair, ORDERS_TO_SEND)]

    def loan(self, asset: bytes, destination: bytes) -> int:
        return self.controller.get_loan_from_state(asset, destination)

    def handle(self, request: Any) -> dict[str, Any]:
        """Answer one decoded JSON-RPC request with a response object."""
        if not isinstance(request, Mapping):
            return _error_response(None, INVALID_REQUEST, "invalid request")
        request_id = request.get("id")
        method = request.get("method")
        if not isinstance(method, str):
            return _error_response(request_id, INVALID_REQUEST, "invalid request")
        service, _, name = method.partition(".")
        handler = self._handlers.get(name) if service == self.namespace else None
        if handler is None:
            return _error_response(request_id, METHOD_NOT_FOUND, f"method not found: {method}")
        try:
            result = handler(_normalize_params(request.get("params")))
        except _InvalidParams as exc:
            return _error_response(request_id, INVALID_PARAMS, str(exc))
        except Exception as exc:  # every failure is reported to the caller
            return _error_response(request_id, SERVER_ERROR, str(exc))
        return {"jsonrpc": "2.0", "result": result, "id": request_id}

    def wsgi_app(self, environ: Mapping[str, Any], start_response: Callable[..., Any]) -> list[bytes]:
        if environ.get("REQUEST_METHOD") != "POST":
            start_response(
                "405 Method Not Allowed",
                [("Allow", "POST"), ("Content-Type", "text/plain; charset=utf-8")],
            )
            return [b"method not allowed\n"]
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        body = environ["wsgi.input"].read(length) if length > 0 else b""
        try:
            request = json.loads(body)
        except ValueError:
            response = _error_response(None, PARSE_ERROR, "parse error")
        else:
            response = self.handle(request)
        payload = json.dumps(response).encode("utf-8")
        start_response(
            "200 OK",
            [("Content-Type", "application/json"), ("Content-Length", str(len(payload)))],
        )
        return [payload]