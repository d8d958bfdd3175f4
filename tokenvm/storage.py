"""Key layout and value encoding for chain state and transaction metadata."""

from __future__ import annotations

import struct
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from tokenvm.encoding import ID_LEN, PUBLIC_KEY_LEN, address, id_to_string

VERSION = "0.0.1"

_UINT64_MAX = (1 << 64) - 1
_UINT16_MAX = (1 << 16) - 1

_TX_PREFIX = 0x0
_BALANCE_PREFIX = 0x0
_ASSET_PREFIX = 0x1
_ORDER_PREFIX = 0x2
_LOAN_PREFIX = 0x3
_HEIGHT_PREFIX = 0x4
_INCOMING_WARP_PREFIX = 0x5
_OUTGOING_WARP_PREFIX = 0x6

_SUCCESS_BYTE = 0x1
_FAILURE_BYTE = 0x0

_U64 = struct.Struct(">Q")
_I64 = struct.Struct(">q")
_U16 = struct.Struct(">H")

ReadState = Callable[[Sequence[bytes]], Sequence[Optional[bytes]]]


class InvalidBalanceError(ValueError):
    """Raised when a balance or loan would overflow or go negative."""


class NotFoundError(LookupError):
    """Raised by a database when a key is absent."""


class _Database(Protocol):
    def get_value(self, key: bytes) -> bytes: ...

    def insert(self, key: bytes, value: bytes) -> None: ...

    def remove(self, key: bytes) -> None: ...


class MemoryDatabase:
    """A dictionary-backed key/value store."""

    def __init__(self) -> None:
        self._data: dict[bytes, bytes] = {}

    def get_value(self, key: bytes) -> bytes:
        try:
            return self._data[bytes(key)]
        except KeyError:
            raise NotFoundError("not found") from None

    def insert(self, key: bytes, value: bytes) -> None:
        self._data[bytes(key)] = bytes(value)

    def remove(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def read_state(self, keys: Sequence[bytes]) -> list[Optional[bytes]]:
        """Return the value for each key, or None where it is absent."""
        return [self._data.get(bytes(k)) for k in keys]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


@dataclass(frozen=True)
class TransactionRecord:
    timestamp: int
    success: bool
    units: int


@dataclass(frozen=True)
class AssetRecord:
    metadata: bytes
    supply: int
    owner: bytes
    warp: bool


@dataclass(frozen=True)
class OrderRecord:
    in_asset: bytes
    in_tick: int
    out_asset: bytes
    out_tick: int
    remaining: int
    owner: bytes


def _fixed(value: bytes, length: int, what: str) -> bytes:
    raw = bytes(value)
    if len(raw) != length:
        raise ValueError(f"{what} must be {length} bytes, got {len(raw)}")
    return raw


def _uint64(value: int, what: str) -> int:
    if not 0 <= value <= _UINT64_MAX:
        raise ValueError(f"{what} out of uint64 range: {value}")
    return value


def _read(db: _Database, key: bytes) -> Optional[bytes]:
    try:
        return db.get_value(key)
    except NotFoundError:
        return None


def _u64_or_zero(value: Optional[bytes]) -> int:
    return 0 if value is None else _U64.unpack_from(value)[0]


# Transactions


def prefix_tx_key(tx_id: bytes) -> bytes:
    return bytes([_TX_PREFIX]) + _fixed(tx_id, ID_LEN, "tx id")


def store_transaction(db: _Database, tx_id: bytes, timestamp: int, success: bool, units: int) -> None:
    flag = _SUCCESS_BYTE if success else _FAILURE_BYTE
    value = _I64.pack(timestamp) + bytes([flag]) + _U64.pack(_uint64(units, "units"))
    db.insert(prefix_tx_key(tx_id), value)


def get_transaction(db: _Database, tx_id: bytes) -> Optional[TransactionRecord]:
    """Return the stored record for a transaction, or None if unknown."""
    value = _read(db, prefix_tx_key(tx_id))
    if value is None:
        return None
    (timestamp,) = _I64.unpack_from(value)
    success = value[8] != _FAILURE_BYTE
    (units,) = _U64.unpack_from(value, 9)
    return TransactionRecord(timestamp, success, units)


# Balances


def prefix_balance_key(public_key: bytes, asset: bytes) -> bytes:
    return (
        bytes([_BALANCE_PREFIX])
        + _fixed(public_key, PUBLIC_KEY_LEN, "public key")
        + _fixed(asset, ID_LEN, "asset")
    )


def get_balance(db: _Database, public_key: bytes, asset: bytes) -> int:
    """Return the balance, 0 when the account holds none of the asset."""
    return _u64_or_zero(_read(db, prefix_balance_key(public_key, asset)))


def get_balance_from_state(read_state: ReadState, public_key: bytes, asset: bytes) -> int:
    return _u64_or_zero(read_state([prefix_balance_key(public_key, asset)])[0])


def set_balance(db: _Database, public_key: bytes, asset: bytes, balance: int) -> None:
    db.insert(prefix_balance_key(public_key, asset), _U64.pack(_uint64(balance, "balance")))


def delete_balance(db: _Database, public_key: bytes, asset: bytes) -> None:
    db.remove(prefix_balance_key(public_key, asset))


def add_balance(db: _Database, public_key: bytes, asset: bytes, amount: int) -> None:
    key = prefix_balance_key(public_key, asset)
    balance = _u64_or_zero(_read(db, key))
    new_balance = balance + amount
    if amount < 0 or new_balance > _UINT64_MAX:
        raise InvalidBalanceError(
            f"invalid balance: could not add balance (asset={id_to_string(asset)}, "
            f"bal={balance}, addr={address(public_key)}, amount={amount})"
        )
    db.insert(key, _U64.pack(new_balance))


def sub_balance(db: _Database, public_key: bytes, asset: bytes, amount: int) -> None:
    key = prefix_balance_key(public_key, asset)
    balance = _u64_or_zero(_read(db, key))
    if amount < 0 or amount > balance:
        raise InvalidBalanceError(
            f"invalid balance: could not subtract balance (asset={id_to_string(asset)}, "
            f"bal={balance}, addr={address(public_key)}, amount={amount})"
        )
    new_balance = balance - amount
    if new_balance == 0:
        db.remove(key)
    else:
        db.insert(key, _U64.pack(new_balance))


# Assets


def prefix_asset_key(asset: bytes) -> bytes:
    return bytes([_ASSET_PREFIX]) + _fixed(asset, ID_LEN, "asset")


def _decode_asset(value: Optional[bytes]) -> Optional[AssetRecord]:
    if value is None:
        return None
    (meta_len,) = _U16.unpack_from(value)
    offset = 2
    metadata = value[offset:offset + meta_len]
    offset += meta_len
    (supply,) = _U64.unpack_from(value, offset)
    offset += 8
    owner = value[offset:offset + PUBLIC_KEY_LEN]
    offset += PUBLIC_KEY_LEN
    return AssetRecord(bytes(metadata), supply, bytes(owner), value[offset] == 0x1)


def get_asset_from_state(read_state: ReadState, asset: bytes) -> Optional[AssetRecord]:
    return _decode_asset(read_state([prefix_asset_key(asset)])[0])


def get_asset(db: _Database, asset: bytes) -> Optional[AssetRecord]:
    """Return the asset record, or None if the asset does not exist."""
    return _decode_asset(_read(db, prefix_asset_key(asset)))


def set_asset(
    db: _Database,
    asset: bytes,
    metadata: bytes,
    supply: int,
    owner: bytes,
    warp: bool,
) -> None:
    metadata = bytes(metadata)
    if len(metadata) > _UINT16_MAX:
        raise ValueError("metadata too long")
    value = (
        _U16.pack(len(metadata))
        + metadata
        + _U64.pack(_uint64(supply, "supply"))
        + _fixed(owner, PUBLIC_KEY_LEN, "owner")
        + bytes([0x1 if warp else 0x0])
    )
    db.insert(prefix_asset_key(asset), value)


def delete_asset(db: _Database, asset: bytes) -> None:
    db.remove(prefix_asset_key(asset))


# Orders


def prefix_order_key(tx_id: bytes) -> bytes:
    return bytes([_ORDER_PREFIX]) + _fixed(tx_id, ID_LEN, "order id")


def set_order(
    db: _Database,
    tx_id: bytes,
    in_asset: bytes,
    in_tick: int,
    out_asset: bytes,
    out_tick: int,
    supply: int,
    owner: bytes,
) -> None:
    value = (
        _fixed(in_asset, ID_LEN, "in asset")
        + _U64.pack(_uint64(in_tick, "in tick"))
        + _fixed(out_asset, ID_LEN, "out asset")
        + _U64.pack(_uint64(out_tick, "out tick"))
        + _U64.pack(_uint64(supply, "supply"))
        + _fixed(owner, PUBLIC_KEY_LEN, "owner")
    )
    db.insert(prefix_order_key(tx_id), value)


def get_order(db: _Database, order: bytes) -> Optional[OrderRecord]:
    """Return the order, or None if it does not exist."""
    value = _read(db, prefix_order_key(order))
    if value is None:
        return None
    in_asset = value[:ID_LEN]
    (in_tick,) = _U64.unpack_from(value, ID_LEN)
    out_start = ID_LEN + 8
    out_asset = value[out_start:out_start + ID_LEN]
    (out_tick, remaining) = struct.unpack_from(">QQ", value, out_start + ID_LEN)
    owner = value[out_start + ID_LEN + 16:out_start + ID_LEN + 16 + PUBLIC_KEY_LEN]
    return OrderRecord(bytes(in_asset), in_tick, bytes(out_asset), out_tick, remaining, bytes(owner))


def delete_order(db: _Database, order: bytes) -> None:
    db.remove(prefix_order_key(order))


# Loans


def prefix_loan_key(asset: bytes, destination: bytes) -> bytes:
    return (
        bytes([_LOAN_PREFIX])
        + _fixed(asset, ID_LEN, "asset")
        + _fixed(destination, ID_LEN, "destination")
    )


def get_loan_from_state(read_state: ReadState, asset: bytes, destination: bytes) -> int:
    return _u64_or_zero(read_state([prefix_loan_key(asset, destination)])[0])


def get_loan(db: _Database, asset: bytes, destination: bytes) -> int:
    return _u64_or_zero(_read(db, prefix_loan_key(asset, destination)))


def set_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    db.insert(prefix_loan_key(asset, destination), _U64.pack(_uint64(amount, "amount")))


def add_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    loan = get_loan(db, asset, destination)
    new_loan = loan + amount
    if amount < 0 or new_loan > _UINT64_MAX:
        raise InvalidBalanceError(
            f"invalid balance: could not add loan (asset={id_to_string(asset)}, "
            f"destination={id_to_string(destination)}, amount={amount})"
        )
    set_loan(db, asset, destination, new_loan)


def sub_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    loan = get_loan(db, asset, destination)
    if amount < 0 or amount > loan:
        raise InvalidBalanceError(
            f"invalid balance: could not subtract loan (asset={id_to_string(asset)}, "
            f"destination={id_to_string(destination)}, amount={amount})"
        )
    new_loan = loan - amount
    if new_loan == 0:
        db.remove(prefix_loan_key(asset, destination))
    else:
        set_loan(db, asset, destination, new_loan)


# Miscellaneous keys


def height_key() -> bytes:
    return bytes([_HEIGHT_PREFIX])


def incoming_warp_key_prefix(source_chain_id: bytes, msg_id: bytes) -> bytes:
    return (
        bytes([_INCOMING_WARP_PREFIX])
        + _fixed(source_chain_id, ID_LEN, "source chain id")
        + _fixed(msg_id, ID_LEN, "message id")
    )


def outgoing_warp_key_prefix(tx_id: bytes) -> bytes:
    return bytes([_OUTGOING_WARP_PREFIX]) + _fixed(tx_id, ID_LEN, "tx id")