import pytest

from tokenvm import storage
from tokenvm.storage import (
    AssetRecord,
    InvalidBalanceError,
    MemoryDatabase,
    NotFoundError,
    OrderRecord,
    TransactionRecord,
)

PK = bytes([7]) * 32
PK2 = bytes([9]) * 32
ASSET = bytes([1]) * 32
ASSET2 = bytes([2]) * 32
TX = bytes([3]) * 32
EMPTY = bytes(32)
MAX = 2**64 - 1


@pytest.fixture
def db():
    return MemoryDatabase()


def test_memory_database_not_found(db):
    with pytest.raises(NotFoundError):
        db.get_value(b"missing")


def test_memory_database_insert_remove(db):
    db.insert(b"k", b"v")
    assert db.get_value(b"k") == b"v"
    db.remove(b"k")
    assert db.read_state([b"k"]) == [None]


def test_transaction_round_trip(db):
    storage.store_transaction(db, TX, 1234, True, 472)
    assert storage.get_transaction(db, TX) == TransactionRecord(1234, True, 472)


def test_transaction_failure_and_negative_time(db):
    storage.store_transaction(db, TX, -5, False, 0)
    assert storage.get_transaction(db, TX) == TransactionRecord(-5, False, 0)


def test_transaction_missing(db):
    assert storage.get_transaction(db, TX) is None


def test_transaction_value_layout(db):
    storage.store_transaction(db, TX, 1, True, 2)
    raw = db.get_value(storage.prefix_tx_key(TX))
    assert raw == (1).to_bytes(8, "big") + b"\x01" + (2).to_bytes(8, "big")


def test_key_prefixes():
    assert storage.prefix_tx_key(TX) == b"\x00" + TX
    assert storage.prefix_balance_key(PK, ASSET) == b"\x00" + PK + ASSET
    assert storage.prefix_asset_key(ASSET) == b"\x01" + ASSET
    assert storage.prefix_order_key(TX) == b"\x02" + TX
    assert storage.prefix_loan_key(ASSET, ASSET2) == b"\x03" + ASSET + ASSET2
    assert storage.height_key() == b"\x04"
    assert storage.incoming_warp_key_prefix(ASSET, ASSET2) == b"\x05" + ASSET + ASSET2
    assert storage.outgoing_warp_key_prefix(TX) == b"\x06" + TX


def test_key_rejects_wrong_length():
    with pytest.raises(ValueError):
        storage.prefix_asset_key(b"short")


def test_balance_defaults_to_zero(db):
    assert storage.get_balance(db, PK, ASSET) == 0


def test_balance_set_get_delete(db):
    storage.set_balance(db, PK, ASSET, 100)
    assert storage.get_balance(db, PK, ASSET) == 100
    assert storage.get_balance(db, PK2, ASSET) == 0
    storage.delete_balance(db, PK, ASSET)
    assert storage.get_balance(db, PK, ASSET) == 0


def test_balance_add_and_sub(db):
    storage.add_balance(db, PK, ASSET, 50)
    storage.add_balance(db, PK, ASSET, 25)
    storage.sub_balance(db, PK, ASSET, 30)
    assert storage.get_balance(db, PK, ASSET) == 45


def test_sub_balance_to_zero_removes_record(db):
    storage.set_balance(db, PK, ASSET, 10)
    storage.sub_balance(db, PK, ASSET, 10)
    assert storage.prefix_balance_key(PK, ASSET) not in db
    assert len(db) == 0


def test_sub_balance_underflow(db):
    storage.set_balance(db, PK, ASSET, 5)
    with pytest.raises(InvalidBalanceError, match="invalid balance"):
        storage.sub_balance(db, PK, ASSET, 6)
    assert storage.get_balance(db, PK, ASSET) == 5


def test_add_balance_overflow(db):
    storage.set_balance(db, PK, ASSET, MAX)
    with pytest.raises(InvalidBalanceError, match="could not add balance"):
        storage.add_balance(db, PK, ASSET, 1)
    assert storage.get_balance(db, PK, ASSET) == MAX


def test_balance_from_state(db):
    storage.set_balance(db, PK, ASSET, 77)
    assert storage.get_balance_from_state(db.read_state, PK, ASSET) == 77
    assert storage.get_balance_from_state(db.read_state, PK, ASSET2) == 0


def test_asset_round_trip(db):
    storage.set_asset(db, ASSET, b"abc", 15, PK, True)
    expected = AssetRecord(b"abc", 15, PK, True)
    assert storage.get_asset(db, ASSET) == expected
    assert storage.get_asset_from_state(db.read_state, ASSET) == expected


def test_asset_value_layout(db):
    storage.set_asset(db, ASSET, b"abc", 15, PK, False)
    raw = db.get_value(storage.prefix_asset_key(ASSET))
    assert raw == b"\x00\x03abc" + (15).to_bytes(8, "big") + PK + b"\x00"


def test_asset_empty_metadata_and_delete(db):
    storage.set_asset(db, ASSET, b"", 0, EMPTY, False)
    assert storage.get_asset(db, ASSET) == AssetRecord(b"", 0, EMPTY, False)
    storage.delete_asset(db, ASSET)
    assert storage.get_asset(db, ASSET) is None


def test_asset_metadata_too_long(db):
    with pytest.raises(ValueError):
        storage.set_asset(db, ASSET, bytes(70000), 0, PK, False)


def test_order_round_trip_and_delete(db):
    storage.set_order(db, TX, ASSET, 1, ASSET2, 2, 4, PK)
    assert storage.get_order(db, TX) == OrderRecord(ASSET, 1, ASSET2, 2, 4, PK)
    storage.delete_order(db, TX)
    assert storage.get_order(db, TX) is None


def test_loan_add_sub(db):
    assert storage.get_loan(db, ASSET, ASSET2) == 0
    storage.add_loan(db, ASSET, ASSET2, 100)
    storage.add_loan(db, ASSET, ASSET2, 10)
    assert storage.get_loan_from_state(db.read_state, ASSET, ASSET2) == 110
    storage.sub_loan(db, ASSET, ASSET2, 110)
    assert len(db) == 0


def test_loan_errors(db):
    storage.set_loan(db, ASSET, ASSET2, MAX)
    with pytest.raises(InvalidBalanceError, match="could not add loan"):
        storage.add_loan(db, ASSET, ASSET2, 1)
    with pytest.raises(InvalidBalanceError, match="could not subtract loan"):
        storage.sub_loan(db, ASSET2, ASSET, 1)