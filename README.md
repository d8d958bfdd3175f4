# tokenvm

`tokenvm` holds the state layout and the query service of a small token
ledger. It uses only the standard library.

It has four modules:

* `tokenvm.storage` – binary keys and values for transaction results, account
  balances, asset records, open orders and cross-chain loans, kept in any
  store that offers `get_value`, `insert` and `remove`. `MemoryDatabase` is a
  ready-made in-memory store.
* `tokenvm.encoding` – bech32 addresses for 32-byte public keys and cb58
  strings for 32-byte identifiers.
* `tokenvm.rpc_server` – `JSONRPCServer`, which answers `genesis`, `tx`,
  `asset`, `balance`, `orders` and `loan` queries from a `Controller`, either
  as direct method calls, as decoded JSON-RPC requests, or as a WSGI app.
* `tokenvm.rpc_client` – `JSONRPCClient`, which makes those calls over HTTP and
  can poll until a balance is reached or a transaction is known.

Install with `pip install .`; the tests need `pip install .[test]` and run
with `pytest`.

## State storage

Each kind of state record lives under its own one-byte prefix:

| Prefix | Record        | Key                         | Value                                               |
|--------|---------------|-----------------------------|-----------------------------------------------------|
| `0x0`  | balance       | owner key, asset ID         | amount (uint64)                                     |
| `0x1`  | asset         | asset ID                    | metadata length (uint16), metadata, supply (uint64), owner key, warp flag byte |
| `0x2`  | order         | transaction ID              | in asset, in tick, out asset, out tick, remaining, owner key |
| `0x3`  | loan          | asset ID, destination chain | amount (uint64)                                     |
| `0x4`  | height        | `height_key()` alone        |                                                     |
| `0x5`  | incoming warp | source chain ID, message ID |                                                     |
| `0x6`  | outgoing warp | transaction ID              |                                                     |

Transaction results form a separate key space, keyed by `0x0` followed by the
transaction ID (`prefix_tx_key`), with a value of timestamp (signed 64-bit),
a success byte and units (unsigned 64-bit). All integers are big-endian. Key
helpers raise `ValueError` if an ID or public key is not exactly 32 bytes.

```python
from tokenvm.storage import (
    MemoryDatabase, InvalidBalanceError,
    set_balance, add_balance, sub_balance, get_balance,
)

db = MemoryDatabase()
owner = bytes(range(32))
asset = bytes(32)

set_balance(db, owner, asset, 100)
add_balance(db, owner, asset, 50)
sub_balance(db, owner, asset, 150)   # reaching zero removes the record
assert get_balance(db, owner, asset) == 0
assert len(db) == 0

try:
    sub_balance(db, owner, asset, 1)
except InvalidBalanceError as exc:
    print(exc)
```

* `add_balance`, `sub_balance`, `add_loan` and `sub_loan` raise
  `InvalidBalanceError` when the result would go below zero or above the
  largest 64-bit unsigned value. A balance or loan that drops to zero is
  deleted rather than stored as zero. Reading an absent balance or loan
  gives `0`.
* `set_balance`, `set_loan`, `set_asset`, `set_order` and `store_transaction`
  write a record directly; values out of the 64-bit unsigned range raise
  `ValueError`. `delete_balance`, `delete_asset` and `delete_order` remove one.
* `get_transaction`, `get_asset` and `get_order` return a
  `TransactionRecord`, `AssetRecord` or `OrderRecord`, or `None` when the
  record does not exist.
* `get_balance_from_state`, `get_asset_from_state` and `get_loan_from_state`
  read through a batch reader, a callable that takes a list of keys and
  returns a value or `None` for each – `MemoryDatabase.read_state` is one.

A store's `get_value` must raise `NotFoundError` for a missing key.

## Addresses and identifiers

```python
from tokenvm.encoding import address, parse_address, id_to_string, id_from_string

text = address(bytes(32))            # human-readable part defaults to "token"
assert parse_address(text) == bytes(32)

ident = id_to_string(bytes(32))
assert id_from_string(ident) == bytes(32)
```

`address` and `parse_address` take an optional human-readable part and raise
`AddressError` for a malformed address, a wrong human-readable part or a key
that is not 32 bytes. `id_to_string` and `id_from_string` raise `IDError` for
bad input or a failed checksum.

## JSON-RPC server

`JSONRPCServer(controller, hrp="token", namespace="tokenvm")` wraps a
`Controller`: any object with `genesis()`, `get_transaction(tx_id)`,
`get_asset_from_state(asset)`, `get_balance_from_state(public_key, asset)`,
`orders(pair, limit)` and `get_loan_from_state(asset, destination)`.

```python
from tokenvm.encoding import address, id_to_string
from tokenvm.rpc_server import JSONRPCServer
from tokenvm.storage import (
    MemoryDatabase, set_balance, get_transaction,
    get_asset_from_state, get_balance_from_state, get_loan_from_state,
)

class Node:
    def __init__(self, db):
        self.db = db
    def genesis(self):
        return {"hrp": "token"}
    def get_transaction(self, tx_id):
        return get_transaction(self.db, tx_id)
    def get_asset_from_state(self, asset):
        return get_asset_from_state(self.db.read_state, asset)
    def get_balance_from_state(self, public_key, asset):
        return get_balance_from_state(self.db.read_state, public_key, asset)
    def orders(self, pair, limit):
        return []
    def get_loan_from_state(self, asset, destination):
        return get_loan_from_state(self.db.read_state, asset, destination)

db = MemoryDatabase()
owner = bytes(range(32))
set_balance(db, owner, bytes(32), 42)

server = JSONRPCServer(Node(db))
response = server.handle({
    "jsonrpc": "2.0",
    "method": "tokenvm.balance",
    "params": {"address": address(owner), "asset": id_to_string(bytes(32))},
    "id": 1,
})
assert response["result"] == {"amount": 42}
```

* Methods are named `<namespace>.<call>`. Parameters are an object, or a list
  whose first element is that object. IDs (`txId`, `asset`, `destination`)
  travel as cb58 strings; an absent ID means the all-zero ID.
* Replies: `genesis` → `{"genesis": ...}`, `tx` → `{"timestamp", "success",
  "units"}`, `asset` → `{"metadata" (base64), "supply", "owner", "warp"}`,
  `balance` and `loan` → `{"amount"}`, `orders` → `{"orders": [...]}`, at most
  128 per pair. Dataclass genesis values and orders are turned into objects.
* Called directly, `tx` raises `TxNotFoundError` and `asset` raises
  `AssetNotFoundError`. Through `handle`, these and every other failure become
  a JSON-RPC error with code `-32000` and the exception's message; unknown
  methods get `-32601`, bad parameters `-32602`, malformed requests `-32600`.
* `wsgi_app` serves `handle` over HTTP POST (other methods get 405, an
  unparsable body gets `-32700`). Mount it so the client's path
  `/tokenapi` reaches it, for example with `wsgiref.simple_server`.

## JSON-RPC client

`JSONRPCClient(uri, chain_id, namespace="tokenvm", timeout=10.0)` drops a
trailing `/` from `uri`, appends `/tokenapi` and posts requests with
`urllib`. `chain_id` is kept as the `chain_id` attribute.

* `genesis()` fetches the genesis object once and caches it.
* `tx(tx_id)` returns a `TxReply` or `None` if the node reports the
  transaction as not found; `asset(asset)` returns an `AssetReply` or `None`
  likewise.
* `balance(address, asset)`, `loan(asset, destination)` return integers;
  `orders(pair)` returns the list of orders as decoded JSON.
* Any other error reported by the service, or a malformed reply, raises
  `RPCError` (with `code` when the service gave one).
* `wait_for_balance(address, asset, minimum, interval=1.0, timeout=None)`
  polls until the balance is at least `minimum`;
  `wait_for_transaction(tx_id, interval=1.0, timeout=None)` polls until the
  transaction is known and returns whether it succeeded. Both raise
  `TimeoutError` when a timeout is given and passes.

## What this package does not do

It has no node: no block production, no transaction building or signing, no
order matching, no genesis format and no persistent database backend beyond
the in-memory store. The `Controller` that the server queries must be
supplied by the caller. There is no command-line program, and no HTTP server
of its own – `wsgi_app` needs a WSGI server to run under.