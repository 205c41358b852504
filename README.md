# mitosis

A library of building blocks for a sharded blockchain with cross-shard
transfers. Hashing is Keccak-256 and every binary encoding is RLP.

- `mitosis.trie` – a Merkle Patricia trie (`Trie`) over binary key paths,
  with a node `Database` that keeps uncommitted nodes in memory above any
  dict-like key/value mapping.
- `mitosis.stacktrie` – `StackTrie`, which computes the same root hash as
  `Trie` for keys inserted in ascending order, hashing and flushing finished
  subtrees as it goes.
- `mitosis.sync` – `Sync`, a scheduler that hands out the hashes of trie
  nodes still missing locally, accepts their data as `SyncResult`s and
  rebuilds the trie; `mitosis.sync_bloom.SyncBloom` is an optional bloom
  filter that speeds up its "is this already stored?" checks.
- Chain data types – `Transaction` and `DataTemplate`
  (`mitosis.transaction`), `Header` (`mitosis.header`), `OutboundChunk`
  (`mitosis.outbound_chunk`), `Block` (`mitosis.block`), `BFTMessage` and
  `MessageType` (`mitosis.bft_message`) and the signer set `Bitmap`
  (`mitosis.bitmap`).
- `mitosis.encoding` – the RLP encoder/decoder (`rlp_encode`, `rlp_decode`,
  raising `DecodeError`), `keccak256` and the binary/compact path helpers.

## Installation

```
pip install .
```

## Tries

```python
from mitosis.trie import Database, Trie

db = Database({})
trie = Trie(None, db)
trie.update(b"doe", b"reindeer")
trie.update(b"dog", b"puppy")
trie.update(b"dogglesworth", b"cat")

assert trie.get(b"dog") == b"puppy"
root = trie.commit(None)          # 32-byte root hash; nodes go into db

again = Trie(root, db)            # nodes are loaded on demand
assert again.get(b"doe") == b"reindeer"
```

Updating a key with an empty value deletes it, as does `Trie.delete`.
`Trie.hash` returns the root hash without writing anything. When a node is
needed but not in the database, `MissingNodeError` is raised.

`Trie.commit` only moves nodes into the `Database`'s in-memory set;
`Database.commit(root, callback)` then writes every node reachable from
`root` into the mapping the database was created with, children first,
calling `callback(hash)` for each one written.

### Stack tries

```python
from mitosis.stacktrie import StackTrie

store = {}
st = StackTrie(store)
for i in range(1, 10):
    st.update(i.to_bytes(32, "big"), b"value")
root = st.commit()                # same root a Trie would give
```

Keys must arrive in ascending order; an empty value raises `ValueError`, and
`commit` on a stack trie created without a mapping raises
`CommitDisabledError` (use `hash` instead).

### Syncing a trie

```python
from mitosis.sync import Sync, SyncResult

local = {}
sched = Sync(root, local)
nodes, paths, codes = sched.missing(0)       # 0 means no limit
while nodes or codes:
    for digest in nodes + codes:
        sched.process(SyncResult(digest, fetch(digest)))   # fetch: your transport
    sched.commit(local)
    nodes, paths, codes = sched.missing(0)
```

Nodes are handed out shallowest first and, at one depth, in path order.
Delivering data for a hash that was never requested raises
`NotRequestedError`; delivering it twice raises `AlreadyProcessedError`.
Raw code blobs can be scheduled with `add_code_entry` and are stored under
the key `b"c" + hash`. `SyncBloom(memory_mb, database)` loads its filter from
the mapping in a background thread and answers "maybe present" until done;
call `close()` when finished with it.

## Transactions and blocks

```python
from mitosis.transaction import Transaction
from mitosis.header import Header
from mitosis.outbound_chunk import OutboundChunk
from mitosis.block import Block
from mitosis.bitmap import Bitmap
from mitosis.bft_message import BFTMessage, MessageType

tx = Transaction.create(1, 2, bytes(20), bytes([1]) * 20, 1000, b"")
assert Transaction.from_bytes(tx.to_bytes()) == tx
assert Transaction.from_json(tx.to_json()) == tx

chunk = OutboundChunk(bytes(32), [tx, tx], [b"\x00\x01"])
print(chunk.root().hex())         # trie root over the chunk's transaction hashes

header = Header.create(1, 0, bytes(32), bytes(32), bytes(32), Bitmap(16), 0)
block = Block(header, [tx], [chunk])
assert Block.from_json(block.to_json()) == block

msg = BFTMessage.from_block(MessageType.PREPARE, block, b"sig", Bitmap(16))
assert BFTMessage.from_bytes(msg.to_bytes()) == msg
```

`mitosis.derive_sha.chunk_root(txs, hasher)` and
`block_tx_root(chunks, hasher)` derive roots by inserting hashes into any
object with `reset`, `update(key, value)` and `hash` – a `StackTrie` works.
A `Bitmap(n)` holds `n` bits rounded up to whole bytes; `merge` adds another
bitmap's keys and returns the ones that were new.

## What this package does not do

It has no networking, peer discovery or gossip, no consensus engine that
drives the BFT rounds, no signature scheme, and no command-line program.
Storage is whatever dict-like mapping you hand to `Database`, `Sync` or
`StackTrie`; nothing is persisted to disk by the package itself.

## Running the tests

```
pip install .[test]
pytest
```