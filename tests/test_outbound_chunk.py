import pytest

from mitosis.encoding import DecodeError, rlp_encode
from mitosis.outbound_chunk import OutboundChunk
from mitosis.transaction import Transaction
from mitosis.trie import EMPTY_ROOT

FROM_ADDR = bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07, 0x08, 0x09, 0x10,
                   0x11, 0x12, 0x13, 0x14, 0x15, 0x16, 0x17, 0x18, 0x19, 0x20])
TO_ADDR = bytes([0x00, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07, 0x08, 0x09, 0x10,
                 0x11, 0x12, 0x13, 0x14, 0x15, 0x16, 0x17, 0x18, 0x19, 0x20])


def _tx(value=1000):
    return Transaction.create(1, 1, FROM_ADDR, TO_ADDR, value, b"")


def _chunk():
    tx = _tx()
    proof = [bytes([0x00, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07, 0x08])]
    return OutboundChunk(bytes(32), [tx, tx], proof)


def test_binary_round_trip():
    chunk = _chunk()
    decoded = OutboundChunk.from_bytes(chunk.to_bytes())
    assert decoded == chunk


def test_round_trip_of_empty_chunk():
    chunk = OutboundChunk()
    assert OutboundChunk.from_bytes(chunk.to_bytes()) == chunk


def test_from_bytes_rejects_wrong_shape():
    with pytest.raises(DecodeError):
        OutboundChunk.from_bytes(rlp_encode([bytes(32), []]))


def test_from_bytes_rejects_short_block_hash():
    with pytest.raises(DecodeError):
        OutboundChunk.from_bytes(rlp_encode([bytes(31), [], []]))


def test_block_hash_must_be_32_bytes():
    with pytest.raises(ValueError):
        OutboundChunk(bytes(5))


def test_copy_is_equal_and_independent():
    chunk = _chunk()
    duplicate = chunk.copy()
    assert duplicate == chunk
    duplicate.chunk_proof.append(b"\x09")
    duplicate.txs[0].value = 1
    assert len(chunk.chunk_proof) == 1
    assert chunk.txs[0].value == 1000


def test_root_of_empty_chunk_is_empty_root():
    assert OutboundChunk().root() == EMPTY_ROOT


def test_root_ignores_block_hash_and_proof():
    txs = [_tx(1), _tx(2)]
    a = OutboundChunk(bytes(32), txs, [b"\x01"])
    b = OutboundChunk(b"\xff" * 32, txs, [])
    assert a.root() == b.root()
    assert len(a.root()) == 32


def test_root_depends_on_transaction_order():
    first, second = _tx(1), _tx(2)
    assert OutboundChunk(txs=[first, second]).root() != OutboundChunk(txs=[second, first]).root()


def test_root_is_stable():
    chunk = _chunk()
    root = chunk.root()
    assert len(root) == 32
    assert root != EMPTY_ROOT
    assert chunk.copy().root() == root
    assert OutboundChunk.from_bytes(chunk.to_bytes()).root() == root
    assert OutboundChunk(txs=[_tx()]).root() != root