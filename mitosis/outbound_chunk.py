"""Cross-shard transaction chunks sent from a source shard to a destination."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field

from .derive_sha import chunk_root
from .encoding import DecodeError, rlp_decode, rlp_encode
from .stacktrie import StackTrie
from .transaction import (
    HASH_LENGTH,
    Transaction,
    _b64,
    _check_fixed,
    _decode_bytes,
    _decode_fixed,
    _expect_list,
    _hex,
    _json_hex,
)

_ZERO_HASH = bytes(HASH_LENGTH)


def _decode_list(item, name: str) -> list:
    if not isinstance(item, list):
        raise DecodeError(f"{name}: expected a list")
    return item


def _json_list(obj: dict, key: str) -> list:
    value = obj.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key}: expected a list")
    return value


def _json_b64(value, name: str) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise ValueError(f"{name}: expected a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"{name}: invalid base64") from exc


@dataclass
class OutboundChunk:
    """Transactions bound for one shard, with the proof tying them to a block.

    ``block_hash`` names the source block; the chunk root plus ``chunk_proof``
    lead to that block's transaction root.
    """

    block_hash: bytes = _ZERO_HASH
    txs: list = field(default_factory=list)
    chunk_proof: list = field(default_factory=list)

    def __post_init__(self) -> None:
        self.block_hash = _check_fixed(self.block_hash, HASH_LENGTH, "block_hash")
        self.txs = list(self.txs)
        self.chunk_proof = [bytes(part) for part in self.chunk_proof]

    def _to_rlp(self) -> list:
        return [
            self.block_hash,
            [rlp_decode(tx.to_bytes()) for tx in self.txs],
            list(self.chunk_proof),
        ]

    def to_bytes(self) -> bytes:
        return rlp_encode(self._to_rlp())

    @classmethod
    def from_bytes(cls, data) -> "OutboundChunk":
        return cls._from_rlp(rlp_decode(data))

    @classmethod
    def _from_rlp(cls, item) -> "OutboundChunk":
        fields = _expect_list(item, 3, "outbound chunk")
        return cls(
            block_hash=_decode_fixed(fields[0], HASH_LENGTH, "BlockHash"),
            txs=[Transaction._from_rlp(tx) for tx in _decode_list(fields[1], "Txs")],
            chunk_proof=[
                _decode_bytes(part, "ChunkProof") for part in _decode_list(fields[2], "ChunkProof")
            ],
        )

    def _to_json_obj(self) -> dict:
        return {
            "BlockHash": _hex(self.block_hash),
            "Txs": [tx._to_json_obj() for tx in self.txs],
            "ChunkProof": [_b64(part) for part in self.chunk_proof],
        }

    @classmethod
    def _from_json_obj(cls, obj) -> "OutboundChunk":
        if not isinstance(obj, dict):
            raise ValueError("outbound chunk JSON must be an object")
        return cls(
            block_hash=_json_hex(obj, "BlockHash", HASH_LENGTH),
            txs=[Transaction._from_json_obj(tx) for tx in _json_list(obj, "Txs")],
            chunk_proof=[_json_b64(part, "ChunkProof") for part in _json_list(obj, "ChunkProof")],
        )

    def copy(self) -> "OutboundChunk":
        return OutboundChunk(
            block_hash=self.block_hash,
            txs=[tx.copy() for tx in self.txs],
            chunk_proof=[bytes(part) for part in self.chunk_proof],
        )

    def root(self) -> bytes:
        """Merkle root over the hashes of the chunk's transactions."""
        return chunk_root(self.txs, StackTrie())