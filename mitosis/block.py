"""Blocks: a header with the shard's transactions and inbound chunks."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from .encoding import rlp_decode, rlp_encode
from .header import Header
from .outbound_chunk import OutboundChunk, _decode_list, _json_list
from .transaction import Transaction, _expect_list


@dataclass
class Block:
    """A header plus the shard's own transactions and its inbound chunks."""

    header: Header = field(default_factory=Header)
    transactions: list = field(default_factory=list)
    inbound_chunks: list = field(default_factory=list)

    def __post_init__(self) -> None:
        self.transactions = list(self.transactions)
        self.inbound_chunks = list(self.inbound_chunks)

    @property
    def height(self) -> int:
        return self.header.height

    @property
    def hash(self) -> bytes:
        return self.header.hash

    @property
    def shard_id(self) -> int:
        return self.header.shard_id

    def to_json(self) -> bytes:
        obj = self.header._to_json_obj()
        obj["Transactions"] = [tx._to_json_obj() for tx in self.transactions]
        obj["InboundChunk"] = [chunk._to_json_obj() for chunk in self.inbound_chunks]
        return json.dumps(obj, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, data) -> "Block":
        if not data:
            raise ValueError("empty input")
        obj = json.loads(data)
        if not isinstance(obj, dict):
            raise ValueError("block JSON must be an object")
        return cls(
            header=Header._from_json_obj(obj),
            transactions=[Transaction._from_json_obj(tx) for tx in _json_list(obj, "Transactions")],
            inbound_chunks=[
                OutboundChunk._from_json_obj(chunk) for chunk in _json_list(obj, "InboundChunk")
            ],
        )

    def _to_rlp(self) -> list:
        return [
            rlp_decode(self.header.to_bytes()),
            [rlp_decode(tx.to_bytes()) for tx in self.transactions],
            [chunk._to_rlp() for chunk in self.inbound_chunks],
        ]

    def to_bytes(self) -> bytes:
        return rlp_encode(self._to_rlp())

    @classmethod
    def from_bytes(cls, data) -> "Block":
        return cls._from_rlp(rlp_decode(data))

    @classmethod
    def _from_rlp(cls, item) -> "Block":
        fields = _expect_list(item, 3, "block")
        return cls(
            header=Header._from_rlp(fields[0]),
            transactions=[
                Transaction._from_rlp(tx) for tx in _decode_list(fields[1], "Transactions")
            ],
            inbound_chunks=[
                OutboundChunk._from_rlp(chunk)
                for chunk in _decode_list(fields[2], "InboundChunks")
            ],
        )

    def copy(self) -> "Block":
        """Deep copy; the header copy leaves out the signer bitmap."""
        return Block(
            header=self.header.copy(),
            transactions=[tx.copy() for tx in self.transactions],
            inbound_chunks=[chunk.copy() for chunk in self.inbound_chunks],
        )