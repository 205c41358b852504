"""Block headers and the hash that identifies them."""

from __future__ import annotations

from dataclasses import dataclass, field

from .bitmap import Bitmap
from .encoding import keccak256, rlp_decode, rlp_encode
from .transaction import (
    HASH_LENGTH,
    _b64,
    _check_fixed,
    _check_uint,
    _decode_bytes,
    _decode_fixed,
    _decode_uint,
    _expect_list,
    _hex,
    _json_bytes,
    _json_hex,
    _json_uint,
)

_ZERO_HASH = bytes(HASH_LENGTH)


@dataclass
class Header:
    """Block header; ``hash`` covers every field before it."""

    shard_id: int = 0
    prev_block_hash: bytes = _ZERO_HASH
    height: int = 0
    outbound_dst_bitmap: Bitmap = field(default_factory=Bitmap)
    tx_root: bytes = _ZERO_HASH
    state_root: bytes = _ZERO_HASH
    timestamp: int = 0
    hash: bytes = _ZERO_HASH
    sign_bitmap: Bitmap = field(default_factory=Bitmap)
    signature: bytes = b""

    def __post_init__(self) -> None:
        _check_uint(self.shard_id, 32, "shard_id")
        _check_uint(self.height, 32, "height")
        _check_uint(self.timestamp, 64, "timestamp")
        self.prev_block_hash = _check_fixed(self.prev_block_hash, HASH_LENGTH, "prev_block_hash")
        self.tx_root = _check_fixed(self.tx_root, HASH_LENGTH, "tx_root")
        self.state_root = _check_fixed(self.state_root, HASH_LENGTH, "state_root")
        self.hash = _check_fixed(self.hash, HASH_LENGTH, "hash")
        if not isinstance(self.outbound_dst_bitmap, Bitmap):
            self.outbound_dst_bitmap = Bitmap.from_bytes(self.outbound_dst_bitmap)
        if not isinstance(self.sign_bitmap, Bitmap):
            self.sign_bitmap = Bitmap.from_bytes(self.sign_bitmap)
        self.signature = bytes(self.signature)

    @classmethod
    def create(
        cls, shard_id, height, prev_block_hash, state_root, tx_root, outbound_bitmap, timestamp
    ) -> "Header":
        """Build a header and fill in its hash."""
        header = cls(
            shard_id=shard_id,
            prev_block_hash=prev_block_hash,
            height=height,
            outbound_dst_bitmap=outbound_bitmap,
            tx_root=tx_root,
            state_root=state_root,
            timestamp=timestamp,
        )
        header.hash = header.compute_hash()
        return header

    def _hash_fields(self) -> list:
        return [
            self.shard_id,
            self.prev_block_hash,
            self.height,
            bytes(self.outbound_dst_bitmap),
            self.tx_root,
            self.state_root,
            self.timestamp,
        ]

    def hash_bytes(self) -> bytes:
        """RLP encoding of the fields covered by the header hash."""
        return rlp_encode(self._hash_fields())

    def compute_hash(self) -> bytes:
        return keccak256(self.hash_bytes())

    def to_bytes(self) -> bytes:
        return rlp_encode(
            [self._hash_fields(), self.hash, bytes(self.sign_bitmap), self.signature]
        )

    @classmethod
    def from_bytes(cls, data) -> "Header":
        return cls._from_rlp(rlp_decode(data))

    @classmethod
    def _from_rlp(cls, item) -> "Header":
        outer = _expect_list(item, 4, "header")
        inner = _expect_list(outer[0], 7, "header fields")
        return cls(
            shard_id=_decode_uint(inner[0], 32, "ShardId"),
            prev_block_hash=_decode_fixed(inner[1], HASH_LENGTH, "PrevBlockHash"),
            height=_decode_uint(inner[2], 32, "Height"),
            outbound_dst_bitmap=Bitmap.from_bytes(_decode_bytes(inner[3], "OutboundDstBitmap")),
            tx_root=_decode_fixed(inner[4], HASH_LENGTH, "TxRoot"),
            state_root=_decode_fixed(inner[5], HASH_LENGTH, "StateRoot"),
            timestamp=_decode_uint(inner[6], 64, "Timestamp"),
            hash=_decode_fixed(outer[1], HASH_LENGTH, "Hash"),
            sign_bitmap=Bitmap.from_bytes(_decode_bytes(outer[2], "SignBitMap")),
            signature=_decode_bytes(outer[3], "Signature"),
        )

    def _to_json_obj(self) -> dict:
        return {
            "ShardId": self.shard_id,
            "PrevBlockHash": _hex(self.prev_block_hash),
            "Height": self.height,
            "OutboundDstBitmap": _b64(bytes(self.outbound_dst_bitmap)),
            "TxRoot": _hex(self.tx_root),
            "StateRoot": _hex(self.state_root),
            "TimeStamp": self.timestamp,
            "Hash": _hex(self.hash),
            "SignBitMap": _b64(bytes(self.sign_bitmap)),
            "Signature": _b64(self.signature),
        }

    @classmethod
    def _from_json_obj(cls, obj) -> "Header":
        if not isinstance(obj, dict):
            raise ValueError("header JSON must be an object")
        return cls(
            shard_id=_json_uint(obj, "ShardId", 32),
            prev_block_hash=_json_hex(obj, "PrevBlockHash", HASH_LENGTH),
            height=_json_uint(obj, "Height", 32),
            outbound_dst_bitmap=Bitmap.from_bytes(_json_bytes(obj, "OutboundDstBitmap")),
            tx_root=_json_hex(obj, "TxRoot", HASH_LENGTH),
            state_root=_json_hex(obj, "StateRoot", HASH_LENGTH),
            timestamp=_json_uint(obj, "TimeStamp", 64),
            hash=_json_hex(obj, "Hash", HASH_LENGTH),
            sign_bitmap=Bitmap.from_bytes(_json_bytes(obj, "SignBitMap")),
            signature=_json_bytes(obj, "Signature"),
        )

    def copy(self) -> "Header":
        """Deep copy of the header; the signer bitmap is not carried over."""
        return Header(
            shard_id=self.shard_id,
            prev_block_hash=self.prev_block_hash,
            height=self.height,
            outbound_dst_bitmap=self.outbound_dst_bitmap.copy(),
            tx_root=self.tx_root,
            state_root=self.state_root,
            timestamp=self.timestamp,
            hash=self.hash,
            signature=self.signature,
        )