"""Consensus messages exchanged between validators of a shard."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from .bitmap import Bitmap
from .block import Block
from .encoding import DecodeError, rlp_decode, rlp_encode
from .transaction import (
    HASH_LENGTH,
    _check_fixed,
    _check_uint,
    _decode_bytes,
    _decode_fixed,
    _decode_uint,
    _expect_list,
)


class MessageType(IntEnum):
    """Phase of the three-round BFT protocol a message belongs to."""

    PREPARE = 0
    PREPAREVOTE = 1
    PRECOMMIT = 2
    PRECOMMITVOTE = 3
    COMMIT = 4
    COMMITVOTE = 5


@dataclass
class BFTMessage:
    """A proposal or vote about one block, signed by a set of validators."""

    message_type: MessageType = MessageType.PREPARE
    block_num: int = 0
    block_hash: bytes = bytes(HASH_LENGTH)
    block: Block = field(default_factory=Block)
    sender_sig: bytes = b""
    sender_pubkey_bitmap: Bitmap = field(default_factory=Bitmap)

    def __post_init__(self) -> None:
        self.message_type = MessageType(self.message_type)
        _check_uint(self.block_num, 32, "block_num")
        self.block_hash = _check_fixed(self.block_hash, HASH_LENGTH, "block_hash")
        self.sender_sig = bytes(self.sender_sig)
        if not isinstance(self.sender_pubkey_bitmap, Bitmap):
            self.sender_pubkey_bitmap = Bitmap.from_bytes(self.sender_pubkey_bitmap)

    @classmethod
    def from_block(cls, message_type, block, signature, bitmap) -> "BFTMessage":
        """Build a message about ``block``, taking its height and hash."""
        return cls(
            message_type=message_type,
            block_num=block.header.height,
            block_hash=block.header.hash,
            block=block,
            sender_sig=signature,
            sender_pubkey_bitmap=bitmap,
        )

    def to_bytes(self) -> bytes:
        return rlp_encode(
            [
                int(self.message_type),
                self.block_num,
                self.block_hash,
                self.block._to_rlp(),
                self.sender_sig,
                bytes(self.sender_pubkey_bitmap),
            ]
        )

    @classmethod
    def from_bytes(cls, data) -> "BFTMessage":
        fields = _expect_list(rlp_decode(data), 6, "bft message")
        raw_type = _decode_uint(fields[0], 8, "MessageType")
        try:
            message_type = MessageType(raw_type)
        except ValueError as exc:
            raise DecodeError(f"MessageType: unknown value {raw_type}") from exc
        return cls(
            message_type=message_type,
            block_num=_decode_uint(fields[1], 32, "BlockNum"),
            block_hash=_decode_fixed(fields[2], HASH_LENGTH, "BlockHash"),
            block=Block._from_rlp(fields[3]),
            sender_sig=_decode_bytes(fields[4], "SenderSig"),
            sender_pubkey_bitmap=Bitmap.from_bytes(
                _decode_bytes(fields[5], "SenderPubkeyBitmap")
            ),
        )

    def copy(self) -> "BFTMessage":
        return BFTMessage(
            message_type=self.message_type,
            block_num=self.block_num,
            block_hash=self.block_hash,
            block=self.block.copy(),
            sender_sig=self.sender_sig,
            sender_pubkey_bitmap=self.sender_pubkey_bitmap.copy(),
        )