import pytest

from mitosis.bft_message import BFTMessage, MessageType
from mitosis.bitmap import Bitmap
from mitosis.block import Block
from mitosis.encoding import DecodeError, keccak256, rlp_decode, rlp_encode
from mitosis.header import Header
from mitosis.transaction import Transaction


def _block(height=7):
    header = Header.create(2, height, bytes(32), bytes(32), bytes(32), Bitmap(8), 1234)
    sender = keccak256(b"a")[-20:]
    receiver = keccak256(b"b")[-20:]
    tx = Transaction.create(2, 3, sender, receiver, 5, b"\x01")
    return Block(header, [tx], [])


def _message(kind=MessageType.PRECOMMIT):
    bitmap = Bitmap(16)
    bitmap.set_key(4)
    return BFTMessage.from_block(kind, _block(), b"sig-bytes", bitmap)


def test_message_types_follow_protocol_order():
    expected = [
        MessageType.PREPARE, MessageType.PREPAREVOTE, MessageType.PRECOMMIT,
        MessageType.PRECOMMITVOTE, MessageType.COMMIT, MessageType.COMMITVOTE,
    ]
    assert [MessageType(value) for value in range(6)] == expected
    assert MessageType.PREPARE < MessageType.COMMITVOTE


def test_from_block_takes_height_and_hash():
    block = _block(height=9)
    msg = BFTMessage.from_block(MessageType.PREPARE, block, b"s", Bitmap(8))
    assert msg.block_num == 9
    assert msg.block_hash == block.header.hash
    assert msg.block == block


@pytest.mark.parametrize("kind", list(MessageType))
def test_binary_round_trip(kind):
    msg = _message(kind)
    decoded = BFTMessage.from_bytes(msg.to_bytes())
    assert decoded == msg
    assert decoded.message_type is kind


def test_unknown_message_type_is_rejected():
    fields = rlp_decode(_message().to_bytes())
    fields[0] = rlp_encode(9)[0:1]
    with pytest.raises(DecodeError):
        BFTMessage.from_bytes(rlp_encode(fields))


def test_wrong_field_count_is_rejected():
    with pytest.raises(DecodeError):
        BFTMessage.from_bytes(rlp_encode([0, 1]))


def test_copy_is_equal_and_independent():
    msg = _message()
    duplicate = msg.copy()
    assert duplicate == msg
    duplicate.sender_pubkey_bitmap.set_key(0)
    duplicate.block.transactions[0].value = 42
    assert not msg.sender_pubkey_bitmap.has_key(0)
    assert msg.block.transactions[0].value == 5


def test_bitmap_given_as_bytes_is_wrapped():
    msg = BFTMessage(MessageType.COMMIT, 1, bytes(32), Block(), b"", b"\x03")
    assert msg.sender_pubkey_bitmap.elements() == [0, 1]


def test_invalid_message_type_value_raises():
    with pytest.raises(ValueError):
        BFTMessage(message_type=17)