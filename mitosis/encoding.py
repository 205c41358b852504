"""RLP serialisation, Keccak hashing and binary-path encodings used by the trie."""

from __future__ import annotations

from Crypto.Hash import keccak

TERMINATOR = 2
_TERM_FLAG = 0x10


class DecodeError(ValueError):
    """Raised when encoded data is malformed."""


def keccak256(data: bytes) -> bytes:
    """Return the legacy Keccak-256 digest of ``data``."""
    digest = keccak.new(digest_bits=256)
    digest.update(bytes(data))
    return digest.digest()


def _length_prefix(length: int, offset: int) -> bytes:
    if length < 56:
        return bytes([offset + length])
    encoded = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([offset + 55 + len(encoded)]) + encoded


def rlp_encode(item) -> bytes:
    """Encode bytes, strings, non-negative integers and nested lists as RLP."""
    if isinstance(item, (bytes, bytearray, memoryview)):
        data = bytes(item)
        if len(data) == 1 and data[0] < 0x80:
            return data
        return _length_prefix(len(data), 0x80) + data
    if isinstance(item, str):
        return rlp_encode(item.encode("utf-8"))
    if isinstance(item, bool):
        raise TypeError("booleans cannot be RLP encoded")
    if isinstance(item, int):
        if item < 0:
            raise ValueError("negative integers cannot be RLP encoded")
        return rlp_encode(item.to_bytes((item.bit_length() + 7) // 8, "big"))
    if isinstance(item, (list, tuple)):
        payload = b"".join(rlp_encode(element) for element in item)
        return _length_prefix(len(payload), 0xC0) + payload
    raise TypeError(f"cannot RLP encode {type(item).__name__}")


def _span(data: bytes, start: int, length: int) -> int:
    end = start + length
    if end > len(data):
        raise DecodeError("input too short")
    return end


def _read_length(data: bytes, pos: int, size: int) -> tuple[int, int]:
    end = _span(data, pos, size)
    raw = data[pos:end]
    if raw[0] == 0:
        raise DecodeError("non-canonical length with leading zero")
    length = int.from_bytes(raw, "big")
    if length < 56:
        raise DecodeError("non-canonical size for long item")
    return length, end


def _decode(data: bytes, pos: int):
    if pos >= len(data):
        raise DecodeError("input too short")
    lead = data[pos]
    if lead < 0x80:
        return data[pos:pos + 1], pos + 1
    if lead < 0xB8:
        start = pos + 1
        end = _span(data, start, lead - 0x80)
        if end - start == 1 and data[start] < 0x80:
            raise DecodeError("non-canonical single byte")
        return data[start:end], end
    if lead < 0xC0:
        length, start = _read_length(data, pos + 1, lead - 0xB7)
        end = _span(data, start, length)
        return data[start:end], end
    if lead < 0xF8:
        start = pos + 1
        end = _span(data, start, lead - 0xC0)
    else:
        length, start = _read_length(data, pos + 1, lead - 0xF7)
        end = _span(data, start, length)
    items = []
    cursor = start
    while cursor < end:
        item, cursor = _decode(data, cursor)
        if cursor > end:
            raise DecodeError("list element overflows list")
        items.append(item)
    return items, end


def rlp_decode(data: bytes):
    """Decode a single RLP item; lists become Python lists of bytes and lists."""
    data = bytes(data)
    item, end = _decode(data, 0)
    if end != len(data):
        raise DecodeError("trailing bytes after RLP item")
    return item


def keybytes_to_binary(key: bytes) -> bytes:
    """Expand a key into one byte per bit (MSB first) followed by the terminator."""
    bits = bytes((byte >> (7 - shift)) & 1 for byte in key for shift in range(8))
    return bits + bytes([TERMINATOR])


def has_term(path: bytes) -> bool:
    """Report whether a binary path ends with the terminator."""
    return len(path) > 0 and path[-1] == TERMINATOR


def _pack_bits(bits: bytes) -> bytes:
    return bytes(
        sum(bit << (7 - shift) for shift, bit in enumerate(bits[start:start + 8]))
        for start in range(0, len(bits), 8)
    )


def binary_to_keybytes(path: bytes) -> bytes:
    """Pack a binary path of whole bytes back into key bytes."""
    if has_term(path):
        path = path[:-1]
    if len(path) % 8:
        raise ValueError("cannot convert a path of odd bit length to key bytes")
    return _pack_bits(path)


def binary_to_compact(path: bytes) -> bytes:
    """Pack a binary path into its compact form: a flag byte and packed bits."""
    term = has_term(path)
    bits = path[:-1] if term else path
    if any(bit > 1 for bit in bits):
        raise ValueError("binary path holds a value other than 0 or 1")
    header = (_TERM_FLAG if term else 0) | (len(bits) % 8)
    return bytes([header]) + _pack_bits(bits)


def compact_to_binary(compact: bytes) -> bytes:
    """Expand a compact path back into binary form."""
    if not compact:
        return b""
    header = compact[0]
    if header & ~(_TERM_FLAG | 0x07):
        raise DecodeError("invalid compact path header")
    remainder = header & 0x07
    if remainder and len(compact) < 2:
        raise DecodeError("compact path too short")
    bits = keybytes_to_binary(compact[1:])[:-1]
    if remainder:
        bits = bits[:len(bits) - (8 - remainder)]
    if header & _TERM_FLAG:
        bits += bytes([TERMINATOR])
    return bits


def prefix_len(a: bytes, b: bytes) -> int:
    """Return the length of the common prefix of ``a`` and ``b``."""
    length = 0
    for x, y in zip(a, b):
        if x != y:
            break
        length += 1
    return length