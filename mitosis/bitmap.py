"""Fixed-size bit set stored as little-endian bits within bytes."""

from __future__ import annotations

from typing import Iterator


def _set_bits(byte: int, base: int) -> Iterator[int]:
    position = base
    while byte:
        if byte & 1:
            yield position
        byte >>= 1
        position += 1


class Bitmap:
    """Set of small non-negative integers, one bit per key.

    Key ``x`` lives in byte ``x // 8`` at bit ``x % 8`` (least significant
    bit first). The length of a bitmap is its size in bytes.
    """

    __slots__ = ("_data",)
    __hash__ = None  # mutable

    def __init__(self, length: int = 0):
        if length < 0:
            raise ValueError("bitmap length must not be negative")
        self._data = bytearray((length + 7) // 8)

    @classmethod
    def from_bytes(cls, data) -> "Bitmap":
        """Build a bitmap over a copy of raw ``data``."""
        bitmap = cls()
        bitmap._data = bytearray(data)
        return bitmap

    def _locate(self, x: int) -> tuple[int, int]:
        if x < 0 or (x >> 3) >= len(self._data):
            raise IndexError(f"key {x} out of range for a bitmap of {len(self._data)} bytes")
        return x >> 3, 1 << (x & 7)

    def has_key(self, x: int) -> bool:
        index, mask = self._locate(x)
        return bool(self._data[index] & mask)

    def set_key(self, x: int) -> None:
        index, mask = self._locate(x)
        self._data[index] |= mask

    def merge(self, other: "Bitmap") -> list[int]:
        """Add every key of ``other`` and return the keys that were new, ascending."""
        theirs = other._data if isinstance(other, Bitmap) else bytes(other)
        if len(theirs) != len(self._data):
            raise ValueError("cannot merge bitmaps of different lengths")
        new_keys: list[int] = []
        for index, (mine, incoming) in enumerate(zip(self._data, theirs)):
            diff = incoming & ~mine & 0xFF
            self._data[index] = mine | incoming
            new_keys.extend(_set_bits(diff, index * 8))
        return new_keys

    def elements(self) -> list[int]:
        """Return every key that is set, ascending."""
        return [key for index, byte in enumerate(self._data) for key in _set_bits(byte, index * 8)]

    def size(self) -> int:
        """Return the number of keys that are set."""
        return sum(bin(byte).count("1") for byte in self._data)

    def copy(self) -> "Bitmap":
        return Bitmap.from_bytes(self._data)

    def __str__(self) -> str:
        return "[" + ",".join(str(byte) for byte in self._data) + "]"

    def __repr__(self) -> str:
        return f"Bitmap({bytes(self._data)!r})"

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other) -> bool:
        if isinstance(other, Bitmap):
            return self._data == other._data
        if isinstance(other, (bytes, bytearray, memoryview)):
            return self._data == bytes(other)
        return NotImplemented