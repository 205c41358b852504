"""Transactions and the data template carried inside them."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, replace

from .encoding import DecodeError, keccak256, rlp_decode, rlp_encode

ADDRESS_LENGTH = 20
HASH_LENGTH = 32


def _check_uint(value, bits: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if not 0 <= value < 1 << bits:
        raise ValueError(f"{name} out of range for uint{bits}")
    return value


def _check_fixed(value, size: int, name: str) -> bytes:
    value = bytes(value)
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(value)}")
    return value


def _expect_list(item, count: int, name: str) -> list:
    if not isinstance(item, list):
        raise DecodeError(f"{name}: expected a list")
    if len(item) != count:
        raise DecodeError(f"{name}: expected {count} elements, got {len(item)}")
    return item


def _decode_fields(data, count: int, name: str) -> list:
    return _expect_list(rlp_decode(data), count, name)


def _decode_bytes(item, name: str) -> bytes:
    if isinstance(item, list):
        raise DecodeError(f"{name}: expected a string, got a list")
    return bytes(item)


def _decode_uint(item, bits: int, name: str) -> int:
    raw = _decode_bytes(item, name)
    if raw and raw[0] == 0:
        raise DecodeError(f"{name}: non-canonical integer (leading zero bytes)")
    if len(raw) > bits // 8:
        raise DecodeError(f"{name}: value too large for uint{bits}")
    return int.from_bytes(raw, "big")


def _decode_fixed(item, size: int, name: str) -> bytes:
    raw = _decode_bytes(item, name)
    if len(raw) != size:
        raise DecodeError(f"{name}: expected {size} bytes, got {len(raw)}")
    return raw


def _hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def _b64(value: bytes) -> str:
    return base64.b64encode(bytes(value)).decode("ascii")


def _json_uint(obj: dict, key: str, bits: int) -> int:
    value = obj.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: expected an integer")
    if not 0 <= value < 1 << bits:
        raise ValueError(f"{key}: out of range for uint{bits}")
    return value


def _json_hex(obj: dict, key: str, size: int) -> bytes:
    value = obj.get(key)
    if value is None:
        return bytes(size)
    if not isinstance(value, str) or value[:2] not in ("0x", "0X"):
        raise ValueError(f"{key}: expected a 0x-prefixed hex string")
    raw = bytes.fromhex(value[2:])
    if len(raw) != size:
        raise ValueError(f"{key}: expected {size} bytes, got {len(raw)}")
    return raw


def _json_bytes(obj: dict, key: str) -> bytes:
    value = obj.get(key)
    if value is None:
        return b""
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a base64 string")
    return base64.b64decode(value, validate=True)


@dataclass
class DataTemplate:
    """Application payload carried in a transaction's data field."""

    parameter1: int = 0
    parameter2: str = ""
    parameter3: bytes = b""

    def __post_init__(self) -> None:
        _check_uint(self.parameter1, 32, "parameter1")
        if not isinstance(self.parameter2, str):
            raise TypeError("parameter2 must be a string")
        self.parameter3 = bytes(self.parameter3)

    def to_bytes(self) -> bytes:
        return rlp_encode([self.parameter1, self.parameter2, self.parameter3])

    @classmethod
    def from_bytes(cls, data) -> "DataTemplate":
        p1, p2, p3 = _decode_fields(data, 3, "data template")
        try:
            text = _decode_bytes(p2, "parameter2").decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("parameter2: invalid UTF-8") from exc
        return cls(_decode_uint(p1, 32, "parameter1"), text, _decode_bytes(p3, "parameter3"))


@dataclass
class Transaction:
    """Transfer from an address in one shard to an address in another."""

    from_shard: int = 0
    from_addr: bytes = bytes(ADDRESS_LENGTH)
    to_shard: int = 0
    to_addr: bytes = bytes(ADDRESS_LENGTH)
    value: int = 0
    data: bytes = b""
    hash: bytes = bytes(HASH_LENGTH)

    def __post_init__(self) -> None:
        _check_uint(self.from_shard, 32, "from_shard")
        _check_uint(self.to_shard, 32, "to_shard")
        _check_uint(self.value, 64, "value")
        self.from_addr = _check_fixed(self.from_addr, ADDRESS_LENGTH, "from_addr")
        self.to_addr = _check_fixed(self.to_addr, ADDRESS_LENGTH, "to_addr")
        self.hash = _check_fixed(self.hash, HASH_LENGTH, "hash")
        self.data = bytes(self.data)

    @classmethod
    def create(cls, from_shard, to_shard, from_addr, to_addr, value, data=b"") -> "Transaction":
        """Build a transaction and fill in its hash."""
        tx = cls(from_shard, from_addr, to_shard, to_addr, value, data)
        tx.hash = tx.compute_hash()
        return tx

    def compute_hash(self) -> bytes:
        """Keccak-256 of the transaction's fields.

        The data payload and the stored hash are left out of the digest.
        """
        return keccak256(
            rlp_encode(
                [
                    self.from_shard,
                    self.from_addr,
                    self.to_shard,
                    self.to_addr,
                    self.value,
                    b"",
                    bytes(HASH_LENGTH),
                ]
            )
        )

    def to_bytes(self) -> bytes:
        return rlp_encode(
            [
                self.from_shard,
                self.from_addr,
                self.to_shard,
                self.to_addr,
                self.value,
                self.data,
                self.hash,
            ]
        )

    @classmethod
    def from_bytes(cls, data) -> "Transaction":
        return cls._from_rlp(rlp_decode(data))

    @classmethod
    def _from_rlp(cls, item) -> "Transaction":
        fields = _expect_list(item, 7, "transaction")
        return cls(
            from_shard=_decode_uint(fields[0], 32, "FromShard"),
            from_addr=_decode_fixed(fields[1], ADDRESS_LENGTH, "FromAddr"),
            to_shard=_decode_uint(fields[2], 32, "ToShard"),
            to_addr=_decode_fixed(fields[3], ADDRESS_LENGTH, "ToAddr"),
            value=_decode_uint(fields[4], 64, "Value"),
            data=_decode_bytes(fields[5], "Data"),
            hash=_decode_fixed(fields[6], HASH_LENGTH, "Hash"),
        )

    def _to_json_obj(self) -> dict:
        return {
            "FromShard": self.from_shard,
            "FromAddr": _hex(self.from_addr),
            "ToShard": self.to_shard,
            "ToAddr": _hex(self.to_addr),
            "Value": self.value,
            "Data": _b64(self.data),
            "Hash": _hex(self.hash),
        }

    @classmethod
    def _from_json_obj(cls, obj) -> "Transaction":
        if not isinstance(obj, dict):
            raise ValueError("transaction JSON must be an object")
        return cls(
            from_shard=_json_uint(obj, "FromShard", 32),
            from_addr=_json_hex(obj, "FromAddr", ADDRESS_LENGTH),
            to_shard=_json_uint(obj, "ToShard", 32),
            to_addr=_json_hex(obj, "ToAddr", ADDRESS_LENGTH),
            value=_json_uint(obj, "Value", 64),
            data=_json_bytes(obj, "Data"),
            hash=_json_hex(obj, "Hash", HASH_LENGTH),
        )

    def to_json(self) -> bytes:
        return json.dumps(self._to_json_obj(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, data) -> "Transaction":
        if not data:
            raise ValueError("empty input")
        return cls._from_json_obj(json.loads(data))

    def copy(self) -> "Transaction":
        return replace(self)