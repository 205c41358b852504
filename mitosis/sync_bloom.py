"""Bloom filter of known trie nodes and code, preloaded from a database."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Optional

_HASH_LENGTH = 32
_CODE_PREFIX = b"c"
_HASH_FUNCTIONS = 4


class SyncBloom:
    """Bloom filter deciding quickly whether a node or code may exist on disk.

    It fills itself from ``database`` in a background thread; until that is
    finished every query answers "maybe present".
    """

    def __init__(self, memory: int, database: Optional[Mapping] = None):
        bits = memory * 1024 * 1024 * 8
        if bits <= 0:
            raise ValueError("bloom filter size must be positive")
        self._size = bits
        self._bits = bytearray(bits // 8)
        self._count = 0
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._ready = threading.Event()
        self._close_lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._init, args=(database if database is not None else {},), daemon=True
        )
        self._thread.start()

    @property
    def initialized(self) -> bool:
        """Whether the initial load from the database has finished."""
        return self._ready.is_set()

    def _positions(self, value: int):
        low, high = value & 0xFFFFFFFF, value >> 32
        for i in range(_HASH_FUNCTIONS):
            yield (low + i * high + i * i) % self._size

    def _add_hash(self, value: int) -> None:
        with self._lock:
            if self._bits is None:
                return
            for pos in self._positions(value):
                self._bits[pos >> 3] |= 1 << (pos & 7)
            self._count += 1

    @staticmethod
    def _key_value(hash: bytes) -> int:
        if len(hash) < 8:
            raise ValueError("hash must be at least 8 bytes long")
        return int.from_bytes(bytes(hash[:8]), "big")

    def _init(self, database: Mapping) -> None:
        for key in list(database):
            if self._closed.is_set():
                break
            key = bytes(key)
            if len(key) == _HASH_LENGTH:
                self._add_hash(self._key_value(key))
            elif len(key) == _HASH_LENGTH + len(_CODE_PREFIX) and key.startswith(_CODE_PREFIX):
                self._add_hash(self._key_value(key[len(_CODE_PREFIX):]))
        if not self._closed.is_set():
            self._ready.set()

    def close(self) -> None:
        """Stop the background loader and release the filter's memory."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
            self._thread.join()
            self._ready.clear()
            with self._lock:
                self._bits = None

    def add(self, hash: bytes) -> None:
        """Insert a node or code hash."""
        if self._closed.is_set():
            return
        self._add_hash(self._key_value(hash))

    def contains(self, hash: bytes) -> bool:
        """False if ``hash`` is certainly absent, True if it may be present."""
        value = self._key_value(hash)
        if not self._ready.is_set():
            return True
        with self._lock:
            if self._bits is None:
                return True
            return all(self._bits[pos >> 3] & (1 << (pos & 7)) for pos in self._positions(value))