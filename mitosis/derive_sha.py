"""Merkle roots over transaction chunks."""

from __future__ import annotations

from typing import Iterable, Protocol

from .encoding import rlp_encode

_BLOCK_KEY_OFFSET = 1001


class _Hasher(Protocol):
    def reset(self) -> None: ...

    def update(self, key: bytes, value: bytes) -> None: ...

    def hash(self) -> bytes: ...


def chunk_root(txs: Iterable, hasher: _Hasher) -> bytes:
    """Root over transaction hashes keyed by their RLP-encoded position, from 1."""
    hasher.reset()
    for index, tx in enumerate(txs, start=1):
        hasher.update(rlp_encode(index), tx.hash)
    return hasher.hash()


def block_tx_root(chunks: Iterable, hasher: _Hasher) -> bytes:
    """Root over chunk roots keyed by their RLP-encoded position, from 1001."""
    hasher.reset()
    for index, chunk in enumerate(chunks, start=_BLOCK_KEY_OFFSET):
        hasher.update(rlp_encode(index), chunk.root())
    return hasher.hash()