"""Trie that hashes and flushes subtrees as soon as keys move past them."""

from __future__ import annotations

from collections.abc import MutableMapping
from enum import Enum, auto
from typing import Optional

from .encoding import (
    TERMINATOR,
    binary_to_compact,
    keccak256,
    keybytes_to_binary,
    prefix_len,
    rlp_decode,
    rlp_encode,
)
from .trie import EMPTY_ROOT


class CommitDisabledError(Exception):
    """Raised when committing a stack trie that has no database."""

    def __init__(self) -> None:
        super().__init__("no database for committing")


class _Kind(Enum):
    EMPTY = auto()
    BRANCH = auto()
    EXT = auto()
    LEAF = auto()
    HASHED = auto()


class StackTrie:
    """Trie that expects keys in increasing order.

    Once a subtree can no longer receive inserts it is hashed, written to
    the database (if any) and dropped from memory.
    """

    def __init__(self, db: Optional[MutableMapping] = None):
        self.db = db
        self._kind = _Kind.EMPTY
        self._key = b""
        self._val = b""
        self._key_offset = 0
        self._children: list[Optional[StackTrie]] = [None, None]

    @classmethod
    def _leaf(cls, offset: int, key: bytes, val: bytes, db) -> "StackTrie":
        st = cls(db)
        st._kind = _Kind.LEAF
        st._key_offset = offset
        st._key = bytes(key[offset:])
        st._val = val
        return st

    @classmethod
    def _ext(cls, offset: int, key: bytes, child: "StackTrie", db) -> "StackTrie":
        st = cls(db)
        st._kind = _Kind.EXT
        st._key_offset = offset
        st._key = bytes(key[offset:])
        st._children[0] = child
        return st

    @classmethod
    def _branch(cls, offset: int, db) -> "StackTrie":
        st = cls(db)
        st._kind = _Kind.BRANCH
        st._key_offset = offset
        return st

    def update(self, key: bytes, value: bytes) -> None:
        """Insert ``value`` under ``key``; keys must arrive in increasing order."""
        if not value:
            raise ValueError("deletion not supported")
        path = keybytes_to_binary(key)
        self._insert(path[:-1], bytes(value))

    def reset(self) -> None:
        """Return the trie to its empty state, detaching the database."""
        self.db = None
        self._kind = _Kind.EMPTY
        self._key = b""
        self._val = b""
        self._key_offset = 0
        self._children = [None, None]

    def _diff_index(self, key: bytes) -> int:
        return prefix_len(self._key, key[self._key_offset:])

    def _insert(self, key: bytes, value: bytes) -> None:
        kind = self._kind
        if kind is _Kind.BRANCH:
            idx = key[self._key_offset]
            if idx == 1 and self._children[0] is not None:
                self._children[0]._hash()
            if self._children[idx] is None:
                child = StackTrie(self.db)
                child._key_offset = self._key_offset + 1
                self._children[idx] = child
            self._children[idx]._insert(key, value)
        elif kind is _Kind.EXT:
            diff = self._diff_index(key)
            if diff == len(self._key):
                self._children[0]._insert(key, value)
                return
            if diff < len(self._key) - 1:
                orig = StackTrie._ext(diff + 1, self._key, self._children[0], self.db)
            else:
                orig = self._children[0]
            orig._hash()
            if diff == 0:
                self._children[0] = None
                parent = self
                self._kind = _Kind.BRANCH
            else:
                parent = StackTrie._branch(self._key_offset + diff, self.db)
                self._children[0] = parent
            new = StackTrie._leaf(self._key_offset + diff + 1, key, value, self.db)
            parent._children[self._key[diff]] = orig
            parent._children[key[diff + self._key_offset]] = new
            self._key = self._key[:diff]
        elif kind is _Kind.LEAF:
            diff = self._diff_index(key)
            if diff >= len(self._key):
                raise ValueError("trying to insert into existing key")
            if diff == 0:
                self._kind = _Kind.BRANCH
                parent = self
                self._children[0] = None
            else:
                self._kind = _Kind.EXT
                parent = StackTrie._branch(self._key_offset + diff, self.db)
                self._children[0] = parent
            orig_idx = self._key[diff]
            orig = StackTrie._leaf(diff + 1, self._key, self._val, self.db)
            parent._children[orig_idx] = orig
            orig._hash()
            new_idx = key[diff + self._key_offset]
            parent._children[new_idx] = StackTrie._leaf(
                parent._key_offset + 1, key, value, self.db
            )
            self._key = self._key[:diff]
            self._val = b""
        elif kind is _Kind.EMPTY:
            self._kind = _Kind.LEAF
            self._key = bytes(key[self._key_offset:])
            self._val = value
        else:
            raise ValueError("trying to insert into hash")

    def _ref(self):
        """RLP item referring to this hashed node: embedded structure or hash."""
        if len(self._val) < 32:
            return rlp_decode(self._val)
        return self._val

    def _hash(self) -> None:
        """Collapse this node into its encoding or hash, storing large nodes."""
        kind = self._kind
        if kind is _Kind.HASHED:
            return
        if kind is _Kind.BRANCH:
            refs = []
            for child in self._children:
                if child is None:
                    refs.append(b"")
                    continue
                child._hash()
                refs.append(child._ref())
            self._children = [None, None]
            encoded = rlp_encode([refs[0], refs[1], b""])
        elif kind is _Kind.EXT:
            child = self._children[0]
            child._hash()
            encoded = rlp_encode([binary_to_compact(self._key), child._ref()])
            self._children[0] = None
        elif kind is _Kind.LEAF:
            compact = binary_to_compact(self._key + bytes([TERMINATOR]))
            encoded = rlp_encode([compact, self._val])
        else:
            self._val = EMPTY_ROOT
            self._key = b""
            self._kind = _Kind.HASHED
            return
        self._key = b""
        self._kind = _Kind.HASHED
        if len(encoded) < 32:
            self._val = encoded
            return
        self._val = keccak256(encoded)
        if self.db is not None:
            self.db[self._val] = encoded

    def hash(self) -> bytes:
        """Return the root hash, hashing whatever remains unhashed."""
        self._hash()
        if len(self._val) != 32:
            return keccak256(self._val)
        return self._val

    def commit(self) -> bytes:
        """Hash the trie, write the root to the database and return its hash."""
        if self.db is None:
            raise CommitDisabledError()
        self._hash()
        if len(self._val) != 32:
            digest = keccak256(self._val)
            self.db[digest] = self._val
            return digest
        return self._val