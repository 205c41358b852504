"""Merkle Patricia trie over binary paths, backed by a node database."""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Callable, Optional

from .encoding import (
    compact_to_binary,
    keccak256,
    keybytes_to_binary,
    prefix_len,
    rlp_encode,
)
from .node import (
    FullNode,
    HashNode,
    NodeFlag,
    ShortNode,
    ValueNode,
    _hash_refs,
    _node_struct,
    decode_node,
    hash_node,
)

EMPTY_ROOT = bytes.fromhex("56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421")
EMPTY_STATE = keccak256(b"")
ZERO_HASH = bytes(32)

LeafCallback = Callable[[bytes, bytes, bytes], None]


class MissingNodeError(Exception):
    """A trie node needed for an operation is not in the database."""

    def __init__(self, node_hash: bytes, path: bytes = b""):
        super().__init__(f"missing trie node {bytes(node_hash).hex()} (path {bytes(path).hex()})")
        self.node_hash = bytes(node_hash)
        self.path = bytes(path)


class Database:
    """Node store holding uncommitted nodes in memory above a disk mapping."""

    def __init__(self, diskdb: Optional[MutableMapping] = None):
        self.diskdb = {} if diskdb is None else diskdb
        self.dirties: dict[bytes, bytes] = {}

    def _blob(self, hash: bytes) -> Optional[bytes]:
        key = bytes(hash)
        blob = self.dirties.get(key)
        if blob is None:
            blob = self.diskdb.get(key)
        return blob

    def node(self, hash):
        """Return the decoded node stored under ``hash``, or None."""
        blob = self._blob(hash)
        return decode_node(bytes(hash), blob) if blob else None

    def node_blob(self, hash) -> bytes:
        """Return the encoded node stored under ``hash``."""
        blob = self._blob(hash)
        if not blob:
            raise MissingNodeError(hash)
        return blob

    def insert(self, hash, blob) -> None:
        self.dirties.setdefault(bytes(hash), bytes(blob))

    def commit(self, root, callback=None) -> None:
        """Write every in-memory node reachable from ``root`` to disk, children first."""

        def flush(digest: bytes) -> None:
            blob = self.dirties.get(digest)
            if blob is None:
                return
            for child in _hash_refs(decode_node(digest, blob)):
                flush(bytes(child))
            self.diskdb[digest] = blob
            del self.dirties[digest]
            if callback is not None:
                callback(digest)

        flush(bytes(root))


def _new_flag() -> NodeFlag:
    return NodeFlag(dirty=True)


def _is_node(n) -> bool:
    return isinstance(n, (ShortNode, FullNode))


class Trie:
    """Merkle Patricia trie. Not safe for concurrent use."""

    def __init__(self, root=None, db=None):
        self.db = db
        self._root = None
        if root and bytes(root) not in (ZERO_HASH, EMPTY_ROOT):
            if db is None:
                raise ValueError("a database is required to open a non-empty root")
            self._root = self._resolve_hash(HashNode(root), b"")

    def _resolve_hash(self, n: HashNode, prefix: bytes):
        node = self.db.node(n) if self.db is not None else None
        if node is None:
            raise MissingNodeError(n, prefix)
        return node

    def _resolve(self, n, prefix: bytes):
        if isinstance(n, HashNode):
            return self._resolve_hash(n, prefix)
        return n

    def get(self, key: bytes) -> Optional[bytes]:
        """Return the value stored under ``key``, or None."""
        value, new_root, resolved = self._get(self._root, keybytes_to_binary(key), 0)
        if resolved:
            self._root = new_root
        return bytes(value) if value is not None else None

    def _get(self, n, key: bytes, pos: int):
        if n is None:
            return None, None, False
        if isinstance(n, ValueNode):
            return n, n, False
        if isinstance(n, ShortNode):
            if key[pos:pos + len(n.key)] != n.key:
                return None, n, False
            value, child, resolved = self._get(n.val, key, pos + len(n.key))
            if resolved:
                n = n.copy()
                n.val = child
            return value, n, resolved
        if isinstance(n, FullNode):
            value, child, resolved = self._get(n.children[key[pos]], key, pos + 1)
            if resolved:
                n = n.copy()
                n.children[key[pos]] = child
            return value, n, resolved
        if isinstance(n, HashNode):
            node = self._resolve_hash(n, key[:pos])
            value, child, _ = self._get(node, key, pos)
            return value, child, True
        raise TypeError(f"invalid node: {n!r}")

    def get_node(self, path: bytes):
        """Return the encoded node at a compact ``path`` and how many nodes were resolved."""
        item, new_root, resolved = self._get_node(self._root, compact_to_binary(path), 0)
        if resolved:
            self._root = new_root
        return item, resolved

    def _get_node(self, n, path: bytes, pos: int):
        if pos >= len(path):
            if n is None:
                return None, None, 0
            if isinstance(n, HashNode):
                digest = n
            elif _is_node(n):
                digest = n.flags.hash
            else:
                digest = None
            if digest is None:
                raise ValueError("non-consensus node")
            return self.db.node_blob(digest), n, 1
        if n is None or isinstance(n, ValueNode):
            return None, n, 0
        if isinstance(n, ShortNode):
            if path[pos:pos + len(n.key)] != n.key:
                return None, n, 0
            item, child, resolved = self._get_node(n.val, path, pos + len(n.key))
            if resolved:
                n = n.copy()
                n.val = child
            return item, n, resolved
        if isinstance(n, FullNode):
            item, child, resolved = self._get_node(n.children[path[pos]], path, pos + 1)
            if resolved:
                n = n.copy()
                n.children[path[pos]] = child
            return item, n, resolved
        node = self._resolve_hash(n, path[:pos])
        item, child, resolved = self._get_node(node, path, pos)
        return item, child, resolved + 1

    def update(self, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``; an empty value deletes the key."""
        path = keybytes_to_binary(key)
        if value:
            _, self._root = self._insert(self._root, b"", path, ValueNode(value), False)
        else:
            _, self._root = self._delete(self._root, b"", path)

    def update_node(self, key: bytes, node) -> None:
        """Place ``node`` at the compact path ``key``."""
        _, self._root = self._insert(self._root, b"", compact_to_binary(key), node, True)

    def _insert(self, n, prefix: bytes, key: bytes, value, exact: bool):
        if not key:
            if not exact and isinstance(n, ValueNode):
                return bytes(n) != bytes(value), value
            return True, value
        if isinstance(n, ShortNode):
            match = prefix_len(key, n.key)
            if match == len(n.key):
                dirty, child = self._insert(n.val, prefix + key[:match], key[match:], value, exact)
                if not dirty:
                    return False, n
                return True, ShortNode(n.key, child, _new_flag())
            branch = FullNode(flags=_new_flag())
            _, branch.children[n.key[match]] = self._insert(
                None, prefix + n.key[:match + 1], n.key[match + 1:], n.val, False
            )
            _, branch.children[key[match]] = self._insert(
                None, prefix + key[:match + 1], key[match + 1:], value, exact
            )
            if match == 0:
                return True, branch
            return True, ShortNode(key[:match], branch, _new_flag())
        if isinstance(n, FullNode):
            dirty, child = self._insert(
                n.children[key[0]], prefix + key[:1], key[1:], value, exact
            )
            if not dirty:
                return False, n
            n = n.copy()
            n.flags = _new_flag()
            n.children[key[0]] = child
            return True, n
        if n is None:
            return True, ShortNode(key, value, _new_flag())
        if isinstance(n, HashNode):
            resolved = self._resolve_hash(n, prefix)
            dirty, child = self._insert(resolved, prefix, key, value, exact)
            return (True, child) if dirty else (False, resolved)
        raise TypeError(f"invalid node: {n!r}")

    def delete(self, key: bytes) -> None:
        """Remove any value stored under ``key``."""
        _, self._root = self._delete(self._root, b"", keybytes_to_binary(key))

    def _delete(self, n, prefix: bytes, key: bytes):
        if isinstance(n, ShortNode):
            match = prefix_len(key, n.key)
            if match < len(n.key):
                return False, n
            if match == len(key):
                return True, None
            dirty, child = self._delete(n.val, prefix + key[:len(n.key)], key[len(n.key):])
            if not dirty:
                return False, n
            if isinstance(child, ShortNode):
                return True, ShortNode(n.key + child.key, child.val, _new_flag())
            return True, ShortNode(n.key, child, _new_flag())
        if isinstance(n, FullNode):
            dirty, child = self._delete(n.children[key[0]], prefix + key[:1], key[1:])
            if not dirty:
                return False, n
            n = n.copy()
            n.flags = _new_flag()
            n.children[key[0]] = child
            remaining = [index for index, c in enumerate(n.children) if c is not None]
            if len(remaining) == 1:
                pos = remaining[0]
                if pos != 2:
                    cnode = self._resolve(n.children[pos], prefix)
                    if isinstance(cnode, ShortNode):
                        return True, ShortNode(bytes([pos]) + cnode.key, cnode.val, _new_flag())
                return True, ShortNode(bytes([pos]), n.children[pos], _new_flag())
            return True, n
        if isinstance(n, ValueNode):
            return True, None
        if n is None:
            return False, None
        if isinstance(n, HashNode):
            resolved = self._resolve_hash(n, prefix)
            dirty, child = self._delete(resolved, prefix, key)
            return (True, child) if dirty else (False, resolved)
        raise TypeError(f"invalid node: {n!r}")

    def hash(self) -> bytes:
        """Return the root hash without writing to the database."""
        if self._root is None:
            return EMPTY_ROOT
        hashed, cached = hash_node(self._root, True)
        self._root = cached
        return bytes(hashed)

    def commit(self, on_leaf: Optional[LeafCallback] = None) -> bytes:
        """Write all dirty nodes to the database and return the root hash."""
        if self.db is None:
            raise ValueError("commit called on trie without a database")
        if self._root is None:
            return EMPTY_ROOT
        root_hash = self.hash()
        if not _is_node(self._root) or not self._root.flags.dirty:
            return root_hash
        self._commit(self._root, b"", root_hash, on_leaf)
        self._root = HashNode(root_hash)
        return root_hash

    def _commit(self, n, path: bytes, parent: bytes, on_leaf) -> None:
        if not _is_node(n) or not n.flags.dirty:
            return
        own = bytes(n.flags.hash) if n.flags.hash is not None else parent
        if isinstance(n, ShortNode):
            children = [(n.val, path + n.key)]
        else:
            children = [(child, path + bytes([i])) for i, child in enumerate(n.children)]
        for child, child_path in children:
            if isinstance(child, ValueNode) and on_leaf is not None:
                on_leaf(child_path, bytes(child), own)
            self._commit(child, child_path, own, on_leaf)
        if n.flags.hash is not None:
            self.db.insert(n.flags.hash, rlp_encode(_node_struct(n)))
        n.flags.dirty = False

    def reset(self) -> None:
        """Drop the root and all cached state."""
        self._root = None