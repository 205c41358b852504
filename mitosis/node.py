"""Trie node types, their consensus encoding and hashing."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterator, Optional, Union

from .encoding import (
    DecodeError,
    binary_to_compact,
    compact_to_binary,
    has_term,
    keccak256,
    rlp_decode,
    rlp_encode,
)


class HashNode(bytes):
    """Reference to a node by its 32-byte hash."""


class ValueNode(bytes):
    """A stored value."""


@dataclass
class NodeFlag:
    """Cached hash of a node and whether it still needs committing."""

    hash: Optional[HashNode] = None
    dirty: bool = False


@dataclass(eq=False)
class ShortNode:
    """Extension or leaf: a key fragment leading to one child."""

    key: bytes
    val: "Node"
    flags: NodeFlag = field(default_factory=NodeFlag)

    def copy(self) -> "ShortNode":
        return ShortNode(self.key, self.val, replace(self.flags))


@dataclass(eq=False)
class FullNode:
    """Branch with two children and a value slot."""

    children: list = field(default_factory=lambda: [None, None, None])
    flags: NodeFlag = field(default_factory=NodeFlag)

    def copy(self) -> "FullNode":
        return FullNode(list(self.children), replace(self.flags))


Node = Union[None, HashNode, ValueNode, ShortNode, FullNode]


def _child_ref(child):
    if child is None:
        return b""
    if isinstance(child, (HashNode, ValueNode)):
        return bytes(child)
    if child.flags.hash is not None:
        return bytes(child.flags.hash)
    return _node_struct(child)


def _node_struct(node):
    """Return the RLP structure of a collapsed node."""
    if isinstance(node, ShortNode):
        return [binary_to_compact(node.key), _child_ref(node.val)]
    value = node.children[2]
    return [
        _child_ref(node.children[0]),
        _child_ref(node.children[1]),
        bytes(value) if value is not None else b"",
    ]


def _hash_refs(node) -> Iterator[HashNode]:
    """Yield every hash reference held by a node, including embedded ones."""
    if isinstance(node, HashNode):
        yield node
    elif isinstance(node, ShortNode):
        yield from _hash_refs(node.val)
    elif isinstance(node, FullNode):
        for child in node.children[:2]:
            yield from _hash_refs(child)


def hash_node(node, force=False):
    """Hash a node, returning its reference and a copy carrying cached hashes.

    The reference is a ``HashNode``, or the node's RLP structure when it
    encodes to fewer than 32 bytes and ``force`` is false.
    """
    if not isinstance(node, (ShortNode, FullNode)):
        return node, node
    if node.flags.hash is not None:
        return node.flags.hash, node
    cached = node.copy()
    if isinstance(node, ShortNode):
        if isinstance(node.val, (ShortNode, FullNode)):
            _, cached.val = hash_node(node.val, False)
    else:
        for index, child in enumerate(node.children[:2]):
            if isinstance(child, (ShortNode, FullNode)):
                _, cached.children[index] = hash_node(child, False)
    struct = _node_struct(cached)
    encoded = rlp_encode(struct)
    if len(encoded) < 32 and not force:
        return struct, cached
    digest = HashNode(keccak256(encoded))
    cached.flags.hash = digest
    return digest, cached


def _decode_ref(item):
    if isinstance(item, list):
        if len(rlp_encode(item)) >= 32:
            raise DecodeError("oversized embedded node")
        return _decode_struct(None, item)
    if not item:
        return None
    if len(item) == 32:
        return HashNode(item)
    raise DecodeError(f"invalid node reference of {len(item)} bytes")


def _decode_struct(digest, struct):
    if not isinstance(struct, list):
        raise DecodeError("node is not a list")
    flags = NodeFlag(hash=digest)
    if len(struct) == 2:
        raw_key, raw_val = struct
        if isinstance(raw_key, list):
            raise DecodeError("node key is a list")
        key = compact_to_binary(raw_key)
        if has_term(key):
            if isinstance(raw_val, list):
                raise DecodeError("leaf value is a list")
            return ShortNode(key, ValueNode(raw_val), flags)
        child = _decode_ref(raw_val)
        if child is None:
            raise DecodeError("extension without child")
        return ShortNode(key, child, flags)
    if len(struct) == 3:
        if isinstance(struct[2], list):
            raise DecodeError("branch value is a list")
        value = ValueNode(struct[2]) if struct[2] else None
        return FullNode([_decode_ref(struct[0]), _decode_ref(struct[1]), value], flags)
    raise DecodeError(f"invalid number of list elements: {len(struct)}")


def decode_node(hash, data):
    """Decode a stored node blob; ``hash`` is recorded as its cached hash."""
    if not data:
        raise DecodeError("empty node data")
    digest = HashNode(hash) if hash else None
    return _decode_struct(digest, rlp_decode(data))