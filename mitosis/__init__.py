"""Merkle Patricia tries, stack tries, trie sync and RLP-encoded data types for a sharded blockchain."""

__version__ = "0.1.0"