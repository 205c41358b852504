"""Scheduler that reconstructs a trie node by node from fetched data."""

from __future__ import annotations

import heapq
import itertools
from collections import defaultdict
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Callable, Optional

from .encoding import binary_to_compact, binary_to_keybytes, has_term
from .node import FullNode, HashNode, ShortNode, ValueNode, decode_node
from .sync_bloom import _CODE_PREFIX, SyncBloom
from .trie import EMPTY_ROOT, EMPTY_STATE, ZERO_HASH

MAX_FETCHES_PER_DEPTH = 16384
"""Most pending trie nodes allowed at one depth before fetching is throttled."""

_ACCOUNT_PATH_BITS = 256

LeafCallback = Callable[[bytes, bytes, bytes], None]


class NotRequestedError(Exception):
    """Data was delivered for an item the scheduler never requested."""

    def __init__(self) -> None:
        super().__init__("not requested")


class AlreadyProcessedError(Exception):
    """Data was delivered for an item that has already been processed."""

    def __init__(self) -> None:
        super().__init__("already processed")


@dataclass(frozen=True)
class SyncResult:
    """Retrieved data together with the hash it was requested under."""

    hash: bytes
    data: bytes


@dataclass(eq=False)
class _Request:
    path: bytes
    hash: bytes
    data: Optional[bytes] = None
    code: bool = False
    parents: list = field(default_factory=list)
    deps: int = 0
    callback: Optional[LeafCallback] = None


def sync_path(path: bytes) -> tuple:
    """Turn a binary trie path into its compact network form.

    Paths inside a single trie become one compact item; paths reaching into a
    storage trie become the account key followed by the compact remainder.
    """
    path = bytes(path)
    if len(path) < _ACCOUNT_PATH_BITS:
        return (binary_to_compact(path),)
    return (
        binary_to_keybytes(path[:_ACCOUNT_PATH_BITS]),
        binary_to_compact(path[_ACCOUNT_PATH_BITS:]),
    )


def _priority(path: bytes) -> int:
    prio = len(path) << 56
    for i, step in enumerate(path[:14]):
        prio |= (15 - step) << (52 - i * 4)
    return prio


class Sync:
    """Trie synchronisation scheduler.

    It hands out hashes still unknown locally, accepts the data for them and
    rebuilds the trie step by step, keeping finished nodes in memory until
    they are flushed with :meth:`commit`.
    """

    def __init__(
        self,
        root: bytes,
        database: Optional[Mapping] = None,
        callback: Optional[LeafCallback] = None,
        bloom: Optional[SyncBloom] = None,
    ):
        self.database = {} if database is None else database
        self.bloom = bloom
        self._nodes: dict[bytes, bytes] = {}
        self._codes: dict[bytes, bytes] = {}
        self._node_reqs: dict[bytes, _Request] = {}
        self._code_reqs: dict[bytes, _Request] = {}
        self._queue: list = []
        self._counter = itertools.count()
        self._fetches: defaultdict[int, int] = defaultdict(int)
        self.add_sub_trie(root, b"", ZERO_HASH, callback)

    def _maybe_stored(self, key: bytes, lookup: bytes) -> bool:
        if self.bloom is not None and not self.bloom.contains(key):
            return False
        return bool(self.database.get(lookup))

    def _link_parent(self, req: _Request, parent: bytes, what: str) -> None:
        parent = bytes(parent)
        if parent == ZERO_HASH:
            return
        ancestor = self._node_reqs.get(parent)
        if ancestor is None:
            raise ValueError(f"{what} ancestor not found: {parent.hex()}")
        ancestor.deps += 1
        req.parents.append(ancestor)

    def add_sub_trie(
        self,
        root: bytes,
        path: bytes = b"",
        parent: bytes = ZERO_HASH,
        callback: Optional[LeafCallback] = None,
    ) -> None:
        """Register a trie to fetch, rooted below the pending node ``parent``."""
        root = bytes(root)
        if root == EMPTY_ROOT or root in self._nodes:
            return
        if self._maybe_stored(root, root):
            return
        req = _Request(path=bytes(path), hash=root, callback=callback)
        self._link_parent(req, parent, "sub-trie")
        self._schedule(req)

    def add_code_entry(self, hash: bytes, path: bytes = b"", parent: bytes = ZERO_HASH) -> None:
        """Schedule a raw code blob, stored as is rather than decoded as a node."""
        hash = bytes(hash)
        if hash == EMPTY_STATE or hash in self._codes:
            return
        if self._maybe_stored(hash, _CODE_PREFIX + hash):
            return
        req = _Request(path=bytes(path), hash=hash, code=True)
        self._link_parent(req, parent, "raw-entry")
        self._schedule(req)

    def missing(self, max: int = 0) -> tuple[list, list, list]:
        """Pop up to ``max`` items to fetch (0 means no limit).

        Returns node hashes, their sync paths, and code hashes.
        """
        nodes: list[bytes] = []
        paths: list[tuple] = []
        codes: list[bytes] = []
        while self._queue and (max == 0 or len(nodes) + len(codes) < max):
            neg_prio, _, digest = self._queue[0]
            depth = (-neg_prio) >> 56
            if self._fetches[depth] > MAX_FETCHES_PER_DEPTH:
                break
            heapq.heappop(self._queue)
            self._fetches[depth] += 1
            req = self._node_reqs.get(digest)
            if req is not None:
                nodes.append(digest)
                paths.append(sync_path(req.path))
            else:
                codes.append(digest)
        return nodes, paths, codes

    def process(self, result: SyncResult) -> None:
        """Feed back the data for a requested hash and schedule its children."""
        digest = bytes(result.hash)
        if digest not in self._node_reqs and digest not in self._code_reqs:
            raise NotRequestedError()
        filled = False
        code_req = self._code_reqs.get(digest)
        if code_req is not None and code_req.data is None:
            filled = True
            code_req.data = bytes(result.data)
            self._commit(code_req)
        node_req = self._node_reqs.get(digest)
        if node_req is not None and node_req.data is None:
            filled = True
            node = decode_node(digest, result.data)
            node_req.data = bytes(result.data)
            requests = self._children(node_req, node)
            if not requests and node_req.deps == 0:
                self._commit(node_req)
            else:
                node_req.deps += len(requests)
                for child in requests:
                    self._schedule(child)
        if not filled:
            raise AlreadyProcessedError()

    def commit(self, batch: MutableMapping) -> None:
        """Move every completed node and code blob into ``batch``."""
        for key, value in self._nodes.items():
            batch[key] = value
            if self.bloom is not None:
                self.bloom.add(key)
        for key, value in self._codes.items():
            batch[_CODE_PREFIX + key] = value
            if self.bloom is not None:
                self.bloom.add(key)
        self._nodes = {}
        self._codes = {}

    def pending(self) -> int:
        """Number of entries still waiting for data or for their children."""
        return len(self._node_reqs) + len(self._code_reqs)

    def _schedule(self, req: _Request) -> None:
        reqs = self._code_reqs if req.code else self._node_reqs
        old = reqs.get(req.hash)
        if old is not None:
            old.parents.extend(req.parents)
            return
        reqs[req.hash] = req
        heapq.heappush(self._queue, (-_priority(req.path), next(self._counter), req.hash))

    def _children(self, req: _Request, node) -> list[_Request]:
        if isinstance(node, ShortNode):
            key = node.key[:-1] if has_term(node.key) else node.key
            children = [(req.path + key, node.val)]
        elif isinstance(node, FullNode):
            children = [
                (req.path + bytes([index]), child)
                for index, child in enumerate(node.children)
                if child is not None
            ]
        else:
            raise TypeError(f"unknown node: {node!r}")
        requests = []
        for path, child in children:
            if req.callback is not None and isinstance(child, ValueNode):
                req.callback(path, bytes(child), req.hash)
            if isinstance(child, HashNode):
                digest = bytes(child)
                if digest in self._nodes:
                    continue
                if self._maybe_stored(digest, digest):
                    continue
                requests.append(
                    _Request(path=path, hash=digest, parents=[req], callback=req.callback)
                )
        return requests

    def _commit(self, req: _Request) -> None:
        if req.code:
            self._codes[req.hash] = req.data
            self._code_reqs.pop(req.hash, None)
        else:
            self._nodes[req.hash] = req.data
            self._node_reqs.pop(req.hash, None)
        self._fetches[len(req.path)] -= 1
        for parent in req.parents:
            parent.deps -= 1
            if parent.deps == 0:
                self._commit(parent)