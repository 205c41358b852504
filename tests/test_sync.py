import random

import pytest

from mitosis.encoding import DecodeError, compact_to_binary, keccak256, keybytes_to_binary
from mitosis.node import FullNode, HashNode, ShortNode, decode_node
from mitosis.sync import (
    AlreadyProcessedError,
    NotRequestedError,
    Sync,
    SyncResult,
    sync_path,
)
from mitosis.sync_bloom import SyncBloom
from mitosis.trie import EMPTY_ROOT, ZERO_HASH, Database, MissingNodeError, Trie


def _make_test_trie():
    db = Database({})
    trie = Trie(None, db)
    content = {}
    for i in range(255):
        for lead in (1, 2):
            key, val = bytes(30) + bytes([lead, i]), bytes([i])
            content[key] = val
            trie.update(key, val)
        for j in range(3, 13):
            key, val = bytes(30) + bytes([j, i]), bytes([j, i])
            content[key] = val
            trie.update(key, val)
    trie.commit()
    return db, trie, content


@pytest.fixture(scope="module")
def source():
    return _make_test_trie()


def _check_consistency(db, root):
    try:
        blob = db.node_blob(root)
    except MissingNodeError:
        return
    stack = [decode_node(root, blob)]
    while stack:
        node = stack.pop()
        if isinstance(node, HashNode):
            stack.append(decode_node(bytes(node), db.node_blob(node)))
        elif isinstance(node, ShortNode):
            stack.append(node.val)
        elif isinstance(node, FullNode):
            stack.extend(node.children)


def _detects_missing(db, root):
    try:
        _check_consistency(db, root)
    except MissingNodeError:
        return True
    return False


def _check_contents(db, root, content):
    trie = Trie(root, db)
    _check_consistency(db, root)
    for key, val in content.items():
        assert trie.get(key) == val


def _new_sched(root):
    diskdb = {}
    triedb = Database(diskdb)
    sched = Sync(root, diskdb, None, SyncBloom(1, diskdb))
    return diskdb, triedb, sched


def _flush(sched, diskdb):
    batch = {}
    sched.commit(batch)
    diskdb.update(batch)


def _results(src_db, hashes):
    return [SyncResult(h, src_db.node_blob(h)) for h in hashes]


def test_empty_sync():
    empty_a = Trie(None, Database({}))
    empty_b = Trie(EMPTY_ROOT, Database({}))
    for trie in (empty_a, empty_b):
        sched = Sync(trie.hash(), {}, None, SyncBloom(1, {}))
        assert sched.missing(1) == ([], [], [])
        assert sched.pending() == 0


@pytest.mark.parametrize("count,by_path", [(1, False), (100, False), (1, True), (100, True)])
def test_iterative_sync(source, count, by_path):
    src_db, src_trie, src_data = source
    root = src_trie.hash()
    diskdb, triedb, sched = _new_sched(root)

    def queues():
        nodes, paths, codes = sched.missing(count)
        if by_path:
            return list(codes), list(paths)
        return list(nodes) + list(codes), []

    hash_queue, path_queue = queues()
    while hash_queue or path_queue:
        results = _results(src_db, hash_queue)
        for path in path_queue:
            data, _ = src_trie.get_node(path[0])
            results.append(SyncResult(keccak256(data), data))
        for result in results:
            sched.process(result)
        _flush(sched, diskdb)
        hash_queue, path_queue = queues()
    assert sched.pending() == 0
    _check_contents(triedb, root, src_data)


def test_iterative_delayed_sync(source):
    src_db, src_trie, src_data = source
    root = src_trie.hash()
    diskdb, triedb, sched = _new_sched(root)
    nodes, _, codes = sched.missing(10000)
    queue = nodes + codes
    while queue:
        take = len(queue) // 2 + 1
        results = _results(src_db, queue[:take])
        for result in results:
            sched.process(result)
        _flush(sched, diskdb)
        nodes, _, codes = sched.missing(10000)
        queue = queue[take:] + nodes + codes
    _check_contents(triedb, root, src_data)


@pytest.mark.parametrize("count", [1, 100])
def test_iterative_random_sync(source, count):
    src_db, src_trie, src_data = source
    root = src_trie.hash()
    diskdb, triedb, sched = _new_sched(root)
    rng = random.Random(count)
    nodes, _, codes = sched.missing(count)
    queue = set(nodes + codes)
    while queue:
        order = sorted(queue)
        rng.shuffle(order)
        for result in _results(src_db, order):
            sched.process(result)
        _flush(sched, diskdb)
        nodes, _, codes = sched.missing(count)
        queue = set(nodes + codes)
    _check_contents(triedb, root, src_data)


def test_iterative_random_delayed_sync(source):
    src_db, src_trie, src_data = source
    root = src_trie.hash()
    diskdb, triedb, sched = _new_sched(root)
    rng = random.Random(7)
    nodes, _, codes = sched.missing(10000)
    queue = set(nodes + codes)
    while queue:
        order = sorted(queue)
        rng.shuffle(order)
        chosen = order[: len(order) // 2 + 1]
        for result in _results(src_db, chosen):
            sched.process(result)
        _flush(sched, diskdb)
        queue.difference_update(chosen)
        nodes, _, codes = sched.missing(10000)
        queue.update(nodes + codes)
    _check_contents(triedb, root, src_data)


def test_duplicate_avoidance_sync(source):
    src_db, src_trie, src_data = source
    root = src_trie.hash()
    diskdb, triedb, sched = _new_sched(root)
    nodes, _, codes = sched.missing(0)
    queue = nodes + codes
    requested = set()
    while queue:
        for digest in queue:
            assert digest not in requested
            requested.add(digest)
        for result in _results(src_db, queue):
            sched.process(result)
        _flush(sched, diskdb)
        nodes, _, codes = sched.missing(0)
        queue = nodes + codes
    _check_contents(triedb, root, src_data)


def test_incomplete_sync(source):
    src_db, src_trie, _ = source
    root = src_trie.hash()
    diskdb, triedb, sched = _new_sched(root)
    added = []
    nodes, _, codes = sched.missing(1)
    queue = nodes + codes
    while queue:
        results = _results(src_db, queue)
        for result in results:
            sched.process(result)
        _flush(sched, diskdb)
        for result in results:
            added.append(result.hash)
            _check_consistency(triedb, result.hash)
        nodes, _, codes = sched.missing(1)
        queue = nodes + codes
    assert added[0] == root
    detected = []
    for digest in added[1::20]:
        value = diskdb.pop(digest)
        detected.append(_detects_missing(triedb, added[0]))
        diskdb[digest] = value
    assert len(detected) > 1
    assert all(detected)
    assert _detects_missing(triedb, added[0]) is False


def test_sync_ordering(source):
    src_db, src_trie, src_data = source
    root = src_trie.hash()
    diskdb, triedb, sched = _new_sched(root)
    nodes, paths, _ = sched.missing(1)
    queue = list(nodes)
    reqs = list(paths)
    while queue:
        for result in _results(src_db, queue):
            sched.process(result)
        _flush(sched, diskdb)
        nodes, paths, _ = sched.missing(1)
        queue = list(nodes)
        reqs.extend(paths)
    _check_contents(triedb, root, src_data)
    assert len(reqs) > 1
    for first, second in zip(reqs, reqs[1:]):
        assert len(first) == 1 and len(second) == 1
        assert compact_to_binary(first[0]) <= compact_to_binary(second[0])


def test_sync_path_forms():
    assert sync_path(b"") == (b"\x00",)
    assert sync_path(bytes([1])) == (b"\x01\x80",)
    assert sync_path(bytes(256) + bytes([1])) == (bytes(32), b"\x01\x80")


def test_process_unrequested_and_repeated():
    trie = Trie(None, Database({}))
    trie.update(bytes(range(32)), b"v" * 40)
    root = trie.commit()
    blob = trie.db.node_blob(root)
    sched = Sync(root, {}, None, None)
    with pytest.raises(NotRequestedError):
        sched.process(SyncResult(keccak256(b"other"), b"\xc0"))
    assert sched.missing(0)[0] == [root]
    sched.process(SyncResult(root, blob))
    assert sched.pending() == 0
    with pytest.raises(NotRequestedError):
        sched.process(SyncResult(root, blob))


def test_already_processed_while_waiting_for_children(source):
    src_db, src_trie, _ = source
    root = src_trie.hash()
    sched = Sync(root, {}, None, None)
    (digest,), _, _ = sched.missing(1)
    blob = src_db.node_blob(digest)
    sched.process(SyncResult(digest, blob))
    assert sched.pending() > 1
    with pytest.raises(AlreadyProcessedError):
        sched.process(SyncResult(digest, blob))


def test_process_bad_data_raises_decode_error():
    digest = keccak256(b"x")
    sched = Sync(digest, {}, None, None)
    with pytest.raises(DecodeError):
        sched.process(SyncResult(digest, b"\x01"))


def test_known_root_is_not_scheduled():
    digest = keccak256(b"known")
    sched = Sync(digest, {digest: b"blob"}, None, None)
    assert sched.pending() == 0
    assert sched.missing(0) == ([], [], [])


def test_unknown_parent_raises():
    sched = Sync(EMPTY_ROOT, {}, None, None)
    with pytest.raises(ValueError):
        sched.add_sub_trie(keccak256(b"a"), b"", keccak256(b"missing"), None)
    with pytest.raises(ValueError):
        sched.add_code_entry(keccak256(b"a"), b"", keccak256(b"missing"))


def test_code_entry_roundtrip():
    sched = Sync(EMPTY_ROOT, {}, None, None)
    assert sched.pending() == 0
    sched.add_code_entry(keccak256(b""), b"", ZERO_HASH)
    assert sched.pending() == 0
    digest = keccak256(b"code")
    sched.add_code_entry(digest, b"", ZERO_HASH)
    assert sched.pending() == 1
    assert sched.missing(0) == ([], [], [digest])
    sched.process(SyncResult(digest, b"code"))
    batch = {}
    sched.commit(batch)
    assert batch == {b"c" + digest: b"code"}
    assert sched.pending() == 0


def test_leaf_callback_reports_values():
    key = bytes(range(32))
    value = b"v" * 40
    trie = Trie(None, Database({}))
    trie.update(key, value)
    root = trie.commit()
    seen = []
    sched = Sync(root, {}, lambda path, leaf, parent: seen.append((path, leaf, parent)), None)
    nodes, _, _ = sched.missing(0)
    assert nodes == [root]
    sched.process(SyncResult(root, trie.db.node_blob(root)))
    assert seen == [(keybytes_to_binary(key)[:-1], value, root)]
    batch = {}
    sched.commit(batch)
    assert batch == {root: trie.db.node_blob(root)}