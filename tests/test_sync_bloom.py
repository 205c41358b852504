import time

import pytest

from mitosis.encoding import keccak256
from mitosis.sync_bloom import SyncBloom


def _wait_ready(bloom, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not bloom.initialized and time.monotonic() < deadline:
        time.sleep(0.01)
    return bloom.initialized


def test_initialization_completes():
    bloom = SyncBloom(1, {})
    _wait_ready(bloom)
    assert bloom.initialized is True
    assert bloom.contains(keccak256(b"never added")) is False
    bloom.close()


def test_added_hash_is_contained():
    bloom = SyncBloom(1, {})
    assert _wait_ready(bloom)
    digest = keccak256(b"node")
    bloom.add(digest)
    assert bloom.contains(digest) is True
    bloom.close()


def test_unknown_hash_is_absent():
    bloom = SyncBloom(1, {})
    assert _wait_ready(bloom)
    bloom.add(keccak256(b"one"))
    assert bloom.contains(keccak256(b"two")) is False
    bloom.close()


def test_preloads_trie_nodes_and_code_from_database():
    node_hash = keccak256(b"trie node")
    code_hash = keccak256(b"contract code")
    other = b"x" * 10
    database = {node_hash: b"blob", b"c" + code_hash: b"code", other: b"ignored"}
    bloom = SyncBloom(1, database)
    assert _wait_ready(bloom)
    assert bloom.contains(node_hash) is True
    assert bloom.contains(code_hash) is True
    assert bloom.contains(other) is False
    bloom.close()


def test_closed_bloom_answers_maybe():
    bloom = SyncBloom(1, {})
    assert _wait_ready(bloom)
    bloom.close()
    absent = keccak256(b"absent")
    bloom.add(absent)
    assert bloom.contains(absent) is True
    assert bloom.initialized is False


def test_close_is_idempotent():
    bloom = SyncBloom(1, {})
    bloom.close()
    bloom.close()
    assert bloom.contains(keccak256(b"any")) is True


def test_zero_size_rejected():
    with pytest.raises(ValueError):
        SyncBloom(0, {})


def test_short_hash_rejected():
    bloom = SyncBloom(1, {})
    with pytest.raises(ValueError):
        bloom.add(b"\x01\x02")
    bloom.close()