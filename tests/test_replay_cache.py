from datetime import datetime, timedelta

import pytest

from presence_api.services.replay_cache import ReplayCache

T0 = datetime(2026, 3, 2, 9, 0, 0)


def test_duplicate_nonce_is_refused():
    cache = ReplayCache(capacity=10)
    assert cache.admit("n1", T0) is True
    assert cache.admit("n1", T0 + timedelta(seconds=1)) is False
    assert cache.admit("n2", T0 + timedelta(seconds=1)) is True


def test_capacity_evicts_oldest_first():
    cache = ReplayCache(capacity=3, window=timedelta(seconds=15))
    for i, key in enumerate(["a", "b", "c", "d"]):
        assert cache.admit(key, T0 + timedelta(milliseconds=i))
    assert len(cache) == 3
    assert "a" not in cache
    assert all(k in cache for k in ("b", "c", "d"))


def test_entries_expire_after_window():
    cache = ReplayCache(capacity=10, window=timedelta(seconds=15))
    cache.admit("old", T0)
    cache.admit("newer", T0 + timedelta(seconds=10))

    # 'old' is still inside the window at +15s
    assert cache.admit("old", T0 + timedelta(seconds=15)) is False

    cache.admit("later", T0 + timedelta(seconds=16))
    assert "old" not in cache
    assert "newer" in cache


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        ReplayCache(capacity=0)


def test_capacity_eviction_of_fresh_nonce_is_logged(caplog):
    cache = ReplayCache(capacity=2, window=timedelta(seconds=15))
    cache.admit("a", T0)
    cache.admit("b", T0)
    with caplog.at_level("WARNING", logger="presence_api.services.replay_cache"):
        cache.admit("c", T0 + timedelta(seconds=1))
    assert "evicted unexpired nonce a" in caplog.text

    # expiry alone makes room without a warning
    caplog.clear()
    with caplog.at_level("WARNING", logger="presence_api.services.replay_cache"):
        cache.admit("d", T0 + timedelta(seconds=17))
    assert caplog.text == ""
