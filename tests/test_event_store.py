import threading
from unittest.mock import MagicMock, patch

import pytest
import redis

from security.errors import StoreUnavailable
from security.event_store import (
    MemoryEventStore,
    RedisEventStore,
    build_event_store,
)
from tests.conftest import FakeClock


class TestMemoryEventStore:
    def test_entry_counts_until_window_elapses(self):
        clock = FakeClock()
        store = MemoryEventStore(clock=clock)

        store.record("origin", "1.2.3.4", 60)
        assert store.count("origin", "1.2.3.4") == 1

        clock.advance(59)
        assert store.count("origin", "1.2.3.4") == 1

        clock.advance(1)
        assert store.count("origin", "1.2.3.4") == 0

    def test_entries_expire_independently(self):
        clock = FakeClock()
        store = MemoryEventStore(clock=clock)

        store.record("account", "u1", 900)
        clock.advance(300)
        store.record("account", "u1", 900)
        assert store.count("account", "u1") == 2

        # first entry ages out, the later one keeps counting
        clock.advance(600)
        assert store.count("account", "u1") == 1

        clock.advance(300)
        assert store.count("account", "u1") == 0

    def test_scopes_and_ids_are_isolated(self):
        store = MemoryEventStore(clock=FakeClock())
        store.record("origin", "same", 60)
        store.record("origin", "same", 60)
        store.record("account", "same", 60)

        assert store.count("origin", "same") == 2
        assert store.count("account", "same") == 1
        assert store.count("origin", "other") == 0

    def test_unknown_scope_rejected(self):
        store = MemoryEventStore()
        with pytest.raises(ValueError):
            store.record("tenant", "x", 60)
        with pytest.raises(ValueError):
            store.count("tenant", "x")

    def test_concurrent_records_are_all_counted(self):
        store = MemoryEventStore()

        def worker():
            for _ in range(50):
                store.record("origin", "9.9.9.9", 60)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.count("origin", "9.9.9.9") == 400

    def test_expired_keys_are_swept_without_being_counted(self):
        clock = FakeClock()
        store = MemoryEventStore(clock=clock, sweep_interval=60)

        # one failure each from many addresses that never come back
        for i in range(5000):
            store.record("origin", f"10.{i // 256}.{i % 256}.1", 30)
        assert store.key_count() == 5000

        clock.advance(60)
        # any later call triggers the sweep
        assert store.count("origin", "192.0.2.1") == 0
        assert store.key_count() == 0

    def test_sweep_keeps_live_entries(self):
        clock = FakeClock()
        store = MemoryEventStore(clock=clock, sweep_interval=60)
        store.record("origin", "stale", 30)
        store.record("account", "u1", 900)

        clock.advance(60)
        store.record("origin", "fresh", 900)

        assert store.key_count() == 2
        assert store.count("account", "u1") == 1
        assert store.count("origin", "fresh") == 1

    def test_clear(self):
        store = MemoryEventStore()
        store.record("origin", "a", 60)
        store.clear()
        assert store.count("origin", "a") == 0


class TestRedisEventStore:
    def test_record_adds_member_scored_by_expiry(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        store = RedisEventStore(client, key_prefix="lg", clock=FakeClock(1000.0))

        store.record("origin", "1.2.3.4", 900)
        store.record("origin", "1.2.3.4", 900)

        assert pipe.zadd.call_count == 2
        members = []
        for c in pipe.zadd.call_args_list:
            key, mapping = c.args
            assert key == "lg:origin:1.2.3.4"
            assert list(mapping.values()) == [1900.0]
            members.extend(mapping)
        assert members[0] != members[1]

        pipe.zremrangebyscore.assert_called_with("lg:origin:1.2.3.4", "-inf", 1000.0)
        pipe.expire.assert_called_with("lg:origin:1.2.3.4", 900)
        assert pipe.execute.call_count == 2

    def test_count_reads_unexpired_scores_of_one_key(self):
        client = MagicMock()
        client.zcount.return_value = 2
        store = RedisEventStore(client, key_prefix="lg", clock=FakeClock(1000.0))

        assert store.count("account", "u1") == 2
        client.zcount.assert_called_once_with("lg:account:u1", "(1000.0", "+inf")
        client.scan_iter.assert_not_called()
        client.keys.assert_not_called()

    def test_connection_errors_become_store_unavailable(self):
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("refused")
        client.zcount.side_effect = redis.TimeoutError("timed out")
        store = RedisEventStore(client)

        with pytest.raises(StoreUnavailable):
            store.record("origin", "1.2.3.4", 60)
        with pytest.raises(StoreUnavailable):
            store.count("origin", "1.2.3.4")


class TestBuildEventStore:
    def test_memory_backend(self):
        assert isinstance(build_event_store({"EVENT_STORE_BACKEND": "memory"}), MemoryEventStore)

    def test_redis_backend(self):
        with patch("security.event_store.redis.Redis.from_url") as from_url:
            store = build_event_store({
                "EVENT_STORE_BACKEND": "redis",
                "REDIS_URL": "redis://cache:6379/1",
                "REDIS_KEY_PREFIX": "lg",
                "REDIS_SOCKET_TIMEOUT": 1.5,
            })

        assert isinstance(store, RedisEventStore)
        assert store.key_prefix == "lg"
        from_url.assert_called_once()
        assert from_url.call_args.kwargs["socket_timeout"] == 1.5

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_event_store({"EVENT_STORE_BACKEND": "memcached"})
