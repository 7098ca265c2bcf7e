"""
Tests for the background expiry sweeper.

Tests cover:
- Single sweeps and skipping when one is already in flight
- start/stop lifecycle
- Timer-driven eviction
- Store consistency under concurrent writers and sweeps
"""

import threading
import time

import pytest

from sparks.config import settings
from sparks.errors import GroupNotFound
from sparks.models import GROUP_LIFETIME_MS, Coordinates
from sparks.sweeper import ExpirySweeper


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def sweeper(store):
    sweeper = ExpirySweeper(store, interval_seconds=0.01)
    yield sweeper
    sweeper.stop()


class TestRunOnce:
    """Test a single sweep."""

    def test_run_once_evicts_expired(self, store, sweeper, origin, clock):
        group = store.create_group(origin)
        store.post_message(group.id, "hello")
        clock.advance(GROUP_LIFETIME_MS)

        expired = sweeper.run_once()

        assert [g.id for g in expired] == [group.id]
        assert store.get_messages(group.id) == []
        assert store.stats() == {"live_groups": 0, "messages": 0}

    def test_run_once_with_nothing_expired(self, store, sweeper, origin):
        store.create_group(origin)
        assert sweeper.run_once() == []

    def test_run_once_skips_when_in_flight(self, store, sweeper, origin, clock):
        group = store.create_group(origin)
        clock.advance(GROUP_LIFETIME_MS)

        sweeper._in_flight.acquire()
        try:
            assert sweeper.run_once() == []
            assert store.directory.get(group.id) is not None
        finally:
            sweeper._in_flight.release()

        assert [g.id for g in sweeper.run_once()] == [group.id]

    def test_invalid_interval(self, store):
        with pytest.raises(ValueError):
            ExpirySweeper(store, interval_seconds=0)

    def test_interval_defaults_to_settings(self, store, monkeypatch):
        assert ExpirySweeper(store).interval_seconds == settings.SWEEP_INTERVAL_SECONDS

        monkeypatch.setattr(settings, "SWEEP_INTERVAL_SECONDS", 2.5)
        assert ExpirySweeper(store).interval_seconds == 2.5


class TestLifecycle:
    """Test start/stop of the background thread."""

    def test_not_running_until_started(self, sweeper):
        assert not sweeper.is_running

    def test_start_and_stop(self, sweeper):
        sweeper.start()
        assert sweeper.is_running

        sweeper.stop()
        assert not sweeper.is_running

    def test_start_is_idempotent(self, sweeper):
        sweeper.start()
        thread = sweeper._thread
        sweeper.start()

        assert sweeper._thread is thread

    def test_stop_without_start(self, sweeper):
        sweeper.stop()
        assert not sweeper.is_running

    def test_restart_after_stop(self, sweeper):
        sweeper.start()
        sweeper.stop()
        sweeper.start()

        assert sweeper.is_running

    def test_timer_evicts_expired_groups(self, store, sweeper, origin, clock):
        group = store.create_group(origin)
        sweeper.start()

        clock.advance(GROUP_LIFETIME_MS)

        assert wait_for(lambda: store.directory.get(group.id) is None)
        assert not store.messages.has_log(group.id)


class TestConcurrency:
    """Test that sweeps never leave a group and its log out of step."""

    def test_concurrent_create_post_and_sweep(self, store, sweeper, clock):
        origin = Coordinates(latitude=14.676, longitude=121.0437)
        errors = []
        created = []

        def writer():
            try:
                for i in range(100):
                    group = store.create_group(origin, name=f"g{i}")
                    created.append(group.id)
                    try:
                        store.post_message(group.id, f"hello {i}")
                    except GroupNotFound:
                        # expired under us
                        pass
                    clock.advance(GROUP_LIFETIME_MS // 50)
            except Exception as e:
                errors.append(e)

        sweeper.start()
        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        sweeper.stop()
        store.sweep()

        assert errors == []
        for group_id in created:
            in_directory = store.directory.get(group_id) is not None
            assert in_directory == store.messages.has_log(group_id)
