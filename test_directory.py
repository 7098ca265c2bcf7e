"""
Tests for group creation, proximity search and expiry sweeps.

Tests cover:
- Fixed 24 hour lifetime and default name
- Radius filter using the flat-degree distance
- Ordering by expiry (soonest first)
- Opportunistic sweep inside nearby queries
- Sweep idempotence and cascade to message logs
"""

import pytest

from sparks.config import settings
from sparks.models import DEFAULT_GROUP_NAME, GROUP_LIFETIME_MS, Coordinates
from sparks.storage import GroupDirectory, MessageStore


def offset(origin: Coordinates, d_lat: float = 0.0, d_lng: float = 0.0) -> Coordinates:
    return Coordinates(latitude=origin.latitude + d_lat, longitude=origin.longitude + d_lng)


class TestCreateGroup:
    """Test group creation."""

    def test_lifetime_is_exactly_24_hours(self, store, origin, clock):
        group = store.create_group(origin, name="Study grind room")

        assert group.created_at == clock.now
        assert group.expires_at - group.created_at == GROUP_LIFETIME_MS
        assert GROUP_LIFETIME_MS == 24 * 60 * 60 * 1000

    def test_fields_are_populated(self, store, origin):
        group = store.create_group(
            origin,
            name="Rooftop",
            anonymous_allowed=False,
            icebreaker="Two truths and a lie - go!",
        )

        assert group.id
        assert group.name == "Rooftop"
        assert group.lat == origin.latitude
        assert group.lng == origin.longitude
        assert group.anonymous_allowed is False
        assert group.icebreaker == "Two truths and a lie - go!"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_blank_name_uses_default(self, store, origin, name):
        group = store.create_group(origin, name=name)
        assert group.name == DEFAULT_GROUP_NAME

    def test_ids_are_unique(self, store, origin):
        ids = {store.create_group(origin).id for _ in range(200)}
        assert len(ids) == 200

    def test_registers_empty_message_log(self, store, origin):
        group = store.create_group(origin)

        assert store.messages.has_log(group.id)
        assert store.get_messages(group.id) == []

    def test_group_is_immutable(self, store, origin):
        group = store.create_group(origin)
        with pytest.raises(Exception):
            group.expires_at = 0


class TestListNearbyRadius:
    """Test the distance filter."""

    def test_same_coordinates_included_with_zero_radius(self, store, origin):
        group = store.create_group(origin)

        assert [g.id for g in store.list_nearby(origin, radius_km=0)] == [group.id]

    def test_default_radius_is_50_km(self, store, origin):
        inside = store.create_group(offset(origin, d_lat=0.45))   # 49.95 km
        store.create_group(offset(origin, d_lat=0.46))             # 51.06 km

        assert [g.id for g in store.list_nearby(origin)] == [inside.id]

    def test_default_radius_comes_from_settings(self, store, origin, monkeypatch):
        store.create_group(offset(origin, d_lat=0.1))   # 11.1 km
        monkeypatch.setattr(settings, "DEFAULT_RADIUS_KM", 5.0)

        assert store.list_nearby(origin) == []

    def test_group_beyond_radius_excluded(self, store, origin):
        radius_km = 10
        store.create_group(offset(origin, d_lat=radius_km / 111 + 0.001))

        assert store.list_nearby(origin, radius_km=radius_km) == []

    def test_distance_is_euclidean_in_degrees(self, store, origin):
        # 0.3 / 0.4 degree legs -> 0.5 degrees -> 55.5 km
        group = store.create_group(offset(origin, d_lat=0.3, d_lng=0.4))

        assert store.list_nearby(origin, radius_km=55) == []
        assert [g.id for g in store.list_nearby(origin, radius_km=56)] == [group.id]

    def test_longitude_degree_not_scaled_by_latitude(self, store):
        north = Coordinates(latitude=60.0, longitude=10.0)
        group = store.create_group(offset(north, d_lng=0.45))

        assert [g.id for g in store.list_nearby(north, radius_km=50)] == [group.id]

    def test_negative_radius_rejected(self, store, origin):
        with pytest.raises(ValueError):
            store.list_nearby(origin, radius_km=-1)

    def test_empty_when_nothing_nearby(self, store, origin):
        assert store.list_nearby(origin) == []


class TestListNearbyOrderingAndExpiry:
    """Test expiry-based ordering and exclusion of expired groups."""

    def test_sorted_by_expiry_ascending(self, store, origin, clock):
        start = clock.now
        clock.now = start + 5_000
        later = store.create_group(origin, name="later")
        clock.now = start
        sooner = store.create_group(origin, name="sooner")
        clock.now = start + 1_000
        middle = store.create_group(origin, name="middle")

        result = store.list_nearby(origin)

        assert [g.id for g in result] == [sooner.id, middle.id, later.id]
        expiries = [g.expires_at for g in result]
        assert expiries == sorted(expiries)

    def test_expired_group_never_listed(self, store, origin, clock):
        group = store.create_group(origin)

        clock.now = group.expires_at - 1
        assert [g.id for g in store.list_nearby(origin)] == [group.id]

        clock.now = group.expires_at
        result = store.list_nearby(origin)
        assert result == []
        assert all(g.expires_at > clock.now for g in result)

    def test_nearby_sweeps_without_timer(self, store, origin, clock):
        group = store.create_group(origin)
        store.post_message(group.id, "hello", handle="juan")

        clock.advance(GROUP_LIFETIME_MS + 1)
        store.list_nearby(Coordinates(latitude=0, longitude=0))

        assert store.directory.get(group.id) is None
        assert not store.messages.has_log(group.id)

    def test_nearby_sweeps_once_per_call(self, store, origin, monkeypatch):
        store.create_group(origin)
        calls = []
        directory_sweep = store.directory.sweep

        def counting_sweep(now=None):
            calls.append(now)
            return directory_sweep(now)

        monkeypatch.setattr(store.directory, "sweep", counting_sweep)
        store.list_nearby(origin)

        assert len(calls) == 1


class TestSweep:
    """Test eviction of expired groups."""

    def test_sweep_removes_only_expired(self, store, origin, clock):
        old = store.create_group(origin, name="old")
        clock.advance(60_000)
        fresh = store.create_group(origin, name="fresh")

        expired = store.sweep(old.expires_at)

        assert [g.id for g in expired] == [old.id]
        assert store.directory.get(old.id) is None
        assert store.directory.get(fresh.id) == fresh

    def test_sweep_cascades_to_messages(self, store, origin, clock):
        group = store.create_group(origin)
        store.post_message(group.id, "hello", handle="juan")
        assert store.messages.count(group.id) == 1

        clock.advance(GROUP_LIFETIME_MS)
        store.sweep()

        assert store.get_messages(group.id) == []
        assert not store.messages.has_log(group.id)
        assert store.list_nearby(origin) == []

    def test_sweep_is_idempotent(self, store, origin, clock):
        old = store.create_group(origin, name="old")
        store.post_message(old.id, "about to vanish")
        clock.advance(1_000)
        store.create_group(origin, name="young")
        clock.now = old.expires_at + 500

        first = store.sweep()
        state_after_first = store.stats()
        second = store.sweep()

        assert len(first) == 1
        assert second == []
        assert store.stats() == state_after_first

    def test_sweep_with_nothing_expired(self, store, origin):
        store.create_group(origin)
        assert store.sweep() == []
        assert store.stats()["live_groups"] == 1


class TestStandaloneDirectory:
    """Test GroupDirectory without the SparkStore facade."""

    def test_directory_without_message_store(self, clock, origin):
        directory = GroupDirectory(clock=clock)
        group = directory.create_group(origin, name="solo")

        assert len(directory) == 1
        clock.advance(GROUP_LIFETIME_MS)
        assert directory.list_nearby(origin) == []
        assert directory.get(group.id) is None

    def test_directory_cascades_to_attached_store(self, clock, origin):
        messages = MessageStore(clock=clock)
        directory = GroupDirectory(message_store=messages, clock=clock)
        group = directory.create_group(origin)
        messages.post_message(group, "hi")

        directory.sweep(group.expires_at)

        assert messages.get_messages(group.id) == []
        assert not messages.has_log(group.id)

    def test_injected_id_factory(self, clock, origin):
        ids = iter(["g1", "g2"])
        directory = GroupDirectory(clock=clock, id_factory=lambda: next(ids))

        assert directory.create_group(origin).id == "g1"
        assert directory.create_group(origin).id == "g2"
