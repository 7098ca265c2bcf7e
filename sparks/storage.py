import logging
import threading
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Tuple

from sparks.config import settings
from sparks.errors import GroupNotFound, PolicyViolation
from sparks.geo import is_within_radius
from sparks.metrics import record_group_created, record_post_outcome, record_sweep
from sparks.models import (
    DEFAULT_GROUP_NAME,
    GROUP_LIFETIME_MS,
    Coordinates,
    Group,
    Message,
    resolve_display_name,
)
from sparks.utils import new_id, now_ms

logger = logging.getLogger(__name__)

Clock = Callable[[], int]
IdFactory = Callable[[], str]
MessageListener = Callable[[Message], None]


class Subscription:
    """Handle returned by MessageStore.subscribe; cancel() unregisters."""

    def __init__(self, store: "MessageStore", group_id: str, listener: MessageListener):
        self._store = store
        self.group_id = group_id
        self.listener = listener

    def cancel(self) -> None:
        self._store._unsubscribe(self)


class _Delivery:
    """
    Pending notifications of one group.

    Entries are queued under the store lock, so the queue follows
    append order. Whoever holds `draining` delivers them, outside the
    store lock; other posters leave their entries for that thread.
    """

    def __init__(self):
        self.pending: Deque[Tuple[Message, List[Subscription]]] = deque()
        self.draining = threading.Lock()


# =============================================================================
# Message Store
# =============================================================================

class MessageStore:
    """
    Per-group, append-only message logs.

    A log is registered when its group is created and evicted only when
    the group expires. Posting never creates a log on its own, so a
    write racing an eviction is refused instead of resurrecting it.
    """

    def __init__(
        self,
        lock: Optional[threading.RLock] = None,
        clock: Clock = now_ms,
        id_factory: IdFactory = new_id,
    ):
        self._lock = lock or threading.RLock()
        self._clock = clock
        self._id_factory = id_factory
        self._logs: Dict[str, List[Message]] = {}
        self._listeners: Dict[str, List[Subscription]] = {}
        self._deliveries: Dict[str, _Delivery] = {}

    def register(self, group_id: str) -> None:
        with self._lock:
            self._logs.setdefault(group_id, [])

    def post_message(
        self,
        group: Group,
        text: str,
        anonymous: bool = False,
        handle: Optional[str] = None,
    ) -> Optional[Message]:
        """
        Append a message and notify the group's subscribers.

        Subscribers are called after the store lock is released.

        Returns:
            The stored Message, or None when the trimmed text is empty
        """
        message = self.append(group, text, anonymous=anonymous, handle=handle)
        if message is not None:
            self.flush_notifications(group.id)
        return message

    def append(
        self,
        group: Group,
        text: str,
        anonymous: bool = False,
        handle: Optional[str] = None,
    ) -> Optional[Message]:
        """
        Append a message to a group's log and queue its notifications.

        Args:
            group: Owning group, used for its anonymous posting policy
            text: Raw message text; trimmed before storing
            anonymous: Post under the anonymous label
            handle: Poster's handle, used when not anonymous

        Returns:
            The stored Message, or None when the trimmed text is empty

        Raises:
            PolicyViolation: anonymous post to a named-only group
            GroupNotFound: no log registered for the group
        """
        text = (text or "").strip()
        if not text:
            logger.debug(f"Ignoring blank message for group {group.id}")
            return None

        if anonymous and not group.anonymous_allowed:
            logger.warning(f"Anonymous post refused for group {group.id}")
            raise PolicyViolation("anonymous posting not permitted for this group")

        with self._lock:
            log = self._logs.get(group.id)
            if log is None:
                raise GroupNotFound(group.id)

            message = Message(
                id=self._id_factory(),
                group_id=group.id,
                text=text,
                created_at=self._clock(),
                display_name=resolve_display_name(anonymous, handle),
                anonymous=anonymous,
            )
            log.append(message)
            logger.info(f"Message posted: id={message.id}, group={group.id}, anonymous={anonymous}")

            subscriptions = self._listeners.get(group.id)
            if subscriptions:
                delivery = self._deliveries.setdefault(group.id, _Delivery())
                delivery.pending.append((message, list(subscriptions)))
            return message

    def get_messages(self, group_id: str) -> List[Message]:
        """Messages in insertion order; empty for unknown ids."""
        with self._lock:
            return list(self._logs.get(group_id, []))

    def count(self, group_id: Optional[str] = None) -> int:
        with self._lock:
            if group_id is not None:
                return len(self._logs.get(group_id, []))
            return sum(len(log) for log in self._logs.values())

    def has_log(self, group_id: str) -> bool:
        with self._lock:
            return group_id in self._logs

    def evict(self, group_id: str) -> int:
        """
        Drop a group's whole log and its subscriptions.

        Returns:
            Number of messages removed
        """
        with self._lock:
            removed = self._logs.pop(group_id, [])
            self._listeners.pop(group_id, None)
            self._deliveries.pop(group_id, None)
            if removed:
                logger.debug(f"Evicted {len(removed)} messages for group {group_id}")
            return len(removed)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, group_id: str, listener: MessageListener) -> Subscription:
        """Call listener with every new message of group_id, in append order."""
        subscription = Subscription(self, group_id, listener)
        with self._lock:
            self._listeners.setdefault(group_id, []).append(subscription)
        logger.debug(f"Subscribed to group {group_id}")
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._listeners.get(subscription.group_id)
            if subs and subscription in subs:
                subs.remove(subscription)
                if not subs:
                    self._listeners.pop(subscription.group_id, None)

    def flush_notifications(self, group_id: str) -> None:
        """
        Deliver queued notifications for a group.

        Must be called without the store lock held. Returns at once when
        another thread is already delivering for this group; that thread
        picks up whatever was queued.
        """
        with self._lock:
            delivery = self._deliveries.get(group_id)
        if delivery is None:
            return

        while delivery.pending:
            if not delivery.draining.acquire(blocking=False):
                return
            try:
                while True:
                    try:
                        message, subscriptions = delivery.pending.popleft()
                    except IndexError:
                        break
                    for subscription in subscriptions:
                        try:
                            subscription.listener(message)
                        except Exception:
                            logger.exception(f"Listener failed for group {group_id}")
            finally:
                delivery.draining.release()


# =============================================================================
# Group Directory
# =============================================================================

class GroupDirectory:
    """
    Registry of live groups and proximity search over them.

    Groups are kept in creation order. When a message store is attached,
    creation registers the group's log and eviction cascades to it while
    the lock is still held, so the pair is never observed half-removed.
    """

    def __init__(
        self,
        message_store: Optional[MessageStore] = None,
        lock: Optional[threading.RLock] = None,
        clock: Clock = now_ms,
        id_factory: IdFactory = new_id,
    ):
        self._lock = lock or threading.RLock()
        self._clock = clock
        self._id_factory = id_factory
        self._message_store = message_store
        self._groups: Dict[str, Group] = {}

    def create_group(
        self,
        coordinates: Coordinates,
        name: Optional[str] = None,
        anonymous_allowed: bool = True,
        icebreaker: Optional[str] = None,
    ) -> Group:
        """
        Create a group that expires 24 hours from now.

        Args:
            coordinates: Where the group is anchored
            name: Display name; blank falls back to DEFAULT_GROUP_NAME
            anonymous_allowed: Whether anonymous posts are accepted
            icebreaker: Optional opening prompt

        Returns:
            The fully populated Group
        """
        with self._lock:
            created_at = self._clock()
            group = Group(
                id=self._id_factory(),
                name=(name or "").strip() or DEFAULT_GROUP_NAME,
                created_at=created_at,
                expires_at=created_at + GROUP_LIFETIME_MS,
                lat=coordinates.latitude,
                lng=coordinates.longitude,
                anonymous_allowed=anonymous_allowed,
                icebreaker=icebreaker or None,
            )
            self._groups[group.id] = group
            if self._message_store is not None:
                self._message_store.register(group.id)

        logger.info(f"Group created: id={group.id}, name={group.name!r}, lat={group.lat}, lng={group.lng}")
        return group

    def get(self, group_id: str) -> Optional[Group]:
        with self._lock:
            return self._groups.get(group_id)

    def list_nearby(
        self,
        origin: Coordinates,
        radius_km: Optional[float] = None,
        now: Optional[int] = None,
        sweep: bool = True,
    ) -> List[Group]:
        """
        Live groups within radius_km of origin, soonest-to-expire first.

        Expired groups are swept before filtering, so the result never
        contains one even if the periodic sweep has not run yet. Callers
        that have just swept pass sweep=False; expired groups are still
        filtered out.
        """
        if radius_km is None:
            radius_km = settings.DEFAULT_RADIUS_KM
        if radius_km < 0:
            raise ValueError("radius_km must be >= 0")

        with self._lock:
            if now is None:
                now = self._clock()
            if sweep:
                self.sweep(now)
            nearby = [
                g for g in self._groups.values()
                if g.is_live(now) and is_within_radius(g, origin, radius_km)
            ]

        logger.debug(f"Nearby query: origin=({origin.latitude}, {origin.longitude}), radius={radius_km}, found={len(nearby)}")
        return sorted(nearby, key=lambda g: g.expires_at)

    def sweep(self, now: Optional[int] = None) -> List[Group]:
        """
        Remove every group with expires_at <= now.

        Returns:
            The groups that were removed (empty when nothing expired)
        """
        with self._lock:
            if now is None:
                now = self._clock()
            expired = [g for g in self._groups.values() if not g.is_live(now)]
            for group in expired:
                del self._groups[group.id]
                if self._message_store is not None:
                    self._message_store.evict(group.id)

        if expired:
            logger.info(f"Swept {len(expired)} expired groups")
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._groups)


# =============================================================================
# Spark Store
# =============================================================================

class SparkStore:
    """
    In-process service contract over a GroupDirectory and its MessageStore.

    Both components share one reentrant lock, so creation, posting,
    sweeping and reads are mutually exclusive and each call is
    all-or-nothing. Subscribers are notified after the lock is released.
    """

    def __init__(self, clock: Clock = now_ms, id_factory: IdFactory = new_id):
        self._lock = threading.RLock()
        self._clock = clock
        self.messages = MessageStore(lock=self._lock, clock=clock, id_factory=id_factory)
        self.directory = GroupDirectory(
            message_store=self.messages,
            lock=self._lock,
            clock=clock,
            id_factory=id_factory,
        )

    def now(self) -> int:
        return self._clock()

    def create_group(
        self,
        coordinates: Coordinates,
        name: Optional[str] = None,
        anonymous_allowed: bool = True,
        icebreaker: Optional[str] = None,
    ) -> Group:
        with self._lock:
            group = self.directory.create_group(
                coordinates,
                name=name,
                anonymous_allowed=anonymous_allowed,
                icebreaker=icebreaker,
            )
            record_group_created(len(self.directory))
        return group

    def list_nearby(self, origin: Coordinates, radius_km: Optional[float] = None) -> List[Group]:
        with self._lock:
            now = self._clock()
            self.sweep(now)
            return self.directory.list_nearby(origin, radius_km, now=now, sweep=False)

    def get_group(self, group_id: str) -> Optional[Group]:
        """The live group with this id, or None."""
        with self._lock:
            group = self.directory.get(group_id)
            if group is None or not group.is_live(self._clock()):
                return None
            return group

    def post_message(
        self,
        group_id: str,
        text: str,
        anonymous: bool = False,
        handle: Optional[str] = None,
    ) -> Optional[Message]:
        """
        Post to a live group.

        Returns:
            The stored Message, or None for blank text (even when the
            group is unknown)

        Raises:
            GroupNotFound: unknown or expired group
            PolicyViolation: anonymous post to a named-only group
        """
        if not (text or "").strip():
            record_post_outcome("ignored")
            return None

        with self._lock:
            group = self.get_group(group_id)
            if group is None:
                record_post_outcome("not_found")
                raise GroupNotFound(group_id)

            try:
                message = self.messages.append(group, text, anonymous=anonymous, handle=handle)
            except PolicyViolation:
                record_post_outcome("policy_violation")
                raise
            except GroupNotFound:
                record_post_outcome("not_found")
                raise

        record_post_outcome("created")
        self.messages.flush_notifications(group_id)
        return message

    def get_messages(self, group_id: str) -> List[Message]:
        """Messages of a live group in insertion order; empty otherwise."""
        with self._lock:
            if self.get_group(group_id) is None:
                return []
            return self.messages.get_messages(group_id)

    def subscribe(self, group_id: str, listener: MessageListener) -> Subscription:
        with self._lock:
            if self.get_group(group_id) is None:
                raise GroupNotFound(group_id)
            return self.messages.subscribe(group_id, listener)

    def sweep(self, now: Optional[int] = None) -> List[Group]:
        with self._lock:
            expired = self.directory.sweep(now)
            record_sweep(len(expired), len(self.directory))
        return expired

    def stats(self) -> dict:
        with self._lock:
            return {
                "live_groups": len(self.directory),
                "messages": self.messages.count(),
            }
