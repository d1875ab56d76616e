"""
Sync notifier: fans file change events out to the live connections of a project.

Rooms are keyed by project id. Every subscriber owns an outbox that its own
sender task drains, so publish only enqueues and never waits on a slow client.
Delivery is best-effort and at-most-once: once a subscriber has
notifier_queue_size events pending, further events for it are dropped.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set, Union

from app.config import get_settings

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileUpdated:
    project_name: str
    owner: str
    path: str
    content: str
    encoding: str
    version: int

    def to_message(self) -> dict:
        return {
            "type": "file-updated",
            "projectName": self.project_name,
            "owner": self.owner,
            "path": self.path,
            "content": self.content,
            "encoding": self.encoding,
            "version": self.version,
        }


@dataclass(frozen=True)
class FileDeleted:
    project_name: str
    owner: str
    path: str

    def to_message(self) -> dict:
        return {
            "type": "file-deleted",
            "projectName": self.project_name,
            "owner": self.owner,
            "path": self.path,
        }


Event = Union[FileUpdated, FileDeleted]

_ids = itertools.count(1)


class Subscriber:
    """One live connection. Events are bounded; control replies always get through."""

    def __init__(self, user_email: str, max_pending: Optional[int] = None) -> None:
        self.id = next(_ids)
        self.user_email = user_email
        if max_pending is None:
            max_pending = get_settings().notifier_queue_size
        self.max_pending = max_pending
        self.dropped = 0
        self._pending_events = 0
        self._outbox: asyncio.Queue = asyncio.Queue()

    def __repr__(self) -> str:
        return f"Subscriber(id={self.id}, user={self.user_email})"

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    def offer(self, message: dict) -> bool:
        """Enqueue an event; False (and counted as dropped) when the outbox is full."""
        if self._pending_events >= self.max_pending:
            self.dropped += 1
            return False
        self._pending_events += 1
        self._outbox.put_nowait((True, message))
        return True

    def reply(self, message: dict) -> None:
        self._outbox.put_nowait((False, message))

    def close(self) -> None:
        """Wake the sender task so it can exit."""
        self._outbox.put_nowait((False, None))

    async def next_message(self) -> Optional[dict]:
        """Next outgoing message in enqueue order; None after close()."""
        is_event, message = await self._outbox.get()
        if is_event:
            self._pending_events -= 1
        return message


class SyncNotifier:
    """Room registry with the reverse index needed to drop a connection from every room."""

    def __init__(self) -> None:
        self._rooms: Dict[int, Set[Subscriber]] = {}
        self._memberships: Dict[Subscriber, Set[int]] = {}

    def subscribe(self, room: int, subscriber: Subscriber) -> None:
        self._rooms.setdefault(room, set()).add(subscriber)
        self._memberships.setdefault(subscriber, set()).add(room)
        log.debug("%r joined room %s", subscriber, room)

    def unsubscribe(self, room: int, subscriber: Subscriber) -> bool:
        """Remove subscriber from one room. False if it was not a member."""
        members = self._rooms.get(room)
        if not members or subscriber not in members:
            return False
        members.discard(subscriber)
        if not members:
            del self._rooms[room]
        rooms = self._memberships.get(subscriber)
        if rooms is not None:
            rooms.discard(room)
            if not rooms:
                del self._memberships[subscriber]
        log.debug("%r left room %s", subscriber, room)
        return True

    def disconnect(self, subscriber: Subscriber) -> None:
        for room in list(self._memberships.get(subscriber, ())):
            self.unsubscribe(room, subscriber)
        self._memberships.pop(subscriber, None)

    def publish(self, room: int, event: Event) -> int:
        """Enqueue event for every member of the room; returns how many accepted it."""
        message = event.to_message()
        delivered = 0
        for subscriber in list(self._rooms.get(room, ())):
            if subscriber.offer(message):
                delivered += 1
            else:
                log.warning(
                    "Dropped %s for %r: %d events pending",
                    message["type"],
                    subscriber,
                    subscriber.max_pending,
                )
        return delivered

    def room_size(self, room: int) -> int:
        return len(self._rooms.get(room, ()))

    def rooms_of(self, subscriber: Subscriber) -> Set[int]:
        return set(self._memberships.get(subscriber, ()))


notifier = SyncNotifier()


def get_notifier() -> SyncNotifier:
    """Process-wide notifier used by the file store and the live channel."""
    return notifier
