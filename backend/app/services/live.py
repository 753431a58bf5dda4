"""
Live read model for the gallery and leaderboard.

Writers publish a ChangeEvent on the ChangeBus after their transaction
commits. A PumpkinFeed holds one watcher task per query: every change wakes
the watcher, which re-reads the query once and pushes the snapshot to each
subscriber whose last snapshot differs. Bursts of changes collapse into a
single reload.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.pumpkin import Pumpkin, PumpkinStatus
from app.schemas.pumpkin import PumpkinResponse, pumpkin_to_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """A committed write. ``kind`` is one of submitted, status, deleted, vote, reset, recount."""
    kind: str
    pumpkin_ids: tuple[str, ...] = ()


Listener = Callable[[ChangeEvent], None]


class ChangeBus:
    """In-process stream of committed writes."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def listen(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def publish(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


change_bus = ChangeBus()

Snapshot = list[PumpkinResponse]
SnapshotCallback = Callable[[Snapshot], Union[None, Awaitable[None]]]


class _Subscriber:
    def __init__(self, callback: SnapshotCallback):
        self.callback = callback
        self.last_sent: Optional[Snapshot] = None


class PumpkinFeed:
    """
    Continuously updated list of pumpkins, newest submission first.

    ``status`` restricts the feed to one moderation status (approved for the
    public gallery); ``None`` feeds every pumpkin to the admin dashboard.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        bus: Optional[ChangeBus] = None,
        status: Optional[PumpkinStatus] = PumpkinStatus.APPROVED,
    ):
        self.session_maker = session_maker
        self.bus = bus or change_bus
        self.status = status
        self._subscribers: list[_Subscriber] = []
        self._wake: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._detach: Optional[Callable[[], None]] = None

    @property
    def active(self) -> bool:
        """True while the feed holds a watch on the change bus."""
        return self._task is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Start receiving snapshots.

        The current snapshot is delivered shortly after subscribing, then a
        fresh one after every change that alters it.

        Returns:
            A function that cancels the subscription
        """
        subscriber = _Subscriber(callback)
        self._subscribers.append(subscriber)

        if self._task is None:
            self._wake = asyncio.Event()
            self._detach = self.bus.listen(self._on_change)
            self._task = asyncio.create_task(self._watch(), name=f"pumpkin-feed-{self.status}")
        self._wake.set()

        def unsubscribe() -> None:
            self._remove(subscriber)

        return unsubscribe

    def _remove(self, subscriber: _Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
        if not self._subscribers:
            self._stop()

    def _stop(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._wake = None

    async def close(self) -> None:
        """Drop every subscriber and wait for the watcher to exit."""
        task = self._task
        self._subscribers.clear()
        self._stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _on_change(self, event: ChangeEvent) -> None:
        if self._wake is not None:
            self._wake.set()

    async def load(self) -> Snapshot:
        """Read the feed's query from the store."""
        query = select(Pumpkin).order_by(Pumpkin.submitted_at.desc(), Pumpkin.id)
        if self.status is not None:
            query = query.where(Pumpkin.status == self.status)

        async with self.session_maker() as session:
            result = await session.execute(query)
            return [pumpkin_to_response(p) for p in result.scalars().all()]

    async def _watch(self) -> None:
        wake = self._wake
        while True:
            await wake.wait()
            wake.clear()
            try:
                snapshot = await self.load()
            except Exception:
                logger.exception(f"Live feed ({self.status}) could not reload; waiting for next change")
                continue
            await self._fan_out(snapshot)

    async def _fan_out(self, snapshot: Snapshot) -> None:
        for subscriber in list(self._subscribers):
            if subscriber not in self._subscribers or subscriber.last_sent == snapshot:
                continue
            subscriber.last_sent = snapshot
            try:
                result = subscriber.callback(list(snapshot))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Live feed subscriber callback failed")


_feeds: dict[tuple[async_sessionmaker, Optional[PumpkinStatus]], PumpkinFeed] = {}


def get_feed(
    session_maker: async_sessionmaker,
    status: Optional[PumpkinStatus] = PumpkinStatus.APPROVED,
) -> PumpkinFeed:
    """Shared feed for a store and status, so HTTP clients fan out from one watcher."""
    key = (session_maker, status)
    if key not in _feeds:
        _feeds[key] = PumpkinFeed(session_maker, change_bus, status)
    return _feeds[key]
