from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

from apscheduler.jobstores.base import JobLookupError

from linkvault.backend.records import ChangeFeedEvent
from linkvault.errors import ChannelError, StorageError

logger = logging.getLogger(__name__)

EventCallback = Callable[[ChangeFeedEvent], None]


@dataclass
class Channel:
    user_id: int
    callback: EventCallback
    cursor: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    closed: bool = False


class RealtimeService(ABC):
    """Change feed subscriptions driven by cursor pumping.

    Each channel remembers the last feed cursor it has seen. ``pump`` reads
    newer entries for every open channel and hands them to the channel's
    callback. Pumping runs on a scheduler interval while at least one channel
    is open, and backends may also pump right after their own writes.
    """

    def __init__(self, scheduler=None, pump_seconds: float = 1.0):
        self._scheduler = scheduler
        self._pump_seconds = pump_seconds
        self._channels: dict[str, Channel] = {}
        self._lock = threading.Lock()
        self._pump_lock = threading.Lock()
        self._job_id = f"realtime-pump-{uuid.uuid4().hex[:8]}"

    @property
    def channels(self) -> list[Channel]:
        with self._lock:
            return list(self._channels.values())

    def subscribe(self, user_id: int, callback: EventCallback) -> Channel:
        try:
            cursor = self._head(user_id)
        except StorageError as exc:
            raise ChannelError(f"could not open change channel: {exc}") from exc

        channel = Channel(user_id=user_id, callback=callback, cursor=cursor)
        with self._lock:
            self._channels[channel.id] = channel
            first = len(self._channels) == 1
        if first:
            self._schedule_pump()
        logger.debug("Opened channel %s for user %s at cursor %s", channel.id, user_id, cursor)
        return channel

    def unsubscribe(self, channel: Channel) -> None:
        channel.closed = True
        with self._lock:
            removed = self._channels.pop(channel.id, None)
            empty = not self._channels
        if removed and empty:
            self._unschedule_pump()
        if removed:
            logger.debug("Closed channel %s", channel.id)

    def pump(self) -> int:
        delivered = 0
        with self._pump_lock:
            for channel in self.channels:
                if channel.closed:
                    continue
                try:
                    events, cursor = self._fetch_since(channel.user_id, channel.cursor)
                except StorageError as exc:
                    logger.warning(
                        "Change feed read failed for channel %s (user %s): %s",
                        channel.id,
                        channel.user_id,
                        exc,
                    )
                    continue

                for event in events:
                    if channel.closed:
                        break
                    try:
                        channel.callback(event)
                    except Exception as exc:
                        logger.warning(
                            "Change handler failed on channel %s: %s", channel.id, exc
                        )
                    delivered += 1
                channel.cursor = max(channel.cursor, cursor)
        return delivered

    def _schedule_pump(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.add_job(
            self.pump,
            "interval",
            seconds=self._pump_seconds,
            id=self._job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def _unschedule_pump(self) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            pass

    @abstractmethod
    def _head(self, user_id: int) -> int:
        """Latest feed cursor for ``user_id``; new channels start here."""

    @abstractmethod
    def _fetch_since(
        self, user_id: int, cursor: int
    ) -> tuple[list[ChangeFeedEvent], int]:
        """Events for ``user_id`` after ``cursor``, plus the cursor to resume from."""
