from __future__ import annotations

import logging
import uuid

from apscheduler.jobstores.base import JobLookupError

from linkvault.backend.realtime import Channel
from linkvault.backend.records import ChangeFeedEvent
from linkvault.errors import StorageError
from linkvault.sync.state import BookmarkListState

logger = logging.getLogger(__name__)

STRATEGY_AUTO = "auto"
STRATEGY_SUBSCRIPTION = "subscription"
STRATEGY_POLLING = "polling"

SYNC_STRATEGIES = {STRATEGY_AUTO, STRATEGY_SUBSCRIPTION, STRATEGY_POLLING}

DEFAULT_POLL_INTERVAL_SECONDS = 3.0


class PollingSync:
    """Re-fetch the whole list on a fixed interval and overwrite local state."""

    name = STRATEGY_POLLING

    def __init__(
        self,
        state: BookmarkListState,
        storage,
        scheduler,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        self.state = state
        self.storage = storage
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.job_id = f"bookmark-poll-{state.user_id}-{uuid.uuid4().hex[:8]}"
        self.running = False

    def start(self) -> None:
        if self.running:
            return
        self.scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id=self.job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.running = True

    def tick(self) -> bool:
        if not self.running or self.state.closed:
            return False
        try:
            records = self.storage.select(self.state.user_id)
        except StorageError as exc:
            logger.warning(
                "Bookmark poll failed for user %s: %s", self.state.user_id, exc
            )
            return False
        if not self.running:
            return False
        return self.state.replace(records)

    def stop(self) -> None:
        self.running = False
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            pass


class SubscriptionSync:
    """Patch local state incrementally from the user's change channel."""

    name = STRATEGY_SUBSCRIPTION

    def __init__(self, state: BookmarkListState, realtime):
        self.state = state
        self.realtime = realtime
        self.channel: Channel | None = None

    @property
    def running(self) -> bool:
        return self.channel is not None

    def start(self) -> None:
        if self.channel is None:
            self.channel = self.realtime.subscribe(self.state.user_id, self.handle)

    def handle(self, event: ChangeFeedEvent) -> bool:
        if self.channel is None:
            return False
        return self.state.apply(event)

    def stop(self) -> None:
        channel, self.channel = self.channel, None
        if channel is not None:
            self.realtime.unsubscribe(channel)
