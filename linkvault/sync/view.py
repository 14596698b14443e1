from __future__ import annotations

import logging
import threading
from typing import Iterable

from linkvault.backend.records import BookmarkRecord, Identity
from linkvault.errors import ChannelError, StorageError
from linkvault.sync.state import BookmarkListState, ChangeListener
from linkvault.sync.strategies import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    STRATEGY_AUTO,
    STRATEGY_SUBSCRIPTION,
    SYNC_STRATEGIES,
    PollingSync,
    SubscriptionSync,
)

logger = logging.getLogger(__name__)


class BookmarkListView:
    """A live bookmark list for one identity.

    ``open`` loads the snapshot and starts synchronizing: event subscription
    by default, fixed-interval polling when asked for or when the channel
    cannot be opened. ``close`` stops whichever strategy is running; state is
    frozen from then on.
    """

    def __init__(
        self,
        backend,
        identity: Identity,
        scheduler,
        strategy: str = STRATEGY_AUTO,
        optimistic_delete: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        initial: Iterable[BookmarkRecord] | None = None,
        on_change: ChangeListener | None = None,
    ):
        if strategy not in SYNC_STRATEGIES:
            raise ValueError(f"unknown sync strategy: {strategy}")
        self.backend = backend
        self.identity = identity
        self.scheduler = scheduler
        self.strategy = strategy
        self.optimistic_delete = optimistic_delete
        self.poll_interval = poll_interval
        self.state = BookmarkListState(identity.id)
        self.sync: PollingSync | SubscriptionSync | None = None
        self.pending_deletes: set = set()
        self._pending_lock = threading.Lock()
        self._initial = list(initial) if initial is not None else None
        if on_change is not None:
            self.state.add_listener(on_change)

    @property
    def items(self) -> list[BookmarkRecord]:
        return self.state.items

    @property
    def is_empty(self) -> bool:
        return len(self.state) == 0

    @property
    def active_strategy(self) -> str | None:
        return self.sync.name if self.sync else None

    def open(self) -> "BookmarkListView":
        if self._initial is not None:
            self.state.replace(self._initial)
            self.sync = self._start_sync()
            return self

        # Subscribe before the first fetch so no change slips between the two.
        self.sync = self._start_sync()
        try:
            self.refresh()
        except StorageError:
            self.close()
            raise
        return self

    def refresh(self) -> bool:
        records = self.backend.storage.select(self.identity.id)
        return self.state.replace(records)

    def delete(self, bookmark_id) -> bool:
        """Delete one bookmark; returns False when a delete for it is already pending."""
        with self._pending_lock:
            if bookmark_id in self.pending_deletes:
                return False
            self.pending_deletes.add(bookmark_id)

        try:
            if self.optimistic_delete:
                self.state.remove(bookmark_id)
            try:
                self.backend.storage.delete(bookmark_id, self.identity.id)
            except StorageError:
                if self.optimistic_delete:
                    self._compensate_failed_delete(bookmark_id)
                raise
        finally:
            with self._pending_lock:
                self.pending_deletes.discard(bookmark_id)
        return True

    def close(self) -> None:
        sync, self.sync = self.sync, None
        if sync is not None:
            sync.stop()
        self.state.close()

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc_info):
        self.close()

    def _start_sync(self) -> PollingSync | SubscriptionSync:
        if self.strategy in {STRATEGY_AUTO, STRATEGY_SUBSCRIPTION}:
            subscription = SubscriptionSync(self.state, self.backend.realtime)
            try:
                subscription.start()
                return subscription
            except ChannelError as exc:
                if self.strategy == STRATEGY_SUBSCRIPTION:
                    raise
                logger.warning(
                    "Change channel unavailable for user %s, falling back to polling: %s",
                    self.identity.id,
                    exc,
                )

        polling = PollingSync(
            self.state,
            self.backend.storage,
            self.scheduler,
            interval_seconds=self.poll_interval,
        )
        polling.start()
        return polling

    def _compensate_failed_delete(self, bookmark_id) -> None:
        logger.warning(
            "Delete of bookmark %s failed, reloading list for user %s",
            bookmark_id,
            self.identity.id,
        )
        try:
            self.refresh()
        except StorageError as exc:
            logger.warning("Reload after failed delete also failed: %s", exc)

