from __future__ import annotations

import threading
from typing import Callable, Iterable

from linkvault.backend.records import (
    BookmarkRecord,
    ChangeFeedEvent,
    DeleteEvent,
    InsertEvent,
    UpdateEvent,
    sort_key,
)

ChangeListener = Callable[[list[BookmarkRecord]], None]


class BookmarkListState:
    """One user's bookmark list, newest first.

    Every mutation returns True when the visible list changed. Once closed,
    mutations are ignored so late poll ticks or channel callbacks cannot touch
    a torn-down view.
    """

    def __init__(self, user_id: int, records: Iterable[BookmarkRecord] = ()):
        self.user_id = user_id
        self._items: list[BookmarkRecord] = self._owned_sorted(records)
        self._lock = threading.RLock()
        self._closed = False
        self._listeners: list[ChangeListener] = []

    @property
    def items(self) -> list[BookmarkRecord]:
        with self._lock:
            return list(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, bookmark_id) -> bool:
        return any(item.id == bookmark_id for item in self.items)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def replace(self, records: Iterable[BookmarkRecord]) -> bool:
        with self._lock:
            if self._closed:
                return False
            fresh = self._owned_sorted(records)
            if fresh == self._items:
                return False
            self._items = fresh
        self._notify()
        return True

    def apply(self, event: ChangeFeedEvent) -> bool:
        if isinstance(event, InsertEvent):
            return self.prepend(event.row)
        if isinstance(event, UpdateEvent):
            return self.update(event.old_id, event.row)
        if isinstance(event, DeleteEvent):
            return self.remove(event.old_id)
        return False

    def prepend(self, record: BookmarkRecord) -> bool:
        with self._lock:
            if self._closed or record.user_id != self.user_id:
                return False
            if any(item.id == record.id for item in self._items):
                return False
            self._items.insert(0, record)
        self._notify()
        return True

    def update(self, bookmark_id, record: BookmarkRecord) -> bool:
        with self._lock:
            if self._closed or record.user_id != self.user_id:
                return False
            for index, item in enumerate(self._items):
                if item.id == bookmark_id:
                    if item == record:
                        return False
                    self._items[index] = record
                    break
            else:
                return False
        self._notify()
        return True

    def remove(self, bookmark_id) -> bool:
        with self._lock:
            if self._closed:
                return False
            remaining = [item for item in self._items if item.id != bookmark_id]
            if len(remaining) == len(self._items):
                return False
            self._items = remaining
        self._notify()
        return True

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._listeners.clear()

    def _owned_sorted(self, records: Iterable[BookmarkRecord]) -> list[BookmarkRecord]:
        owned = [record for record in records if record.user_id == self.user_id]
        return sorted(owned, key=sort_key, reverse=True)

    def _notify(self) -> None:
        snapshot = self.items
        for listener in list(self._listeners):
            listener(snapshot)
