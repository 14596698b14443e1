from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from dateutil import parser as dt_parser

from linkvault.models import (
    CHANGE_DELETE,
    CHANGE_INSERT,
    CHANGE_UPDATE,
    Bookmark,
    User,
    as_utc,
)


@dataclass(frozen=True)
class Identity:
    id: int
    email: str

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(id=user.id, email=user.email)


@dataclass(frozen=True)
class BookmarkRecord:
    """Detached copy of a bookmark row, safe to hold outside a session."""

    id: int
    user_id: int
    url: str
    title: str
    created_at: datetime

    @classmethod
    def from_model(cls, bookmark: Bookmark) -> "BookmarkRecord":
        return cls(
            id=bookmark.id,
            user_id=bookmark.user_id,
            url=bookmark.url,
            title=bookmark.title,
            created_at=as_utc(bookmark.created_at),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "BookmarkRecord":
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = dt_parser.isoparse(created_at)
        if created_at is None:
            created_at = datetime.now(timezone.utc)
        return cls(
            id=int(data["id"]),
            user_id=int(data["user_id"]),
            url=data.get("url") or "",
            title=data.get("title") or "",
            created_at=as_utc(created_at),
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "url": self.url,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
        }


def sort_key(record: BookmarkRecord):
    return (record.created_at, record.id)


@dataclass(frozen=True)
class InsertEvent:
    row: BookmarkRecord


@dataclass(frozen=True)
class UpdateEvent:
    old_id: int
    row: BookmarkRecord


@dataclass(frozen=True)
class DeleteEvent:
    old_id: int


ChangeFeedEvent = InsertEvent | UpdateEvent | DeleteEvent


def change_payload(
    new: BookmarkRecord | None = None, old_id: int | None = None
) -> dict:
    return {
        "new": new.as_dict() if new else None,
        "old": {"id": old_id} if old_id is not None else None,
    }


def event_from_dict(data: dict) -> ChangeFeedEvent | None:
    """Build a typed event from a change feed entry; unknown types yield None."""
    action = (data.get("type") or "").upper()
    new = data.get("new")
    old = data.get("old") or {}

    if action == CHANGE_INSERT and new:
        return InsertEvent(row=BookmarkRecord.from_dict(new))
    if action == CHANGE_UPDATE and new:
        record = BookmarkRecord.from_dict(new)
        return UpdateEvent(old_id=int(old.get("id", record.id)), row=record)
    if action == CHANGE_DELETE and old.get("id") is not None:
        return DeleteEvent(old_id=int(old["id"]))
    return None
