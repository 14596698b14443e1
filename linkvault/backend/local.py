from __future__ import annotations

import logging
from contextlib import nullcontext

from flask import Flask, has_app_context, has_request_context, request
from flask_login import current_user, login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from linkvault.backend.realtime import RealtimeService
from linkvault.backend.records import (
    BookmarkRecord,
    ChangeFeedEvent,
    Identity,
    change_payload,
    event_from_dict,
)
from linkvault.errors import StorageError, ValidationError
from linkvault.extensions import db
from linkvault.models import (
    CHANGE_DELETE,
    CHANGE_INSERT,
    CHANGE_UPDATE,
    ApiToken,
    Bookmark,
    ChangeEvent,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("url", "title")


def _storage_error(exc: SQLAlchemyError) -> StorageError:
    message = str(getattr(exc, "orig", None) or exc).strip()
    return StorageError(message or exc.__class__.__name__)


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.removeprefix("Bearer ").strip()
    return token or None


class LocalAuth:
    def __init__(self, backend: "LocalBackend"):
        self._backend = backend

    def get_current_user(self) -> Identity | None:
        if not has_request_context():
            return None
        if current_user.is_authenticated:
            return Identity.from_user(current_user)

        token_row = self._token_row()
        if token_row is None:
            return None
        token_row.last_used_at = utcnow()
        db.session.commit()
        return Identity.from_user(token_row.user)

    def sign_in(self, email: str, password: str) -> Identity | None:
        user = User.query.filter_by(email=(email or "").strip().lower()).first()
        if not user or not user.is_active or not user.check_password(password):
            return None
        login_user(user)
        return Identity.from_user(user)

    def register(self, email: str, password: str) -> Identity:
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required.")
        if User.query.filter_by(email=email).first():
            raise ValidationError("An account with that email already exists.")

        user = User(email=email, is_active=True)
        user.set_password(password)
        db.session.add(user)
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise _storage_error(exc) from exc
        return Identity.from_user(user)

    def issue_token(self, email: str, password: str, name: str) -> tuple[str, Identity] | None:
        user = User.query.filter_by(email=(email or "").strip().lower()).first()
        if not user or not user.is_active or not user.check_password(password):
            return None
        token, token_hash = ApiToken.issue_token()
        db.session.add(ApiToken(user_id=user.id, name=name, token_hash=token_hash))
        db.session.commit()
        return token, Identity.from_user(user)

    def sign_out(self) -> None:
        if not has_request_context():
            return
        token_row = self._token_row()
        if token_row is not None:
            token_row.revoked_at = utcnow()
            db.session.commit()
        logout_user()

    def _token_row(self) -> ApiToken | None:
        token = _bearer_token()
        if not token:
            return None
        token_row = ApiToken.query.filter_by(token_hash=ApiToken.hash_token(token)).first()
        if not token_row or token_row.revoked_at is not None:
            return None
        if not token_row.user.is_active:
            return None
        return token_row


class LocalStorage:
    def __init__(self, backend: "LocalBackend"):
        self._backend = backend

    def insert(self, row: dict) -> BookmarkRecord:
        with self._backend.context():
            try:
                bookmark = Bookmark(
                    user_id=row["user_id"], url=row["url"], title=row["title"]
                )
                db.session.add(bookmark)
                db.session.flush()
                record = BookmarkRecord.from_model(bookmark)
                self._log_change(record.user_id, record.id, CHANGE_INSERT, change_payload(new=record))
                db.session.commit()
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise _storage_error(exc) from exc
            self._backend.realtime.pump()
        return record

    def select(self, user_id: int) -> list[BookmarkRecord]:
        with self._backend.context():
            try:
                rows = (
                    Bookmark.query.filter_by(user_id=user_id)
                    .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
                    .all()
                )
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise _storage_error(exc) from exc
            return [BookmarkRecord.from_model(row) for row in rows]

    def update(self, bookmark_id: int, user_id: int, **changes) -> BookmarkRecord | None:
        with self._backend.context():
            try:
                bookmark = Bookmark.query.filter_by(id=bookmark_id, user_id=user_id).first()
                if not bookmark:
                    return None
                for field in UPDATABLE_FIELDS:
                    if field in changes and changes[field] is not None:
                        setattr(bookmark, field, changes[field])
                db.session.flush()
                record = BookmarkRecord.from_model(bookmark)
                self._log_change(
                    user_id,
                    bookmark_id,
                    CHANGE_UPDATE,
                    change_payload(new=record, old_id=bookmark_id),
                )
                db.session.commit()
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise _storage_error(exc) from exc
            self._backend.realtime.pump()
        return record

    def delete(self, bookmark_id: int, user_id: int) -> int:
        with self._backend.context():
            try:
                bookmark = Bookmark.query.filter_by(id=bookmark_id, user_id=user_id).first()
                if not bookmark:
                    return 0
                db.session.delete(bookmark)
                self._log_change(
                    user_id, bookmark_id, CHANGE_DELETE, change_payload(old_id=bookmark_id)
                )
                db.session.commit()
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise _storage_error(exc) from exc
            self._backend.realtime.pump()
        return 1

    @staticmethod
    def _log_change(user_id: int, bookmark_id: int, action: str, payload: dict) -> None:
        db.session.add(
            ChangeEvent(
                user_id=user_id,
                bookmark_id=bookmark_id,
                action=action,
                payload=payload,
            )
        )


class LocalRealtime(RealtimeService):
    def __init__(self, backend: "LocalBackend", scheduler=None, pump_seconds: float = 1.0):
        super().__init__(scheduler=scheduler, pump_seconds=pump_seconds)
        self._backend = backend

    def latest_cursor(self, user_id: int) -> int:
        with self._backend.context():
            try:
                return (
                    db.session.query(db.func.max(ChangeEvent.id))
                    .filter_by(user_id=user_id)
                    .scalar()
                    or 0
                )
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise _storage_error(exc) from exc

    def read_page(self, user_id: int, since: int, limit: int) -> list[ChangeEvent]:
        with self._backend.context():
            try:
                return (
                    ChangeEvent.query.filter_by(user_id=user_id)
                    .filter(ChangeEvent.id > since)
                    .order_by(ChangeEvent.id.asc())
                    .limit(limit)
                    .all()
                )
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise _storage_error(exc) from exc

    def feed_page(self, user_id: int, since: int, limit: int) -> dict:
        rows = self.read_page(user_id, since, limit)
        return {
            "events": [row.as_dict() for row in rows],
            "cursor": rows[-1].id if rows else since,
            "has_more": len(rows) == limit,
        }

    def _head(self, user_id: int) -> int:
        return self.latest_cursor(user_id)

    def _fetch_since(self, user_id: int, cursor: int) -> tuple[list[ChangeFeedEvent], int]:
        with self._backend.context():
            page_size = int(self._backend.app.config.get("CHANGE_FEED_PAGE_SIZE", 200))
            rows = self.read_page(user_id, cursor, page_size)
            events = []
            for row in rows:
                event = event_from_dict(row.as_dict())
                if event is not None:
                    events.append(event)
            latest = rows[-1].id if rows else cursor
        return events, latest


class LocalBackend:
    """Backend contract served from this application's own database."""

    def __init__(self, app: Flask, scheduler=None):
        self.app = app
        self.auth = LocalAuth(self)
        self.storage = LocalStorage(self)
        self.realtime = LocalRealtime(
            self,
            scheduler=scheduler,
            pump_seconds=float(app.config.get("REALTIME_PUMP_SECONDS", 1.0)),
        )

    def context(self):
        if has_app_context():
            return nullcontext()
        return self.app.app_context()
