from __future__ import annotations

import re
import threading
from urllib.parse import urlsplit

from linkvault.backend.records import BookmarkRecord, Identity
from linkvault.errors import AuthError, StorageError, ValidationError

INVALID_URL_MESSAGE = "Please enter a valid URL"
MISSING_TITLE_MESSAGE = "Please enter a title"
NOT_SIGNED_IN_MESSAGE = "You must be logged in to add bookmarks"
DUPLICATE_SUBMIT_MESSAGE = "A bookmark is already being added."

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
# Schemes whose URLs must carry a host.
HOST_SCHEMES = {"http", "https", "ftp", "ws", "wss"}
# Schemes that run code when the link is opened.
BLOCKED_SCHEMES = {"javascript", "data", "vbscript"}
_FORBIDDEN_HOST_CHARS = set(" \t\n\r<>^|\\%")

_SUBMISSIONS_LOCK = threading.Lock()
_IN_FLIGHT_SUBMISSIONS: set[int] = set()


def validate_url(raw: str | None) -> str:
    value = (raw or "").strip()
    scheme, sep, rest = value.partition(":")
    if not sep or not _SCHEME_RE.match(scheme):
        raise ValidationError(INVALID_URL_MESSAGE)
    if scheme.lower() in BLOCKED_SCHEMES:
        raise ValidationError(INVALID_URL_MESSAGE)

    try:
        parts = urlsplit(value)
        parts.port  # raises on a malformed port
    except ValueError as exc:
        raise ValidationError(INVALID_URL_MESSAGE) from exc

    if scheme.lower() in HOST_SCHEMES:
        host = parts.hostname or ""
        if not host or any(char in _FORBIDDEN_HOST_CHARS for char in host):
            raise ValidationError(INVALID_URL_MESSAGE)
    elif not rest:
        raise ValidationError(INVALID_URL_MESSAGE)
    return value


def validate_title(raw: str | None) -> str:
    value = (raw or "").strip()
    if not value:
        raise ValidationError(MISSING_TITLE_MESSAGE)
    return value


def domain_of(url: str) -> str:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None
    if not host:
        return url
    return host.removeprefix("www.")


def create_bookmark(
    storage, identity: Identity | None, url: str | None, title: str | None
) -> BookmarkRecord:
    """Validate locally, then insert one bookmark owned by ``identity``."""
    if identity is None:
        raise AuthError(NOT_SIGNED_IN_MESSAGE)
    clean_url = validate_url(url)
    clean_title = validate_title(title)
    return storage.insert(
        {"user_id": identity.id, "url": clean_url, "title": clean_title}
    )


def claim_submission(user_id: int) -> bool:
    with _SUBMISSIONS_LOCK:
        if user_id in _IN_FLIGHT_SUBMISSIONS:
            return False
        _IN_FLIGHT_SUBMISSIONS.add(user_id)
        return True


def release_submission(user_id: int) -> None:
    with _SUBMISSIONS_LOCK:
        _IN_FLIGHT_SUBMISSIONS.discard(user_id)


class BookmarkForm:
    """Creation form state: field values, the last error, and a submit lock.

    Only one submission runs at a time; a submit while another is pending is
    refused without touching storage. Fields are cleared on success and kept
    on failure so the user can retry.
    """

    def __init__(self, url: str = "", title: str = ""):
        self.url = url
        self.title = title
        self.error: str | None = None
        self._submit_lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._submit_lock.locked()

    def submit(self, storage, identity: Identity | None) -> BookmarkRecord | None:
        if not self._submit_lock.acquire(blocking=False):
            return None
        try:
            self.error = None
            try:
                record = create_bookmark(storage, identity, self.url, self.title)
            except (ValidationError, AuthError, StorageError) as exc:
                self.error = str(exc) or "Failed to add bookmark"
                return None
            self.url = ""
            self.title = ""
            return record
        finally:
            self._submit_lock.release()
