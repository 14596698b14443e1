from datetime import datetime, timezone

import pytest

from linkvault.backend.records import BookmarkRecord, Identity
from linkvault.errors import AuthError, StorageError, ValidationError
from linkvault.services.bookmarks import (
    INVALID_URL_MESSAGE,
    BookmarkForm,
    claim_submission,
    create_bookmark,
    domain_of,
    release_submission,
    validate_url,
)

ALICE = Identity(id=1, email="alice@example.com")


class RecordingStorage:
    def __init__(self, error=None, on_insert=None):
        self.inserted = []
        self.error = error
        self.on_insert = on_insert

    def insert(self, row):
        self.inserted.append(row)
        if self.on_insert:
            self.on_insert()
        if self.error:
            raise self.error
        return BookmarkRecord(
            id=len(self.inserted),
            user_id=row["user_id"],
            url=row["url"],
            title=row["title"],
            created_at=datetime.now(timezone.utc),
        )


@pytest.mark.parametrize(
    "value",
    [
        "not a url",
        "",
        "   ",
        "example.com",
        "http://",
        "https://exa mple.com",
        "http://example.com:port",
        "1http://example.com",
        "javascript:alert(document.cookie)",
        "JavaScript:void(0)",
        "data:text/html,<script>alert(1)</script>",
    ],
)
def test_validate_url_rejects_malformed_values(value):
    with pytest.raises(ValidationError, match=INVALID_URL_MESSAGE):
        validate_url(value)


@pytest.mark.parametrize(
    "value",
    [
        "https://example.com",
        "http://localhost:3000/path?q=1#frag",
        "ftp://files.example.org/pub",
        "mailto:someone@example.com",
    ],
)
def test_validate_url_accepts_absolute_urls(value):
    assert validate_url(value) == value


def test_invalid_url_is_rejected_without_insert():
    storage = RecordingStorage()
    form = BookmarkForm(url="not a url", title="Broken")

    assert form.submit(storage, ALICE) is None

    assert form.error == "Please enter a valid URL"
    assert storage.inserted == []
    assert (form.url, form.title) == ("not a url", "Broken")


def test_missing_title_is_rejected_without_insert():
    storage = RecordingStorage()
    form = BookmarkForm(url="https://example.com", title="  ")

    assert form.submit(storage, ALICE) is None
    assert form.error == "Please enter a title"
    assert storage.inserted == []


def test_successful_submit_clears_fields_and_scopes_to_identity():
    storage = RecordingStorage()
    form = BookmarkForm(url="https://example.com", title="Example")

    record = form.submit(storage, ALICE)

    assert record.title == "Example"
    assert storage.inserted == [
        {"user_id": ALICE.id, "url": "https://example.com", "title": "Example"}
    ]
    assert (form.url, form.title, form.error) == ("", "", None)


def test_storage_error_is_surfaced_verbatim_and_fields_preserved():
    storage = RecordingStorage(error=StorageError("duplicate key value violates constraint"))
    form = BookmarkForm(url="https://example.com", title="Example")

    assert form.submit(storage, ALICE) is None

    assert form.error == "duplicate key value violates constraint"
    assert (form.url, form.title) == ("https://example.com", "Example")
    assert not form.pending


def test_second_submit_while_pending_is_refused():
    form = BookmarkForm(url="https://example.com", title="Example")
    nested_results = []

    def double_click():
        assert form.pending
        nested_results.append(form.submit(storage, ALICE))

    storage = RecordingStorage(on_insert=double_click)

    assert form.submit(storage, ALICE) is not None
    assert nested_results == [None]
    assert len(storage.inserted) == 1


def test_create_bookmark_requires_identity():
    storage = RecordingStorage()

    with pytest.raises(AuthError):
        create_bookmark(storage, None, "https://example.com", "Example")
    assert storage.inserted == []


def test_submission_claim_is_exclusive_per_user():
    assert claim_submission(77) is True
    try:
        assert claim_submission(77) is False
        assert claim_submission(78) is True
        release_submission(78)
    finally:
        release_submission(77)
    assert claim_submission(77) is True
    release_submission(77)


def test_domain_of_strips_www_prefix():
    assert domain_of("https://www.example.com/some/page") == "example.com"
    assert domain_of("https://docs.python.org/3/") == "docs.python.org"
    assert domain_of("not a url") == "not a url"
