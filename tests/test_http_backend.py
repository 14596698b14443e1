import httpx
import pytest

from linkvault.backend import get_backend
from linkvault.backend.remote import HttpBackend
from linkvault.errors import StorageError
from linkvault.extensions import db
from linkvault.models import User
from linkvault.sync import STRATEGY_POLLING, STRATEGY_SUBSCRIPTION, BookmarkListView


class IdleScheduler:
    def __init__(self):
        self.jobs = {}

    def add_job(self, func, trigger, id=None, **kwargs):
        self.jobs[id] = func

    def remove_job(self, job_id):
        self.jobs.pop(job_id, None)


def _issue_token(app, email: str, password: str = "secret") -> str:
    with app.app_context():
        user = User(email=email, is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        token, _identity = get_backend(app).auth.issue_token(email, password, "pytest")
    return token


@pytest.fixture
def remote(app):
    token = _issue_token(app, "alice@example.com")
    backend = HttpBackend(
        "http://testserver",
        token,
        transport=httpx.WSGITransport(app=app),
    )
    yield backend
    backend.close()


def test_identity_comes_from_the_token(remote):
    identity = remote.auth.get_current_user()

    assert identity is not None
    assert identity.email == "alice@example.com"


def test_unknown_token_has_no_identity_and_storage_errors(app):
    with HttpBackend(
        "http://testserver", "lv_bogus", transport=httpx.WSGITransport(app=app)
    ) as backend:
        assert backend.auth.get_current_user() is None
        with pytest.raises(StorageError, match="authentication required"):
            backend.storage.select(1)


def test_insert_select_and_delete_round_trip_over_http(remote):
    identity = remote.auth.get_current_user()

    first = remote.storage.insert(
        {"user_id": identity.id, "url": "https://a.example", "title": "A"}
    )
    second = remote.storage.insert(
        {"user_id": identity.id, "url": "https://b.example", "title": "B"}
    )

    assert [item.id for item in remote.storage.select(identity.id)] == [second.id, first.id]
    assert first.created_at.tzinfo is not None

    assert remote.storage.delete(first.id, identity.id) == 1
    assert remote.storage.delete(first.id, identity.id) == 0
    assert [item.title for item in remote.storage.select(identity.id)] == ["B"]


def test_rejected_insert_raises_storage_error_with_server_message(remote):
    identity = remote.auth.get_current_user()

    with pytest.raises(StorageError, match="Please enter a valid URL"):
        remote.storage.insert({"user_id": identity.id, "url": "nope", "title": "x"})

    with pytest.raises(StorageError, match="does not match"):
        remote.storage.insert(
            {"user_id": identity.id + 100, "url": "https://a.example", "title": "x"}
        )


def test_update_returns_none_for_missing_bookmark(remote):
    identity = remote.auth.get_current_user()
    created = remote.storage.insert(
        {"user_id": identity.id, "url": "https://a.example", "title": "A"}
    )

    updated = remote.storage.update(created.id, identity.id, title="A2")

    assert updated.title == "A2"
    assert remote.storage.update(99999, identity.id, title="x") is None


def test_remote_subscription_delivers_changes_on_pump(remote):
    identity = remote.auth.get_current_user()
    received = []
    channel = remote.realtime.subscribe(identity.id, received.append)

    created = remote.storage.insert(
        {"user_id": identity.id, "url": "https://a.example", "title": "A"}
    )
    remote.storage.delete(created.id, identity.id)

    assert remote.realtime.pump() == 2
    assert received[0].row.title == "A"
    assert received[1].old_id == created.id

    remote.realtime.unsubscribe(channel)
    remote.storage.insert({"user_id": identity.id, "url": "https://b.example", "title": "B"})
    assert remote.realtime.pump() == 0


def test_view_over_http_tracks_remote_list(remote):
    identity = remote.auth.get_current_user()
    remote.storage.insert({"user_id": identity.id, "url": "https://a.example", "title": "A"})

    with BookmarkListView(remote, identity, IdleScheduler()) as view:
        assert view.active_strategy == STRATEGY_SUBSCRIPTION
        assert [item.title for item in view.items] == ["A"]

        created = remote.storage.insert(
            {"user_id": identity.id, "url": "https://b.example", "title": "B"}
        )
        remote.realtime.pump()
        assert [item.title for item in view.items] == ["B", "A"]

        assert view.delete(created.id) is True
        assert [item.title for item in view.items] == ["A"]


def test_polling_view_over_http(remote):
    identity = remote.auth.get_current_user()
    scheduler = IdleScheduler()

    view = BookmarkListView(remote, identity, scheduler, strategy=STRATEGY_POLLING).open()
    remote.storage.insert({"user_id": identity.id, "url": "https://a.example", "title": "A"})

    assert view.sync.tick() is True
    assert [item.title for item in view.items] == ["A"]
    view.close()
    assert scheduler.jobs == {}


def test_sign_out_revokes_the_token(remote):
    assert remote.auth.get_current_user() is not None

    remote.auth.sign_out()

    assert remote.auth.get_current_user() is None
