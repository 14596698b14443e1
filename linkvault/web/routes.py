from __future__ import annotations

from flask import (
    current_app,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

from linkvault.backend import get_backend
from linkvault.backend.records import Identity
from linkvault.errors import StorageError
from linkvault.services.bookmarks import (
    DUPLICATE_SUBMIT_MESSAGE,
    BookmarkForm,
    claim_submission,
    domain_of,
    release_submission,
)
from linkvault.services.security import session_required
from linkvault.web import web_bp


def _serialize_bookmark_card(item) -> dict:
    payload = item.as_dict()
    payload["domain"] = domain_of(item.url)
    return payload


def _render_bookmarks(identity: Identity, form: BookmarkForm):
    backend = get_backend()
    try:
        items = backend.storage.select(identity.id)
        cursor = backend.realtime.latest_cursor(identity.id)
    except StorageError as exc:
        current_app.logger.warning(
            "Bookmark snapshot failed for user %s: %s", identity.id, exc
        )
        items = []
        cursor = 0

    return render_template(
        "bookmarks.html",
        identity=identity,
        items=items,
        form=form,
        cursor=cursor,
        domain_of=domain_of,
        poll_interval_ms=int(current_app.config["POLL_INTERVAL_SECONDS"] * 1000),
    )


@web_bp.route("/")
def index():
    if get_backend().auth.get_current_user():
        return redirect(url_for("web.bookmarks"))
    return render_template("index.html")


@web_bp.route("/bookmarks")
@session_required
def bookmarks():
    return _render_bookmarks(g.identity, BookmarkForm())


@web_bp.route("/bookmarks", methods=["POST"])
@session_required
def bookmarks_create():
    identity = g.identity
    form = BookmarkForm(
        url=request.form.get("url") or "",
        title=request.form.get("title") or "",
    )
    if not claim_submission(identity.id):
        form.error = DUPLICATE_SUBMIT_MESSAGE
        return _render_bookmarks(identity, form)

    try:
        record = form.submit(get_backend().storage, identity)
    finally:
        release_submission(identity.id)

    if record is None:
        return _render_bookmarks(identity, form)
    return redirect(url_for("web.bookmarks"))


@web_bp.route("/bookmarks/<int:bookmark_id>/delete", methods=["POST"])
@session_required
def bookmarks_delete(bookmark_id: int):
    try:
        get_backend().storage.delete(bookmark_id, g.identity.id)
    except StorageError as exc:
        flash(str(exc), "error")
    return redirect(url_for("web.bookmarks"))


@web_bp.route("/bookmarks/live")
@session_required
def bookmarks_live():
    backend = get_backend()
    try:
        items = backend.storage.select(g.identity.id)
        cursor = backend.realtime.latest_cursor(g.identity.id)
    except StorageError as exc:
        return jsonify({"error": str(exc)}), 503
    return jsonify(
        {"items": [_serialize_bookmark_card(item) for item in items], "cursor": cursor}
    )


@web_bp.route("/bookmarks/changes")
@session_required
def bookmarks_changes():
    since = request.args.get("since", default=0, type=int)
    limit = current_app.config["CHANGE_FEED_PAGE_SIZE"]
    try:
        page = get_backend().realtime.feed_page(g.identity.id, since, limit)
    except StorageError as exc:
        return jsonify({"error": str(exc)}), 503
    return jsonify(page)
