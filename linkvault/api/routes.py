from __future__ import annotations

from flask import current_app, g, jsonify, request

from linkvault.api import api_bp
from linkvault.backend import get_backend
from linkvault.errors import StorageError, ValidationError
from linkvault.services.bookmarks import (
    DUPLICATE_SUBMIT_MESSAGE,
    claim_submission,
    create_bookmark,
    release_submission,
    validate_title,
    validate_url,
)
from linkvault.services.security import api_auth_required


def _foreign_owner(value) -> bool:
    if value is None or value == "":
        return False
    try:
        return int(value) != g.identity.id
    except (TypeError, ValueError):
        return True


def _forbidden():
    return jsonify({"error": "user_id does not match the authenticated user"}), 403


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "LinkVault"})


@api_bp.route("/auth/token", methods=["POST"])
def create_token_with_credentials():
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""
    token_name = (payload.get("token_name") or "LinkVault API Token").strip()

    issued = get_backend().auth.issue_token(email, password, token_name)
    if issued is None:
        return jsonify({"error": "invalid credentials"}), 401
    token, identity = issued
    return jsonify({"token": token, "token_name": token_name, "user_id": identity.id})


@api_bp.route("/auth/revoke", methods=["POST"])
@api_auth_required
def revoke_token():
    get_backend().auth.sign_out()
    return jsonify({"status": "revoked"})


@api_bp.route("/me")
@api_auth_required
def me():
    return jsonify({"id": g.identity.id, "email": g.identity.email})


@api_bp.route("/bookmarks", methods=["GET"])
@api_auth_required
def bookmarks_list_api():
    if _foreign_owner(request.args.get("user_id")):
        return _forbidden()
    try:
        items = get_backend().storage.select(g.identity.id)
    except StorageError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/bookmarks", methods=["POST"])
@api_auth_required
def bookmarks_create_api():
    payload = request.get_json(silent=True) or {}
    if _foreign_owner(payload.get("user_id")):
        return _forbidden()

    identity = g.identity
    if not claim_submission(identity.id):
        return jsonify({"error": DUPLICATE_SUBMIT_MESSAGE}), 409
    try:
        record = create_bookmark(
            get_backend().storage, identity, payload.get("url"), payload.get("title")
        )
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StorageError as exc:
        return jsonify({"error": str(exc)}), 500
    finally:
        release_submission(identity.id)
    return jsonify(record.as_dict()), 201


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["PATCH"])
@api_auth_required
def bookmarks_update_api(bookmark_id: int):
    payload = request.get_json(silent=True) or {}
    if _foreign_owner(payload.get("user_id")):
        return _forbidden()

    changes = {}
    try:
        if "url" in payload:
            changes["url"] = validate_url(payload.get("url"))
        if "title" in payload:
            changes["title"] = validate_title(payload.get("title"))
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        record = get_backend().storage.update(bookmark_id, g.identity.id, **changes)
    except StorageError as exc:
        return jsonify({"error": str(exc)}), 500
    if record is None:
        return jsonify({"error": "bookmark not found"}), 404
    return jsonify(record.as_dict())


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["DELETE"])
@api_auth_required
def bookmarks_delete_api(bookmark_id: int):
    if _foreign_owner(request.args.get("user_id")):
        return _forbidden()
    try:
        deleted = get_backend().storage.delete(bookmark_id, g.identity.id)
    except StorageError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify({"status": "deleted", "deleted": deleted})


@api_bp.route("/changes", methods=["GET"])
@api_auth_required
def changes_api():
    since = request.args.get("since", default=0, type=int)
    limit = request.args.get(
        "limit", default=current_app.config["CHANGE_FEED_PAGE_SIZE"], type=int
    )
    limit = max(1, min(limit, 1000))
    try:
        page = get_backend().realtime.feed_page(g.identity.id, since, limit)
    except StorageError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify(page)


@api_bp.route("/changes/head", methods=["GET"])
@api_auth_required
def changes_head_api():
    try:
        cursor = get_backend().realtime.latest_cursor(g.identity.id)
    except StorageError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify({"cursor": cursor})
