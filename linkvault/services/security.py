from functools import wraps

from flask import g, jsonify, redirect, url_for

from linkvault.backend import get_backend


def session_required(func):
    """Resolve the session identity or send the visitor to the landing page."""

    @wraps(func)
    def wrapped(*args, **kwargs):
        identity = get_backend().auth.get_current_user()
        if identity is None:
            return redirect(url_for("web.index"))
        g.identity = identity
        return func(*args, **kwargs)

    return wrapped


def api_auth_required(func):
    @wraps(func)
    def wrapped(*args, **kwargs):
        identity = get_backend().auth.get_current_user()
        if identity is None:
            return jsonify({"error": "authentication required"}), 401
        g.identity = identity
        return func(*args, **kwargs)

    return wrapped
