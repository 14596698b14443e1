import threading

from flask import Flask, current_app

from linkvault.backend.local import LocalBackend

_EXTENSION_KEY = "linkvault.backend"
_BACKEND_LOCK = threading.Lock()


def init_backend(app: Flask, scheduler=None) -> LocalBackend:
    with _BACKEND_LOCK:
        backend = app.extensions.get(_EXTENSION_KEY)
        if backend is None:
            backend = LocalBackend(app, scheduler=scheduler)
            app.extensions[_EXTENSION_KEY] = backend
    return backend


def get_backend(app: Flask | None = None) -> LocalBackend:
    """Return the application's shared backend handle, creating it on first use."""
    app = app or current_app._get_current_object()
    backend = app.extensions.get(_EXTENSION_KEY)
    if backend is None:
        backend = init_backend(app)
    return backend
