from __future__ import annotations

import time

import click
from flask import Flask

from linkvault.backend import get_backend
from linkvault.backend.records import BookmarkRecord, Identity
from linkvault.backend.remote import HttpBackend
from linkvault.errors import ChannelError, StorageError, ValidationError
from linkvault.extensions import db
from linkvault.jobs.scheduler import ensure_running, scheduler
from linkvault.models import User
from linkvault.services.bookmarks import domain_of
from linkvault.sync import SYNC_STRATEGIES, BookmarkListView


def _print_list(items: list[BookmarkRecord]) -> None:
    click.echo(f"--- {len(items)} bookmark(s) @ {time.strftime('%H:%M:%S')}")
    if not items:
        click.echo("No bookmarks yet. Add your first bookmark to get started!")
        return
    for item in items:
        stamp = item.created_at.strftime("%b %d, %Y %H:%M")
        click.echo(f"[{item.id}] {item.title} | {domain_of(item.url)} | {stamp}")


def run_watch_command(view: BookmarkListView, line: str) -> None:
    """Handle one line typed into `flask watch`; only `d <id>` is understood."""
    parts = line.split()
    if not parts:
        return
    if parts[0] in {"d", "delete"} and len(parts) == 2 and parts[1].isdigit():
        bookmark_id = int(parts[1])
        try:
            if not view.delete(bookmark_id):
                click.echo(f"Delete of {bookmark_id} is already in progress.")
        except StorageError as exc:
            click.echo(f"Delete failed: {exc}", err=True)
        return
    click.echo("Commands: d <id> deletes a bookmark. Ctrl-D stops.")


def register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        click.echo("Initialized LinkVault database.")

    @app.cli.command("create-user")
    @click.option("--email", required=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    def create_user_command(email, password):
        try:
            identity = get_backend(app).auth.register(email, password)
        except (ValidationError, StorageError) as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Created user {identity.email} (id {identity.id}).")

    @app.cli.command("watch")
    @click.option("--email", help="Watch a local account's bookmarks.")
    @click.option("--remote", help="Base URL of a running LinkVault server.")
    @click.option("--token", envvar="LINKVAULT_TOKEN", help="API token for --remote.")
    @click.option(
        "--strategy",
        type=click.Choice(sorted(SYNC_STRATEGIES)),
        default=None,
        help="Defaults to SYNC_STRATEGY.",
    )
    @click.option(
        "--no-optimistic",
        is_flag=True,
        help="Wait for the server before dropping deleted rows.",
    )
    def watch_command(email, remote, token, strategy, no_optimistic):
        """Keep a live bookmark list in the terminal.

        Type `d <id>` to delete a bookmark; Ctrl-D or Ctrl-C stops.
        """
        remote_backend = None
        if remote:
            if not token:
                raise click.UsageError("--token is required with --remote")
            remote_backend = HttpBackend(
                remote,
                token,
                scheduler=scheduler,
                pump_seconds=app.config["REALTIME_PUMP_SECONDS"],
            )
            backend = remote_backend
            identity = backend.auth.get_current_user()
            if identity is None:
                remote_backend.close()
                raise click.ClickException("The server rejected the API token.")
        else:
            if not email:
                raise click.UsageError("pass --email or --remote")
            backend = get_backend(app)
            user = User.query.filter_by(email=email.strip().lower()).first()
            if user is None:
                raise click.ClickException(f"No account for {email}.")
            identity = Identity.from_user(user)

        view = BookmarkListView(
            backend,
            identity,
            scheduler,
            strategy=strategy or app.config["SYNC_STRATEGY"],
            optimistic_delete=app.config["OPTIMISTIC_DELETE"] and not no_optimistic,
            poll_interval=app.config["POLL_INTERVAL_SECONDS"],
            on_change=_print_list,
        )
        ensure_running()
        try:
            with view:
                click.echo(f"Watching {identity.email} via {view.active_strategy}.")
                if view.is_empty:
                    _print_list(view.items)
                for line in click.get_text_stream("stdin"):
                    run_watch_command(view, line)
            click.echo("Stopped.")
        except (StorageError, ChannelError) as exc:
            raise click.ClickException(str(exc)) from exc
        except KeyboardInterrupt:
            click.echo("Stopped.")
        finally:
            if remote_backend is not None:
                remote_backend.close()
