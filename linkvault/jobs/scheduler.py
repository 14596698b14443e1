import os
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from linkvault.extensions import db
from linkvault.models import ChangeEvent, utcnow


scheduler = BackgroundScheduler()


def prune_change_events(app) -> int:
    with app.app_context():
        cutoff = utcnow() - timedelta(hours=app.config["CHANGE_RETENTION_HOURS"])
        removed = ChangeEvent.query.filter(ChangeEvent.created_at < cutoff).delete(
            synchronize_session=False
        )
        db.session.commit()
        if removed:
            app.logger.info("Pruned %s change events older than %s", removed, cutoff)
        return removed


def ensure_running() -> None:
    if not scheduler.running:
        scheduler.start()


def start_scheduler(app):
    if not app.config.get("SCHEDULER_ENABLED", True):
        return
    if os.environ.get("WERKZEUG_RUN_MAIN") == "false":
        return

    if not scheduler.get_job("change_event_prune"):
        scheduler.add_job(
            prune_change_events,
            "interval",
            hours=1,
            kwargs={"app": app},
            id="change_event_prune",
            replace_existing=True,
        )
    ensure_running()
