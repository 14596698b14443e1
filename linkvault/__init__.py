import logging

from flask import Flask

from linkvault.api import api_bp
from linkvault.auth import auth_bp
from linkvault.backend import init_backend
from linkvault.cli import register_cli
from linkvault.config import Config
from linkvault.extensions import db, login_manager, migrate
from linkvault.jobs.scheduler import scheduler, start_scheduler
from linkvault.web import web_bp


def _configure_logging(app: Flask) -> None:
    level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(level)
    logging.getLogger("linkvault").setLevel(level)


def create_app(config_object=Config):
    app = Flask(__name__, template_folder="../templates")
    app.config.from_object(config_object)
    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    init_backend(app, scheduler=scheduler)

    app.register_blueprint(auth_bp)
    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)
    register_cli(app)

    @app.context_processor
    def inject_globals():
        return {"app_name": "LinkVault"}

    with app.app_context():
        db.create_all()

    start_scheduler(app)
    return app
