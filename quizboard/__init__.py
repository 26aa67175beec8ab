import logging
from pathlib import Path

from flask import Flask, current_app
from flask_login import LoginManager
from flask_wtf import CSRFProtect
from sqlalchemy.exc import IntegrityError

from config import Config
from .cache import ResponseCache
from .errors import QuizboardError, Unauthorized, error_response
from .models import db, User
from .progress import sync_stats_email
from .rotation import RotationSchedule

login_manager = LoginManager()
csrf = CSRFProtect()

logger = logging.getLogger(__name__)


class Services:
    """Engine collaborators shared by every request of one app.

    Built by ``create_app`` and reachable through ``get_services()``; call
    ``close()`` to drop cached aggregates (tests and config reloads).
    """

    def __init__(self, schedule: RotationSchedule, cache: ResponseCache, daily_salt: str):
        self.schedule = schedule
        self.cache = cache
        self.daily_salt = daily_salt

    @classmethod
    def from_config(cls, config):
        schedule = RotationSchedule(config["ROTATION_TIMEZONE"], config["ROTATION_RESET_HOUR"])
        cache = ResponseCache(ttl=config["CACHE_TTL_SECONDS"], maxsize=config["CACHE_MAX_ENTRIES"])
        return cls(schedule, cache, config["DAILY_SALT"])

    def init_app(self, app):
        app.extensions["quizboard"] = self

    def close(self):
        self.cache.clear()


def get_services() -> Services:
    return current_app.extensions["quizboard"]


def _configure_logging(app):
    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # sqlite needs its directory to exist before the first connect
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///"):
        Path(uri[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    _configure_logging(app)

    # initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)
    Services.from_config(app.config).init_app(app)

    from .api.routes import api_bp
    from .commands import register_commands

    # identity comes from the gateway headers, not from a cookie session
    csrf.exempt(api_bp)
    app.register_blueprint(api_bp)
    app.register_error_handler(QuizboardError, error_response)
    register_commands(app)

    with app.app_context():
        db.create_all()

    logger.info("quizboard ready (rotation %s @ %02d:00)",
                app.config["ROTATION_TIMEZONE"], app.config["ROTATION_RESET_HOUR"])
    return app


@login_manager.request_loader
def load_user_from_request(request):
    """Trust the identity asserted by the upstream auth gateway."""
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        return None
    email = request.headers.get("X-User-Email", "").strip() or None
    display_name = request.headers.get("X-User-Name", "").strip() or None

    user = db.session.get(User, user_id)
    if user is None:
        user = User(id=user_id, email=email, display_name=display_name)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # another request created it first
            db.session.rollback()
            user = db.session.get(User, user_id)
    elif (email and user.email != email) or (display_name and user.display_name != display_name):
        user.email = email or user.email
        user.display_name = display_name or user.display_name
        sync_stats_email(user)
        db.session.commit()
    return user


@login_manager.unauthorized_handler
def unauthorized():
    raise Unauthorized("Unauthorized")
