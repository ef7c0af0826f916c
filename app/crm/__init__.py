import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from app.crm.config import load_config
from app.crm.db import init_db, teardown_db_session
from app.crm.errors import CrmError
from app.crm.broadcast import Broadcaster
from app.crm.oauth import FacebookClient
from app.crm.sessions import load_current_user
from app.crm.routes import bp as routes_bp
from app.crm.auth import bp as auth_bp
from app.crm.admin import bp as admin_bp
from app.crm.stream import bp as stream_bp
from app.crm.modules.customers.api import bp as customers_bp
from app.crm.modules.reports.api import bp as reports_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=int(app.config.get("SESSION_TTL_DAYS") or 7))
    app.json.sort_keys = False

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("FACEBOOK_APP_ID") or not app.config.get("FACEBOOK_APP_SECRET"):
            raise RuntimeError("FACEBOOK_APP_ID and FACEBOOK_APP_SECRET are required in production.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # One broadcaster per process; observers only see mutations handled by the same worker.
    app.extensions["broadcaster"] = Broadcaster(app.config["BROADCAST_QUEUE_SIZE"])
    app.extensions["identity_provider"] = FacebookClient(
        app_id=app.config.get("FACEBOOK_APP_ID") or "",
        app_secret=app.config.get("FACEBOOK_APP_SECRET") or "",
    )

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(stream_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(reports_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(CrmError)
    def _crm_error(e: CrmError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.exception("Unhandled %s (request_id=%s)", type(e).__name__, getattr(g, "request_id", None))
        return jsonify(e.to_payload()), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        if e.code is None or e.code < 400:
            return e
        return jsonify({"message": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"message": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
