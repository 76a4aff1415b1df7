import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, jsonify, request, session

from app.zv.admin import bp as admin_bp
from app.zv.auth import bp as auth_bp, load_current_user
from app.zv.config import load_config
from app.zv.db import init_db, teardown_db_session
from app.zv.errors import register_error_handlers
from app.zv.modules.battlepasses.api import bp as battlepasses_bp
from app.zv.modules.characters.api import bp as characters_bp
from app.zv.modules.dashboards.api import bp as dashboards_bp
from app.zv.modules.files.api import bp as files_bp
from app.zv.modules.groups.api import bp as groups_bp
from app.zv.modules.notifications.api import bp as notifications_bp
from app.zv.modules.payments.api import bp as payments_bp
from app.zv.modules.profiles.api import bp as profiles_bp
from app.zv.modules.reports.api import bp as reports_bp
from app.zv.modules.seasons.api import bp as seasons_bp
from app.zv.modules.shop.api import bp as shop_bp
from app.zv.modules.wiki.api import bp as wiki_bp
from app.zv.ratelimit import FixedWindowRateLimiter
from app.zv.routes import bp as routes_bp

# Webhooks are authenticated by the provider, not by a browser session.
_CSRF_EXEMPT_ENDPOINTS = {"payments.webhook"}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    from app.zv.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        session.permanent = True
        if not app.config.get("CSRF_ENABLED"):
            return None
        ensure_csrf_token()
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            endpoint = request.endpoint or ""
            # Login/register issue the token, so they cannot require it.
            if endpoint.startswith("auth.") or endpoint in _CSRF_EXEMPT_ENDPOINTS:
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid"}), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if app.config.get("FEATURE_PAYMENTS") and not app.config.get("YOOKASSA_VERIFY_WEBHOOKS"):
            app.logger.warning("Payments enabled with YOOKASSA_VERIFY_WEBHOOKS=0; webhooks are trusted as-is.")

    init_db(app)
    app.extensions["rate_limiter"] = FixedWindowRateLimiter()

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            from botocore.exceptions import BotoCoreError, ClientError

            from app.zv.storage import S3Storage, storage_from_config

            try:
                storage = storage_from_config(app.config)
                if isinstance(storage, S3Storage):
                    storage._client().head_bucket(Bucket=storage.bucket)
                    app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
            except (BotoCoreError, ClientError) as e:
                app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/api")
    app.register_blueprint(profiles_bp, url_prefix="/api")
    app.register_blueprint(seasons_bp, url_prefix="/api")
    app.register_blueprint(groups_bp, url_prefix="/api")
    app.register_blueprint(characters_bp, url_prefix="/api")
    app.register_blueprint(shop_bp, url_prefix="/api")
    app.register_blueprint(payments_bp, url_prefix="/api")
    app.register_blueprint(battlepasses_bp, url_prefix="/api")
    app.register_blueprint(reports_bp, url_prefix="/api")
    app.register_blueprint(notifications_bp, url_prefix="/api")
    app.register_blueprint(wiki_bp, url_prefix="/api")
    app.register_blueprint(files_bp, url_prefix="/api")
    app.register_blueprint(dashboards_bp, url_prefix="/api")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)
    register_error_handlers(app)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
