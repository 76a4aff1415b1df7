from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.zv.db import db_session

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return {"service": "zv", "status": "ok", "api": "/api", "auth": "/auth"}


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON, including a trivial DB round-trip."""
    db_ok = True
    try:
        db_session().execute(text("SELECT 1"))
    except SQLAlchemyError:
        current_app.logger.exception("Health check: database unavailable")
        db_ok = False
    return {"ok": db_ok, "db": db_ok}, (200 if db_ok else 503)


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200
