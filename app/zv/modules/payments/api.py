from __future__ import annotations

from flask import Blueprint, current_app, request

from app.zv.db import db_session
from app.zv.errors import PaymentsDisabled
from app.zv.modules.payments import service
from app.zv.rbac import current_user, require_login
from app.zv.utils import request_payload

bp = Blueprint("payments", __name__)


@bp.post("/payments/create-checkout")
def create_checkout():
    if not service.payments_enabled():
        raise PaymentsDisabled()
    user = current_user()
    s = db_session()
    return service.create_checkout(s, user, request_payload())


@bp.post("/payments/webhook")
def webhook():
    s = db_session()
    body = request.get_json(silent=True)
    result = service.handle_webhook(s, body)
    current_app.logger.debug("Webhook handled: %s", result)
    return result


@bp.post("/payments/check-status")
@require_login
def check_status():
    s = db_session()
    payment_id = (request_payload().get("payment_id") or "").strip()
    return service.check_status(s, current_user(), payment_id)
