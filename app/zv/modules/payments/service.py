from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import current_app

from app.zv.audit import record_event
from app.zv.constants import ROLE_MASTER, ROLE_MODERATOR, ROLE_SUPERADMIN
from app.zv.errors import Conflict, Forbidden, NotFound, PaymentsDisabled, ProviderError, ValidationFailed
from app.zv.models import User
from app.zv.modules.battlepasses.service import issue_battlepass
from app.zv.modules.notifications.service import notify
from app.zv.modules.payments.yookassa_client import YooKassaClient, YooKassaError, client_from_config
from app.zv.modules.seasons.service import get_active_season
from app.zv.modules.shop.models import Order
from app.zv.modules.shop.service import battlepass_kind_for_uses, create_pending_order, get_purchasable_battlepass
from app.zv.rbac import has_any_role, is_admin
from app.zv.utils import parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

BUY_FOR_OTHERS_ROLES = (ROLE_MASTER, ROLE_MODERATOR, ROLE_SUPERADMIN)


def payments_enabled() -> bool:
    return bool(current_app.config.get("FEATURE_PAYMENTS"))


def get_client() -> YooKassaClient:
    client = current_app.extensions.get("yookassa_client")
    if client is None:
        client = client_from_config(current_app.config)
    return client


def return_url_base() -> str:
    explicit = (current_app.config.get("YOOKASSA_RETURN_URL") or "").strip()
    if explicit:
        return explicit
    base = (current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    return f"{base}/player/battlepass/success"


def build_payment_body(order: Order, *, product_sku: str, description: str) -> dict[str, Any]:
    return {
        "amount": {"value": f"{order.total_rub:.2f}", "currency": "RUB"},
        "capture": True,
        "description": description,
        "confirmation": {"type": "redirect", "return_url": f"{return_url_base()}?orderId={order.id}"},
        "metadata": {
            "orderId": str(order.id),
            "forUserId": str(order.recipient_user_id),
            "productSku": product_sku,
        },
    }


def create_checkout(s: "Session", buyer: User, payload: dict, client: YooKassaClient | None = None) -> dict:
    if not payments_enabled():
        raise PaymentsDisabled()
    sku = (payload.get("product_sku") or "").strip()
    if not sku:
        raise ValidationFailed("product_sku is required")

    product = get_purchasable_battlepass(s, sku)
    if not product:
        raise NotFound("Product not found")
    if product.season_required and not get_active_season(s):
        raise Conflict("No active season")

    for_user_id = parse_int(payload.get("for_user_id")) or buyer.id
    if for_user_id != buyer.id:
        if not has_any_role(buyer, BUY_FOR_OTHERS_ROLES):
            raise Forbidden("Only masters and admins can buy for other users")
        if not s.get(User, for_user_id):
            raise NotFound("Recipient not found")

    order = create_pending_order(s, buyer=buyer, for_user_id=for_user_id, product=product)
    # Commit the order first so a provider webhook can always find it.
    s.commit()

    client = client or get_client()
    body = build_payment_body(order, product_sku=product.sku, description=f"{product.title} (order #{order.id})")
    try:
        payment = client.create_payment(body, idempotence_key=str(uuid.uuid4()))
    except YooKassaError as e:
        logger.error("YooKassa create_payment failed for order %s: %s", order.id, e)
        raise ProviderError("Payment provider error", order_id=order.id) from e

    payment_id = payment.get("id")
    confirmation_url = (payment.get("confirmation") or {}).get("confirmation_url")
    if not payment_id or not confirmation_url:
        logger.error("YooKassa returned no confirmation for order %s: %s", order.id, payment)
        raise ProviderError("Payment provider returned no confirmation URL", order_id=order.id)

    order.provider_id = payment_id
    order.updated_at = datetime.utcnow()
    s.commit()
    logger.info("Checkout created order=%s payment=%s", order.id, payment_id)
    return {
        "success": True,
        "payment_id": payment_id,
        "confirmation_url": confirmation_url,
        "order_id": order.id,
    }


def fulfill_order(s: "Session", order: Order, payment_id: str | None = None) -> bool:
    """
    Mark an order paid and issue its battlepasses. Returns False when already fulfilled.
    """
    if order.fulfilled_at is not None:
        return False
    now = datetime.utcnow()
    order.status = "PAID"
    order.paid_at = order.paid_at or now
    order.fulfilled_at = now
    order.updated_at = now
    if payment_id and not order.provider_id:
        order.provider_id = payment_id

    season = get_active_season(s)
    recipient_id = order.recipient_user_id
    issued = 0
    for item in order.items:
        product = item.product
        if product is not None and product.type != "BATTLEPASS":
            continue
        kind = item.bp_kind_at_purchase or battlepass_kind_for_uses(item.bp_uses_total_at_purchase)
        for _ in range(max(1, item.qty)):
            issue_battlepass(
                s,
                user_id=recipient_id,
                kind=kind,
                uses_total=item.bp_uses_total_at_purchase,
                season_id=season.id if season else None,
                order_id=order.id,
            )
            issued += 1

    notify(
        s,
        recipient_id,
        "Battlepass activated",
        f"Payment for order #{order.id} received. Battlepasses issued: {issued}.",
        type="SUCCESS",
        related_type="BATTLEPASS",
        related_id=order.id,
    )
    record_event(
        s,
        actor=None,
        action="order.fulfill",
        entity_type="Order",
        entity_id=str(order.id),
        metadata={"payment_id": payment_id or order.provider_id, "issued": issued, "recipient_id": recipient_id},
    )
    logger.info("Order %s fulfilled (payment=%s, issued=%s)", order.id, payment_id, issued)
    return True


def _find_order(s: "Session", payment: dict) -> Order | None:
    metadata = payment.get("metadata") or {}
    order_id = parse_int(metadata.get("orderId")) if isinstance(metadata, dict) else None
    if order_id:
        order = s.get(Order, order_id)
        if order:
            return order
    payment_id = payment.get("id")
    if payment_id:
        return s.query(Order).filter(Order.provider_id == payment_id).one_or_none()
    return None


def handle_webhook(s: "Session", body: Any, client: YooKassaClient | None = None) -> dict:
    if not payments_enabled():
        return {"ok": True}
    if not isinstance(body, dict):
        raise ValidationFailed("bad payload")
    event = body.get("event")
    payment = body.get("object")
    if not event or not isinstance(payment, dict):
        raise ValidationFailed("bad payload")

    payment_id = payment.get("id")
    logger.info("YooKassa webhook event=%s payment=%s", event, payment_id)

    if event == "payment.succeeded":
        if not payment_id:
            raise ValidationFailed("no payment id")
        if current_app.config.get("YOOKASSA_VERIFY_WEBHOOKS"):
            # Trust the provider API, not the notification body.
            client = client or get_client()
            try:
                payment = client.get_payment(payment_id)
            except YooKassaError as e:
                raise ProviderError("Payment provider error") from e
            if payment.get("status") != "succeeded":
                logger.warning("Webhook for payment %s not confirmed (status=%s)", payment_id, payment.get("status"))
                return {"ok": True, "processed": False}
        order = _find_order(s, payment)
        if not order:
            logger.warning("Webhook for unknown order (payment=%s)", payment_id)
            return {"ok": True, "order_found": False}
        processed = fulfill_order(s, order, payment_id)
        s.commit()
        return {"ok": True, "processed": processed}

    if event == "payment.canceled":
        order = _find_order(s, payment)
        if order and order.status == "PENDING":
            order.status = "CANCELLED"
            order.updated_at = datetime.utcnow()
            record_event(s, actor=None, action="order.cancel", entity_type="Order", entity_id=str(order.id))
            s.commit()
        return {"ok": True}

    return {"ok": True}


def check_status(s: "Session", user: User, payment_id: str, client: YooKassaClient | None = None) -> dict:
    if not payment_id:
        raise ValidationFailed("payment_id is required")
    client = client or get_client()
    try:
        payment = client.get_payment(payment_id)
    except YooKassaError as e:
        raise ProviderError("Payment provider error") from e

    order = _find_order(s, {"id": payment_id, "metadata": payment.get("metadata")})
    if order and user.id not in (order.user_id, order.for_user_id) and not is_admin(user):
        raise Forbidden("Not your order")

    status = payment.get("status")
    processed = False
    already_processed = bool(order and order.fulfilled_at is not None)
    if order and status == "succeeded" and order.status == "PENDING":
        processed = fulfill_order(s, order, payment_id)
        s.commit()
    return {
        "payment_id": payment_id,
        "status": status,
        "order_id": order.id if order else None,
        "amount": payment.get("amount"),
        "order_found": order is not None,
        "processed": processed,
        "already_processed": already_processed,
    }
