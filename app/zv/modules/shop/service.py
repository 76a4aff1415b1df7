from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_

from app.zv.audit import record_event
from app.zv.constants import BATTLEPASS_KINDS, PRODUCT_TYPES
from app.zv.errors import Conflict, NotFound, ValidationFailed
from app.zv.modules.shop.models import Order, OrderItem, Product
from app.zv.utils import clean_str, iso, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.zv.models import User


def battlepass_kind_for_uses(uses: int, meta: dict | None = None) -> str:
    kind = ((meta or {}).get("kind") or "").strip().upper() if isinstance(meta, dict) else ""
    if kind in BATTLEPASS_KINDS:
        return kind
    if uses == 1:
        return "SINGLE"
    if uses == 4:
        return "FOUR"
    return "SEASON"


def serialize_product(p: Product, *, admin: bool = False) -> dict:
    data = {
        "id": p.id,
        "sku": p.sku,
        "title": p.title,
        "type": p.type,
        "price_rub": p.price_rub,
        "description": p.description,
        "bp_uses_total": p.bp_uses_total,
        "season_required": p.season_required,
        "meta": p.meta,
    }
    if admin:
        data.update(
            {
                "visible": p.visible,
                "active": p.active,
                "sort_index": p.sort_index,
                "archived_at": iso(p.archived_at),
                "created_at": iso(p.created_at),
                "updated_at": iso(p.updated_at),
            }
        )
    return data


def serialize_order(o: Order) -> dict:
    return {
        "id": o.id,
        "user_id": o.user_id,
        "for_user_id": o.for_user_id,
        "status": o.status,
        "total_rub": o.total_rub,
        "provider": o.provider,
        "provider_id": o.provider_id,
        "paid_at": iso(o.paid_at),
        "fulfilled_at": iso(o.fulfilled_at),
        "created_at": iso(o.created_at),
        "items": [
            {
                "product_id": i.product_id,
                "sku": i.product_sku_snapshot,
                "title": i.product_title_snapshot,
                "qty": i.qty,
                "price_rub": i.price_rub_at_purchase,
                "bp_uses_total": i.bp_uses_total_at_purchase,
            }
            for i in o.items
        ],
    }


def list_catalog(s: "Session") -> list[Product]:
    return (
        s.query(Product)
        .filter(Product.visible.is_(True), Product.active.is_(True), Product.archived_at.is_(None))
        .order_by(Product.sort_index.asc(), Product.id.asc())
        .all()
    )


def list_products_admin(s: "Session", *, include_archived: bool = False) -> list[Product]:
    q = s.query(Product)
    if not include_archived:
        q = q.filter(Product.archived_at.is_(None))
    return q.order_by(Product.sort_index.asc(), Product.id.asc()).all()


def get_purchasable_battlepass(s: "Session", sku: str) -> Product | None:
    return (
        s.query(Product)
        .filter(
            Product.sku == sku,
            Product.type == "BATTLEPASS",
            Product.active.is_(True),
            Product.visible.is_(True),
            Product.archived_at.is_(None),
        )
        .one_or_none()
    )


def validate_product_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate product creation/update payload. Returns list of errors."""
    errors = []
    if not partial or "sku" in payload:
        sku = clean_str(payload.get("sku"))
        if not sku:
            errors.append("SKU is required.")
        elif len(sku) > 64:
            errors.append("SKU is too long.")
    if not partial or "title" in payload:
        if not clean_str(payload.get("title")):
            errors.append("Title is required.")
    if not partial or "price_rub" in payload:
        price = parse_int(payload.get("price_rub"))
        if price is None or price < 0:
            errors.append("price_rub must be a non-negative integer.")
    if "bp_uses_total" in payload:
        uses = parse_int(payload.get("bp_uses_total"))
        if uses is None or uses < 1:
            errors.append("bp_uses_total must be at least 1.")
    ptype = clean_str(payload.get("type"))
    if ptype and ptype.upper() not in PRODUCT_TYPES:
        errors.append(f"Invalid type. Must be one of: {', '.join(PRODUCT_TYPES)}")
    if "meta" in payload and payload.get("meta") is not None and not isinstance(payload.get("meta"), dict):
        errors.append("meta must be a JSON object.")
    return errors


def create_product(s: "Session", payload: dict, user: "User") -> Product:
    errors = validate_product_payload(payload)
    if errors:
        raise ValidationFailed(errors)
    sku = clean_str(payload.get("sku"))
    if s.query(Product).filter(Product.sku == sku).one_or_none():
        raise Conflict("SKU already exists")
    now = datetime.utcnow()
    p = Product(
        sku=sku,
        title=clean_str(payload.get("title")),
        type=(clean_str(payload.get("type")) or "BATTLEPASS").upper(),
        price_rub=parse_int(payload.get("price_rub")),
        description=clean_str(payload.get("description")),
        bp_uses_total=parse_int(payload.get("bp_uses_total"), 1),
        visible=parse_bool(payload.get("visible"), True),
        sort_index=parse_int(payload.get("sort_index"), 0),
        season_required=parse_bool(payload.get("season_required")),
        active=parse_bool(payload.get("active"), True),
        meta=payload.get("meta"),
        created_at=now,
        updated_at=now,
    )
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=user,
        action="product.create",
        entity_type="Product",
        entity_id=str(p.id),
        metadata={"sku": p.sku, "price_rub": p.price_rub},
    )
    return p


def update_product(s: "Session", product_id: int, payload: dict, user: "User") -> Product:
    p = s.get(Product, product_id)
    if not p:
        raise NotFound("Product not found")
    errors = validate_product_payload(payload, partial=True)
    if errors:
        raise ValidationFailed(errors)

    changes = {}
    if "sku" in payload:
        sku = clean_str(payload.get("sku"))
        if sku != p.sku and s.query(Product).filter(Product.sku == sku).one_or_none():
            raise Conflict("SKU already exists")
        changes["sku"] = {"old": p.sku, "new": sku}
        p.sku = sku
    if "title" in payload:
        p.title = clean_str(payload.get("title"))
    if "type" in payload and clean_str(payload.get("type")):
        p.type = payload["type"].strip().upper()
    if "price_rub" in payload:
        changes["price_rub"] = {"old": p.price_rub, "new": parse_int(payload.get("price_rub"))}
        p.price_rub = parse_int(payload.get("price_rub"))
    if "description" in payload:
        p.description = clean_str(payload.get("description"))
    if "bp_uses_total" in payload:
        p.bp_uses_total = parse_int(payload.get("bp_uses_total"))
    for flag in ("visible", "season_required", "active"):
        if flag in payload:
            setattr(p, flag, parse_bool(payload.get(flag)))
    if "sort_index" in payload:
        p.sort_index = parse_int(payload.get("sort_index"), 0)
    if "meta" in payload:
        p.meta = payload.get("meta")
    p.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="product.edit",
        entity_type="Product",
        entity_id=str(p.id),
        metadata={"sku": p.sku, "changes": changes},
    )
    return p


def archive_product(s: "Session", product_id: int, user: "User") -> Product:
    p = s.get(Product, product_id)
    if not p:
        raise NotFound("Product not found")
    now = datetime.utcnow()
    p.archived_at = p.archived_at or now
    p.visible = False
    p.active = False
    p.updated_at = now
    record_event(s, actor=user, action="product.archive", entity_type="Product", entity_id=str(p.id))
    return p


def create_pending_order(s: "Session", *, buyer: "User", for_user_id: int | None, product: Product, qty: int = 1) -> Order:
    now = datetime.utcnow()
    order = Order(
        user_id=buyer.id,
        for_user_id=for_user_id if for_user_id and for_user_id != buyer.id else None,
        status="PENDING",
        total_rub=product.price_rub * qty,
        provider="YOOKASSA",
        created_at=now,
        updated_at=now,
    )
    order.items.append(
        OrderItem(
            product_id=product.id,
            qty=qty,
            price_rub=product.price_rub,
            price_rub_at_purchase=product.price_rub,
            bp_uses_total_at_purchase=product.bp_uses_total,
            product_sku_snapshot=product.sku,
            product_title_snapshot=product.title,
            bp_kind_at_purchase=battlepass_kind_for_uses(product.bp_uses_total, product.meta),
        )
    )
    s.add(order)
    s.flush()
    record_event(
        s,
        actor=buyer,
        action="order.create",
        entity_type="Order",
        entity_id=str(order.id),
        metadata={"sku": product.sku, "for_user_id": order.for_user_id, "total_rub": order.total_rub},
    )
    return order


def list_user_orders(s: "Session", user_id: int) -> list[Order]:
    return (
        s.query(Order)
        .filter(or_(Order.user_id == user_id, Order.for_user_id == user_id))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
