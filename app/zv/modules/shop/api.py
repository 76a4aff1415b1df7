from __future__ import annotations

from flask import Blueprint, request

from app.zv.constants import ROLE_MODERATOR, ROLE_SUPERADMIN
from app.zv.db import db_session
from app.zv.modules.shop import service
from app.zv.rbac import current_user, require_login, require_roles
from app.zv.utils import parse_bool, request_payload

bp = Blueprint("shop", __name__)


@bp.get("/products")
@require_login
def products_list():
    s = db_session()
    return {"products": [service.serialize_product(p) for p in service.list_catalog(s)]}


@bp.get("/orders")
@require_login
def orders_list():
    s = db_session()
    return {"orders": [service.serialize_order(o) for o in service.list_user_orders(s, current_user().id)]}


# ---------- Admin catalogue ----------
@bp.get("/admin/products")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def admin_products_list():
    s = db_session()
    rows = service.list_products_admin(s, include_archived=parse_bool(request.args.get("include_archived")))
    return {"products": [service.serialize_product(p, admin=True) for p in rows]}


@bp.post("/admin/products")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def admin_product_create():
    s = db_session()
    p = service.create_product(s, request_payload(), current_user())
    s.commit()
    return {"ok": True, "product": service.serialize_product(p, admin=True)}, 201


@bp.patch("/admin/products/<int:product_id>")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def admin_product_update(product_id: int):
    s = db_session()
    p = service.update_product(s, product_id, request_payload(), current_user())
    s.commit()
    return {"ok": True, "product": service.serialize_product(p, admin=True)}


@bp.delete("/admin/products/<int:product_id>")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def admin_product_archive(product_id: int):
    s = db_session()
    p = service.archive_product(s, product_id, current_user())
    s.commit()
    return {"ok": True, "product": service.serialize_product(p, admin=True)}
