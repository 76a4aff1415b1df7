from __future__ import annotations

from flask import Blueprint, request

from app.zv.constants import ROLE_MODERATOR, ROLE_SUPERADMIN
from app.zv.db import db_session
from app.zv.errors import ValidationFailed
from app.zv.modules.wiki import service
from app.zv.rbac import current_user, require_login, require_roles
from app.zv.utils import parse_int, request_payload

bp = Blueprint("wiki", __name__)

_ADMIN = (ROLE_MODERATOR, ROLE_SUPERADMIN)


# ---------- Sections ----------
@bp.get("/wiki/sections")
@require_login
def sections_tree():
    s = db_session()
    return {"sections": service.section_tree(s, current_user())}


@bp.post("/wiki/sections")
@require_roles(*_ADMIN)
def section_create():
    s = db_session()
    sec = service.create_section(s, current_user(), request_payload())
    s.commit()
    return {"ok": True, "section": service.serialize_section(sec)}, 201


@bp.patch("/wiki/sections/<int:section_id>")
@require_roles(*_ADMIN)
def section_update(section_id: int):
    s = db_session()
    sec = service.update_section(s, current_user(), section_id, request_payload())
    s.commit()
    return {"ok": True, "section": service.serialize_section(sec)}


@bp.delete("/wiki/sections/<int:section_id>")
@require_roles(*_ADMIN)
def section_delete(section_id: int):
    s = db_session()
    service.delete_section(s, current_user(), section_id)
    s.commit()
    return {"ok": True}


# ---------- Articles ----------
@bp.get("/wiki/articles")
@require_login
def articles_list():
    s = db_session()
    user = current_user()
    section_id = parse_int(request.args.get("section_id"))
    slug = (request.args.get("slug") or "").strip()
    if slug:
        if section_id is None:
            raise ValidationFailed("section_id is required when looking up by slug")
        a = service.find_article_by_slug(s, user, section_id, slug)
        return {
            "article": service.serialize_article(a),
            "comments": [service.serialize_comment(c) for c in a.comments],
        }
    rows = service.list_articles(s, user, section_id=section_id)
    return {"articles": [service.serialize_article(a, with_content=False) for a in rows]}


@bp.get("/wiki/articles/<int:article_id>")
@require_login
def article_detail(article_id: int):
    s = db_session()
    a = service.get_readable_article(s, current_user(), article_id)
    return {
        "article": service.serialize_article(a),
        "comments": [service.serialize_comment(c) for c in a.comments],
    }


@bp.post("/wiki/articles")
@require_roles(*_ADMIN)
def article_create():
    s = db_session()
    a = service.create_article(s, current_user(), request_payload())
    s.commit()
    return {"ok": True, "article": service.serialize_article(a)}, 201


@bp.patch("/wiki/articles/<int:article_id>")
@require_roles(*_ADMIN)
def article_update(article_id: int):
    s = db_session()
    a = service.update_article(s, current_user(), article_id, request_payload())
    s.commit()
    return {"ok": True, "article": service.serialize_article(a)}


@bp.delete("/wiki/articles/<int:article_id>")
@require_roles(*_ADMIN)
def article_delete(article_id: int):
    s = db_session()
    service.delete_article(s, current_user(), article_id)
    s.commit()
    return {"ok": True}


@bp.get("/wiki/search")
@require_login
def wiki_search():
    s = db_session()
    return service.search_articles(
        s,
        current_user(),
        request.args.get("q") or "",
        section_id=parse_int(request.args.get("section_id")),
        page=parse_int(request.args.get("page"), 1) or 1,
        limit=parse_int(request.args.get("limit"), 20) or 20,
    )


# ---------- Comments ----------
@bp.get("/wiki/articles/<int:article_id>/comments")
@require_login
def comments_list(article_id: int):
    s = db_session()
    return {"comments": [service.serialize_comment(c) for c in service.list_comments(s, current_user(), article_id)]}


@bp.post("/wiki/articles/<int:article_id>/comments")
@require_login
def comment_create(article_id: int):
    s = db_session()
    c = service.add_comment(s, current_user(), article_id, request_payload().get("body"))
    s.commit()
    return {"ok": True, "comment": service.serialize_comment(c)}, 201


@bp.delete("/wiki/comments/<int:comment_id>")
@require_login
def comment_delete(comment_id: int):
    s = db_session()
    service.delete_comment(s, current_user(), comment_id)
    s.commit()
    return {"ok": True}
