from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_

from app.zv.audit import record_event
from app.zv.constants import ROLES
from app.zv.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.zv.models import User
from app.zv.modules.wiki.models import WikiArticle, WikiComment, WikiSection
from app.zv.rbac import highest_role, is_admin, role_rank
from app.zv.utils import clean_str, iso, parse_int, validate_slug

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

DEFAULT_MIN_ROLE = "MASTER"
MAX_COMMENT_LENGTH = 2000
SNIPPET_LENGTH = 200
MAX_SEARCH_LIMIT = 50


# ---------- Visibility ----------
def can_read(user: User | None, article: WikiArticle) -> bool:
    return role_rank(highest_role(user)) >= role_rank(article.min_role)


def readable_roles(user: User | None) -> list[str]:
    rank = role_rank(highest_role(user))
    return [r for r in ROLES if role_rank(r) <= rank]


# ---------- Serialization ----------
def serialize_section(sec: WikiSection) -> dict:
    return {
        "id": sec.id,
        "parent_id": sec.parent_id,
        "title": sec.title,
        "slug": sec.slug,
        "order_index": sec.order_index,
    }


def serialize_article(a: WikiArticle, *, with_content: bool = True) -> dict:
    data = {
        "id": a.id,
        "section_id": a.section_id,
        "title": a.title,
        "slug": a.slug,
        "min_role": a.min_role,
        "author_user_id": a.author_user_id,
        "updated_by_user_id": a.updated_by_user_id,
        "last_updated_at": iso(a.last_updated_at),
    }
    if with_content:
        data["content_md"] = a.content_md
    return data


def serialize_comment(c: WikiComment) -> dict:
    return {
        "id": c.id,
        "article_id": c.article_id,
        "user_id": c.user_id,
        "user_name": c.user.name if c.user else None,
        "body": c.body,
        "created_at": iso(c.created_at),
    }


# ---------- Sections ----------
def section_tree(s: "Session", user: User | None) -> list[dict]:
    sections = s.query(WikiSection).order_by(WikiSection.order_index.asc(), WikiSection.title.asc()).all()
    counts = dict(
        s.query(WikiArticle.section_id, func.count(WikiArticle.id))
        .filter(WikiArticle.min_role.in_(readable_roles(user)))
        .group_by(WikiArticle.section_id)
        .all()
    )
    nodes = {sec.id: {**serialize_section(sec), "article_count": counts.get(sec.id, 0), "children": []} for sec in sections}
    roots: list[dict] = []
    for sec in sections:
        node = nodes[sec.id]
        parent = nodes.get(sec.parent_id) if sec.parent_id else None
        (parent["children"] if parent else roots).append(node)
    return roots


def _validate_title_slug(payload: dict, errors: list[str], *, partial: bool) -> None:
    if not partial or "title" in payload:
        title = (payload.get("title") or "").strip()
        if not 2 <= len(title) <= 200:
            errors.append("Title must be between 2 and 200 characters.")
    if not partial or "slug" in payload:
        slug = (payload.get("slug") or "").strip()
        if not 2 <= len(slug) <= 200 or not validate_slug(slug):
            errors.append("Slug must be 2-200 characters of lowercase letters, digits and hyphens.")


def _is_ancestor(s: "Session", candidate_id: int, section_id: int) -> bool:
    """True when section_id appears on the parent chain starting at candidate_id."""
    seen: set[int] = set()
    cur = s.get(WikiSection, candidate_id)
    while cur is not None and cur.id not in seen:
        if cur.id == section_id:
            return True
        seen.add(cur.id)
        cur = s.get(WikiSection, cur.parent_id) if cur.parent_id else None
    return False


def create_section(s: "Session", user: User, payload: dict) -> WikiSection:
    errors: list[str] = []
    _validate_title_slug(payload, errors, partial=False)
    if errors:
        raise ValidationFailed(errors)
    parent_id = parse_int(payload.get("parent_id"))
    if parent_id is not None and not s.get(WikiSection, parent_id):
        raise NotFound("Parent section not found")
    slug = payload["slug"].strip()
    same_parent = WikiSection.parent_id.is_(None) if parent_id is None else WikiSection.parent_id == parent_id
    if s.query(WikiSection.id).filter(same_parent, WikiSection.slug == slug).first():
        raise Conflict("Slug already exists in this section")
    now = datetime.utcnow()
    sec = WikiSection(
        parent_id=parent_id,
        title=payload["title"].strip(),
        slug=slug,
        order_index=parse_int(payload.get("order_index"), 0),
        created_at=now,
        updated_at=now,
    )
    s.add(sec)
    s.flush()
    record_event(s, actor=user, action="wiki.section_create", entity_type="WikiSection", entity_id=str(sec.id))
    return sec


def update_section(s: "Session", user: User, section_id: int, payload: dict) -> WikiSection:
    sec = s.get(WikiSection, section_id)
    if not sec:
        raise NotFound("Section not found")
    errors: list[str] = []
    _validate_title_slug(payload, errors, partial=True)
    if errors:
        raise ValidationFailed(errors)
    if "parent_id" in payload:
        parent_id = parse_int(payload.get("parent_id"))
        if parent_id is not None:
            if not s.get(WikiSection, parent_id):
                raise NotFound("Parent section not found")
            if _is_ancestor(s, parent_id, sec.id):
                raise ValidationFailed("A section cannot be moved under itself")
        sec.parent_id = parent_id
    if "title" in payload:
        sec.title = payload["title"].strip()
    if "slug" in payload:
        sec.slug = payload["slug"].strip()
    same_parent = WikiSection.parent_id.is_(None) if sec.parent_id is None else WikiSection.parent_id == sec.parent_id
    if s.query(WikiSection.id).filter(same_parent, WikiSection.slug == sec.slug, WikiSection.id != sec.id).first():
        raise Conflict("Slug already exists in this section")
    if "order_index" in payload:
        sec.order_index = parse_int(payload.get("order_index"), 0)
    sec.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="wiki.section_edit", entity_type="WikiSection", entity_id=str(sec.id))
    return sec


def delete_section(s: "Session", user: User, section_id: int) -> None:
    sec = s.get(WikiSection, section_id)
    if not sec:
        raise NotFound("Section not found")
    if s.query(WikiSection.id).filter(WikiSection.parent_id == sec.id).first():
        raise Conflict("Section has child sections")
    if s.query(WikiArticle.id).filter(WikiArticle.section_id == sec.id).first():
        raise Conflict("Section has articles")
    record_event(s, actor=user, action="wiki.section_delete", entity_type="WikiSection", entity_id=str(sec.id))
    s.delete(sec)


# ---------- Articles ----------
def get_readable_article(s: "Session", user: User | None, article_id: int) -> WikiArticle:
    a = s.get(WikiArticle, article_id)
    # Hidden articles are reported as missing so their existence is not leaked.
    if not a or not can_read(user, a):
        raise NotFound("Article not found")
    return a


def list_articles(s: "Session", user: User | None, *, section_id: int | None = None) -> list[WikiArticle]:
    q = s.query(WikiArticle).filter(WikiArticle.min_role.in_(readable_roles(user)))
    if section_id is not None:
        q = q.filter(WikiArticle.section_id == section_id)
    return q.order_by(WikiArticle.title.asc()).all()


def find_article_by_slug(s: "Session", user: User | None, section_id: int, slug: str) -> WikiArticle:
    a = s.query(WikiArticle).filter(WikiArticle.section_id == section_id, WikiArticle.slug == slug).one_or_none()
    if not a or not can_read(user, a):
        raise NotFound("Article not found")
    return a


def _validate_min_role(payload: dict, errors: list[str]) -> None:
    min_role = clean_str(payload.get("min_role"))
    if min_role and min_role.upper() not in ROLES:
        errors.append(f"Invalid min_role. Must be one of: {', '.join(ROLES)}")


def create_article(s: "Session", user: User, payload: dict) -> WikiArticle:
    errors: list[str] = []
    _validate_title_slug(payload, errors, partial=False)
    _validate_min_role(payload, errors)
    section_id = parse_int(payload.get("section_id"))
    if section_id is None:
        errors.append("section_id is required.")
    if errors:
        raise ValidationFailed(errors)
    if not s.get(WikiSection, section_id):
        raise NotFound("Section not found")
    slug = payload["slug"].strip()
    if s.query(WikiArticle.id).filter(WikiArticle.section_id == section_id, WikiArticle.slug == slug).first():
        raise Conflict("Slug already exists in this section")

    now = datetime.utcnow()
    a = WikiArticle(
        section_id=section_id,
        title=payload["title"].strip(),
        slug=slug,
        content_md=payload.get("content_md") or "",
        min_role=(clean_str(payload.get("min_role")) or DEFAULT_MIN_ROLE).upper(),
        author_user_id=user.id,
        updated_by_user_id=user.id,
        last_updated_at=now,
        created_at=now,
    )
    s.add(a)
    s.flush()
    record_event(
        s,
        actor=user,
        action="wiki.article_create",
        entity_type="WikiArticle",
        entity_id=str(a.id),
        metadata={"slug": a.slug, "section_id": section_id},
    )
    return a


def update_article(s: "Session", user: User, article_id: int, payload: dict) -> WikiArticle:
    a = s.get(WikiArticle, article_id)
    if not a:
        raise NotFound("Article not found")
    errors: list[str] = []
    _validate_title_slug(payload, errors, partial=True)
    _validate_min_role(payload, errors)
    if errors:
        raise ValidationFailed(errors)

    section_id = parse_int(payload.get("section_id")) if "section_id" in payload else a.section_id
    if section_id != a.section_id and not s.get(WikiSection, section_id):
        raise NotFound("Section not found")
    slug = payload["slug"].strip() if "slug" in payload else a.slug
    if (section_id, slug) != (a.section_id, a.slug):
        clash = (
            s.query(WikiArticle.id)
            .filter(WikiArticle.section_id == section_id, WikiArticle.slug == slug, WikiArticle.id != a.id)
            .first()
        )
        if clash:
            raise Conflict("Slug already exists in this section")
    a.section_id = section_id
    a.slug = slug
    if "title" in payload:
        a.title = payload["title"].strip()
    if "content_md" in payload:
        a.content_md = payload.get("content_md") or ""
    if clean_str(payload.get("min_role")):
        a.min_role = payload["min_role"].strip().upper()
    a.updated_by_user_id = user.id
    a.last_updated_at = datetime.utcnow()
    record_event(s, actor=user, action="wiki.article_edit", entity_type="WikiArticle", entity_id=str(a.id))
    return a


def delete_article(s: "Session", user: User, article_id: int) -> None:
    a = s.get(WikiArticle, article_id)
    if not a:
        raise NotFound("Article not found")
    record_event(
        s,
        actor=user,
        action="wiki.article_delete",
        entity_type="WikiArticle",
        entity_id=str(a.id),
        metadata={"slug": a.slug},
    )
    s.delete(a)


def search_articles(
    s: "Session",
    user: User | None,
    query: str,
    *,
    section_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query = (query or "").strip()
    if not query:
        raise ValidationFailed("q is required")
    page = max(1, page)
    limit = max(1, min(limit, MAX_SEARCH_LIMIT))
    like = f"%{query}%"
    q = s.query(WikiArticle).filter(
        WikiArticle.min_role.in_(readable_roles(user)),
        or_(WikiArticle.title.ilike(like), WikiArticle.content_md.ilike(like)),
    )
    if section_id is not None:
        q = q.filter(WikiArticle.section_id == section_id)
    total = q.count()
    rows = q.order_by(WikiArticle.last_updated_at.desc()).offset((page - 1) * limit).limit(limit).all()
    results = []
    for a in rows:
        item = serialize_article(a, with_content=False)
        item["section_title"] = a.section.title if a.section else None
        item["snippet"] = (a.content_md or "")[:SNIPPET_LENGTH]
        results.append(item)
    return {
        "results": results,
        "total": total,
        "page": page,
        "limit": limit,
        "has_more": page * limit < total,
    }


# ---------- Comments ----------
def list_comments(s: "Session", user: User, article_id: int) -> list[WikiComment]:
    a = get_readable_article(s, user, article_id)
    return list(a.comments)


def add_comment(s: "Session", user: User, article_id: int, body: str | None) -> WikiComment:
    a = get_readable_article(s, user, article_id)
    body = (body or "").strip()
    if not body:
        raise ValidationFailed("Comment body is required")
    if len(body) > MAX_COMMENT_LENGTH:
        raise ValidationFailed(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")
    c = WikiComment(article_id=a.id, user_id=user.id, body=body, created_at=datetime.utcnow())
    s.add(c)
    s.flush()
    return c


def delete_comment(s: "Session", user: User, comment_id: int) -> None:
    c = s.get(WikiComment, comment_id)
    if not c:
        raise NotFound("Comment not found")
    if c.user_id != user.id and not is_admin(user):
        raise Forbidden("Only the author or an admin can delete this comment")
    s.delete(c)
