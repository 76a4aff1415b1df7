from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.zv.audit import record_event
from app.zv.constants import ROLE_MASTER, ROLE_MODERATOR, ROLE_SUPERADMIN
from app.zv.errors import Forbidden, NotFound, ValidationFailed
from app.zv.modules.files.models import StoredFile
from app.zv.rbac import has_any_role, is_admin
from app.zv.storage import Storage

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.zv.models import User

logger = logging.getLogger(__name__)

MB = 1024 * 1024

IMAGE_TYPES = {
    "image/jpeg": ("jpg", "jpeg"),
    "image/png": ("png",),
    "image/webp": ("webp",),
    "image/gif": ("gif",),
}
DOCUMENT_TYPES = {
    "application/pdf": ("pdf",),
    "application/msword": ("doc",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ("docx",),
    "text/plain": ("txt",),
}

PUBLIC_AREAS = frozenset({"avatars", "uploads"})


@dataclass(frozen=True)
class UploadType:
    key: str
    area: str
    folder: str
    max_bytes: int
    mime_types: dict[str, tuple[str, ...]]
    # None means any logged-in user
    roles: tuple[str, ...] | None = None


UPLOAD_TYPES = {
    t.key: t
    for t in (
        UploadType("avatar", "avatars", "users", 5 * MB, IMAGE_TYPES),
        UploadType(
            "product-image",
            "uploads",
            "products",
            10 * MB,
            IMAGE_TYPES,
            roles=(ROLE_MODERATOR, ROLE_SUPERADMIN),
        ),
        UploadType(
            "report-attachment",
            "documents",
            "reports",
            10 * MB,
            {**IMAGE_TYPES, **DOCUMENT_TYPES},
            roles=(ROLE_MASTER, ROLE_MODERATOR, ROLE_SUPERADMIN),
        ),
    )
}


def sniff_content_type(data: bytes) -> str | None:
    """Detect a content type from magic bytes for the formats we can recognise."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if data.startswith(b"%PDF"):
        return "application/pdf"
    return None


def file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def client_filename(filename: str | None) -> str:
    """Last path component of the uploaded name, printable characters only. Non-ASCII names are kept."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = "".join(ch for ch in name if ch.isprintable()).strip()
    return name[:255] or "file"


def validate_upload(upload_type: UploadType, filename: str, content_type: str, data: bytes) -> list[str]:
    """Validate size, extension, declared type and magic bytes. Returns list of errors."""
    errors = []
    if not data:
        errors.append("File is empty.")
    elif len(data) > upload_type.max_bytes:
        errors.append(f"File too large. Maximum size is {upload_type.max_bytes // MB}MB.")
    content_type = (content_type or "").split(";")[0].strip().lower()
    allowed_exts = upload_type.mime_types.get(content_type)
    if allowed_exts is None:
        errors.append(f"File type {content_type or 'unknown'} is not allowed.")
    elif file_extension(filename) not in allowed_exts:
        errors.append("File extension does not match its type.")
    if data and allowed_exts is not None:
        sniffed = sniff_content_type(data)
        # Office/text formats have no reliable signature; recognised formats must match exactly.
        if content_type in IMAGE_TYPES or content_type == "application/pdf":
            if sniffed != content_type:
                errors.append("File content does not match its type.")
        elif sniffed is not None:
            errors.append("File content does not match its type.")
    return errors


def build_storage_key(upload_type: UploadType, filename: str) -> str:
    ext = file_extension(filename) or "bin"
    return f"{upload_type.area}/{upload_type.folder}/{int(time.time() * 1000)}_{uuid.uuid4().hex}.{ext}"


def upload_file(
    s: "Session",
    storage: Storage,
    user: "User",
    *,
    type_key: str,
    filename: str,
    content_type: str,
    data: bytes,
) -> StoredFile:
    upload_type = UPLOAD_TYPES.get(type_key)
    if not upload_type:
        raise ValidationFailed(f"Invalid upload type. Must be one of: {', '.join(UPLOAD_TYPES)}")
    if upload_type.roles and not has_any_role(user, upload_type.roles):
        raise Forbidden("Not allowed to upload this type of file")
    name = client_filename(filename)
    errors = validate_upload(upload_type, name, content_type, data)
    if errors:
        raise ValidationFailed(errors)

    key = build_storage_key(upload_type, name)
    content_type = content_type.split(";")[0].strip().lower()
    storage.put_bytes(key, data, content_type=content_type)

    f = StoredFile(
        storage_key=key,
        area=upload_type.area,
        folder=upload_type.folder,
        upload_type=upload_type.key,
        original_filename=name,
        content_type=content_type,
        size_bytes=len(data),
        sha256=hashlib.sha256(data).hexdigest(),
        uploaded_by_user_id=user.id,
    )
    s.add(f)
    s.flush()
    record_event(
        s,
        actor=user,
        action="file.upload",
        entity_type="StoredFile",
        entity_id=str(f.id),
        metadata={"key": key, "type": upload_type.key, "size_bytes": f.size_bytes},
    )
    logger.info("Stored %s (%s bytes) for user %s", key, f.size_bytes, user.id)
    return f


def delete_file(s: "Session", storage: Storage, user: "User", key: str) -> None:
    key = (key or "").strip().lstrip("/")
    if not key:
        raise ValidationFailed("key is required")
    f = s.query(StoredFile).filter(StoredFile.storage_key == key).one_or_none()
    if not f:
        raise NotFound("File not found")
    if f.uploaded_by_user_id != user.id and not is_admin(user):
        raise Forbidden("Only the uploader or an admin can delete this file")
    storage.delete(key)
    record_event(
        s,
        actor=user,
        action="file.delete",
        entity_type="StoredFile",
        entity_id=str(f.id),
        metadata={"key": key},
    )
    s.delete(f)


def public_file(s: "Session", storage: Storage, key: str) -> StoredFile | None:
    """Return the file record for a public download; raises when the key is not public or missing."""
    key = (key or "").strip().lstrip("/")
    area = key.split("/", 1)[0]
    if area not in PUBLIC_AREAS or ".." in key.split("/"):
        raise Forbidden("Access denied")
    if not storage.exists(key):
        raise NotFound("File not found")
    return s.query(StoredFile).filter(StoredFile.storage_key == key).one_or_none()
