from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass

from app.core.config import StorageConfig
from app.lib.api_client import supabase_admin
from app.services.workflow import RemoteFailure, ValidationError

logger = logging.getLogger("journalportal.storage")

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _normalize_signed_url(resp: object) -> str | None:
    if not isinstance(resp, dict):
        return None
    return str(resp.get("signedUrl") or resp.get("signedURL") or "") or None


def ensure_bucket_exists(*, bucket: str, public: bool = False) -> None:
    """
    Create the bucket on first use (dev/demo environments).

    Production buckets should come from migrations / the dashboard; this only avoids a
    500 on a fresh project.
    """
    storage = getattr(supabase_admin, "storage", None)
    if storage is None or not hasattr(storage, "get_bucket") or not hasattr(storage, "create_bucket"):
        return

    try:
        storage.get_bucket(bucket)
        return
    except Exception:
        pass

    try:
        storage.create_bucket(bucket, options={"public": bool(public)})
    except Exception as e:
        text = str(e).lower()
        if "already" in text or "exists" in text or "duplicate" in text:
            return
        raise


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_in: int


def safe_filename(filename: str | None) -> str:
    name = _UNSAFE_NAME.sub("_", (filename or "").strip()).strip("._")
    return name[:120] or "manuscript"


def create_signed_url(*, bucket: str, path: str, expires_in: int) -> SignedUrl:
    try:
        signed = supabase_admin.storage.from_(bucket).create_signed_url(path, expires_in)
    except Exception as e:
        raise RemoteFailure("Failed to create signed url") from e
    url = _normalize_signed_url(signed)
    if not url:
        raise RemoteFailure("Failed to create signed url")
    return SignedUrl(url=url, expires_in=expires_in)


def remove_object(*, bucket: str, path: str) -> None:
    try:
        supabase_admin.storage.from_(bucket).remove([path])
    except Exception as e:
        logger.warning("Failed to remove orphan object %s/%s: %s", bucket, path, e)


def download_url_for(file_path: str | None, *, bucket: str, expires_in: int = 600) -> str | None:
    """
    Signed URL for objects in our bucket; external URLs pass through, other descriptors stay opaque.
    """
    ref = (file_path or "").strip()
    if not ref or ref.startswith("{"):
        return None
    if ref.startswith("http://") or ref.startswith("https://"):
        return ref
    try:
        return create_signed_url(bucket=bucket, path=ref, expires_in=expires_in).url
    except RemoteFailure as e:
        logger.warning("Signed url for %s failed: %s", ref, e)
        return None


def upload_manuscript(
    *,
    publisher_id: int,
    filename: str | None,
    content: bytes,
    content_type: str | None,
    config: StorageConfig | None = None,
) -> str:
    """
    Forward an uploaded manuscript to Storage and return the object path.

    The bytes are never inspected; only size and declared content type are checked.
    """
    cfg = config or StorageConfig.from_env()
    if not content:
        raise ValidationError("A manuscript file is required", field="file")
    if len(content) > cfg.max_upload_bytes:
        raise ValidationError(
            f"File exceeds the {cfg.max_upload_bytes // (1024 * 1024)} MB upload limit", field="file"
        )
    ctype = (content_type or "").split(";")[0].strip().lower()
    if cfg.allowed_content_types and ctype not in cfg.allowed_content_types:
        raise ValidationError(f"Unsupported file type: {ctype or 'unknown'}", field="file")

    path = f"{publisher_id}/{uuid.uuid4().hex}_{safe_filename(filename)}"
    try:
        ensure_bucket_exists(bucket=cfg.bucket, public=False)
        # storage3 expects string header values; a bool here breaks httpx
        opts = {"content-type": ctype, "upsert": "false"}
        supabase_admin.storage.from_(cfg.bucket).upload(path, content, opts)
    except Exception as e:
        logger.error("Manuscript upload to %s failed: %s", cfg.bucket, e)
        raise RemoteFailure("Failed to store manuscript file") from e
    return path
