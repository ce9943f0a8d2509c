from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Optional, Protocol

import httpx

from giftflow.schemas.flows import Asset
from giftflow.services.errors import AssetNotFoundError, AssetRejectedError, StoreFailureError
from giftflow.storage import RowStore, StoreError, get_store

logger = logging.getLogger(__name__)

MAX_ASSET_BYTES = 10 * 1024 * 1024
DEFAULT_BUCKET = "project-assets"

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif", "application/pdf")


def _is_webp(data: bytes) -> bool:
    return data[:4] == b"RIFF" and data[8:12] == b"WEBP"


_SIGNATURES = {
    "image/jpeg": lambda d: d[:3] == b"\xff\xd8\xff",
    "image/png": lambda d: d[:8] == b"\x89PNG\r\n\x1a\n",
    "image/gif": lambda d: d[:6] in (b"GIF87a", b"GIF89a"),
    "image/webp": _is_webp,
    "application/pdf": lambda d: d[:5] == b"%PDF-",
}


class ObjectStorage(Protocol):
    bucket: str

    def upload(self, path: str, data: bytes, content_type: str) -> None: ...

    def remove(self, path: str) -> None: ...

    def public_url(self, path: str) -> str: ...


class SupabaseObjectStorage:
    """Supabase Storage over its REST API, authenticated with the service role key."""

    def __init__(
        self,
        base_url: str | None = None,
        service_key: str | None = None,
        *,
        bucket: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("SUPABASE_URL") or "").rstrip("/")
        self.service_key = service_key if service_key is not None else os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
        self.bucket = bucket or os.getenv("ASSET_BUCKET") or DEFAULT_BUCKET
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        if not self.base_url or not self.service_key:
            raise RuntimeError("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not configured")
        return httpx.Client(
            base_url=f"{self.base_url}/storage/v1",
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.service_key}", "apikey": self.service_key},
        )

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        with self._client() as client:
            resp = client.post(
                f"/object/{self.bucket}/{path}",
                content=data,
                headers={"Content-Type": content_type, "Cache-Control": "3600", "x-upsert": "false"},
            )
        resp.raise_for_status()

    def remove(self, path: str) -> None:
        with self._client() as client:
            resp = client.request("DELETE", f"/object/{self.bucket}", json={"prefixes": [path]})
        resp.raise_for_status()

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"


def get_object_storage() -> ObjectStorage:
    return SupabaseObjectStorage()


def sanitize_file_name(file_name: str) -> str:
    name = os.path.basename(file_name or "").strip()
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name[:120] or "upload"


def validate_upload(data: bytes, mime_type: str) -> None:
    if not data:
        raise AssetRejectedError("The file is empty.")
    if len(data) > MAX_ASSET_BYTES:
        raise AssetRejectedError("File is too large. Maximum size is 10MB.")
    if mime_type not in ALLOWED_MIME_TYPES:
        raise AssetRejectedError("Unsupported file type. Upload a JPEG, PNG, WebP, GIF or PDF.")
    if not _SIGNATURES[mime_type](data):
        raise AssetRejectedError("File contents do not match its type.")


def asset_from_row(row: dict[str, Any], storage: Optional[ObjectStorage] = None) -> Asset:
    return Asset(
        id=str(row["id"]),
        owner_id=str(row["user_id"]),
        project_id=row.get("project_id"),
        storage_ref=f"{row['storage_bucket']}/{row['storage_path']}",
        file_name=row["file_name"],
        file_size=int(row["file_size"]),
        mime_type=row["mime_type"],
        width=row.get("width"),
        height=row.get("height"),
        alt_text=row.get("alt_text"),
        attribution=row.get("attribution"),
        public_url=storage.public_url(row["storage_path"]) if storage else None,
    )


def upload_asset(
    owner_id: str,
    file_name: str,
    data: bytes,
    mime_type: str,
    *,
    project_id: Optional[str] = None,
    alt_text: Optional[str] = None,
    store: RowStore | None = None,
    storage: ObjectStorage | None = None,
) -> Asset:
    store = store or get_store()
    storage = storage or get_object_storage()
    validate_upload(data, mime_type)

    if project_id:
        try:
            project = store.select_one("projects", where={"id": project_id, "user_id": owner_id})
        except StoreError as exc:
            raise StoreFailureError("Failed to load project.") from exc
        if not project:
            raise AssetRejectedError("Project not found for this upload.")

    safe_name = sanitize_file_name(file_name)
    path = f"{owner_id}/{project_id or 'temp'}/{int(time.time() * 1000)}_{safe_name}"
    try:
        storage.upload(path, data, mime_type)
    except (httpx.HTTPError, RuntimeError) as exc:
        logger.error("Asset upload to %s failed: %s", path, exc)
        raise StoreFailureError("Failed to upload file.") from exc

    try:
        row = store.insert(
            "assets",
            {
                "user_id": owner_id,
                "project_id": project_id,
                "storage_bucket": storage.bucket,
                "storage_path": path,
                "file_name": safe_name,
                "file_size": len(data),
                "mime_type": mime_type,
                "alt_text": alt_text,
            },
        )
    except StoreError as exc:
        logger.error("Asset row insert failed, removing uploaded object %s: %s", path, exc)
        try:
            storage.remove(path)
        except (httpx.HTTPError, RuntimeError):
            logger.exception("Cleanup of uploaded object %s failed", path)
        raise StoreFailureError("Failed to save file record.") from exc

    logger.info("Asset %s uploaded (%s bytes, %s)", row["id"], len(data), mime_type)
    return asset_from_row(row, storage)


def delete_asset(
    owner_id: str,
    asset_id: str,
    *,
    store: RowStore | None = None,
    storage: ObjectStorage | None = None,
) -> None:
    """Remove an asset. Node content still pointing at it renders without media."""
    store = store or get_store()
    storage = storage or get_object_storage()
    try:
        row = store.select_one("assets", where={"id": asset_id, "user_id": owner_id})
    except StoreError as exc:
        raise StoreFailureError("Failed to load file.") from exc
    if not row:
        raise AssetNotFoundError("Asset not found")
    try:
        storage.remove(row["storage_path"])
    except (httpx.HTTPError, RuntimeError) as exc:
        logger.warning("Removing stored object for asset %s failed: %s", asset_id, exc)
    try:
        store.delete("assets", where={"id": asset_id, "user_id": owner_id})
    except StoreError as exc:
        raise StoreFailureError("Failed to delete file.") from exc
    logger.info("Asset %s deleted", asset_id)
