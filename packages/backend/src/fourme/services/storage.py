"""Object store client — attachment bytes live outside the database.

Speaks the Supabase Storage HTTP API with a service key:

    upload  POST   {url}/storage/v1/object/{bucket}/{path}
    public  GET    {url}/storage/v1/object/public/{bucket}/{path}
    delete  DELETE {url}/storage/v1/object/{bucket}/{path}

Only the public URL is persisted; the object path is recovered from it
when the attachment is deleted.
"""

import re
import time
from typing import Optional

import httpx
import structlog

from fourme.config import settings

logger = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(Exception):
    """The object store refused or could not be reached.

    Messages never include the service key.
    """


def safe_filename(filename: str) -> str:
    """Strip directory parts and anything that isn't URL-path safe."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or "file"


class ObjectStore:
    """Upload, locate, and delete attachment objects in one bucket."""

    def __init__(
        self,
        base_url: str,
        key: str,
        bucket: str,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.key = key
        self.bucket = bucket
        self._http = http

    # ─── Paths ──────────────────────────────────────────

    def object_path(self, task_id: int, filename: str, now: Optional[float] = None) -> str:
        stamp = int(now if now is not None else time.time())
        return f"tasks/{task_id}/{stamp}-{safe_filename(filename)}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def path_from_url(self, file_url: str) -> Optional[str]:
        prefix = f"{self.base_url}/storage/v1/object/public/{self.bucket}/"
        if not file_url.startswith(prefix):
            return None
        return file_url[len(prefix):]

    # ─── Operations ─────────────────────────────────────

    async def upload(
        self, path: str, content: bytes, content_type: Optional[str]
    ) -> str:
        """Store `content` under `path` and return its public URL."""
        if not self.base_url:
            raise StorageError("object storage is not configured")

        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        headers = {
            "Authorization": f"Bearer {self.key}",
            "Content-Type": content_type or "application/octet-stream",
        }
        try:
            resp = await self._request("POST", url, headers=headers, content=content)
        except httpx.HTTPError as e:
            raise StorageError(f"object store unreachable: {type(e).__name__}") from e

        if resp.status_code not in (200, 201):
            raise StorageError(f"upload rejected with HTTP {resp.status_code}")

        logger.info("storage.uploaded", path=path, size=len(content))
        return self.public_url(path)

    async def delete(self, path: str) -> None:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        try:
            resp = await self._request(
                "DELETE", url, headers={"Authorization": f"Bearer {self.key}"}
            )
        except httpx.HTTPError as e:
            raise StorageError(f"object store unreachable: {type(e).__name__}") from e

        if resp.status_code not in (200, 204, 404):
            raise StorageError(f"delete rejected with HTTP {resp.status_code}")

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http is not None:
            return await self._http.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=30.0) as http:
            return await http.request(method, url, **kwargs)


def get_object_store() -> ObjectStore:
    """FastAPI dependency — overridden in tests."""
    return ObjectStore(
        base_url=settings.storage_url,
        key=settings.storage_key,
        bucket=settings.storage_bucket,
    )
