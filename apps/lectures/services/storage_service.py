import logging
import secrets
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Tuple

import redis.asyncio as redis

from apps.lectures.exceptions import StorageObjectNotFound, UploadTargetExpired
from apps.lectures.schemas.document import StoredObjectResponse, UploadTargetResponse

logger = logging.getLogger(__name__)

UPLOAD_KEY_PREFIX = "storage:upload:"
OBJECT_KEY_PREFIX = "storage:object:"


class ObjectStorage(ABC):
    """Raw byte storage with short-lived upload and download URLs"""

    @abstractmethod
    async def issue_upload_target(self) -> UploadTargetResponse:
        """Return a URL the client may POST raw bytes to before it expires"""

    @abstractmethod
    async def store_upload(self, token: str, data: bytes, content_type: str) -> StoredObjectResponse:
        """Consume an upload target and persist the bytes as a new object"""

    @abstractmethod
    async def resolve_download_url(self, storage_id: str) -> str:
        """Return a download URL, raising StorageObjectNotFound if absent"""

    @abstractmethod
    async def object_size(self, storage_id: str) -> int:
        """Return the stored size in bytes, raising StorageObjectNotFound if absent"""

    @abstractmethod
    async def read_object(self, storage_id: str) -> Tuple[bytes, str]:
        """Return (data, content_type), raising StorageObjectNotFound if absent"""

    @abstractmethod
    async def delete(self, storage_id: str) -> None:
        """Delete an object; deleting a missing object is not an error"""


class RedisObjectStorage(ObjectStorage):
    """Object storage kept in Redis hashes.

    Upload targets are single-use tokens with a TTL; the matching route
    swaps the token for a storage id when the bytes arrive.
    """

    def __init__(self, client: redis.Redis, public_base_url: str, upload_ttl_seconds: int = 3600):
        self.client = client
        self.public_base_url = public_base_url.rstrip("/")
        self.upload_ttl_seconds = upload_ttl_seconds

    def _route(self, path: str) -> str:
        return f"{self.public_base_url}/api/v1/lectures/storage/{path}"

    async def issue_upload_target(self) -> UploadTargetResponse:
        token = secrets.token_urlsafe(24)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.upload_ttl_seconds)
        await self.client.set(f"{UPLOAD_KEY_PREFIX}{token}", b"1", ex=self.upload_ttl_seconds)
        return UploadTargetResponse(
            upload_url=self._route(f"upload/{token}"),
            token=token,
            expires_at=expires_at
        )

    async def store_upload(self, token: str, data: bytes, content_type: str) -> StoredObjectResponse:
        claimed = await self.client.getdel(f"{UPLOAD_KEY_PREFIX}{token}")
        if claimed is None:
            raise UploadTargetExpired("Upload URL is unknown or has expired")

        storage_id = str(uuid.uuid4())
        content_type = content_type or "application/octet-stream"
        await self.client.hset(
            f"{OBJECT_KEY_PREFIX}{storage_id}",
            mapping={
                "data": data,
                "content_type": content_type,
                "size": len(data),
            }
        )
        logger.info(f"Stored object {storage_id} ({len(data)} bytes, {content_type})")
        return StoredObjectResponse(storage_id=storage_id, content_type=content_type, size=len(data))

    async def resolve_download_url(self, storage_id: str) -> str:
        if not await self.client.exists(f"{OBJECT_KEY_PREFIX}{storage_id}"):
            raise StorageObjectNotFound(storage_id)
        return self._route(f"objects/{storage_id}")

    async def read_object(self, storage_id: str) -> Tuple[bytes, str]:
        data, content_type = await self.client.hmget(
            f"{OBJECT_KEY_PREFIX}{storage_id}", ["data", "content_type"]
        )
        if data is None:
            raise StorageObjectNotFound(storage_id)
        if isinstance(content_type, bytes):
            content_type = content_type.decode()
        return data, content_type or "application/octet-stream"

    async def object_size(self, storage_id: str) -> int:
        size = await self.client.hget(f"{OBJECT_KEY_PREFIX}{storage_id}", "size")
        if size is None:
            raise StorageObjectNotFound(storage_id)
        return int(size)

    async def delete(self, storage_id: str) -> None:
        await self.client.delete(f"{OBJECT_KEY_PREFIX}{storage_id}")
        logger.info(f"Deleted storage object {storage_id}")
