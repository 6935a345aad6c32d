import asyncio
import logging
import re
import time
from typing import Any, List, Optional

from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.exceptions import StorageUnavailable, UploadFailed

logger = logging.getLogger("storage_service")

ALLOWED_MIME_TYPES = ["image/jpeg", "image/png", "image/webp", "image/gif", "image/heic"]
CACHE_CONTROL_SECONDS = 3600

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

def _error_status(error: Exception) -> Optional[int]:
    for attr in ("status", "status_code", "statusCode"):
        value = getattr(error, attr, None)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None

def classify_upload_error(error: Exception) -> str:
    """Map a Supabase storage error onto an UploadFailed reason."""
    status = _error_status(error)
    message = str(getattr(error, "message", None) or error).lower()

    if status == 404 or "bucket not found" in message:
        return UploadFailed.CONTAINER_MISSING
    if status in (401, 403) or "unauthorized" in message or "row-level security" in message:
        return UploadFailed.PERMISSION_DENIED
    if status == 413 or "payload too large" in message or "exceeded the maximum allowed size" in message:
        return UploadFailed.PAYLOAD_TOO_LARGE
    return UploadFailed.UNKNOWN

def _is_already_exists(error: Exception) -> bool:
    message = str(getattr(error, "message", None) or error).lower()
    return _error_status(error) == 409 or "already exists" in message or "duplicate" in message

class StorageService:
    """
    Stores user files in a Supabase Storage bucket and hands back public URLs.

    The bucket is created lazily on first upload. The Supabase client is
    synchronous, so every call runs in the threadpool.
    """

    def __init__(
        self,
        client: Any,
        bucket_name: Optional[str] = None,
        max_file_size: Optional[int] = None,
        allowed_mime_types: Optional[List[str]] = None
    ):
        self.client = client
        self.bucket_name = bucket_name or settings.storage_bucket
        self.max_file_size = max_file_size or settings.max_file_size
        self.allowed_mime_types = allowed_mime_types or ALLOWED_MIME_TYPES
        self._bucket_ready = False
        self._lock = asyncio.Lock()

    async def ensure_container_ready(self) -> bool:
        if self._bucket_ready:
            return True

        async with self._lock:
            if self._bucket_ready:
                return True
            try:
                buckets = await run_in_threadpool(self.client.storage.list_buckets)
                names = {getattr(bucket, "name", None) or getattr(bucket, "id", None) for bucket in buckets}
                if self.bucket_name not in names:
                    await self._create_bucket()
                self._bucket_ready = True
            except Exception as e:
                logger.error(f"Storage bucket '{self.bucket_name}' is not available: {e}", exc_info=True)
                return False
        return True

    async def _create_bucket(self):
        logger.info(f"Creating storage bucket '{self.bucket_name}'")
        options = {
            "public": True,
            "allowed_mime_types": self.allowed_mime_types,
            "file_size_limit": self.max_file_size,
        }
        try:
            await run_in_threadpool(self.client.storage.create_bucket, self.bucket_name, options=options)
        except Exception as e:
            # Another worker created it between list and create
            if not _is_already_exists(e):
                raise
            logger.info(f"Storage bucket '{self.bucket_name}' already exists")

    async def upload(self, data: bytes, target_name: str, content_type: str = "image/jpeg") -> str:
        """
        Upload bytes under ``target_name`` and return the public URL.

        Existing objects with the same name are overwritten; names carry a
        user id and a timestamp so collisions only happen on retries.
        """
        if not await self.ensure_container_ready():
            raise StorageUnavailable(f"Bucket '{self.bucket_name}' is not available")

        bucket = self.client.storage.from_(self.bucket_name)
        file_options = {
            "cache-control": str(CACHE_CONTROL_SECONDS),
            "content-type": content_type,
            "upsert": "true",
        }
        try:
            result = await run_in_threadpool(bucket.upload, target_name, data, file_options)
        except Exception as e:
            reason = classify_upload_error(e)
            logger.error(f"Upload of '{target_name}' failed ({reason}): {e}")
            if reason == UploadFailed.CONTAINER_MISSING:
                # Force a re-check on the next upload
                self._bucket_ready = False
            raise UploadFailed(reason, str(e)) from e

        path = getattr(result, "path", None) or target_name
        try:
            public_url = await run_in_threadpool(bucket.get_public_url, path)
        except Exception as e:
            raise UploadFailed(UploadFailed.UNKNOWN, f"could not resolve public URL: {e}") from e

        if not public_url:
            raise UploadFailed(UploadFailed.UNKNOWN, "could not get public URL for the uploaded file")
        return public_url

    @staticmethod
    def build_object_name(user_id: int, original_name: Optional[str] = None, extension: str = "jpg") -> str:
        timestamp = int(time.time() * 1000)
        if original_name:
            safe_name = _UNSAFE_NAME_CHARS.sub("_", original_name).strip("._") or "file"
            return f"user_{user_id}_{timestamp}_{safe_name}"
        return f"user_{user_id}_{timestamp}.{extension}"
