"""
Report photo storage on Supabase Storage.

Objects live in one public bucket under `{user_id}/{random}.{ext}`. Without
Supabase credentials (local runs, tests) nothing is sent and photos get a
mock URL instead.

Usage:
    storage = get_storage_service()
    public_url, path = await storage.upload_image(content, filename, content_type, user_id)
"""
import httpx
import uuid
import logging
from typing import Optional, Tuple

from ..core.config import settings
from ..domain.errors import RemoteError

logger = logging.getLogger(__name__)

MOCK_BASE_URL = "https://mock-storage.com"
MOCK_PREFIX = "mock/"


class StorageError(RemoteError):
    """Raised when storage operation fails."""
    pass


class SupabaseStorageService:

    def __init__(self):
        self.url = settings.SUPABASE_URL
        self.key = settings.SUPABASE_SERVICE_KEY
        self.bucket = settings.SUPABASE_STORAGE_BUCKET

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.key)

    def generate_path(self, filename: str, user_id: str) -> str:
        """Owner id plus a random name, keeping a sanitized extension if there is one."""
        ext = ""
        if filename and "." in filename:
            ext = "".join(c for c in filename.rsplit(".", 1)[1].lower() if c.isalnum())[:8]
        name = uuid.uuid4().hex
        return f"{user_id}/{name}.{ext}" if ext else f"{user_id}/{name}"

    def object_url(self, path: str) -> str:
        return f"{self.url}/storage/v1/object/{self.bucket}/{path}"

    def public_url(self, path: str) -> str:
        if path.startswith(MOCK_PREFIX):
            return f"{MOCK_BASE_URL}/{path[len(MOCK_PREFIX):]}"
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{path}"

    async def _send(self, method: str, path: str, timeout: float, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.key}", "apikey": self.key}
        headers.update(kwargs.pop("headers", {}))
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.request(method, self.object_url(path), headers=headers, **kwargs)

    async def upload_image(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        user_id: str
    ) -> Tuple[str, str]:
        """
        Returns:
            (public_url, storage_path)

        Raises:
            StorageError: Supabase rejected the upload or could not be reached
        """
        path = self.generate_path(filename, user_id)

        if not self.is_configured:
            logger.warning("Supabase storage not configured, returning mock URL")
            return self.public_url(MOCK_PREFIX + path), MOCK_PREFIX + path

        try:
            response = await self._send(
                "POST", path, 30.0, content=content, headers={"Content-Type": content_type}
            )
        except httpx.TimeoutException:
            logger.error(f"Supabase upload timed out for {filename}")
            raise StorageError("Upload timed out after 30 seconds")
        except httpx.RequestError as e:
            logger.error(f"Supabase upload request failed: {e}")
            raise StorageError(f"Request failed: {e}")

        if response.status_code not in (200, 201):
            logger.error(f"Supabase upload failed: {response.status_code} - {response.text[:500]}")
            raise StorageError(f"Upload failed with status {response.status_code}")

        logger.info(f"Uploaded report photo {path}")
        return self.public_url(path), path

    async def delete_image(self, path: str) -> bool:
        """
        Remove an uploaded photo. Used to undo an upload whose report was
        never saved; a missing object counts as deleted.
        """
        if not self.is_configured or path.startswith(MOCK_PREFIX):
            return True

        try:
            response = await self._send("DELETE", path, 10.0)
        except httpx.HTTPError as e:
            logger.warning(f"Error deleting photo {path}: {e}")
            return False

        if response.status_code not in (200, 204, 404):
            logger.warning(f"Failed to delete {path}: {response.status_code}")
            return False
        return True


_storage_service: Optional[SupabaseStorageService] = None


def get_storage_service() -> SupabaseStorageService:
    """Get or create storage service singleton instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = SupabaseStorageService()
    return _storage_service
