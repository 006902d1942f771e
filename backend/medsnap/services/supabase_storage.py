"""
MedSnap Backend — Hosted Bucket Blob Storage (Supabase Storage)
=================================================================

What:  BlobStorage implementation over the Supabase Storage REST API.
Why:   Production keeps uploads in the hosted project's private bucket so
       files are only reachable through signed URLs.
How:   httpx.AsyncClient against <SUPABASE_URL>/storage/v1 authenticated with
       the service-role key.

Endpoints used:
    POST   /object/{bucket}/{path}         upload (x-upsert: false)
    DELETE /object/{bucket}                body {"prefixes": [path]}
    POST   /object/sign/{bucket}/{path}    body {"expiresIn": seconds}
    GET    /bucket/{bucket}                health check

Timeouts come from the HTTP client; nothing here retries.
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from medsnap.config import settings
from medsnap.exceptions import ConfigurationError, FileStorageError
from medsnap.services.storage_base import BlobStorage

logger = logging.getLogger(__name__)


class SupabaseBlobStorage(BlobStorage):
    """Blobs in a Supabase Storage bucket."""

    name = "supabase"

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Project URL (defaults to SUPABASE_URL).
            service_key: Service-role key (defaults to SUPABASE_SERVICE_KEY).
            bucket: Bucket name (defaults to STORAGE_BUCKET).
            client: Pre-built client (tests pass one with a MockTransport).

        Raises:
            ConfigurationError: URL or service key missing.
        """
        base_url = base_url or settings.supabase_url
        service_key = service_key or settings.supabase_service_key
        if not base_url or not service_key:
            raise ConfigurationError("Storage not configured")

        self.bucket = bucket or settings.storage_bucket
        self.storage_url = f"{base_url.rstrip('/')}/storage/v1"
        headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": settings.supabase_anon_key or service_key,
        }
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))
        self._client.headers.update(headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _upstream_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        return body.get("message") or body.get("error") or f"HTTP {response.status_code}"

    def _raise_for(self, response: httpx.Response, action: str, path: str) -> None:
        if response.is_success:
            return
        upstream = self._upstream_message(response)
        if "not found" in upstream.lower() and "bucket" in upstream.lower():
            message = f'Storage bucket "{self.bucket}" not found. Create it in the storage dashboard.'
        else:
            message = f"{action} failed: {upstream}"
        raise FileStorageError(
            message=message,
            context={"path": path, "status": response.status_code},
        )

    async def put(self, path: str, content: bytes, content_type: str) -> str:
        url = f"{self.storage_url}/object/{self.bucket}/{quote(path)}"
        try:
            response = await self._client.post(
                url,
                content=content,
                headers={
                    "Content-Type": content_type,
                    "cache-control": "3600",
                    "x-upsert": "false",
                },
            )
        except httpx.HTTPError as e:
            raise FileStorageError(message=f"Upload failed: {e}", context={"path": path}) from e

        self._raise_for(response, "Upload", path)
        logger.info("Blob uploaded to bucket %s: %s (%d bytes)", self.bucket, path, len(content))
        return path

    async def remove(self, path: str) -> None:
        try:
            response = await self._client.request(
                "DELETE",
                f"{self.storage_url}/object/{self.bucket}",
                json={"prefixes": [path]},
            )
        except httpx.HTTPError as e:
            raise FileStorageError(message=f"Delete failed: {e}", context={"path": path}) from e

        self._raise_for(response, "Delete", path)
        logger.info("Blob removed from bucket %s: %s", self.bucket, path)

    async def signed_url(self, path: str, expires_in: int) -> str:
        try:
            response = await self._client.post(
                f"{self.storage_url}/object/sign/{self.bucket}/{quote(path)}",
                json={"expiresIn": expires_in},
            )
        except httpx.HTTPError as e:
            raise FileStorageError(message=f"Signing failed: {e}", context={"path": path}) from e

        self._raise_for(response, "Signing", path)
        signed = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed:
            raise FileStorageError(message="Signing failed: empty response", context={"path": path})
        # The API returns a path relative to /storage/v1
        if signed.startswith("http"):
            return signed
        return f"{self.storage_url}{signed}"

    async def health_check(self) -> bool:
        try:
            response = await self._client.get(f"{self.storage_url}/bucket/{self.bucket}")
            return response.is_success
        except httpx.HTTPError as e:
            logger.warning("Storage health check failed: %s", str(e))
            return False
