"""
MedSnap Backend — Local Disk Blob Storage
===========================================

What:  BlobStorage implementation that keeps files under STORAGE_ROOT.
Why:   Development and self-hosted deployments without a hosted bucket.
How:   Async writes via aiofiles; signed URLs are HMAC-SHA256 tokens over
       (path, expiry) that the /api/files route verifies before serving.

Directory Structure:
    storage/
    └── <user_id>/
        ├── 1718000000000-3f2a9c1e-Sepsis_Protocol.pdf
        └── 1718000123456-0b7d44aa-ECG_chart.png

Security Model:
    1. Paths are resolved and must stay inside STORAGE_ROOT (no ../ escape)
    2. Files are opened with "xb" so an existing blob is never overwritten
    3. Reads require a valid, unexpired signature; the secret never leaves
       the server
"""

import hashlib
import hmac
import logging
import os
import time
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

import aiofiles

from medsnap.config import settings
from medsnap.exceptions import FileStorageError
from medsnap.services.storage_base import BlobStorage

logger = logging.getLogger(__name__)

FILES_ROUTE_PREFIX = "/api/files"


class LocalBlobStorage(BlobStorage):
    """
    Blobs as plain files on the local file system.

    Signed URL format:
        /api/files/<path>?expires=<unix seconds>&signature=<hex hmac>
    """

    name = "local"

    def __init__(self, storage_root: Optional[str] = None, secret: Optional[str] = None):
        """
        Args:
            storage_root: Override the configured root (used in tests).
            secret: Override the configured HMAC key (used in tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self._secret = (secret or settings.signed_url_secret).encode("utf-8")
        logger.info("LocalBlobStorage initialized with storage_root=%s", self.storage_root)

    # ── Path Handling ─────────────────────────────────────────────────────

    def resolve(self, path: str) -> Path:
        """
        Map a blob path to an absolute file path inside the storage root.

        Raises:
            FileStorageError: The path escapes the storage root.
        """
        full_path = (self.storage_root / path).resolve()
        if full_path != self.storage_root and self.storage_root not in full_path.parents:
            raise FileStorageError(
                message="Invalid file path",
                context={"path": path},
            )
        return full_path

    # ── BlobStorage ───────────────────────────────────────────────────────

    async def put(self, path: str, content: bytes, content_type: str) -> str:
        absolute_path = self.resolve(path)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            # "xb": exclusive create, fails if the blob already exists
            async with aiofiles.open(absolute_path, "xb") as f:
                await f.write(content)
        except FileExistsError:
            raise FileStorageError(
                message="A file with this name was just uploaded. Please try again.",
                context={"path": path},
            )
        except OSError as e:
            logger.error("Failed to store blob at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded file. Please try again.",
                context={"path": path, "os_error": str(e)},
            )

        logger.info("Blob stored: %s (%d bytes, %s)", path, len(content), content_type)
        return path

    async def remove(self, path: str) -> None:
        absolute_path = self.resolve(path)
        try:
            os.remove(absolute_path)
            logger.info("Blob removed: %s", path)
        except FileNotFoundError:
            logger.debug("Blob already gone: %s", path)
        except OSError as e:
            raise FileStorageError(
                message="Failed to delete file from storage",
                context={"path": path, "os_error": str(e)},
            )

    async def signed_url(self, path: str, expires_in: int) -> str:
        self.resolve(path)
        expires = int(time.time()) + expires_in
        query = urlencode({"expires": expires, "signature": self._sign(path, expires)})
        return f"{FILES_ROUTE_PREFIX}/{quote(path)}?{query}"

    async def health_check(self) -> bool:
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)

    # ── Signature Handling ────────────────────────────────────────────────

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify_signature(self, path: str, expires: int, signature: str, now: Optional[float] = None) -> bool:
        """True if the signature matches and has not expired."""
        current = time.time() if now is None else now
        if expires < current:
            return False
        # Bytes on both sides: compare_digest rejects non-ASCII str
        expected = self._sign(path, expires).encode("ascii")
        return hmac.compare_digest(expected, signature.encode("utf-8"))
