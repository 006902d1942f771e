"""
MedSnap Backend — Signed File Route
=====================================

What:  Serves blobs stored on local disk to holders of a valid signed URL.
Why:   LocalBlobStorage hands out /api/files/<path>?expires=..&signature=..
       URLs; this is the endpoint behind them. The hosted bucket serves its
       own signed URLs, so with STORAGE_BACKEND=supabase this route 404s.

Security:
    - Signature is HMAC-SHA256 over (path, expires) with SIGNED_URL_SECRET
    - Expired or tampered URLs are refused with 404 (no oracle for probing)
    - The resolved path must stay inside STORAGE_ROOT
"""

import logging
import mimetypes

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from medsnap.dependencies import get_blob_storage
from medsnap.exceptions import NotFoundError
from medsnap.services.local_storage import LocalBlobStorage
from medsnap.services.storage_base import BlobStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Files"])


@router.get(
    "/files/{file_path:path}",
    summary="Serve an uploaded file through a signed URL",
    responses={
        200: {"description": "File content"},
        404: {"description": "Unknown file, or signature invalid or expired"},
    },
)
async def serve_file(
    file_path: str,
    expires: int = Query(..., description="Unix time after which the URL is invalid"),
    signature: str = Query(..., description="Hex HMAC from the signed URL"),
    storage: BlobStorage = Depends(get_blob_storage),
) -> FileResponse:
    if not isinstance(storage, LocalBlobStorage):
        raise NotFoundError(resource="file", resource_id=file_path)

    if not storage.verify_signature(file_path, expires, signature):
        logger.warning("Rejected file request with bad or expired signature: %s", file_path)
        raise NotFoundError(resource="file", resource_id=file_path)

    full_path = storage.resolve(file_path)
    if not full_path.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)

    media_type, _ = mimetypes.guess_type(full_path.name)
    return FileResponse(
        path=str(full_path),
        media_type=media_type or "application/octet-stream",
        # Private: URLs are per user and expire
        headers={"Cache-Control": "private, max-age=300"},
    )
