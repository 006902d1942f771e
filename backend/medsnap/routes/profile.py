"""
MedSnap Backend — Profile Route Handlers
==========================================

What:  The caller's subscription and usage state, and the counter repair.
Who:   The usage indicator and the profile dialog.

    GET  /api/profile            profile (created on first access) + quota state
    POST /api/profile/reconcile  rewrite upload_count from the real document count
"""

import logging

from fastapi import APIRouter, Depends

from medsnap.dependencies import get_current_user_id, get_document_catalog
from medsnap.schemas.common import ErrorResponse
from medsnap.schemas.document import ReconcileResponse, UsageResponse
from medsnap.services.document_service import DocumentCatalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profile", tags=["Profile"])


@router.get(
    "",
    response_model=UsageResponse,
    responses={401: {"description": "No caller identity", "model": ErrorResponse}},
    summary="Current subscription and upload usage",
)
async def get_profile(
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> UsageResponse:
    """
    upload_limit and remaining_uploads are null for active and cancelling
    subscriptions. can_upload is computed from the authoritative document
    count, not the cached upload_count.
    """
    return UsageResponse(**await catalog.usage(user_id))


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="Recompute the cached upload counter",
)
async def reconcile_upload_count(
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> ReconcileResponse:
    upload_count = await catalog.reconcile_upload_count(user_id)
    return ReconcileResponse(upload_count=upload_count)
