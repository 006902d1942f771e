"""
MedSnap Backend — FastAPI Dependencies
========================================

What:  Builds the per-request service objects the routes need.
Why:   Services take their collaborators as constructor arguments (no
       module-level singletons), so the wiring lives in one place and tests
       swap any piece with app.dependency_overrides.
How:   Plain FastAPI Depends() chains rooted at get_db_session.

Caller identity:
    Authentication is handled in front of this service; the gateway passes
    the verified user ID in the X-User-ID header. A request without it is
    rejected with 401 before any handler runs.
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from medsnap.config import settings
from medsnap.database import get_db_session
from medsnap.exceptions import AuthenticationError
from medsnap.services.data_store import DocumentRepository, ProfileRepository
from medsnap.services.document_service import DocumentCatalog
from medsnap.services.local_storage import LocalBlobStorage
from medsnap.services.payment_service import PaymentGateway
from medsnap.services.storage_base import BlobStorage
from medsnap.services.subscription_service import SubscriptionReconciler
from medsnap.services.supabase_storage import SupabaseBlobStorage

logger = logging.getLogger(__name__)


# ── Identity ──────────────────────────────────────────────────────────────

async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AuthenticationError()
    return user_id


# ── Adapters ──────────────────────────────────────────────────────────────

@lru_cache(maxsize=1)
def build_blob_storage() -> BlobStorage:
    """
    One storage client per process, chosen by STORAGE_BACKEND.

    Raises:
        ConfigurationError: supabase selected without URL / service key
            (not cached, so fixing the env and retrying works after restart).
    """
    if settings.storage_backend == "supabase":
        return SupabaseBlobStorage()
    return LocalBlobStorage()


def get_blob_storage() -> BlobStorage:
    return build_blob_storage()


def get_payment_gateway() -> PaymentGateway:
    """Raises ConfigurationError (500) when STRIPE_SECRET_KEY is missing."""
    return PaymentGateway()


# ── Repositories ──────────────────────────────────────────────────────────

def get_profile_repository(session: AsyncSession = Depends(get_db_session)) -> ProfileRepository:
    return ProfileRepository(session)


def get_document_repository(session: AsyncSession = Depends(get_db_session)) -> DocumentRepository:
    return DocumentRepository(session)


# ── Services ──────────────────────────────────────────────────────────────

def get_document_catalog(
    documents: DocumentRepository = Depends(get_document_repository),
    profiles: ProfileRepository = Depends(get_profile_repository),
    storage: BlobStorage = Depends(get_blob_storage),
) -> DocumentCatalog:
    return DocumentCatalog(documents=documents, profiles=profiles, storage=storage)


def get_reconciler(
    profiles: ProfileRepository = Depends(get_profile_repository),
    payments: PaymentGateway = Depends(get_payment_gateway),
) -> SubscriptionReconciler:
    return SubscriptionReconciler(profiles=profiles, payments=payments)
