"""
MedSnap Backend — Row Storage Repositories
============================================

What:  Query and write helpers for the `profiles` and `guidelines` tables.
Why:   The reconciler and the catalog receive these objects explicitly, so
       tests can hand them a real in-memory database or a mock, and no
       service reaches for a global session.
How:   Each repository wraps the request's AsyncSession. Writes are flushed,
       not committed; get_db_session commits when the request succeeds.
       DocumentRepository.commit() is the one exception, used when a blob
       must not be removed until the row no longer points at it.

Two repositories:
    ProfileRepository   — billing state and the cached upload counter
    DocumentRepository  — guideline rows, always scoped by owner

Ownership:
    Every DocumentRepository read or write takes the owner's user ID and
    filters on it. A document that exists but belongs to someone else is
    indistinguishable from a missing one.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medsnap.exceptions import DatabaseError
from medsnap.models.document import Guideline
from medsnap.models.profile import Profile, SubscriptionPlan, SubscriptionStatus

logger = logging.getLogger(__name__)


class ProfileRepository:
    """Reads and writes rows of `profiles`."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> Optional[Profile]:
        result = await self.session.execute(
            select(Profile)
            .where(Profile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: str) -> Profile:
        """
        Fetch the caller's profile, creating a free/inactive one on first access.
        """
        profile = await self.get(user_id)
        if profile is not None:
            return profile

        profile = Profile(
            user_id=user_id,
            subscription_status=SubscriptionStatus.INACTIVE.value,
            subscription_plan=SubscriptionPlan.FREE.value,
            upload_count=0,
        )
        self.session.add(profile)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to create profile for %s: %s", user_id, str(e))
            raise DatabaseError(context={"user_id": user_id}) from e
        logger.info("Profile created for user %s", user_id)
        return profile

    async def get_by_customer_ref(self, customer_ref: str) -> Optional[Profile]:
        result = await self.session.execute(
            select(Profile)
            .where(Profile.stripe_customer_id == customer_ref)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_checkout(self, user_id: str, customer_ref: Optional[str]) -> None:
        """
        Create or update the owner's profile as an active pro subscriber.

        INSERT ... ON CONFLICT (user_id) DO UPDATE, so a redelivered
        checkout event lands on the same row instead of adding another.
        The upload counter of an existing row is left alone.
        """
        values = {
            "user_id": user_id,
            "subscription_status": SubscriptionStatus.ACTIVE.value,
            "subscription_plan": SubscriptionPlan.PRO.value,
            "stripe_customer_id": customer_ref,
            "upload_count": 0,
        }
        dialect = self.session.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = insert(Profile).values(**values)
        changes = {
            "subscription_status": stmt.excluded.subscription_status,
            "subscription_plan": stmt.excluded.subscription_plan,
            "updated_at": func.now(),
        }
        # A session without a customer keeps the ref already on file
        if customer_ref is not None:
            changes["stripe_customer_id"] = stmt.excluded.stripe_customer_id
        stmt = stmt.on_conflict_do_update(index_elements=[Profile.user_id], set_=changes)
        try:
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Checkout upsert failed for %s: %s", user_id, str(e))
            raise DatabaseError(context={"user_id": user_id}) from e

    async def set_status(self, profile: Profile, status: SubscriptionStatus) -> None:
        profile.subscription_status = status.value
        await self.session.flush()

    async def adjust_upload_count(self, user_id: str, delta: int) -> int:
        """
        Add delta to the cached counter, never going below zero.

        Returns:
            The counter value after the write.
        """
        profile = await self.get_or_create(user_id)
        profile.upload_count = max(0, (profile.upload_count or 0) + delta)
        await self.session.flush()
        return profile.upload_count

    async def set_upload_count(self, user_id: str, value: int) -> int:
        profile = await self.get_or_create(user_id)
        profile.upload_count = max(0, value)
        await self.session.flush()
        return profile.upload_count


class DocumentRepository:
    """Reads and writes rows of `guidelines`, scoped to one owner per call."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_owner(self, user_id: str) -> List[Guideline]:
        """All of the owner's guidelines, newest first."""
        result = await self.session.execute(
            select(Guideline)
            .where(Guideline.user_id == user_id)
            .order_by(Guideline.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_for_owner(self, user_id: str) -> int:
        """Authoritative document count (what the quota gate uses)."""
        result = await self.session.execute(
            select(func.count(Guideline.id)).where(Guideline.user_id == user_id)
        )
        return result.scalar() or 0

    async def get_owned(self, user_id: str, document_id: uuid.UUID) -> Optional[Guideline]:
        result = await self.session.execute(
            select(Guideline).where(Guideline.id == document_id, Guideline.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def insert(self, user_id: str, file_path: str, file_type: str, values: dict) -> Guideline:
        """
        Insert a guideline row and flush it so id and created_at are set.

        Raises:
            DatabaseError: The insert was rejected.
        """
        guideline = Guideline(user_id=user_id, file_path=file_path, file_type=file_type, **values)
        self.session.add(guideline)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Guideline insert failed for %s: %s", user_id, str(e))
            raise DatabaseError(
                message="Could not save the document. Please try again.",
                context={"user_id": user_id, "file_path": file_path},
            ) from e
        await self.session.refresh(guideline)
        return guideline

    async def update(self, guideline: Guideline, values: dict) -> Guideline:
        for column, value in values.items():
            setattr(guideline, column, value)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Guideline update failed for %s: %s", guideline.id, str(e))
            raise DatabaseError(
                message="Could not update the document. Please try again.",
                context={"document_id": str(guideline.id)},
            ) from e
        return guideline

    async def commit(self) -> None:
        """
        Make the pending writes durable now instead of at the end of the request.

        Raises:
            DatabaseError: The commit was rejected (the transaction is rolled back).
        """
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Guideline commit failed: %s", str(e))
            raise DatabaseError(message="Could not save the document. Please try again.") from e

    async def delete(self, guideline: Guideline) -> None:
        try:
            await self.session.delete(guideline)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Guideline delete failed for %s: %s", guideline.id, str(e))
            raise DatabaseError(
                message="Could not delete the document. Please try again.",
                context={"document_id": str(guideline.id)},
            ) from e

    async def rename_category(self, user_id: str, old: str, new: str) -> int:
        """
        Move every one of the owner's documents from one category to another.

        Returns:
            Number of rows changed.
        """
        result = await self.session.execute(
            update(Guideline)
            .where(Guideline.user_id == user_id, Guideline.category == old)
            .values(category=new)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

