"""
MedSnap Backend — Row Storage Tests
=====================================

Tests ProfileRepository and DocumentRepository against an in-memory SQLite
database (see conftest.py).

Test Coverage:
    ✅ get_or_create makes one free/inactive profile and reuses it
    ✅ Checkout upsert is idempotent (one row, counter untouched)
    ✅ Customer lookup
    ✅ Upload counter never drops below zero
    ✅ Document queries are owner-scoped and newest-first
    ✅ Category rename only touches the owner's rows
"""

import uuid

import pytest
from sqlalchemy import func, select

from medsnap.models.profile import Profile


@pytest.mark.asyncio
class TestProfileRepository:

    async def test_get_or_create_defaults(self, profiles):
        profile = await profiles.get_or_create("user-1")
        assert profile.subscription_status == "inactive"
        assert profile.subscription_plan == "free"
        assert profile.upload_count == 0
        assert profile.stripe_customer_id is None

    async def test_get_or_create_reuses_row(self, profiles, db_session):
        await profiles.get_or_create("user-1")
        await profiles.get_or_create("user-1")
        count = (await db_session.execute(select(func.count()).select_from(Profile))).scalar()
        assert count == 1

    async def test_checkout_upsert_is_idempotent(self, profiles, db_session):
        """Redelivered checkout events must land on the same row."""
        await profiles.upsert_checkout("user-1", "cus_123")
        await profiles.upsert_checkout("user-1", "cus_123")

        count = (await db_session.execute(select(func.count()).select_from(Profile))).scalar()
        assert count == 1
        profile = await profiles.get("user-1")
        assert profile.subscription_status == "active"
        assert profile.subscription_plan == "pro"
        assert profile.stripe_customer_id == "cus_123"

    async def test_checkout_upsert_keeps_upload_count(self, profiles):
        await profiles.get_or_create("user-1")
        await profiles.set_upload_count("user-1", 7)

        await profiles.upsert_checkout("user-1", "cus_123")

        profile = await profiles.get("user-1")
        assert profile.upload_count == 7
        assert profile.subscription_status == "active"

    async def test_get_by_customer_ref(self, profiles):
        await profiles.upsert_checkout("user-1", "cus_123")
        assert (await profiles.get_by_customer_ref("cus_123")).user_id == "user-1"
        assert await profiles.get_by_customer_ref("cus_unknown") is None

    async def test_adjust_upload_count_floors_at_zero(self, profiles):
        assert await profiles.adjust_upload_count("user-1", 1) == 1
        assert await profiles.adjust_upload_count("user-1", -1) == 0
        assert await profiles.adjust_upload_count("user-1", -1) == 0


@pytest.mark.asyncio
class TestDocumentRepository:

    async def _insert(self, documents, owner, title, category="General"):
        return await documents.insert(
            owner,
            f"{owner}/{uuid.uuid4().hex}-{title}.pdf",
            "pdf",
            {"title": title, "category": category, "tags": ["t"], "notes": None, "source_url": None},
        )

    async def test_insert_sets_id_and_created_at(self, documents):
        row = await self._insert(documents, "user-1", "Sepsis")
        assert isinstance(row.id, uuid.UUID)
        assert row.created_at is not None
        assert row.tags == ["t"]

    async def test_count_and_list_are_owner_scoped(self, documents):
        await self._insert(documents, "user-1", "a")
        await self._insert(documents, "user-1", "b")
        await self._insert(documents, "user-2", "c")

        assert await documents.count_for_owner("user-1") == 2
        assert await documents.count_for_owner("user-3") == 0
        assert {row.title for row in await documents.list_for_owner("user-1")} == {"a", "b"}

    async def test_get_owned_hides_other_users_documents(self, documents):
        row = await self._insert(documents, "user-1", "private")
        assert (await documents.get_owned("user-1", row.id)).title == "private"
        assert await documents.get_owned("user-2", row.id) is None

    async def test_delete(self, documents):
        row = await self._insert(documents, "user-1", "gone")
        await documents.delete(row)
        assert await documents.count_for_owner("user-1") == 0

    async def test_rename_category(self, documents):
        mine = await self._insert(documents, "user-1", "a", category="Cardio")
        await self._insert(documents, "user-1", "b", category="Cardio")
        theirs = await self._insert(documents, "user-2", "c", category="Cardio")

        moved = await documents.rename_category("user-1", "Cardio", "Cardiology")

        assert moved == 2
        assert (await documents.get_owned("user-1", mine.id)).category == "Cardiology"
        assert (await documents.get_owned("user-2", theirs.id)).category == "Cardio"
