"""
MedSnap Backend — Quota Gate Tests
====================================

Tests the pure upload-quota rules in services/quota.py.

Test Coverage:
    ✅ Free users below, at, and above the limit
    ✅ Active and cancelling subscriptions are unlimited
    ✅ Cancelled, trialing, inactive, and unknown statuses use the free rules
    ✅ remaining_uploads never goes negative and is None when unlimited
    ✅ Configured default limit is used when no override is given
"""

import pytest

from medsnap.config import settings
from medsnap.models.profile import SubscriptionStatus
from medsnap.services import quota


class TestCanUpload:
    """Free-plan cap and paid-plan bypass."""

    def test_free_user_below_limit(self):
        assert quota.can_upload(9, "inactive", free_limit=10) is True

    def test_free_user_at_limit(self):
        """The limit-th document is allowed; the one after it is not."""
        assert quota.can_upload(10, "inactive", free_limit=10) is False

    def test_free_user_over_limit_after_drift(self):
        assert quota.can_upload(14, "inactive", free_limit=10) is False

    @pytest.mark.parametrize("status", ["active", "cancelling", SubscriptionStatus.ACTIVE])
    def test_paid_statuses_are_unlimited(self, status):
        assert quota.can_upload(10_000, status, free_limit=10) is True

    @pytest.mark.parametrize("status", ["cancelled", "trialing", "inactive", None, "past_due"])
    def test_other_statuses_use_free_rules(self, status):
        assert quota.can_upload(10, status, free_limit=10) is False
        assert quota.can_upload(3, status, free_limit=10) is True

    def test_uses_configured_limit_by_default(self):
        limit = settings.free_upload_limit
        assert quota.can_upload(limit - 1, "inactive") is True
        assert quota.can_upload(limit, "inactive") is False


class TestRemainingUploads:

    def test_counts_down_to_zero(self):
        assert quota.remaining_uploads(0, "inactive", free_limit=10) == 10
        assert quota.remaining_uploads(7, "inactive", free_limit=10) == 3
        assert quota.remaining_uploads(10, "inactive", free_limit=10) == 0

    def test_never_negative(self):
        assert quota.remaining_uploads(12, "inactive", free_limit=10) == 0

    def test_none_when_unlimited(self):
        assert quota.remaining_uploads(50, "cancelling", free_limit=10) is None

    def test_has_unlimited_uploads(self):
        assert quota.has_unlimited_uploads("active") is True
        assert quota.has_unlimited_uploads("trialing") is False
        assert quota.has_unlimited_uploads("garbage") is False
