"""
MedSnap Backend — Upload Quota Gate
=====================================

What:  Decides whether a user may upload one more document right now.
Why:   The free plan is capped; paid (and paid-until-period-end) users are not.
How:   Pure functions over (document_count, subscription_status). No I/O.

Callers must pass the authoritative document count (a COUNT over the
user's guidelines), read immediately before the upload, not the cached
profiles.upload_count.
"""

from typing import Optional, Union

from medsnap.config import settings
from medsnap.models.profile import SubscriptionStatus

# Statuses that carry unlimited uploads. "cancelling" keeps access until the
# provider's billing period actually ends.
UNLIMITED_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLING})


def _normalize(status: Union[str, SubscriptionStatus, None]) -> Optional[SubscriptionStatus]:
    if status is None or isinstance(status, SubscriptionStatus):
        return status
    try:
        return SubscriptionStatus(status)
    except ValueError:
        # Unknown values get the free-plan rules
        return None


def has_unlimited_uploads(subscription_status: Union[str, SubscriptionStatus, None]) -> bool:
    return _normalize(subscription_status) in UNLIMITED_STATUSES


def can_upload(
    document_count: int,
    subscription_status: Union[str, SubscriptionStatus, None],
    free_limit: Optional[int] = None,
) -> bool:
    """
    May the user upload one more document?

    Args:
        document_count: Documents the user owns right now.
        subscription_status: The profile's subscription_status.
        free_limit: Override for the configured FREE_UPLOAD_LIMIT.

    Returns:
        True for active/cancelling subscriptions regardless of count,
        otherwise True only while document_count < free_limit.
    """
    if has_unlimited_uploads(subscription_status):
        return True
    limit = settings.free_upload_limit if free_limit is None else free_limit
    return document_count < limit


def remaining_uploads(
    document_count: int,
    subscription_status: Union[str, SubscriptionStatus, None],
    free_limit: Optional[int] = None,
) -> Optional[int]:
    """Uploads left on the free plan, or None when unlimited."""
    if has_unlimited_uploads(subscription_status):
        return None
    limit = settings.free_upload_limit if free_limit is None else free_limit
    return max(0, limit - document_count)
