"""
MedSnap Backend — Profile SQLAlchemy Model
============================================

What:  ORM model for the `profiles` table: one row per user holding billing
       state and the denormalized upload counter.
Who:   ProfileRepository (services/data_store.py) and Alembic.

Lifecycle:
    1. Created lazily on first authenticated access, or by the checkout
       webhook upsert (whichever comes first)
    2. Mutated on every upload/delete (upload_count) and every subscription
       webhook (subscription_status, subscription_plan, stripe_customer_id)
    3. Never deleted

upload_count is a cache of the number of guidelines the user owns. It is
maintained by increment/decrement writes and can drift; the quota gate reads
the authoritative row count instead, and POST /api/profile/reconcile
rewrites the cache from that count.
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from medsnap.database import Base


class SubscriptionStatus(str, enum.Enum):
    """
    Local view of the provider's subscription state.

    State machine (level-triggered from the provider's last reported status):
        inactive ──checkout completed──▶ active
        active ──cancel requested──▶ cancelling
        cancelling | active ──provider reports non-active──▶ inactive

    CANCELLED is written only when a user cancels without ever having a
    Stripe customer; it behaves exactly like INACTIVE for the quota gate.
    """

    INACTIVE = "inactive"
    ACTIVE = "active"
    CANCELLING = "cancelling"
    TRIALING = "trialing"
    CANCELLED = "cancelled"


class SubscriptionPlan(str, enum.Enum):
    FREE = "free"
    PRO = "pro"


class Profile(Base):
    """Per-user subscription and usage record, keyed by the auth user ID."""

    __tablename__ = "profiles"

    # Opaque identity from the auth provider (not generated here)
    user_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Auth provider user ID (owner key)",
    )

    subscription_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SubscriptionStatus.INACTIVE.value,
        server_default=text("'inactive'"),
        comment="inactive, active, cancelling, trialing, cancelled",
    )

    subscription_plan: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SubscriptionPlan.FREE.value,
        server_default=text("'free'"),
        comment="free or pro",
    )

    upload_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Cached count of the user's guidelines (may drift)",
    )

    # Indexed: subscription webhooks look profiles up by customer
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Stripe customer reference, set by checkout completion",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return (
            f"<Profile(user_id='{self.user_id}', status='{self.subscription_status}', "
            f"uploads={self.upload_count})>"
        )
