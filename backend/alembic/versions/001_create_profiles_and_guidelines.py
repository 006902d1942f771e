"""Create profiles and guidelines tables

Revision ID: 001
Revises: None
Create Date: 2025-01-20 00:00:00.000000+00:00

What:  The two tables behind the guideline library: per-user billing state
       (`profiles`) and one row per uploaded document (`guidelines`).
How:   PostgreSQL types: UUID primary key with gen_random_uuid(), TEXT[] tags,
       TIMESTAMP WITH TIME ZONE.

Rollback: downgrade() drops both tables (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column(
            "user_id",
            sa.String(64),
            nullable=False,
            comment="Auth provider user ID (owner key)",
        ),
        sa.Column(
            "subscription_status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'inactive'"),
            comment="inactive, active, cancelling, trialing, cancelled",
        ),
        sa.Column(
            "subscription_plan",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'free'"),
            comment="free or pro",
        ),
        sa.Column(
            "upload_count",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Cached count of the user's guidelines (may drift)",
        ),
        sa.Column(
            "stripe_customer_id",
            sa.String(255),
            nullable=True,
            comment="Stripe customer reference, set by checkout completion",
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("user_id"),
        sa.CheckConstraint("upload_count >= 0", name="ck_profiles_upload_count_non_negative"),
    )
    # Subscription webhooks look profiles up by customer
    op.create_index("ix_profiles_stripe_customer_id", "profiles", ["stripe_customer_id"])

    op.create_table(
        "guidelines",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False, comment="Owning profile (profiles.user_id)"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default=sa.text("'General'")),
        sa.Column(
            "tags",
            postgresql.ARRAY(sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::text[]"),
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column(
            "file_path",
            sa.String(512),
            nullable=False,
            comment="Blob path inside the storage bucket (not a URL)",
        ),
        sa.Column("file_type", sa.String(10), nullable=False, comment="pdf, image or word"),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("file_type IN ('pdf', 'image', 'word')", name="ck_guidelines_file_type"),
    )

    # The dashboard query: WHERE user_id = :uid ORDER BY created_at DESC
    op.create_index(
        "idx_guidelines_user_created",
        "guidelines",
        ["user_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_guidelines_user_created", table_name="guidelines")
    op.drop_table("guidelines")
    op.drop_index("ix_profiles_stripe_customer_id", table_name="profiles")
    op.drop_table("profiles")
