"""Initial schema with all core tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

Creates all tables for FlashDash:
- users, rider_details, addresses (user directory)
- deliveries (delivery lifecycle), with the rider/status CHECK constraint
  and the partial unique index keeping one active delivery per rider
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Apply migration: Initial schema with all core tables."""
    # Create enum types first
    user_role = postgresql.ENUM("customer", "rider", name="user_role", create_type=False)
    user_role.create(op.get_bind(), checkfirst=True)

    delivery_status = postgresql.ENUM(
        "pending",
        "accepted",
        "picked_up",
        "delivered",
        name="delivery_status",
        create_type=False,
    )
    delivery_status.create(op.get_bind(), checkfirst=True)

    # =========================================================================
    # User directory
    # =========================================================================
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("image_profile", sa.String(1000), nullable=True),
        sa.PrimaryKeyConstraint("user_id", name=op.f("pk_users")),
        sa.UniqueConstraint("phone", name=op.f("uq_users_phone")),
    )

    op.create_table(
        "rider_details",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("vehicle_registration", sa.String(32), nullable=False),
        sa.Column("image_vehicle", sa.String(1000), nullable=True),
        sa.Column("current_latitude", sa.Float(), nullable=True),
        sa.Column("current_longitude", sa.Float(), nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_rider_details_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("user_id", name=op.f("pk_rider_details")),
    )

    op.create_table(
        "addresses",
        sa.Column(
            "address_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("detail", sa.String(500), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_addresses_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("address_id", name=op.f("pk_addresses")),
    )
    op.create_index("ix_addresses_user_id", "addresses", ["user_id"], unique=False)

    # =========================================================================
    # Deliveries
    # =========================================================================
    op.create_table(
        "deliveries",
        sa.Column(
            "delivery_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("status", delivery_status, nullable=False),
        sa.Column("sender_id", sa.String(128), nullable=False),
        sa.Column("receiver_id", sa.String(128), nullable=False),
        sa.Column("rider_id", sa.String(128), nullable=True),
        sa.Column("sender_address", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("receiver_address", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("item_description", sa.String(2000), nullable=False),
        sa.Column("item_image_ref", sa.String(1000), nullable=False),
        sa.Column("rider_note_image_ref", sa.String(1000), nullable=True),
        sa.Column("pickup_image_ref", sa.String(1000), nullable=True),
        sa.Column("delivered_image_ref", sa.String(1000), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("picked_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "(status = 'pending' AND rider_id IS NULL) "
            "OR (status <> 'pending' AND rider_id IS NOT NULL)",
            name=op.f("ck_deliveries_rider_matches_status"),
        ),
        sa.ForeignKeyConstraint(
            ["sender_id"],
            ["users.user_id"],
            name=op.f("fk_deliveries_sender_id_users"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["receiver_id"],
            ["users.user_id"],
            name=op.f("fk_deliveries_receiver_id_users"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["rider_id"],
            ["users.user_id"],
            name=op.f("fk_deliveries_rider_id_users"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("delivery_id", name=op.f("pk_deliveries")),
    )
    op.create_index(
        "uq_deliveries_active_rider",
        "deliveries",
        ["rider_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('accepted', 'picked_up')"),
    )
    op.create_index(
        "ix_deliveries_status_created_at",
        "deliveries",
        ["status", "created_at"],
        unique=False,
    )
    op.create_index("ix_deliveries_sender_id", "deliveries", ["sender_id"], unique=False)
    op.create_index("ix_deliveries_receiver_id", "deliveries", ["receiver_id"], unique=False)


def downgrade() -> None:
    """Revert migration: Initial schema with all core tables."""
    # Drop tables in reverse order (respecting foreign key dependencies)
    op.drop_table("deliveries")
    op.drop_table("addresses")
    op.drop_table("rider_details")
    op.drop_table("users")

    # Drop enum types
    op.execute("DROP TYPE IF EXISTS delivery_status")
    op.execute("DROP TYPE IF EXISTS user_role")
