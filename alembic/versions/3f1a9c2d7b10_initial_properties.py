"""initial_properties

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-03-02 10:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "3f1a9c2d7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("auth_user_id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_auth_user_id"), "users", ["auth_user_id"], unique=True)

    op.create_table(
        "properties",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("owner_user_id", sa.UUID(), nullable=False),
        sa.Column("title", sa.String(length=140), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=False),
        sa.Column("neighborhood", sa.String(length=120), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("monthly_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("bedrooms", sa.Integer(), nullable=False),
        sa.Column("bathrooms", sa.Integer(), nullable=False),
        sa.Column("area_m2", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_furnished", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("available_from", sa.Date(), nullable=False),
        sa.Column("contract_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pendiente"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("monthly_price > 0", name="ck_properties_monthly_price_positive"),
        sa.CheckConstraint("deposit_amount >= 0", name="ck_properties_deposit_amount_non_negative"),
        sa.CheckConstraint("bedrooms >= 0", name="ck_properties_bedrooms_non_negative"),
        sa.CheckConstraint("bathrooms >= 0", name="ck_properties_bathrooms_non_negative"),
        sa.CheckConstraint("area_m2 > 0", name="ck_properties_area_m2_positive"),
        sa.CheckConstraint(
            "contract_type IN ('long_term', 'temporary', 'monthly')",
            name="ck_properties_contract_type",
        ),
        sa.CheckConstraint(
            "status IN ('pendiente', 'publicado', 'rechazado')",
            name="ck_properties_status",
        ),
    )
    op.create_index(op.f("ix_properties_owner_user_id"), "properties", ["owner_user_id"], unique=False)
    # Public search: published listings filtered by city, sorted by price or recency
    op.create_index("ix_properties_status_city", "properties", ["status", "city"], unique=False)
    op.create_index("ix_properties_status_monthly_price", "properties", ["status", "monthly_price"], unique=False)
    op.create_index("ix_properties_status_updated_at", "properties", ["status", "updated_at"], unique=False)

    op.create_table(
        "property_images",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("property_id", sa.UUID(), nullable=False),
        sa.Column("storage_path", sa.Text(), nullable=False),
        sa.Column("public_url", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.String(length=50), nullable=False),
        sa.Column("file_size_bytes", sa.Integer(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "mime_type IN ('image/jpeg', 'image/png', 'image/webp')",
            name="ck_property_images_mime_type",
        ),
        sa.CheckConstraint("file_size_bytes > 0", name="ck_property_images_file_size_positive"),
        sa.CheckConstraint("display_order >= 0", name="ck_property_images_display_order_non_negative"),
    )
    op.create_index(op.f("ix_property_images_property_id"), "property_images", ["property_id"], unique=False)
    op.create_index(
        "ix_property_images_property_id_display_order",
        "property_images",
        ["property_id", "display_order"],
        unique=False,
    )

    op.create_table(
        "property_status_history",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("property_id", sa.UUID(), nullable=False),
        sa.Column("previous_status", sa.String(length=20), nullable=False),
        sa.Column("new_status", sa.String(length=20), nullable=False),
        sa.Column("changed_by_user_id", sa.UUID(), nullable=True),
        sa.Column("changed_by_role", sa.String(length=50), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["changed_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_property_status_history_property_id"),
        "property_status_history",
        ["property_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_property_status_history_property_id"), table_name="property_status_history")
    op.drop_table("property_status_history")
    op.drop_index("ix_property_images_property_id_display_order", table_name="property_images")
    op.drop_index(op.f("ix_property_images_property_id"), table_name="property_images")
    op.drop_table("property_images")
    op.drop_index("ix_properties_status_updated_at", table_name="properties")
    op.drop_index("ix_properties_status_monthly_price", table_name="properties")
    op.drop_index("ix_properties_status_city", table_name="properties")
    op.drop_index(op.f("ix_properties_owner_user_id"), table_name="properties")
    op.drop_table("properties")
    op.drop_index(op.f("ix_users_auth_user_id"), table_name="users")
    op.drop_table("users")
