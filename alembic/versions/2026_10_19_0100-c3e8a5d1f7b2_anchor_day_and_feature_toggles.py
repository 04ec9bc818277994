"""subscription anchor day and tenant feature toggles

Revision ID: c3e8a5d1f7b2
Revises: a1c4e7b2d9f0
Create Date: 2026-10-19 01:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "c3e8a5d1f7b2"
down_revision: str | None = "a1c4e7b2d9f0"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    with op.batch_alter_table("subscriptions") as batch_op:
        batch_op.add_column(sa.Column("billing_anchor_day", sa.Integer(), nullable=True))

    op.create_table(
        "tenant_feature_permissions",
        sa.Column("permission_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("feature_key", sa.String(length=50), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("enabled_by", sa.String(length=255), nullable=True),
        sa.Column("enabled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.tenant_id"]),
        sa.PrimaryKeyConstraint("permission_id"),
        sa.UniqueConstraint(
            "tenant_id", "feature_key", name="uq_tenant_feature_permissions_feature"
        ),
    )
    op.create_index(
        "ix_tenant_feature_permissions_tenant_id", "tenant_feature_permissions", ["tenant_id"]
    )


def downgrade() -> None:
    op.drop_index(
        "ix_tenant_feature_permissions_tenant_id", table_name="tenant_feature_permissions"
    )
    op.drop_table("tenant_feature_permissions")
    with op.batch_alter_table("subscriptions") as batch_op:
        batch_op.drop_column("billing_anchor_day")
