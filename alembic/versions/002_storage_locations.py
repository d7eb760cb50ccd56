"""Add storage locations and per-location bulk stock

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Adds:
- storage_locations table
- default_storage_location_id column to products
- storage_location_id column to stock_ledger_entries (bulk entries only)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "storage_locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("name", name="uq_storage_locations_name"),
        sa.UniqueConstraint("code", name="uq_storage_locations_code"),
    )

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("default_storage_location_id", sa.Integer(), nullable=True)
        )
        batch_op.create_foreign_key(
            "fk_products_default_storage_location",
            "storage_locations",
            ["default_storage_location_id"],
            ["id"],
            ondelete="SET NULL",
        )

    # Existing entries stay unassigned (NULL)
    with op.batch_alter_table("stock_ledger_entries", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("storage_location_id", sa.Integer(), nullable=True)
        )
        batch_op.create_foreign_key(
            "fk_ledger_storage_location",
            "storage_locations",
            ["storage_location_id"],
            ["id"],
        )
        batch_op.create_index(
            "ix_ledger_product_location", ["product_id", "storage_location_id"]
        )


def downgrade() -> None:
    with op.batch_alter_table("stock_ledger_entries", schema=None) as batch_op:
        batch_op.drop_index("ix_ledger_product_location")
        batch_op.drop_constraint("fk_ledger_storage_location", type_="foreignkey")
        batch_op.drop_column("storage_location_id")

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_constraint("fk_products_default_storage_location", type_="foreignkey")
        batch_op.drop_column("default_storage_location_id")

    op.drop_table("storage_locations")
