"""Initial schema: products, stock ledger, tracked units and reservations.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Changes:
- users (staff accounts, the actor behind every write)
- products with optimistic-lock version column
- stock_ledger_entries (append-only, signed quantity movements)
- units and unit_code_sequences (per product + category prefix)
- reservations and reservation_units (bulk or specific holds over a date window)
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum("OWNER", "MANAGER", "STAFF", name="userrole"), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("track_inventory", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("default_category_prefix", sa.String(20), nullable=False, server_default="1000"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_products_name", "products", ["name"])

    op.create_table(
        "stock_ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ts", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("qty_delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("affects_bulk", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    op.create_index("ix_stock_ledger_entries_ts", "stock_ledger_entries", ["ts"])
    op.create_index("ix_stock_ledger_entries_product_id", "stock_ledger_entries", ["product_id"])
    op.create_index("ix_ledger_product_bulk", "stock_ledger_entries", ["product_id", "affects_bulk"])

    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("category_prefix", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("product_id", "code", name="uq_unit_product_code"),
    )
    op.create_index("ix_units_product_id", "units", ["product_id"])
    op.create_index("ix_units_status", "units", ["status"])
    op.create_index("ix_units_is_deleted", "units", ["is_deleted"])

    op.create_table(
        "unit_code_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("category_prefix", sa.String(20), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.UniqueConstraint("product_id", "category_prefix", name="uq_unit_code_sequence"),
    )
    op.create_index("ix_unit_code_sequences_product_id", "unit_code_sequences", ["product_id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("mode", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("job_id", sa.String(128), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_reservations_product_id", "reservations", ["product_id"])
    op.create_index("ix_reservations_job_id", "reservations", ["job_id"])
    op.create_index("ix_reservation_product_status", "reservations", ["product_id", "status"])
    op.create_index("ix_reservation_window", "reservations", ["start_date", "end_date"])

    op.create_table(
        "reservation_units",
        sa.Column(
            "reservation_id", sa.Integer(),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id"), primary_key=True),
    )
    op.create_index("ix_reservation_units_unit_id", "reservation_units", ["unit_id"])


def downgrade():
    op.drop_table("reservation_units")
    op.drop_table("reservations")
    op.drop_table("unit_code_sequences")
    op.drop_table("units")
    op.drop_table("stock_ledger_entries")
    op.drop_table("products")
    op.drop_table("users")
