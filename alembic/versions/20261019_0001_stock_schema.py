"""stock schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum("ADMIN", "MANAGER", "OPERATOR", "VIEWER", name="userrole")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("is_global_access", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)
    op.create_index(op.f("ix_users_department_id"), "users", ["department_id"], unique=False)

    op.create_table(
        "shared_pools",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_shared_pools_id"), "shared_pools", ["id"], unique=False)
    op.create_index(op.f("ix_shared_pools_created_at"), "shared_pools", ["created_at"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("department_name", sa.String(length=120), nullable=False),
        sa.Column("shop_name", sa.String(length=120), nullable=True),
        sa.Column("responsible_person", sa.String(length=120), nullable=True),
        sa.Column("purchase_unit_cost", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("pool_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["pool_id"], ["shared_pools.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_products_id"), "products", ["id"], unique=False)
    op.create_index(op.f("ix_products_code"), "products", ["code"], unique=True)
    op.create_index(op.f("ix_products_department_id"), "products", ["department_id"], unique=False)
    op.create_index(op.f("ix_products_pool_id"), "products", ["pool_id"], unique=False)

    op.create_table(
        "code_mappings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("external_code", sa.String(length=64), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_code_mappings_id"), "code_mappings", ["id"], unique=False)
    op.create_index(op.f("ix_code_mappings_external_code"), "code_mappings", ["external_code"], unique=True)
    op.create_index(op.f("ix_code_mappings_code"), "code_mappings", ["code"], unique=False)

    op.create_table(
        "warehouse_stocks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_code", sa.String(length=16), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=False),
        sa.Column("daily_sales_quantity", sa.Integer(), nullable=False),
        sa.Column("monthly_sales_quantity", sa.Integer(), nullable=False),
        sa.Column("reorder_threshold", sa.Integer(), nullable=False),
        sa.Column("sluggish_days", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "warehouse_code", name="uq_warehouse_stocks_product_warehouse"),
    )
    op.create_index(op.f("ix_warehouse_stocks_id"), "warehouse_stocks", ["id"], unique=False)
    op.create_index(op.f("ix_warehouse_stocks_product_id"), "warehouse_stocks", ["product_id"], unique=False)
    op.create_index(op.f("ix_warehouse_stocks_warehouse_code"), "warehouse_stocks", ["warehouse_code"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_warehouse_stocks_warehouse_code"), table_name="warehouse_stocks")
    op.drop_index(op.f("ix_warehouse_stocks_product_id"), table_name="warehouse_stocks")
    op.drop_index(op.f("ix_warehouse_stocks_id"), table_name="warehouse_stocks")
    op.drop_table("warehouse_stocks")

    op.drop_index(op.f("ix_code_mappings_code"), table_name="code_mappings")
    op.drop_index(op.f("ix_code_mappings_external_code"), table_name="code_mappings")
    op.drop_index(op.f("ix_code_mappings_id"), table_name="code_mappings")
    op.drop_table("code_mappings")

    op.drop_index(op.f("ix_products_pool_id"), table_name="products")
    op.drop_index(op.f("ix_products_department_id"), table_name="products")
    op.drop_index(op.f("ix_products_code"), table_name="products")
    op.drop_index(op.f("ix_products_id"), table_name="products")
    op.drop_table("products")

    op.drop_index(op.f("ix_shared_pools_created_at"), table_name="shared_pools")
    op.drop_index(op.f("ix_shared_pools_id"), table_name="shared_pools")
    op.drop_table("shared_pools")

    op.drop_index(op.f("ix_users_department_id"), table_name="users")
    op.drop_index(op.f("ix_users_role"), table_name="users")
    op.drop_index(op.f("ix_users_username"), table_name="users")
    op.drop_index(op.f("ix_users_id"), table_name="users")
    op.drop_table("users")
    user_role.drop(op.get_bind(), checkfirst=True)
