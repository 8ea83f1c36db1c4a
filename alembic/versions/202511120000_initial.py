"""initial ledger schema

Revision ID: 202511120000
Revises:
Create Date: 2025-11-12 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202511120000"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120)),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column(
            "user_type",
            sa.Enum("individual", "organization", name="usertype"),
            nullable=False,
        ),
        sa.Column("organization_name", sa.String(length=200)),
        sa.Column("organization_id", sa.String(length=100)),
        sa.Column("password_hash", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum("income", "expense", "both", name="categorytype"),
            nullable=False,
        ),
        sa.Column(
            "color", sa.String(length=7), nullable=False, server_default="#3B82F6"
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
    )
    op.create_index("ix_categories_user_type", "categories", ["user_id", "type"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
        ),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("account", sa.String(length=100)),
        sa.Column("document_no", sa.String(length=50)),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_type_date",
        "transactions",
        ["user_id", "type", "date"],
    )

    op.create_table(
        "company_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("company_name", sa.String(length=200), nullable=False),
        sa.Column("registration_number", sa.String(length=50), nullable=False),
        sa.Column("tax_number", sa.String(length=50)),
        sa.Column("address", sa.Text()),
        sa.Column("phone", sa.String(length=50)),
        sa.Column("email", sa.String(length=255)),
        sa.Column(
            "vat_registered", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("vat_rate", sa.Numeric(5, 2), nullable=False, server_default="10"),
        sa.Column(
            "income_tax_rate", sa.Numeric(5, 2), nullable=False, server_default="10"
        ),
        sa.Column(
            "ebarimt_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "ebarimt_test_mode", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("ebarimt_api_key", sa.String(length=200)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_company_settings_user"),
        sa.CheckConstraint("vat_rate >= 0", name="ck_company_settings_vat_rate"),
        sa.CheckConstraint(
            "income_tax_rate >= 0", name="ck_company_settings_income_tax_rate"
        ),
    )


def downgrade():
    op.drop_table("company_settings")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_categories_user_type", table_name="categories")
    op.drop_table("categories")
    op.drop_table("users")
