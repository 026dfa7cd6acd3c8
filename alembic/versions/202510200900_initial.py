"""initial schema

Revision ID: 202510200900
Revises:
Create Date: 2025-10-20 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202510200900"
down_revision = None
branch_labels = None
depends_on = None

MARK = sa.Enum("-", "0", "+", name="mark_enum")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("hourly_wage_cents", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint(
            "hourly_wage_cents IS NULL OR hourly_wage_cents >= 0",
            name="ck_users_hourly_wage_non_negative",
        ),
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
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )

    op.create_table(
        "expenses",
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
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200)),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index(
        "ix_expenses_user_occurred_on", "expenses", ["user_id", "occurred_on"]
    )
    op.create_index(
        "ix_expenses_user_category_occurred_on",
        "expenses",
        ["user_id", "category_id", "occurred_on"],
    )

    op.create_table(
        "incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source", sa.String(length=120)),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("received_on", sa.Date(), nullable=False),
        sa.Column(
            "is_work_income", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_incomes_amount_positive"),
    )
    op.create_index(
        "ix_incomes_user_received_on", "incomes", ["user_id", "received_on"]
    )

    op.create_table(
        "monthly_reviews",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("month_code", sa.String(length=6), nullable=False),
        sa.Column("month_start", sa.Date(), nullable=False),
        sa.Column(
            "total_income_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "total_expenses_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "total_life_energy_hours",
            sa.Numeric(18, 2),
            nullable=False,
            server_default="0",
        ),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "month_code", name="uq_monthly_review_user_month_code"
        ),
    )
    op.create_index(
        "ix_monthly_reviews_user_month_start",
        "monthly_reviews",
        ["user_id", "month_start"],
    )

    op.create_table(
        "monthly_category_reviews",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "monthly_review_id",
            sa.Integer(),
            sa.ForeignKey("monthly_reviews.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("month_start", sa.Date(), nullable=False),
        sa.Column("total_spent_cents", sa.Integer(), nullable=False),
        sa.Column(
            "total_life_energy_hours",
            sa.Numeric(18, 2),
            nullable=False,
            server_default="0",
        ),
        sa.Column("received_fulfillment", MARK, nullable=False, server_default="0"),
        sa.Column("aligned_with_values", MARK, nullable=False, server_default="0"),
        sa.Column("would_change_post_fi", MARK, nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "total_spent_cents > 0", name="ck_monthly_category_reviews_spent_positive"
        ),
    )
    op.create_index(
        "ix_monthly_category_reviews_review",
        "monthly_category_reviews",
        ["monthly_review_id"],
    )


def downgrade():
    op.drop_index(
        "ix_monthly_category_reviews_review", table_name="monthly_category_reviews"
    )
    op.drop_table("monthly_category_reviews")
    op.drop_index("ix_monthly_reviews_user_month_start", table_name="monthly_reviews")
    op.drop_table("monthly_reviews")
    op.drop_index("ix_incomes_user_received_on", table_name="incomes")
    op.drop_table("incomes")
    op.drop_index("ix_expenses_user_category_occurred_on", table_name="expenses")
    op.drop_index("ix_expenses_user_occurred_on", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("categories")
    op.drop_table("users")
    MARK.drop(op.get_bind(), checkfirst=True)
