"""initial_schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19

- users
- budgets, rules_regulations, downloads, latest_updates (each with the shared file columns)
"""

from alembic import op
import sqlalchemy as sa


# Alembic's default version table uses VARCHAR(32), so keep revision <= 32 chars.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _file_columns():
    return [
        sa.Column("file_name", sa.String(length=512), nullable=True),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("file_path", sa.String(length=1024), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_type", sa.String(length=255), nullable=True),
        sa.Column("file_sha", sa.String(length=64), nullable=True),
        sa.Column("file_backend", sa.String(length=20), nullable=True),
    ]


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum("viewer", "editor", "admin", name="userrole"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("financial_year", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        *_file_columns(),
        *_timestamps(),
    )
    op.create_index("ix_budgets_id", "budgets", ["id"])
    op.create_index("ix_budgets_financial_year", "budgets", ["financial_year"])

    op.create_table(
        "rules_regulations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        *_file_columns(),
        *_timestamps(),
    )
    op.create_index("ix_rules_regulations_id", "rules_regulations", ["id"])
    op.create_index("ix_rules_regulations_year", "rules_regulations", ["year"])

    op.create_table(
        "downloads",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        *_file_columns(),
        *_timestamps(),
    )
    op.create_index("ix_downloads_id", "downloads", ["id"])
    op.create_index("ix_downloads_year", "downloads", ["year"])

    op.create_table(
        "latest_updates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("description", sa.Text(), nullable=False),
        *_file_columns(),
        *_timestamps(),
    )
    op.create_index("ix_latest_updates_id", "latest_updates", ["id"])
    op.create_index("ix_latest_updates_created_at", "latest_updates", ["created_at"])


def downgrade() -> None:
    for table in ["latest_updates", "downloads", "rules_regulations", "budgets", "users"]:
        op.drop_table(table)
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
