"""Create error log and gallery settings tables.

Revision ID: 0001_error_log_tables
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision = "0001_error_log_tables"
down_revision = None
branch_labels = None
depends_on = None


_TEXT_COLUMNS = (
    "exception_type",
    "message",
    "source",
    "target_site",
    "stack_trace",
)

_OPTIONAL_TEXT_COLUMNS = (
    "exception_data",
    "inner_ex_type",
    "inner_ex_message",
    "inner_ex_source",
    "inner_ex_target_site",
    "inner_ex_stack_trace",
    "inner_ex_data",
    "url",
    "form_variables",
    "cookies",
    "session_variables",
    "server_variables",
)


def upgrade() -> None:
    op.create_table(
        "app_errors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("gallery_id", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        *(sa.Column(name, sa.Text(), nullable=False) for name in _TEXT_COLUMNS),
        *(
            sa.Column(name, sa.Text(), nullable=False, server_default="")
            for name in _OPTIONAL_TEXT_COLUMNS
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_app_errors")),
    )
    op.create_index(
        "ix_app_errors_gallery_timestamp",
        "app_errors",
        ["gallery_id", "timestamp"],
    )

    op.create_table(
        "gallery_settings",
        sa.Column("gallery_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column(
            "send_email_on_error",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column("email_from_address", sa.Text(), nullable=False, server_default=""),
        sa.Column("email_from_name", sa.Text(), nullable=False, server_default=""),
        sa.Column("smtp_server", sa.Text(), nullable=False, server_default=""),
        sa.Column("smtp_server_port", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "send_email_using_ssl",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column("users_to_notify", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("gallery_id", name=op.f("pk_gallery_settings")),
    )


def downgrade() -> None:
    op.drop_table("gallery_settings")
    op.drop_index("ix_app_errors_gallery_timestamp", table_name="app_errors")
    op.drop_table("app_errors")
