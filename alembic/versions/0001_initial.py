"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(), nullable=nullable, server_default=sa.text("(CURRENT_TIMESTAMP)"))


def upgrade() -> None:
    for table in ("job_titles", "origins", "demand_types"):
        op.create_table(
            table,
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("name", sa.String(), nullable=False),
            _timestamp("created_at"),
        )

    op.create_table(
        "statuses",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("color", sa.String(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at"),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="visualizador"),
        sa.Column("permission_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("job_title_id", sa.String(), sa.ForeignKey("job_titles.id"), nullable=True),
        sa.Column("origin", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("avatar_url", sa.String(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "demands",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("reference_link", sa.String(), nullable=True),
        sa.Column("drive_link", sa.String(), nullable=True),
        sa.Column("priority", sa.String(), nullable=False, server_default="Média"),
        sa.Column("status_id", sa.String(), sa.ForeignKey("statuses.id"), nullable=True),
        sa.Column("type_id", sa.String(), sa.ForeignKey("demand_types.id"), nullable=True),
        sa.Column("origin_id", sa.String(), sa.ForeignKey("origins.id"), nullable=True),
        sa.Column("responsible_id", sa.String(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("created_by", sa.String(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("production_started_at", sa.DateTime(), nullable=True),
        sa.Column("accumulated_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_demands_status_id", "demands", ["status_id"])
    op.create_index("ix_demands_responsible_id", "demands", ["responsible_id"])
    op.create_index("ix_demands_deadline", "demands", ["deadline"])

    op.create_table(
        "comments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("demand_id", sa.String(), sa.ForeignKey("demands.id"), nullable=False),
        sa.Column("user_id", sa.String(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("user_name", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("mentions", sa.JSON(), nullable=False),
        sa.Column("parent_comment_id", sa.String(), sa.ForeignKey("comments.id"), nullable=True),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("edited_at", sa.DateTime(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_comments_demand_id", "comments", ["demand_id"])

    op.create_table(
        "logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("table_name", sa.String(), nullable=False),
        sa.Column("record_id", sa.String(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_logs_record_id", "logs", ["record_id"])
    op.create_index("ix_logs_created_at", "logs", ["created_at"])

    op.create_table(
        "role_permissions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("resource", sa.String(), nullable=False),
        sa.Column("can_view", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_manage", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_delete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("role", "resource", name="uq_role_resource"),
    )

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(), primary_key=True),
        sa.Column("value", sa.String(), nullable=True),
        _timestamp("updated_at"),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_table("role_permissions")
    op.drop_index("ix_logs_created_at", table_name="logs")
    op.drop_index("ix_logs_record_id", table_name="logs")
    op.drop_table("logs")
    op.drop_index("ix_comments_demand_id", table_name="comments")
    op.drop_table("comments")
    op.drop_index("ix_demands_deadline", table_name="demands")
    op.drop_index("ix_demands_responsible_id", table_name="demands")
    op.drop_index("ix_demands_status_id", table_name="demands")
    op.drop_table("demands")
    op.drop_table("profiles")
    op.drop_table("statuses")
    for table in ("demand_types", "origins", "job_titles"):
        op.drop_table(table)
