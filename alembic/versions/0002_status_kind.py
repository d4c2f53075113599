"""status kind column

Revision ID: 0002_status_kind
Revises: 0001_initial
Create Date: 2026-10-08 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa

from mktops.services.status_kinds import infer_status_kind


revision = "0002_status_kind"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("statuses", sa.Column("kind", sa.String(), nullable=True))
    connection = op.get_bind()
    statuses = sa.table("statuses", sa.column("id", sa.String()), sa.column("name", sa.String()), sa.column("kind", sa.String()))
    rows = connection.execute(sa.select(statuses.c.id, statuses.c.name)).fetchall()
    for status_id, name in rows:
        connection.execute(
            statuses.update().where(statuses.c.id == status_id).values(kind=infer_status_kind(name))
        )


def downgrade() -> None:
    op.drop_column("statuses", "kind")
