"""Job ownership: claiming worker, heartbeat and row version

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Skip columns that already exist
    conn = op.get_bind()
    existing = {column["name"] for column in sa.inspect(conn).get_columns("proposal_jobs")}

    if "worker_id" not in existing:
        op.add_column("proposal_jobs", sa.Column("worker_id", sa.Text))
    if "heartbeat_at" not in existing:
        op.add_column("proposal_jobs", sa.Column("heartbeat_at", sa.DateTime))
    if "version" not in existing:
        op.add_column("proposal_jobs", sa.Column("version", sa.Integer, nullable=False, server_default="1"))


def downgrade() -> None:
    op.drop_column("proposal_jobs", "version")
    op.drop_column("proposal_jobs", "heartbeat_at")
    op.drop_column("proposal_jobs", "worker_id")
