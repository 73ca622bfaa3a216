"""projects subsystems datapoints

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:12:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", _ID, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=128), server_default="", nullable=False),
        sa.Column("country", sa.String(length=128), server_default="", nullable=False),
        sa.Column("timezone", sa.String(length=64), server_default="UTC", nullable=False),
        sa.Column("geolocation", sa.String(length=128), server_default="", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_projects_name"),
    )

    op.create_table(
        "subsystems",
        sa.Column("id", _ID, nullable=False),
        sa.Column("project_id", _ID, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("locallocation", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "name", name="uq_subsystems_project_name"),
    )

    op.create_table(
        "datapoints",
        sa.Column("id", _ID, nullable=False),
        sa.Column("subsystem_id", _ID, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("pollinterval", sa.String(length=32), nullable=True),
        sa.Column("time_to_live", sa.String(length=32), nullable=False),
        sa.Column("datasourcetype", sa.String(length=16), nullable=False),
        sa.Column("proc_json", _JSON, nullable=False),
        sa.Column("datasource_json", _JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["subsystem_id"], ["subsystems.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subsystem_id", "name", name="uq_datapoints_subsystem_name"),
        sa.CheckConstraint(
            "datasourcetype IN ('web','ttnv3','mqtt','parameters')",
            name="ck_datapoints_datasourcetype",
        ),
        sa.CheckConstraint(
            "(datasourcetype = 'mqtt' AND pollinterval IS NULL)"
            " OR "
            "(datasourcetype <> 'mqtt' AND pollinterval IS NOT NULL)",
            name="ck_datapoints_pollinterval",
        ),
    )

    op.create_index("ix_datapoints_datasourcetype", "datapoints", ["datasourcetype"])


def downgrade() -> None:
    op.drop_index("ix_datapoints_datasourcetype", table_name="datapoints")
    op.drop_table("datapoints")
    op.drop_table("subsystems")
    op.drop_table("projects")
