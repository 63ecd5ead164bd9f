"""Initial schema: files, records, laps

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "files",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("file_type", sa.String(length=50), nullable=True),
        sa.Column("manufacturer", sa.String(length=120), nullable=True),
        sa.Column("product", sa.String(length=120), nullable=True),
        sa.Column("serial_number", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("fingerprint", sa.String(length=36), nullable=False, unique=True),
        sa.Column("imported_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("file_id", sa.Integer(), sa.ForeignKey("files.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lat", sa.Integer(), nullable=True),
        sa.Column("lon", sa.Integer(), nullable=True),
        sa.Column("speed", sa.Float(), nullable=True),
        sa.Column("distance", sa.Float(), nullable=True),
        sa.Column("elevation", sa.Float(), nullable=True),
        sa.Column("heart_rate", sa.Integer(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_records_file_timestamp", "records", ["file_id", "timestamp"])

    op.create_table(
        "laps",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("file_id", sa.Integer(), sa.ForeignKey("files.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_lat", sa.Integer(), nullable=True),
        sa.Column("start_lon", sa.Integer(), nullable=True),
        sa.Column("start_elevation", sa.Float(), nullable=True),
        sa.Column("end_lat", sa.Integer(), nullable=True),
        sa.Column("end_lon", sa.Integer(), nullable=True),
        sa.Column("end_elevation", sa.Float(), nullable=True),
        sa.Column("avg_speed", sa.Float(), nullable=True),
        sa.Column("avg_heart_rate", sa.Integer(), nullable=True),
        sa.Column("total_calories", sa.Integer(), nullable=True),
        sa.Column("total_distance", sa.Float(), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_laps_file_start_time", "laps", ["file_id", "start_time"])


def downgrade() -> None:
    op.drop_index("ix_laps_file_start_time", table_name="laps")
    op.drop_table("laps")
    op.drop_index("ix_records_file_timestamp", table_name="records")
    op.drop_table("records")
    op.drop_table("files")
