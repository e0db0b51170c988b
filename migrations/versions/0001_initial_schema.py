"""Initial schema: file_scan_result, gdpr_report

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- file_scan_result ---
    op.create_table(
        "file_scan_result",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("scan_status", sa.String(32), nullable=False, server_default="completed"),
        sa.Column("has_personal_data", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("personal_data_types", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("risk_level", sa.String(16), nullable=False, server_default="low"),
        sa.Column("file_type", sa.String(64), nullable=False, server_default="unknown"),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("content_hash", sa.Text(), nullable=True),
        sa.Column("scan_duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("scan_errors", sa.Text(), nullable=True),
        sa.Column("scan_version", sa.String(32), nullable=False),
        sa.Column(
            "scan_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("file_path", name="uq_file_scan_result_file_path"),
    )
    op.create_index("ix_file_scan_result_scan_date", "file_scan_result", ["scan_date"])
    op.create_index(
        "ix_file_scan_result_has_personal_data", "file_scan_result", ["has_personal_data"]
    )

    # --- gdpr_report ---
    op.create_table(
        "gdpr_report",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("report_type", sa.String(64), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("generated_by", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="completed"),
        sa.Column("report_data", postgresql.JSONB(), nullable=False),
        sa.Column(
            "generated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_gdpr_report_period", "gdpr_report", ["start_date", "end_date"])
    op.create_index("ix_gdpr_report_generated_at", "gdpr_report", ["generated_at"])


def downgrade() -> None:
    op.drop_index("ix_gdpr_report_generated_at", table_name="gdpr_report")
    op.drop_index("ix_gdpr_report_period", table_name="gdpr_report")
    op.drop_table("gdpr_report")

    op.drop_index("ix_file_scan_result_has_personal_data", table_name="file_scan_result")
    op.drop_index("ix_file_scan_result_scan_date", table_name="file_scan_result")
    op.drop_table("file_scan_result")
