"""create_effectiveness_tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("website_url", sa.String(2048), nullable=False),
        sa.Column("industry_vertical", sa.String(100), nullable=True),
        sa.Column("business_size", sa.String(50), nullable=True),
        sa.Column("last_effectiveness_run", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "competitors",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "client_id",
            sa.Uuid(),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index("ix_competitors_client_id", "competitors", ["client_id"])

    op.create_table(
        "effectiveness_runs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "client_id",
            sa.Uuid(),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "competitor_id",
            sa.Uuid(),
            sa.ForeignKey("competitors.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "parent_run_id",
            sa.Uuid(),
            sa.ForeignKey("effectiveness_runs.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("progress", sa.Text(), nullable=True),
        sa.Column("progress_detail", JSON, nullable=True),
        sa.Column("overall_score", sa.Numeric(4, 2), nullable=True),
        sa.Column("score_summary", JSON, nullable=True),
        sa.Column("screenshot_url", sa.String(1024), nullable=True),
        sa.Column("full_page_screenshot_url", sa.String(1024), nullable=True),
        sa.Column("screenshot_method", sa.String(100), nullable=True),
        sa.Column("screenshot_error", sa.Text(), nullable=True),
        sa.Column("full_page_screenshot_error", sa.Text(), nullable=True),
        sa.Column("web_vitals", JSON, nullable=True),
        sa.Column("ai_insights", JSON, nullable=True),
        sa.Column("insights_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("job_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        # Optimistic locking
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_effectiveness_runs_client_id", "effectiveness_runs", ["client_id"])
    op.create_index("ix_effectiveness_runs_competitor_id", "effectiveness_runs", ["competitor_id"])
    op.create_index("ix_effectiveness_runs_parent_run_id", "effectiveness_runs", ["parent_run_id"])
    op.create_index("ix_effectiveness_runs_status", "effectiveness_runs", ["status"])
    op.create_index("ix_effectiveness_runs_created_at", "effectiveness_runs", ["created_at"])

    op.create_table(
        "criterion_scores",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "run_id",
            sa.Uuid(),
            sa.ForeignKey("effectiveness_runs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("criterion", sa.String(50), nullable=False),
        sa.Column("score", sa.Numeric(4, 2), nullable=False),
        sa.Column("evidence", JSON, nullable=False),
        sa.Column("passes", JSON, nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.UniqueConstraint("run_id", "criterion", name="uq_criterion_scores_run"),
    )
    op.create_index("ix_criterion_scores_run_id", "criterion_scores", ["run_id"])

    op.create_table(
        "effectiveness_config",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", JSON, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )


def downgrade() -> None:
    op.drop_table("effectiveness_config")
    op.drop_index("ix_criterion_scores_run_id", table_name="criterion_scores")
    op.drop_table("criterion_scores")
    for index in ("created_at", "status", "parent_run_id", "competitor_id", "client_id"):
        op.drop_index(f"ix_effectiveness_runs_{index}", table_name="effectiveness_runs")
    op.drop_table("effectiveness_runs")
    op.drop_index("ix_competitors_client_id", table_name="competitors")
    op.drop_table("competitors")
    op.drop_table("clients")
