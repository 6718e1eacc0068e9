"""create sync_tasks, batches and pull_requests tables

Revision ID: 20261018_1100_create_batches_sync_tasks
Revises: 20261018_1000_create_users_phrases_issues
Create Date: 2026-10-18 11:00:00
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261018_1100_create_batches_sync_tasks"
down_revision = "20261018_1000_create_users_phrases_issues"
branch_labels = None
depends_on = None

PHRASE_TYPES = ("SINGLE", "PHRASE", "SUPPLEMENT", "SYMBOL", "LINK", "CSS", "CSS_SINGLE", "ENGLISH")
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "sync_tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "status",
            sa.Enum("PENDING", "RUNNING", "COMPLETED", "FAILED", "CANCELLED", name="synctaskstatus"),
            nullable=False,
        ),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("github_branch", sa.String(255), nullable=True),
        sa.Column("github_pr_url", sa.String(512), nullable=True),
        sa.Column("github_pr_number", sa.Integer(), nullable=True),
        sa.Column("total_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pending_files", JSON_TYPE, nullable=True),
        sa.Column("processed_files", JSON_TYPE, nullable=True),
        sa.Column("file_contents", JSON_TYPE, nullable=True),
        sa.Column("file_item_counts", JSON_TYPE, nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_sync_tasks_status", "sync_tasks", ["status"], unique=False)

    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "SUBMITTED", "APPROVED", "REJECTED", "PUBLISHED", name="batchstatus"),
            nullable=False,
        ),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("issue_id", sa.Integer(), sa.ForeignKey("issues.id", ondelete="SET NULL"), nullable=True),
        sa.Column("review_note", sa.Text(), nullable=True),
        sa.Column("reviewer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "sync_task_id",
            sa.Integer(),
            sa.ForeignKey("sync_tasks.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_batches_status", "batches", ["status"], unique=False)
    op.create_index("ix_batches_creator_id", "batches", ["creator_id"], unique=False)
    op.create_index("ix_batches_sync_task_id", "batches", ["sync_task_id"], unique=False)

    op.create_table(
        "pull_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.Enum("CREATE", "CHANGE", "DELETE", name="pullrequestaction"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "APPROVED", "REJECTED", name="pullrequeststatus"),
            nullable=False,
        ),
        sa.Column("word", sa.String(255), nullable=True),
        sa.Column("old_word", sa.String(255), nullable=True),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("type", postgresql.ENUM(*PHRASE_TYPES, name="phrasetype", create_type=False), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=True),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("phrase_id", sa.Integer(), sa.ForeignKey("phrases.id", ondelete="SET NULL"), nullable=True),
        sa.Column("has_conflict", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("conflict_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_pull_requests_batch_id", "pull_requests", ["batch_id"], unique=False)
    op.create_index("ix_pull_requests_user_id", "pull_requests", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_table("pull_requests")
    op.drop_table("batches")
    op.drop_table("sync_tasks")
    for name in ("pullrequeststatus", "pullrequestaction", "batchstatus", "synctaskstatus"):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
