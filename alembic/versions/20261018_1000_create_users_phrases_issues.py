"""create users, phrases and issues tables

Revision ID: 20261018_1000_create_users_phrases_issues
Revises:
Create Date: 2026-10-18 10:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "20261018_1000_create_users_phrases_issues"
down_revision = None
branch_labels = None
depends_on = None

# Enum columns store member names
PHRASE_TYPES = ("SINGLE", "PHRASE", "SUPPLEMENT", "SYMBOL", "LINK", "CSS", "CSS_SINGLE", "ENGLISH")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("nickname", sa.String(64), nullable=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum("USER", "ADMIN", name="userrole"), nullable=False),
        sa.Column("status", sa.Enum("ENABLE", "DISABLE", "BANNED", name="userstatus"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_name", "users", ["name"], unique=True)

    op.create_table(
        "phrases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("word", sa.String(255), nullable=False),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("type", sa.Enum(*PHRASE_TYPES, name="phrasetype"), nullable=False),
        sa.Column("status", sa.Enum("DRAFT", "FINISH", "REJECT", name="phrasestatus"), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("word", "code", name="uq_phrases_word_code"),
    )
    op.create_index("ix_phrases_word", "phrases", ["word"], unique=False)
    op.create_index("ix_phrases_code", "phrases", ["code"], unique=False)
    op.create_index("ix_phrases_type", "phrases", ["type"], unique=False)
    op.create_index("ix_phrases_user_id", "phrases", ["user_id"], unique=False)

    op.create_table(
        "issues",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.Enum("OPEN", "IN_PROGRESS", "CLOSED", name="issuestatus"), nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_issues_status", "issues", ["status"], unique=False)
    op.create_index("ix_issues_author_id", "issues", ["author_id"], unique=False)


def downgrade() -> None:
    op.drop_table("issues")
    op.drop_table("phrases")
    op.drop_table("users")
    for name in ("issuestatus", "phrasestatus", "phrasetype", "userstatus", "userrole"):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
