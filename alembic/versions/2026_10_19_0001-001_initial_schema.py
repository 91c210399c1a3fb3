"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

All 6 tables as defined in app/models/database_models.py:
users, articles, paragraphs, sentences, annotations, generated_images.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("need_change_password", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── articles ──────────────────────────────────────────────────────────
    op.create_table(
        "articles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("content", sa.JSON, nullable=False),
        sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── paragraphs ────────────────────────────────────────────────────────
    op.create_table(
        "paragraphs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("article_id", sa.String(36), sa.ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── sentences ─────────────────────────────────────────────────────────
    op.create_table(
        "sentences",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("paragraph_id", sa.String(36), sa.ForeignKey("paragraphs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("annotations", sa.JSON, nullable=True),
    )

    # ── annotations ───────────────────────────────────────────────────────
    op.create_table(
        "annotations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("article_id", sa.String(36), sa.ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("block_id", sa.String(255), nullable=False, index=True),
        sa.Column("type", sa.String(50), nullable=False, index=True),
        sa.Column("selected_text", sa.Text, nullable=False),
        sa.Column("result", sa.Text, nullable=False),
        sa.Column("span", sa.JSON, nullable=False),
        sa.Column("root_result", sa.JSON, nullable=True),
        sa.Column("metadata_json", sa.JSON, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── generated_images ──────────────────────────────────────────────────
    op.create_table(
        "generated_images",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("paragraph_id", sa.String(36), sa.ForeignKey("paragraphs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("article_id", sa.String(36), sa.ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("image_url", sa.String(1024), nullable=False),
        sa.Column("prompt", sa.Text, nullable=False),
        sa.Column("selected_text", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("generated_images")
    op.drop_table("annotations")
    op.drop_table("sentences")
    op.drop_table("paragraphs")
    op.drop_table("articles")
    op.drop_table("users")
