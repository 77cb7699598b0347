from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "comments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("response_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("responses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("length(text) BETWEEN 1 AND 500", name="ck_comments_text_length"),
    )
    op.create_index("ix_comments_response_id", "comments", ["response_id"])
    op.create_index("ix_comments_author_id", "comments", ["author_id"])
    op.create_unique_constraint("uq_comment_one_per_response", "comments", ["author_id", "response_id"])

def downgrade() -> None:
    op.drop_constraint("uq_comment_one_per_response", "comments", type_="unique")
    op.drop_index("ix_comments_author_id", table_name="comments")
    op.drop_index("ix_comments_response_id", table_name="comments")
    op.drop_table("comments")
