from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=30), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "leagues",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("invite_code", sa.String(length=12), nullable=False),
        sa.Column("submission_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("voting_days", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("votes_per_player", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("is_started", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("submission_days BETWEEN 1 AND 30", name="ck_leagues_submission_days"),
        sa.CheckConstraint("voting_days BETWEEN 1 AND 30", name="ck_leagues_voting_days"),
        sa.CheckConstraint("votes_per_player BETWEEN 1 AND 10", name="ck_leagues_votes_per_player"),
    )
    op.create_index("ix_leagues_owner_id", "leagues", ["owner_id"])
    op.create_index("ix_leagues_invite_code", "leagues", ["invite_code"], unique=True)

    op.create_table(
        "league_memberships",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("league_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("joined_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_league_memberships_league_id", "league_memberships", ["league_id"])
    op.create_index("ix_league_memberships_user_id", "league_memberships", ["user_id"])
    op.create_unique_constraint("uq_membership_user_league", "league_memberships", ["user_id", "league_id"])

    op.create_table(
        "prompts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("league_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="SCHEDULED"),
        sa.Column("queue_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("phase_started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("week_start", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("week_end", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("vote_start", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("vote_end", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("status IN ('SCHEDULED','ACTIVE','VOTING','COMPLETED')", name="ck_prompts_status"),
    )
    op.create_index("ix_prompts_league_id", "prompts", ["league_id"])
    op.create_index("ix_prompts_league_status_order", "prompts", ["league_id", "status", "queue_order"])
    # At most one in-flight prompt per league
    op.create_index(
        "uq_prompts_one_inflight_per_league",
        "prompts",
        ["league_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('ACTIVE','VOTING')"),
    )

    op.create_table(
        "responses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("prompt_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("caption", sa.Text(), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("storage_key", sa.Text(), nullable=True),
        sa.Column("mime_type", sa.String(length=64), nullable=True),
        sa.Column("photo_taken_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("published_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("final_rank", sa.Integer(), nullable=True),
    )
    op.create_index("ix_responses_prompt_id", "responses", ["prompt_id"])
    op.create_index("ix_responses_user_id", "responses", ["user_id"])
    op.create_unique_constraint("uq_response_one_per_prompt", "responses", ["user_id", "prompt_id"])

    op.create_table(
        "votes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("response_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("responses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("voter_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("rank >= 1", name="ck_votes_rank_positive"),
    )
    op.create_index("ix_votes_response_id", "votes", ["response_id"])
    op.create_index("ix_votes_voter_id", "votes", ["voter_id"])
    op.create_unique_constraint("uq_vote_once_per_voter", "votes", ["response_id", "voter_id"])

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("league_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leagues.id", ondelete="CASCADE"), nullable=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("read_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_league_id", "notifications", ["league_id"])

def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_constraint("uq_vote_once_per_voter", "votes", type_="unique")
    op.drop_table("votes")
    op.drop_constraint("uq_response_one_per_prompt", "responses", type_="unique")
    op.drop_table("responses")
    op.drop_index("uq_prompts_one_inflight_per_league", table_name="prompts")
    op.drop_table("prompts")
    op.drop_constraint("uq_membership_user_league", "league_memberships", type_="unique")
    op.drop_table("league_memberships")
    op.drop_table("leagues")
    op.drop_table("users")
