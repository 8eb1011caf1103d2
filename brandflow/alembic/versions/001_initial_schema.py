"""initial schema

Revision ID: 3f1c2b7a9d01
Revises:
Create Date: 2026-09-02 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ENUM, JSONB

# revision identifiers, used by Alembic.
revision = "3f1c2b7a9d01"
down_revision = None
branch_labels = None
depends_on = None

WORKFLOW_KINDS = (
    "BRAND_VOICE_ANALYSIS",
    "MASCOT_GENERATION",
    "POSTS_COLLECTION",
    "POST_GENERATION",
    "POSTS_COLLECTION_COMPLETED",
    "POST_REVISION",
)
WORKFLOW_STATUSES = ("IDLE", "PENDING", "PROCESSING", "COMPLETED", "ERROR")
WORKFLOW_LOG_EVENTS = ("TRIGGERED", "DELIVERY_FAILED", "COMPLETED", "ERROR", "EXPIRED")

# The types are created once up front and shared by several tables
workflow_kind = ENUM(*WORKFLOW_KINDS, name="workflowkind", create_type=False)
workflow_status = ENUM(*WORKFLOW_STATUSES, name="workflowstatus", create_type=False)
workflow_log_event = ENUM(
    *WORKFLOW_LOG_EVENTS, name="workflowlogevent", create_type=False
)


def _timestamps():
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade():
    bind = op.get_bind()
    sa.Enum(*WORKFLOW_KINDS, name="workflowkind").create(bind, checkfirst=True)
    sa.Enum(*WORKFLOW_STATUSES, name="workflowstatus").create(bind, checkfirst=True)
    sa.Enum(*WORKFLOW_LOG_EVENTS, name="workflowlogevent").create(
        bind, checkfirst=True
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("external_id", sa.String(255), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
    )

    op.create_table(
        "company_profiles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("website_url", sa.Text(), nullable=True),
        sa.Column("social_urls", JSONB, nullable=True),
        sa.Column("industry", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("voice_tone", sa.Text(), nullable=True),
        sa.Column("brand_guidelines", sa.Text(), nullable=True),
        sa.Column("business_overview", sa.Text(), nullable=True),
        sa.Column("value_proposition", sa.Text(), nullable=True),
        sa.Column("ideal_customer_profile", sa.Text(), nullable=True),
        sa.Column("brand_voice_analysis", JSONB, nullable=True),
        sa.Column("mascot_data", JSONB, nullable=True),
        sa.Column("mascot_image_path", sa.Text(), nullable=True),
        sa.Column("mascot_personality", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "webhook_configurations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("workflow_kind", workflow_kind, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("inbound_endpoint", sa.Text(), nullable=False),
        sa.Column("outbound_webhook_url", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("field_mappings", JSONB, nullable=False),
        sa.Column("expected_payload", JSONB, nullable=True),
        sa.Column("documentation", sa.Text(), nullable=True),
        sa.Column(
            "created_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "workflow_kind", "version", name="uq_webhook_configuration_version"
        ),
    )
    op.create_index(
        "idx_webhook_configurations_kind_current",
        "webhook_configurations",
        ["workflow_kind", "is_current"],
    )

    op.create_table(
        "workflow_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("workflow_kind", workflow_kind, nullable=False),
        sa.Column("parent_entity_id", sa.Uuid(), nullable=True),
        sa.Column("scope_key", sa.String(64), nullable=False, server_default=""),
        sa.Column("status", workflow_status, nullable=False),
        sa.Column("params", JSONB, nullable=True),
        sa.Column("result", JSONB, nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "webhook_configuration_id",
            sa.Uuid(),
            sa.ForeignKey("webhook_configurations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "user_id", "workflow_kind", "scope_key", name="uq_workflow_session_scope"
        ),
    )
    op.create_index(
        "idx_workflow_sessions_status_updated",
        "workflow_sessions",
        ["status", "updated_at"],
    )

    op.create_table(
        "workflow_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "session_id",
            sa.Uuid(),
            sa.ForeignKey("workflow_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("workflow_kind", workflow_kind, nullable=False),
        sa.Column("event", workflow_log_event, nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("payload", JSONB, nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("idx_workflow_logs_session", "workflow_logs", ["session_id"])

    op.create_table(
        "posts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "session_id",
            sa.Uuid(),
            sa.ForeignKey("workflow_sessions.id", ondelete="SET NULL"),
            nullable=True,
            unique=True,
        ),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(64), nullable=False, server_default="linkedin"),
        sa.Column("status", sa.String(32), nullable=False, server_default="draft"),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("hashtags", JSONB, nullable=True),
        sa.Column("generation_params", JSONB, nullable=True),
        sa.Column("engagement_stats", JSONB, nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_posts_user_created", "posts", ["user_id", "created_at"])

    op.create_table(
        "social_posts_collections",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "session_id",
            sa.Uuid(),
            sa.ForeignKey("workflow_sessions.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("platforms", JSONB, nullable=False),
        sa.Column("date_range_start", sa.String(32), nullable=True),
        sa.Column("date_range_end", sa.String(32), nullable=True),
        sa.Column("posts_data", JSONB, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("key_name", sa.Text(), nullable=False),
        sa.Column("prefix", sa.Text(), nullable=False),
        sa.Column("hashed_key", sa.Text(), nullable=False, unique=True),
        sa.Column("workflow_kind", workflow_kind, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("can_read", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("can_write", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("can_admin", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )

    op.create_table(
        "subscription_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_plan", sa.String(32), nullable=True),
        sa.Column("to_plan", sa.String(32), nullable=False),
        sa.Column("change_reason", sa.String(255), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=True),
        sa.Column("post_expansions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stripe_checkout_session_id", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_subscription_history_user", "subscription_history", ["user_id"]
    )


def downgrade():
    op.drop_index("idx_subscription_history_user", table_name="subscription_history")
    op.drop_table("subscription_history")
    op.drop_table("api_keys")
    op.drop_table("social_posts_collections")
    op.drop_index("idx_posts_user_created", table_name="posts")
    op.drop_table("posts")
    op.drop_index("idx_workflow_logs_session", table_name="workflow_logs")
    op.drop_table("workflow_logs")
    op.drop_index(
        "idx_workflow_sessions_status_updated", table_name="workflow_sessions"
    )
    op.drop_table("workflow_sessions")
    op.drop_index(
        "idx_webhook_configurations_kind_current", table_name="webhook_configurations"
    )
    op.drop_table("webhook_configurations")
    op.drop_table("company_profiles")
    op.drop_table("users")

    bind = op.get_bind()
    sa.Enum(name="workflowlogevent").drop(bind, checkfirst=True)
    sa.Enum(name="workflowstatus").drop(bind, checkfirst=True)
    sa.Enum(name="workflowkind").drop(bind, checkfirst=True)
