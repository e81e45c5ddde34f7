"""Liveblog core: liveblogs, updates, engagement ledgers, sponsor slots/telemetry, push subscriptions,
viewer telemetry, caption submissions, and the updates change-feed trigger (Postgres)

Revision ID: 001
Revises:
Create Date: (run alembic upgrade head)

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from liveblog.db.change_feed import DROP_NOTIFY_FUNCTION, DROP_NOTIFY_TRIGGER, install_change_feed

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "liveblogs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(36), nullable=True),
        sa.Column("title", sa.String(256), nullable=False, server_default=""),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("privacy", sa.String(16), nullable=False, server_default="public"),
        sa.Column("settings", JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_liveblogs_owner_id", "liveblogs", ["owner_id"])

    op.create_table(
        "updates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("liveblog_id", sa.String(36), sa.ForeignKey("liveblogs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", JSON, nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_updates_liveblog_id", "updates", ["liveblog_id"])
    op.create_index("ix_updates_feed", "updates", ["liveblog_id", "status", "pinned", "published_at"])
    op.create_index("ix_updates_due", "updates", ["status", "scheduled_at"])

    op.create_table(
        "update_reactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("liveblog_id", sa.String(36), nullable=False),
        sa.Column("update_id", sa.String(36), sa.ForeignKey("updates.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reaction", sa.String(32), nullable=False),
        sa.Column("device_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("update_id", "device_hash", "reaction", name="uq_update_reaction_device"),
    )
    op.create_index("ix_update_reactions_liveblog_id", "update_reactions", ["liveblog_id"])
    op.create_index("ix_update_reactions_update_id", "update_reactions", ["update_id"])

    op.create_table(
        "engagement_widgets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("liveblog_id", sa.String(36), nullable=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("config", JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_engagement_widgets_liveblog_id", "engagement_widgets", ["liveblog_id"])

    op.create_table(
        "widget_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "widget_id", sa.String(36), sa.ForeignKey("engagement_widgets.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("event", sa.String(16), nullable=False, server_default="vote"),
        sa.Column("device_hash", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(36), nullable=False, server_default=""),
        sa.Column("value", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("widget_id", "event", "device_hash", "target_id", name="uq_widget_event_device"),
    )
    op.create_index("ix_widget_events_widget_id", "widget_events", ["widget_id"])

    op.create_table(
        "sponsor_slots",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("liveblog_id", sa.String(36), sa.ForeignKey("liveblogs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("headline", sa.String(256), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cta_text", sa.String(128), nullable=True),
        sa.Column("cta_url", sa.String(1024), nullable=True),
        sa.Column("image_path", sa.String(512), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="scheduled"),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_sponsor_slots_liveblog_id", "sponsor_slots", ["liveblog_id"])
    op.create_index("ix_sponsor_slots_status", "sponsor_slots", ["status"])

    for table in ("sponsor_impressions", "sponsor_clicks"):
        extra = (
            [sa.Column("view_ms", sa.Integer(), nullable=False, server_default="0")]
            if table == "sponsor_impressions"
            else [sa.Column("target_url", sa.String(1024), nullable=True)]
        )
        op.create_table(
            table,
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("slot_id", sa.String(36), nullable=False),
            sa.Column("liveblog_id", sa.String(36), nullable=False),
            sa.Column("session_id", sa.String(128), nullable=True),
            sa.Column("device_hash", sa.String(64), nullable=True),
            sa.Column("mode", sa.String(32), nullable=True),
            *extra,
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index(f"ix_{table}_slot_id", table, ["slot_id"])
        op.create_index(f"ix_{table}_liveblog_id", table, ["liveblog_id"])

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("liveblog_id", sa.String(36), sa.ForeignKey("liveblogs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("keys", JSON, nullable=False),
        sa.Column("expiration_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("liveblog_id", "endpoint", name="uq_push_subscription_endpoint"),
    )
    op.create_index("ix_push_subscriptions_liveblog_id", "push_subscriptions", ["liveblog_id"])

    op.create_table(
        "viewer_pings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("liveblog_id", sa.String(36), nullable=False),
        sa.Column("session_id", sa.String(128), nullable=False),
        sa.Column("mode", sa.String(32), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("referrer", sa.String(512), nullable=True),
        sa.Column("ip_hash", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_viewer_pings_liveblog_id", "viewer_pings", ["liveblog_id"])
    op.create_index("ix_viewer_pings_session_id", "viewer_pings", ["session_id"])
    op.create_index("ix_viewer_pings_created_at", "viewer_pings", ["created_at"])

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("liveblog_id", sa.String(36), nullable=False),
        sa.Column("session_id", sa.String(128), nullable=False),
        sa.Column("event", sa.String(64), nullable=False),
        sa.Column("metadata", JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_analytics_events_liveblog_id", "analytics_events", ["liveblog_id"])

    op.create_table(
        "ugc_submissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "widget_id", sa.String(36), sa.ForeignKey("engagement_widgets.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("device_hash", sa.String(64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ugc_submissions_widget_id", "ugc_submissions", ["widget_id"])

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        install_change_feed(bind)


def downgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        bind.exec_driver_sql(DROP_NOTIFY_TRIGGER)
        bind.exec_driver_sql(DROP_NOTIFY_FUNCTION)
    op.drop_table("ugc_submissions")
    op.drop_table("analytics_events")
    op.drop_table("viewer_pings")
    op.drop_table("push_subscriptions")
    op.drop_table("sponsor_clicks")
    op.drop_table("sponsor_impressions")
    op.drop_table("sponsor_slots")
    op.drop_table("widget_events")
    op.drop_table("engagement_widgets")
    op.drop_table("update_reactions")
    op.drop_table("updates")
    op.drop_table("liveblogs")
