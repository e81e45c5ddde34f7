"""
Single source of truth for database tables created by migration 001.

Use these names when writing raw SQL (e.g. TRUNCATE in scripts). alembic/env.py asserts that the
registered models match this list.
"""
ALL_TABLE_NAMES = (
    "liveblogs",
    "updates",
    "update_reactions",
    "engagement_widgets",
    "widget_events",
    "sponsor_slots",
    "sponsor_impressions",
    "sponsor_clicks",
    "push_subscriptions",
    "viewer_pings",
    "analytics_events",
    "ugc_submissions",
)

# Append-only engagement tables (safe to truncate without touching editorial content)
ENGAGEMENT_TABLE_NAMES = (
    "update_reactions",
    "widget_events",
    "sponsor_impressions",
    "sponsor_clicks",
    "viewer_pings",
    "analytics_events",
)
