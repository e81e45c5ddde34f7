"""
Centralized constants for scheduler, feed delivery and sweeps.

Change job IDs, caps or cache directives here instead of scattering literals across main and routes.
Environment-driven values live in config.Settings.
"""

# Scheduler job IDs (must match ids used in main.py add_job)
PUBLISH_JOB_ID = "scheduled_publish"
SPONSOR_LIFECYCLE_JOB_ID = "sponsor_lifecycle"

# Feed: short-lived public caching with a background revalidation window
FEED_CACHE_CONTROL = "public, max-age=5, s-maxage=5, stale-while-revalidate=30"

# Internal sweeps
CRON_SECRET_HEADER = "X-Cron-Secret"
PUBLISH_DEFAULT_LIMIT = 50
PUBLISH_MAX_LIMIT = 100
SPONSOR_SWEEP_BATCH_LIMIT = 1000

# Viewer-facing caps
SPONSOR_VISIBLE_LIMIT = 20
SPONSOR_VIEW_MS_MAX = 60000
USER_AGENT_MAX_LENGTH = 512
REACTION_SUMMARY_MAX_IDS = 200

# Chat webhook message limits (Discord)
CHAT_TEXT_MAX_LENGTH = 1900
CHAT_EMBED_DESCRIPTION_MAX_LENGTH = 2000
CHAT_FIELD_MAX_LENGTH = 1024

# Push notification payload
PUSH_TITLE = "New live update"
PUSH_BODY_MAX_LENGTH = 140
PUSH_ICON = "/favicon.svg"
PUSH_GONE_STATUSES = (404, 410)

# Viewer tracking
VIEWER_PING_EVENT = "ping"
REFERRER_MAX_LENGTH = 512

# Caption-this widget
CAPTION_MAX_LENGTH = 200
CAPTION_LIST_LIMIT = 20
