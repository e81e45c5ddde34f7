"""
Viewer telemetry for the embed: presence pings and named analytics events.

event "ping" (the default) lands in viewer_pings with the request's user agent, referrer and a
hash of the forwarding address; any other event name lands in analytics_events with its metadata.
"""
import hashlib
import logging
from typing import Any

from sqlalchemy.orm import Session

from liveblog.core.constants import REFERRER_MAX_LENGTH, USER_AGENT_MAX_LENGTH, VIEWER_PING_EVENT
from liveblog.core.errors import BAD_REQUEST, ApiError
from liveblog.models.viewer_event import AnalyticsEvent, ViewerPing

logger = logging.getLogger(__name__)


def ip_hash(forwarded_for: str | None) -> str:
    return hashlib.sha256((forwarded_for or "").encode("utf-8")).hexdigest()


def _scalar_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def record_viewer_event(
    db: Session,
    liveblog_id: str,
    body: dict[str, Any],
    *,
    user_agent: str | None,
    referrer: str | None,
    forwarded_for: str | None,
) -> str:
    """Store one ping or analytics event. Returns the table it went to."""
    session_id = _scalar_text(body.get("sessionId"))
    if not liveblog_id or not session_id:
        raise ApiError(BAD_REQUEST)
    event = _scalar_text(body.get("event")) or VIEWER_PING_EVENT
    mode = body.get("mode") if isinstance(body.get("mode"), str) else None

    if event == VIEWER_PING_EVENT:
        db.add(
            ViewerPing(
                liveblog_id=liveblog_id,
                session_id=session_id[:128],
                mode=mode,
                user_agent=(user_agent or "")[:USER_AGENT_MAX_LENGTH],
                referrer=(referrer or "")[:REFERRER_MAX_LENGTH],
                ip_hash=ip_hash(forwarded_for),
            )
        )
        table = ViewerPing.__tablename__
    else:
        db.add(
            AnalyticsEvent(
                liveblog_id=liveblog_id,
                session_id=session_id[:128],
                event=event[:64],
                event_metadata=body.get("metadata"),
            )
        )
        table = AnalyticsEvent.__tablename__
    db.commit()
    return table
