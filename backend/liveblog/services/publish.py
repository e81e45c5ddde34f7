"""
Scheduled publish & fan-out pipeline.

One sweep: select due updates (status=scheduled, scheduled_at <= now, not deleted) oldest first,
move each to published with a conditional update guarded by status='scheduled', and fan out only
the rows this sweep actually transitioned. Overlapping sweeps are safe: a row another sweep already
published fails the guard and gets no second notification.

Fan-out channels (chat webhook, web push) are independent: each is wrapped on its own, failures
are logged and never reach the other channel or the sweep's result.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from liveblog.config import Settings
from liveblog.core.clock import as_utc, iso_utc, utc_now
from liveblog.core.constants import PUBLISH_DEFAULT_LIMIT, PUBLISH_MAX_LIMIT
from liveblog.db.guards import conditional_update
from liveblog.models.liveblog import Liveblog
from liveblog.models.update import Update
from liveblog.services.change_stream import record_update_change, update_snapshot
from liveblog.services.chat_webhook import ChatWebhookClient, format_chat_message, image_path_for
from liveblog.services.push import PushSender, build_push_payload, build_push_sender, send_push_to_liveblog

logger = logging.getLogger(__name__)


def clamp_publish_limit(raw: Any) -> int:
    """Missing/invalid -> default (50); otherwise clamped to [1, 100]."""
    if isinstance(raw, bool):
        return PUBLISH_DEFAULT_LIMIT
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return PUBLISH_DEFAULT_LIMIT
    if value == 0:
        return PUBLISH_DEFAULT_LIMIT
    return max(1, min(PUBLISH_MAX_LIMIT, value))


@dataclass
class FanoutChannels:
    """Downstream channels for a publish event, built explicitly from Settings."""

    chat: ChatWebhookClient | None = None
    push_sender: PushSender | None = None
    site_url: str = ""
    media_public_base_url: str = ""
    push_batch_limit: int = 10000
    push_max_workers: int = 16

    @classmethod
    def from_settings(cls, s: Settings) -> "FanoutChannels":
        return cls(
            chat=ChatWebhookClient(timeout=s.chat_webhook_timeout_seconds),
            push_sender=build_push_sender(s.vapid_public_key, s.vapid_private_key, s.vapid_subject),
            site_url=s.site_url,
            media_public_base_url=s.media_public_base_url,
            push_batch_limit=s.push_batch_limit,
            push_max_workers=s.push_max_workers,
        )

    def public_media_url(self, path: str | None) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        base = self.media_public_base_url.rstrip("/")
        if not base.startswith("http"):
            return None
        return f"{base}/{path.lstrip('/')}"

    def send_chat(self, liveblog: Liveblog | None, content: Any) -> bool:
        """False when skipped (no webhook / nothing to post) or the post failed."""
        webhook = ((liveblog.settings or {}) if liveblog is not None else {}).get("discord_webhook_url")
        if not webhook or self.chat is None:
            return False
        payload = format_chat_message(content, public_image_url=self.public_media_url(image_path_for(content)))
        if payload is None:
            return False
        ok, status = self.chat.post(webhook, payload)
        if not ok:
            logger.warning("Chat webhook for liveblog %s failed (status %s)", liveblog.id, status)
        return ok

    def send_push(self, db: Session, liveblog_id: str, content: Any) -> dict[str, int] | None:
        if self.push_sender is None:
            return None
        return send_push_to_liveblog(
            db,
            liveblog_id,
            build_push_payload(liveblog_id, content, self.site_url),
            self.push_sender,
            batch_limit=self.push_batch_limit,
            max_workers=self.push_max_workers,
        )

    def dispatch(self, db: Session, liveblog_id: str, content: Any) -> dict[str, Any]:
        """Run every channel; each failure is isolated and logged."""
        results: dict[str, Any] = {"chat": False, "push": None}
        try:
            liveblog = db.get(Liveblog, liveblog_id)
            results["chat"] = self.send_chat(liveblog, content)
        except Exception as e:
            logger.warning("Chat fan-out for liveblog %s raised: %s", liveblog_id, e, exc_info=True)
            db.rollback()
        try:
            results["push"] = self.send_push(db, liveblog_id, content)
        except Exception as e:
            logger.warning("Push fan-out for liveblog %s raised: %s", liveblog_id, e, exc_info=True)
            db.rollback()
        return results


def select_due_updates(db: Session, now: datetime, limit: int) -> list[Update]:
    return (
        db.query(Update)
        .filter(
            Update.status == "scheduled",
            Update.scheduled_at <= now,
            Update.deleted_at.is_(None),
        )
        .order_by(Update.scheduled_at.asc(), Update.id.asc())
        .limit(limit)
        .all()
    )


def publish_due_update(db: Session, old: dict[str, Any], now: datetime, fanout: FanoutChannels) -> bool:
    """Guarded scheduled -> published for one due row snapshot. Fans out only if this call made the transition."""
    update_id = old["id"]
    changed = conditional_update(
        db,
        Update,
        [Update.id == update_id, Update.status == "scheduled"],
        {"status": "published", "published_at": now},
    )
    if not changed:
        db.rollback()
        logger.debug("Update %s no longer scheduled; skipped", update_id)
        return False
    record_update_change(db, "UPDATE", dict(old, status="published", published_at=iso_utc(now)), old)
    db.commit()
    fanout.dispatch(db, old["liveblog_id"], old["content"])
    return True


def run_scheduled_publish(
    db: Session,
    *,
    limit: int = PUBLISH_DEFAULT_LIMIT,
    fanout: FanoutChannels,
    now: datetime | None = None,
) -> int:
    """One sweep; returns the number of updates this sweep transitioned to published."""
    now = as_utc(now) or utc_now()
    # Snapshot up front: each transition commits, which expires loaded rows
    due = [update_snapshot(row) for row in select_due_updates(db, now, clamp_publish_limit(limit))]
    published = 0
    for old in due:
        if publish_due_update(db, old, now, fanout):
            published += 1
    if due:
        logger.info("Scheduled publish: %s due, %s published", len(due), published)
    return published
