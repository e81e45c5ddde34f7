"""
Sponsor slots: lifecycle sweep (scheduled -> active -> archived), viewer-facing visible list, and
impression/click tracking.

The sweep never touches paused slots. Each transition is a conditional update guarded by the
slot's last-known status, so a sweep racing an editor's status change (or another sweep) simply
changes nothing for that slot.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from liveblog.core.clock import as_utc, iso_utc, utc_now
from liveblog.core.constants import SPONSOR_SWEEP_BATCH_LIMIT, SPONSOR_VIEW_MS_MAX, SPONSOR_VISIBLE_LIMIT
from liveblog.core.errors import BAD_REQUEST, ApiError
from liveblog.db.guards import conditional_update
from liveblog.models.sponsor_event import SponsorClick, SponsorImpression
from liveblog.models.sponsor_slot import SponsorSlot
from liveblog.services.engagement import device_hash

logger = logging.getLogger(__name__)

ACTIVATE = "activate"
ARCHIVE = "archive"
SWEEPABLE_STATUSES = ("scheduled", "active")


def plan_transition(
    status: str,
    starts_at: datetime | None,
    ends_at: datetime | None,
    now: datetime,
) -> str | None:
    """Archive takes priority: a slot whose window already closed is archived, never activated."""
    starts_at, ends_at = as_utc(starts_at), as_utc(ends_at)
    if status in SWEEPABLE_STATUSES and ends_at is not None and now >= ends_at:
        return ARCHIVE
    if status == "scheduled" and (starts_at is None or now >= starts_at):
        return ACTIVATE
    return None


def run_sponsor_lifecycle(
    db: Session,
    now: datetime | None = None,
    batch_limit: int = SPONSOR_SWEEP_BATCH_LIMIT,
) -> dict[str, int]:
    """One sweep. Returns {"activated": n, "archived": n}; a lost race counts as neither."""
    now = as_utc(now) or utc_now()
    slots = (
        db.query(SponsorSlot.id, SponsorSlot.status, SponsorSlot.starts_at, SponsorSlot.ends_at)
        .filter(SponsorSlot.status.in_(SWEEPABLE_STATUSES))
        .order_by(SponsorSlot.id.asc())
        .limit(batch_limit)
        .all()
    )
    activated = 0
    archived = 0
    for slot_id, status, starts_at, ends_at in slots:
        action = plan_transition(status, starts_at, ends_at, now)
        if action == ACTIVATE:
            changed = conditional_update(
                db,
                SponsorSlot,
                [SponsorSlot.id == slot_id, SponsorSlot.status == "scheduled"],
                {"status": "active", "updated_at": now},
            )
            activated += changed
        elif action == ARCHIVE:
            changed = conditional_update(
                db,
                SponsorSlot,
                [SponsorSlot.id == slot_id, SponsorSlot.status.in_(SWEEPABLE_STATUSES)],
                {"status": "archived", "updated_at": now},
            )
            archived += changed
        else:
            continue
        db.commit()
        if not changed:
            logger.debug("Sponsor slot %s changed underneath sweep (%s skipped)", slot_id, action)
    if activated or archived:
        logger.info("Sponsor lifecycle: activated=%s archived=%s", activated, archived)
    return {"activated": activated, "archived": archived}


def is_visible(slot: SponsorSlot, now: datetime) -> bool:
    if slot.status != "active":
        return False
    starts_at, ends_at = as_utc(slot.starts_at), as_utc(slot.ends_at)
    return (starts_at is None or starts_at <= now) and (ends_at is None or now < ends_at)


def visible_sponsor_slots(db: Session, liveblog_id: str, now: datetime | None = None) -> list[dict]:
    """Active slots inside their window, pinned first, then priority, then earliest start."""
    now = as_utc(now) or utc_now()
    rows = (
        db.query(SponsorSlot)
        .filter(SponsorSlot.liveblog_id == liveblog_id, SponsorSlot.status == "active")
        .order_by(
            SponsorSlot.pinned.desc(),
            SponsorSlot.priority.desc(),
            SponsorSlot.starts_at.asc().nulls_first(),
        )
        .limit(SPONSOR_VISIBLE_LIMIT)
        .all()
    )
    return [
        {
            "id": s.id,
            "name": s.name,
            "headline": s.headline,
            "description": s.description,
            "cta_text": s.cta_text,
            "cta_url": s.cta_url,
            "image_path": s.image_path,
            "pinned": bool(s.pinned),
            "priority": s.priority,
            "status": s.status,
            "starts_at": iso_utc(s.starts_at),
            "ends_at": iso_utc(s.ends_at),
        }
        for s in rows
        if is_visible(s, now)
    ]


def _optional_str(value) -> str | None:
    return value if isinstance(value, str) and value else None


def record_impression(db: Session, liveblog_id: str, body: dict, user_agent: str | None) -> None:
    slot_id = _optional_str(body.get("slotId"))
    if not liveblog_id or not slot_id:
        raise ApiError(BAD_REQUEST)
    device_id = _optional_str(body.get("deviceId"))
    raw_view_ms = body.get("viewMs")
    view_ms = 0
    if isinstance(raw_view_ms, (int, float)) and not isinstance(raw_view_ms, bool):
        view_ms = max(0, min(SPONSOR_VIEW_MS_MAX, int(raw_view_ms)))
    db.add(
        SponsorImpression(
            slot_id=slot_id,
            liveblog_id=liveblog_id,
            session_id=_optional_str(body.get("sessionId")),
            device_hash=device_hash(device_id, user_agent) if device_id else None,
            view_ms=view_ms,
            mode=_optional_str(body.get("mode")),
        )
    )
    db.commit()


def record_click(db: Session, liveblog_id: str, body: dict, user_agent: str | None) -> None:
    slot_id = _optional_str(body.get("slotId"))
    if not liveblog_id or not slot_id:
        raise ApiError(BAD_REQUEST)
    device_id = _optional_str(body.get("deviceId"))
    db.add(
        SponsorClick(
            slot_id=slot_id,
            liveblog_id=liveblog_id,
            session_id=_optional_str(body.get("sessionId")),
            device_hash=device_hash(device_id, user_agent) if device_id else None,
            mode=_optional_str(body.get("mode")),
            target_url=_optional_str(body.get("targetUrl")),
        )
    )
    db.commit()
