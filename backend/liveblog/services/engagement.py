"""
Engagement ledger: anonymous reactions on updates, hot-take votes and caption-this
submissions/upvotes on widgets.

Viewers are identified only by device_hash = sha256(device_id + "|" + user_agent[:512]); raw device
ids are never stored. Ledger rows are only inserted or deleted, never updated, and aggregates are
always recomputed from the rows (no counters to drift).

The check-then-write sequence is not atomic against a burst of identical requests from one device;
the unique constraints on the ledger tables are the real backstop, and a violation is reported as
a duplicate rather than an error.
"""
import hashlib
import logging
import math
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from liveblog.config import settings
from liveblog.core.constants import (
    CAPTION_LIST_LIMIT,
    CAPTION_MAX_LENGTH,
    REACTION_SUMMARY_MAX_IDS,
    USER_AGENT_MAX_LENGTH,
)
from liveblog.core.errors import BAD_REQUEST, FORBIDDEN, INVALID_PAYLOAD, NOT_FOUND, ApiError, is_unique_violation
from liveblog.db.guards import conditional_update
from liveblog.models.engagement_widget import EngagementWidget
from liveblog.models.liveblog import Liveblog
from liveblog.models.ugc_submission import UgcSubmission
from liveblog.models.update import Update
from liveblog.models.update_reaction import UpdateReaction
from liveblog.models.widget_event import WidgetEvent

logger = logging.getLogger(__name__)

VISIBLE_PRIVACY = ("public", "unlisted")
HOT_TAKE = "hot-take"
CAPTION_THIS = "caption-this"
VOTE_EVENT = "vote"
CAPTION_VOTE_EVENT = "caption_vote"


@dataclass
class ReactionState:
    counts: dict[str, int] = field(default_factory=dict)
    active: dict[str, bool] = field(default_factory=dict)


@dataclass
class VoteResult:
    mean: float
    total: int
    duplicate: bool = False


def device_hash(device_id: str, user_agent: str | None) -> str:
    ua = (user_agent or "")[:USER_AGENT_MAX_LENGTH]
    return hashlib.sha256(f"{device_id}|{ua}".encode("utf-8")).hexdigest()


# --- Visibility gate ---


def ensure_liveblog_visible(db: Session, liveblog_id: str) -> Liveblog:
    lb = db.query(Liveblog).filter(Liveblog.id == liveblog_id).first()
    if lb is None or lb.status != "active" or lb.privacy not in VISIBLE_PRIVACY:
        raise ApiError(FORBIDDEN)
    return lb


def ensure_update_in_liveblog(db: Session, update_id: str, liveblog_id: str) -> Update:
    row = (
        db.query(Update)
        .filter(Update.id == update_id, Update.liveblog_id == liveblog_id)
        .first()
    )
    if row is None:
        raise ApiError(NOT_FOUND)
    return row


def allowed_reaction_kinds(liveblog: Liveblog) -> list[str]:
    """Per-liveblog settings.reactions (ids or {id: ...} objects) or the configured default set."""
    configured = (liveblog.settings or {}).get("reactions") if liveblog is not None else None
    kinds: list[str] = []
    if isinstance(configured, list):
        for item in configured:
            kind = item.get("id") if isinstance(item, dict) else item
            if isinstance(kind, str) and kind.strip() and kind.strip() not in kinds:
                kinds.append(kind.strip())
    return kinds or settings.reaction_kinds


# --- Reactions ---


def _reaction_counts(db: Session, update_ids: list[str]) -> dict[str, dict[str, int]]:
    rows = (
        db.query(UpdateReaction.update_id, UpdateReaction.reaction, func.count(UpdateReaction.id))
        .filter(UpdateReaction.update_id.in_(update_ids))
        .group_by(UpdateReaction.update_id, UpdateReaction.reaction)
        .all()
    )
    out: dict[str, dict[str, int]] = {}
    for update_id, reaction, count in rows:
        out.setdefault(update_id, {})[reaction] = int(count or 0)
    return out


def _active_reactions(db: Session, update_ids: list[str], dhash: str) -> dict[str, set[str]]:
    rows = (
        db.query(UpdateReaction.update_id, UpdateReaction.reaction)
        .filter(UpdateReaction.update_id.in_(update_ids), UpdateReaction.device_hash == dhash)
        .all()
    )
    out: dict[str, set[str]] = {}
    for update_id, reaction in rows:
        out.setdefault(update_id, set()).add(reaction)
    return out


def _state_for(kinds: list[str], counts: dict[str, int], active: set[str]) -> ReactionState:
    # Kinds no longer allowed but still present in the ledger are reported too
    all_kinds = list(kinds) + [k for k in counts if k not in kinds]
    return ReactionState(
        counts={k: counts.get(k, 0) for k in all_kinds},
        active={k: k in active for k in all_kinds},
    )


def toggle_reaction(
    db: Session,
    liveblog_id: str,
    update_id: str,
    kind: str,
    device_id: str,
    user_agent: str | None,
) -> ReactionState:
    """
    Un-react if (update, device, kind) exists, react otherwise. Applying it twice restores the
    prior ledger state. Returns post-toggle counts per kind and this device's active map.
    """
    if not liveblog_id:
        raise ApiError(BAD_REQUEST)
    if not update_id or not device_id or not kind:
        raise ApiError(INVALID_PAYLOAD)
    lb = ensure_liveblog_visible(db, liveblog_id)
    ensure_update_in_liveblog(db, update_id, liveblog_id)
    kinds = allowed_reaction_kinds(lb)
    if kind not in kinds:
        raise ApiError(INVALID_PAYLOAD)

    dhash = device_hash(device_id, user_agent)
    existing = (
        db.query(UpdateReaction)
        .filter(
            UpdateReaction.update_id == update_id,
            UpdateReaction.reaction == kind,
            UpdateReaction.device_hash == dhash,
        )
        .first()
    )
    if existing is not None:
        db.delete(existing)
        db.commit()
    else:
        db.add(UpdateReaction(liveblog_id=liveblog_id, update_id=update_id, reaction=kind, device_hash=dhash))
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if not is_unique_violation(e):
                raise
            logger.debug("Concurrent duplicate reaction %s on %s; treating as reacted", kind, update_id)

    counts = _reaction_counts(db, [update_id]).get(update_id, {})
    active = _active_reactions(db, [update_id], dhash).get(update_id, set())
    return _state_for(kinds, counts, active)


def reaction_summary(
    db: Session,
    liveblog_id: str,
    update_ids: list[str],
    device_id: str | None,
    user_agent: str | None,
) -> dict[str, dict[str, dict]]:
    """Batch counts/active maps keyed by update id. Ids not owned by the liveblog are dropped."""
    if not liveblog_id or not update_ids:
        raise ApiError(BAD_REQUEST)
    lb = ensure_liveblog_visible(db, liveblog_id)
    requested = list(dict.fromkeys(update_ids))[:REACTION_SUMMARY_MAX_IDS]
    owned = {
        r[0]
        for r in db.query(Update.id)
        .filter(Update.id.in_(requested), Update.liveblog_id == liveblog_id)
        .all()
    }
    ids = [i for i in requested if i in owned]
    if not ids:
        return {"counts": {}, "active": {}}

    kinds = allowed_reaction_kinds(lb)
    counts = _reaction_counts(db, ids)
    active = _active_reactions(db, ids, device_hash(device_id, user_agent)) if device_id else {}
    out: dict[str, dict[str, dict]] = {"counts": {}, "active": {}}
    for update_id in ids:
        state = _state_for(kinds, counts.get(update_id, {}), active.get(update_id, set()))
        out["counts"][update_id] = state.counts
        out["active"][update_id] = state.active
    return out


# --- Hot-take votes ---


def parse_vote_value(raw) -> int:
    """Round half up to an integer and clamp to [0, 100]. Non-numeric -> invalid_payload."""
    if isinstance(raw, bool) or raw is None:
        raise ApiError(INVALID_PAYLOAD)
    try:
        number = float(str(raw).strip())
    except ValueError:
        raise ApiError(INVALID_PAYLOAD) from None
    if not math.isfinite(number):
        raise ApiError(INVALID_PAYLOAD)
    return max(0, min(100, int(math.floor(number + 0.5))))


def _get_hot_take(db: Session, widget_id: str) -> EngagementWidget:
    widget = db.query(EngagementWidget).filter(EngagementWidget.id == widget_id).first()
    if widget is None or widget.type != HOT_TAKE or widget.status != "active":
        raise ApiError(NOT_FOUND)
    return widget


def _vote_aggregate(db: Session, widget_id: str) -> tuple[float, int]:
    mean, total = (
        db.query(func.avg(WidgetEvent.value), func.count(WidgetEvent.id))
        .filter(WidgetEvent.widget_id == widget_id, WidgetEvent.event == VOTE_EVENT)
        .one()
    )
    return float(mean or 0), int(total or 0)


def cast_vote(db: Session, widget_id: str, value, device_id: str, user_agent: str | None) -> VoteResult:
    """
    First vote per (widget, device) is recorded; any repeat is reported as duplicate=True and leaves
    the ledger untouched. Mean/total are recomputed from all rows after every call.
    """
    if not widget_id:
        raise ApiError(BAD_REQUEST)
    if not device_id:
        raise ApiError(INVALID_PAYLOAD)
    vote = parse_vote_value(value)
    _get_hot_take(db, widget_id)

    dhash = device_hash(device_id, user_agent)
    existing = (
        db.query(WidgetEvent.id)
        .filter(
            WidgetEvent.widget_id == widget_id,
            WidgetEvent.event == VOTE_EVENT,
            WidgetEvent.device_hash == dhash,
        )
        .first()
    )
    duplicate = existing is not None
    if not duplicate:
        db.add(WidgetEvent(widget_id=widget_id, event=VOTE_EVENT, device_hash=dhash, value=vote))
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if not is_unique_violation(e):
                raise
            duplicate = True

    mean, total = _vote_aggregate(db, widget_id)
    return VoteResult(mean=mean, total=total, duplicate=duplicate)


def vote_summary(db: Session, widget_id: str) -> VoteResult:
    if not widget_id:
        raise ApiError(BAD_REQUEST)
    _get_hot_take(db, widget_id)
    mean, total = _vote_aggregate(db, widget_id)
    return VoteResult(mean=mean, total=total)


# --- Caption-this ---


@dataclass
class CaptionVoteResult:
    votes: int
    duplicate: bool = False


def _get_caption_widget(db: Session, widget_id: str, *, require_active: bool = True) -> EngagementWidget:
    widget = db.query(EngagementWidget).filter(EngagementWidget.id == widget_id).first()
    if widget is None or widget.type != CAPTION_THIS or (require_active and widget.status != "active"):
        raise ApiError(NOT_FOUND)
    return widget


def submit_caption(db: Session, widget_id: str, text, device_id: str, user_agent: str | None) -> UgcSubmission:
    """Queue a caption for moderation (status pending). Text is trimmed to 200 characters."""
    if not widget_id:
        raise ApiError(BAD_REQUEST)
    caption = text.strip()[:CAPTION_MAX_LENGTH] if isinstance(text, str) else ""
    if not caption or not device_id:
        raise ApiError(INVALID_PAYLOAD)
    _get_caption_widget(db, widget_id)
    row = UgcSubmission(widget_id=widget_id, device_hash=device_hash(device_id, user_agent), content=caption)
    db.add(row)
    db.commit()
    return row


def _submission_votes(db: Session, submission_id: str) -> int:
    votes = db.query(UgcSubmission.votes).filter(UgcSubmission.id == submission_id).scalar()
    return int(votes or 0)


def vote_caption(
    db: Session,
    widget_id: str,
    submission_id: str,
    device_id: str,
    user_agent: str | None,
) -> CaptionVoteResult:
    """
    One upvote per (submission, device). The ledger row and the counter increment commit
    together, so a duplicate that loses the unique-constraint race leaves the count unchanged.
    """
    if not widget_id or not submission_id or not device_id:
        raise ApiError(INVALID_PAYLOAD)
    _get_caption_widget(db, widget_id)
    submission = (
        db.query(UgcSubmission.id)
        .filter(
            UgcSubmission.id == submission_id,
            UgcSubmission.widget_id == widget_id,
            UgcSubmission.status == "approved",
        )
        .first()
    )
    if submission is None:
        raise ApiError(NOT_FOUND)

    dhash = device_hash(device_id, user_agent)
    existing = (
        db.query(WidgetEvent.id)
        .filter(
            WidgetEvent.widget_id == widget_id,
            WidgetEvent.event == CAPTION_VOTE_EVENT,
            WidgetEvent.device_hash == dhash,
            WidgetEvent.target_id == submission_id,
        )
        .first()
    )
    if existing is not None:
        return CaptionVoteResult(votes=_submission_votes(db, submission_id), duplicate=True)

    db.add(WidgetEvent(widget_id=widget_id, event=CAPTION_VOTE_EVENT, device_hash=dhash, target_id=submission_id))
    try:
        db.flush()
        conditional_update(db, UgcSubmission, [UgcSubmission.id == submission_id], {"votes": UgcSubmission.votes + 1})
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if not is_unique_violation(e):
            raise
        return CaptionVoteResult(votes=_submission_votes(db, submission_id), duplicate=True)
    return CaptionVoteResult(votes=_submission_votes(db, submission_id))


def list_captions(db: Session, widget_id: str) -> list[dict]:
    """Approved captions, most upvoted first (top 20)."""
    if not widget_id:
        raise ApiError(BAD_REQUEST)
    _get_caption_widget(db, widget_id, require_active=False)
    rows = (
        db.query(UgcSubmission.id, UgcSubmission.content, UgcSubmission.votes)
        .filter(UgcSubmission.widget_id == widget_id, UgcSubmission.status == "approved")
        .order_by(UgcSubmission.votes.desc(), UgcSubmission.created_at.asc(), UgcSubmission.id.asc())
        .limit(CAPTION_LIST_LIMIT)
        .all()
    )
    return [{"id": r.id, "content": r.content, "votes": int(r.votes or 0)} for r in rows]
