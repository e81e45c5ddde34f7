"""
Feed cache & conditional delivery for the embed feed.

The feed is the N most recent published, non-deleted updates for a liveblog ordered by
(pinned desc, published_at desc). It is serialized deterministically; the SHA-256 of those exact
bytes is the weak ETag. Identical update sets always produce identical validators, so a viewer
(or CDN) presenting the last ETag gets a 304 until something changes.
"""
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from liveblog.core.clock import iso_utc
from liveblog.core.constants import FEED_CACHE_CONTROL
from liveblog.core.errors import NOT_FOUND, ApiError
from liveblog.models.liveblog import Liveblog
from liveblog.models.update import Update

logger = logging.getLogger(__name__)


@dataclass
class FeedResponse:
    status_code: int
    etag: str
    body: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)


def fetch_published_updates(db: Session, liveblog_id: str, limit: int) -> list[dict]:
    rows = (
        db.query(Update)
        .filter(
            Update.liveblog_id == liveblog_id,
            Update.deleted_at.is_(None),
            Update.status == "published",
        )
        .order_by(Update.pinned.desc(), Update.published_at.desc(), Update.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": r.id,
            "content": r.content,
            "published_at": iso_utc(r.published_at),
            "pinned": bool(r.pinned),
        }
        for r in rows
    ]


def serialize_feed(updates: list[dict]) -> bytes:
    """Deterministic body: sorted keys, compact separators, UTF-8."""
    return json.dumps(
        {"updates": updates},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def fingerprint_feed(updates: list[dict]) -> tuple[bytes, str]:
    """
    (body, weak validator over the body). If the deterministic form cannot be produced or hashed,
    the feed is still delivered: plain serialization with a random always-miss validator.
    """
    try:
        body = serialize_feed(updates)
        return body, f'W/"{hashlib.sha256(body).hexdigest()}"'
    except Exception as e:
        logger.warning("Feed fingerprint failed; serving uncacheable validator: %s", e)
        body = json.dumps({"updates": updates}, ensure_ascii=False, default=str).encode("utf-8")
        return body, f'W/"{uuid.uuid4().hex}"'


def first_validator(if_none_match: str | None) -> str | None:
    """Only the first token of If-None-Match is compared (exact match, no weak-equivalence negotiation)."""
    if not if_none_match:
        return None
    token = if_none_match.split(",")[0].strip()
    return token or None


def get_public_liveblog(db: Session, liveblog_id: str) -> Liveblog:
    lb = db.query(Liveblog).filter(Liveblog.id == liveblog_id).first()
    if lb is None or lb.privacy == "private":
        raise ApiError(NOT_FOUND)
    return lb


def build_feed_response(
    db: Session,
    liveblog_id: str,
    if_none_match: str | None,
    *,
    limit: int,
) -> FeedResponse:
    get_public_liveblog(db, liveblog_id)
    body, etag = fingerprint_feed(fetch_published_updates(db, liveblog_id, limit))
    headers = {"ETag": etag, "Cache-Control": FEED_CACHE_CONTROL}
    if first_validator(if_none_match) == etag:
        return FeedResponse(status_code=304, etag=etag, headers=headers)
    return FeedResponse(status_code=200, etag=etag, body=body, headers=headers)
