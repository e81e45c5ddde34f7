"""
Public embed API: feed (conditional GET), change stream (SSE), reactions, viewer tracking, sponsors,
push subscriptions.

Mounted at /embed, so URLs are /embed/{liveblog_id}/feed, /embed/{liveblog_id}/stream, etc.
Viewer telemetry routes (reactions, sponsor tracking, push) answer {"ok": false} with 200 on
unexpected failures; validation and visibility failures keep their 4xx.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from liveblog.config import settings
from liveblog.core.errors import ApiError
from liveblog.db.session import get_db
from liveblog.services.change_stream import change_hub, stream_changes
from liveblog.services.engagement import reaction_summary, toggle_reaction
from liveblog.services.feed_cache import build_feed_response, get_public_liveblog
from liveblog.services.push import subscribe_push, unsubscribe_push
from liveblog.services.sponsors import record_click, record_impression, visible_sponsor_slots
from liveblog.services.viewer_tracking import record_viewer_event

router = APIRouter()
logger = logging.getLogger(__name__)


class ReactionBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    update_id: str | None = Field(None, alias="updateId")
    type: str | None = None
    device_id: str | None = Field(None, alias="deviceId")


class PushSubscribeBody(BaseModel):
    subscription: dict[str, Any] | None = None


class PushUnsubscribeBody(BaseModel):
    endpoint: str | None = None


def _user_agent(request: Request) -> str:
    return request.headers.get("user-agent") or ""


# --- Feed ---


@router.get("/{liveblog_id}/feed")
def get_feed(
    liveblog_id: str,
    if_none_match: str | None = Header(None, alias="If-None-Match"),
    db: Session = Depends(get_db),
):
    """
    Published updates, newest first with pinned on top. Honors If-None-Match (first token,
    exact match): 304 with no body when the feed is unchanged.
    """
    result = build_feed_response(db, liveblog_id, if_none_match, limit=settings.feed_limit)
    if result.status_code == 304:
        return Response(status_code=304, headers=result.headers)
    return Response(
        content=result.body,
        status_code=200,
        media_type="application/json; charset=utf-8",
        headers=result.headers,
    )


# --- Change stream ---


@router.get("/{liveblog_id}/stream")
async def stream_updates(liveblog_id: str, request: Request, db: Session = Depends(get_db)):
    """SSE: 'retry' hint, ': connected', then data: {event, new, old} per change to this liveblog's updates."""
    await run_in_threadpool(get_public_liveblog, db, liveblog_id)
    # Release the connection now; the stream itself never touches the database
    await run_in_threadpool(db.close)
    return StreamingResponse(
        stream_changes(
            request,
            change_hub,
            liveblog_id,
            retry_ms=settings.sse_retry_ms,
            keepalive_seconds=settings.sse_keepalive_seconds,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# --- Reactions ---


@router.post("/{liveblog_id}/reactions")
def post_reaction(liveblog_id: str, body: ReactionBody, request: Request, db: Session = Depends(get_db)):
    """Toggle one reaction for this device. Returns post-toggle counts and the device's active map."""
    try:
        state = toggle_reaction(
            db,
            liveblog_id,
            body.update_id or "",
            body.type or "",
            body.device_id or "",
            _user_agent(request),
        )
    except ApiError:
        raise
    except Exception:
        logger.exception("Reaction toggle failed for liveblog %s", liveblog_id)
        return {"ok": False}
    return {"ok": True, "counts": state.counts, "active": state.active}


@router.get("/{liveblog_id}/reactions/summary")
def get_reaction_summary(
    liveblog_id: str,
    request: Request,
    update_ids: str = Query("", alias="updateIds"),
    device_id: str = Query("", alias="deviceId"),
    db: Session = Depends(get_db),
):
    """Batch counts/active maps keyed by update id (comma-separated updateIds)."""
    ids = [s.strip() for s in update_ids.split(",") if s.strip()]
    try:
        return reaction_summary(db, liveblog_id, ids, device_id or None, _user_agent(request))
    except ApiError:
        raise
    except Exception:
        logger.exception("Reaction summary failed for liveblog %s", liveblog_id)
        return {"ok": False}


# --- Viewer tracking ---


@router.post("/{liveblog_id}/track")
def track_viewer(liveblog_id: str, body: dict[str, Any], request: Request, db: Session = Depends(get_db)):
    """Presence ping (event omitted or "ping") or a named analytics event for this viewer session."""
    try:
        record_viewer_event(
            db,
            liveblog_id,
            body,
            user_agent=_user_agent(request),
            referrer=request.headers.get("referer"),
            forwarded_for=request.headers.get("x-forwarded-for"),
        )
    except ApiError:
        raise
    except Exception:
        logger.exception("Viewer tracking failed for liveblog %s", liveblog_id)
        return {"ok": False}
    return {"ok": True}


# --- Sponsors ---


@router.get("/{liveblog_id}/sponsors")
def get_sponsors(liveblog_id: str, db: Session = Depends(get_db)):
    """Sponsor slots currently visible to viewers (active and inside their window)."""
    return {"slots": visible_sponsor_slots(db, liveblog_id)}


@router.post("/{liveblog_id}/sponsors/track")
def track_sponsor_impression(liveblog_id: str, body: dict[str, Any], request: Request, db: Session = Depends(get_db)):
    try:
        record_impression(db, liveblog_id, body, _user_agent(request))
    except ApiError:
        raise
    except Exception:
        logger.exception("Sponsor impression failed for liveblog %s", liveblog_id)
        return {"ok": False}
    return {"ok": True}


@router.post("/{liveblog_id}/sponsors/click")
def track_sponsor_click(liveblog_id: str, body: dict[str, Any], request: Request, db: Session = Depends(get_db)):
    try:
        record_click(db, liveblog_id, body, _user_agent(request))
    except ApiError:
        raise
    except Exception:
        logger.exception("Sponsor click failed for liveblog %s", liveblog_id)
        return {"ok": False}
    return {"ok": True}


# --- Push subscriptions ---


@router.post("/{liveblog_id}/push/subscribe")
def push_subscribe(liveblog_id: str, body: PushSubscribeBody, request: Request, db: Session = Depends(get_db)):
    """Register a browser push subscription for publish notifications. Idempotent per endpoint."""
    try:
        subscribe_push(db, liveblog_id, body.subscription, _user_agent(request))
    except ApiError:
        raise
    except Exception:
        logger.exception("Push subscribe failed for liveblog %s", liveblog_id)
        return {"ok": False}
    return {"ok": True}


@router.post("/{liveblog_id}/push/unsubscribe")
def push_unsubscribe(liveblog_id: str, body: PushUnsubscribeBody, db: Session = Depends(get_db)):
    try:
        unsubscribe_push(db, liveblog_id, body.endpoint)
    except ApiError:
        raise
    except Exception:
        logger.exception("Push unsubscribe failed for liveblog %s", liveblog_id)
        return {"ok": False}
    return {"ok": True}
