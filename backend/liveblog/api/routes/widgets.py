"""Engagement widgets API: hot-take votes and caption-this. Mounted at /widgets."""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from liveblog.core.errors import ApiError
from liveblog.db.session import get_db
from liveblog.services.engagement import cast_vote, list_captions, submit_caption, vote_caption, vote_summary

router = APIRouter()
logger = logging.getLogger(__name__)


class VoteBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    value: Any = None
    device_id: str | None = Field(None, alias="deviceId")


@router.post("/hot-take/{widget_id}/vote")
def post_hot_take_vote(widget_id: str, body: VoteBody, request: Request, db: Session = Depends(get_db)):
    """
    One vote per device (0-100, rounded). Repeats report duplicate=true without changing the
    aggregate.
    """
    try:
        result = cast_vote(db, widget_id, body.value, body.device_id or "", request.headers.get("user-agent"))
    except ApiError:
        raise
    except Exception:
        logger.exception("Hot-take vote failed for widget %s", widget_id)
        return {"ok": False}
    return {"ok": True, "mean": result.mean, "total": result.total, "duplicate": result.duplicate}


@router.get("/hot-take/{widget_id}/summary")
def get_hot_take_summary(widget_id: str, db: Session = Depends(get_db)):
    try:
        result = vote_summary(db, widget_id)
    except ApiError:
        raise
    except Exception:
        logger.exception("Hot-take summary failed for widget %s", widget_id)
        return {"ok": False}
    return {"ok": True, "mean": result.mean, "total": result.total}


# --- Caption-this ---


class CaptionSubmitBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: Any = None
    device_id: str | None = Field(None, alias="deviceId")


class CaptionVoteBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    submission_id: str | None = Field(None, alias="submissionId")
    device_id: str | None = Field(None, alias="deviceId")


@router.post("/caption-this/{widget_id}/submit")
def post_caption_submission(widget_id: str, body: CaptionSubmitBody, request: Request, db: Session = Depends(get_db)):
    """Submit a caption for moderation; it is listed once an editor approves it."""
    try:
        submit_caption(db, widget_id, body.text, body.device_id or "", request.headers.get("user-agent"))
    except ApiError:
        raise
    except Exception:
        logger.exception("Caption submission failed for widget %s", widget_id)
        return {"ok": False}
    return {"ok": True}


@router.post("/caption-this/{widget_id}/vote")
def post_caption_vote(widget_id: str, body: CaptionVoteBody, request: Request, db: Session = Depends(get_db)):
    try:
        result = vote_caption(
            db, widget_id, body.submission_id or "", body.device_id or "", request.headers.get("user-agent")
        )
    except ApiError:
        raise
    except Exception:
        logger.exception("Caption vote failed for widget %s", widget_id)
        return {"ok": False}
    return {"ok": True, "votes": result.votes, "duplicate": result.duplicate}


@router.get("/caption-this/{widget_id}/list")
def get_caption_list(widget_id: str, db: Session = Depends(get_db)):
    try:
        items = list_captions(db, widget_id)
    except ApiError:
        raise
    except Exception:
        logger.exception("Caption list failed for widget %s", widget_id)
        return {"ok": False}
    return {"ok": True, "items": items}
