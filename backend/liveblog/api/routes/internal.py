"""
Internal sweep endpoints, called by an external cron (at-least-once) with X-Cron-Secret.

Both sweeps are idempotent per item, so overlapping or repeated calls are safe. Errors use
explicit non-200 statuses: these callers are operational, not viewers.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from liveblog.config import settings
from liveblog.core.constants import CRON_SECRET_HEADER
from liveblog.core.errors import FORBIDDEN, SERVER_ERROR, ApiError
from liveblog.core.security import check_cron_secret
from liveblog.db.session import get_db
from liveblog.services.publish import FanoutChannels, run_scheduled_publish
from liveblog.services.sponsors import run_sponsor_lifecycle

router = APIRouter()
logger = logging.getLogger(__name__)


class PublishBody(BaseModel):
    limit: Any = None


def require_cron_secret(x_cron_secret: str | None = Header(None, alias=CRON_SECRET_HEADER)) -> None:
    if not check_cron_secret(x_cron_secret, settings.cron_secret):
        raise ApiError(FORBIDDEN)


def get_fanout() -> FanoutChannels:
    return FanoutChannels.from_settings(settings)


@router.post("/sponsors/lifecycle", dependencies=[Depends(require_cron_secret)])
def sponsor_lifecycle(db: Session = Depends(get_db)):
    """Advance sponsor slots: scheduled -> active when the window opens, -> archived when it closes."""
    try:
        result = run_sponsor_lifecycle(db)
    except Exception:
        logger.exception("Sponsor lifecycle sweep failed")
        db.rollback()
        raise ApiError(SERVER_ERROR)
    return {"ok": True, **result}


@router.post("/publish/scheduled", dependencies=[Depends(require_cron_secret)])
def publish_scheduled(
    body: PublishBody | None = None,
    db: Session = Depends(get_db),
    fanout: FanoutChannels = Depends(get_fanout),
):
    """Publish due scheduled updates (limit default 50, max 100) and fan each out to chat + push."""
    try:
        published = run_scheduled_publish(db, limit=body.limit if body else None, fanout=fanout)
    except Exception:
        logger.exception("Scheduled publish sweep failed")
        db.rollback()
        raise ApiError(SERVER_ERROR)
    return {"ok": True, "published": published}
