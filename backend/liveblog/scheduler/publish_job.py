"""Runs every PUBLISH_INTERVAL_SECONDS when the in-process scheduler is enabled: publish due updates and fan out."""
import logging

from liveblog.config import settings
from liveblog.db.session import SessionLocal
from liveblog.services.publish import FanoutChannels, run_scheduled_publish

logger = logging.getLogger(__name__)


def run_scheduled_publish_job() -> None:
    db = SessionLocal()
    try:
        run_scheduled_publish(db, fanout=FanoutChannels.from_settings(settings))
    except Exception as e:
        logger.exception("Scheduled publish job failed: %s", e)
        db.rollback()
    finally:
        db.close()
