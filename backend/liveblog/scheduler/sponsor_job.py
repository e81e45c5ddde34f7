"""Runs every SPONSOR_INTERVAL_SECONDS when the in-process scheduler is enabled: sponsor slot lifecycle sweep."""
import logging

from liveblog.db.session import SessionLocal
from liveblog.services.sponsors import run_sponsor_lifecycle

logger = logging.getLogger(__name__)


def run_sponsor_lifecycle_job() -> None:
    db = SessionLocal()
    try:
        run_sponsor_lifecycle(db)
    except Exception as e:
        logger.exception("Sponsor lifecycle job failed: %s", e)
        db.rollback()
    finally:
        db.close()
