"""Append-only sponsor telemetry: impressions (with dwell time) and clicks."""
import uuid

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from liveblog.db.base import Base


class SponsorImpression(Base):
    __tablename__ = "sponsor_impressions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slot_id = Column(String(36), nullable=False, index=True)
    liveblog_id = Column(String(36), nullable=False, index=True)
    session_id = Column(String(128), nullable=True)
    device_hash = Column(String(64), nullable=True)
    view_ms = Column(Integer, nullable=False, default=0)
    mode = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SponsorClick(Base):
    __tablename__ = "sponsor_clicks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slot_id = Column(String(36), nullable=False, index=True)
    liveblog_id = Column(String(36), nullable=False, index=True)
    session_id = Column(String(128), nullable=True)
    device_hash = Column(String(64), nullable=True)
    mode = Column(String(32), nullable=True)
    target_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
