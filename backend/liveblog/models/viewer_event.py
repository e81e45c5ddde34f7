"""Append-only viewer telemetry: session pings (presence) and named analytics events."""
import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from liveblog.db.base import Base, JSONType


class ViewerPing(Base):
    __tablename__ = "viewer_pings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    liveblog_id = Column(String(36), nullable=False, index=True)
    session_id = Column(String(128), nullable=False, index=True)
    mode = Column(String(32), nullable=True)
    user_agent = Column(String(512), nullable=True)
    referrer = Column(String(512), nullable=True)
    ip_hash = Column(String(64), nullable=True)  # sha256 of X-Forwarded-For; raw addresses never stored
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    liveblog_id = Column(String(36), nullable=False, index=True)
    session_id = Column(String(128), nullable=False)
    event = Column(String(64), nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
