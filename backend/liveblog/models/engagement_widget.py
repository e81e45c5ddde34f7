"""Engagement widget (hot-take slider, ...). Votes land in widget_events."""
import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from liveblog.db.base import Base, JSONType


class EngagementWidget(Base):
    __tablename__ = "engagement_widgets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    liveblog_id = Column(String(36), nullable=True, index=True)
    type = Column(String(32), nullable=False)  # hot-take | caption-this | ...
    status = Column(String(16), nullable=False, server_default="active")
    config = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
