"""Liveblog update. Publicly visible only when status='published' and deleted_at IS NULL.

content is a tagged variant: {"type": "text"|"image"|"link"|..., ...}.
"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.sql import false, func

from liveblog.db.base import Base, JSONType


class Update(Base):
    __tablename__ = "updates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    liveblog_id = Column(String(36), ForeignKey("liveblogs.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(JSONType, nullable=True)
    status = Column(String(16), nullable=False, server_default="draft")  # draft | scheduled | published | deleted
    pinned = Column(Boolean, nullable=False, default=False, server_default=false())
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_updates_feed", "liveblog_id", "status", "pinned", "published_at"),
        Index("ix_updates_due", "status", "scheduled_at"),
    )
