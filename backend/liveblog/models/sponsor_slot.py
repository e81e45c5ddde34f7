"""Time-boxed sponsor placement. scheduled -> active -> archived is driven by the lifecycle sweep; paused is manual."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import false, func

from liveblog.db.base import Base


class SponsorSlot(Base):
    __tablename__ = "sponsor_slots"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    liveblog_id = Column(String(36), ForeignKey("liveblogs.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    headline = Column(String(256), nullable=True)
    description = Column(Text, nullable=True)
    cta_text = Column(String(128), nullable=True)
    cta_url = Column(String(1024), nullable=True)
    image_path = Column(String(512), nullable=True)
    status = Column(String(16), nullable=False, server_default="scheduled", index=True)  # scheduled | active | paused | archived
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    priority = Column(Integer, nullable=False, default=0, server_default="0")
    pinned = Column(Boolean, nullable=False, default=False, server_default=false())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
