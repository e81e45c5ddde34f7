"""Caption-this submission. Created pending; an editor approves it before it is listed. votes is kept in step with caption_vote rows in widget_events."""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from liveblog.db.base import Base


class UgcSubmission(Base):
    __tablename__ = "ugc_submissions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    widget_id = Column(String(36), ForeignKey("engagement_widgets.id", ondelete="CASCADE"), nullable=False, index=True)
    device_hash = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, server_default="pending")  # pending | approved | rejected
    votes = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
