"""
Engagement ledger for widgets: at most one row per (widget, event, device_hash, target).

Hot-take votes have an empty target (one vote per widget); caption votes target a submission id
(one upvote per submission).
"""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from liveblog.db.base import Base


class WidgetEvent(Base):
    __tablename__ = "widget_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    widget_id = Column(String(36), ForeignKey("engagement_widgets.id", ondelete="CASCADE"), nullable=False, index=True)
    event = Column(String(16), nullable=False, server_default="vote")  # vote | caption_vote
    device_hash = Column(String(64), nullable=False)
    target_id = Column(String(36), nullable=False, default="", server_default="")
    value = Column(Integer, nullable=True)  # 0-100 for hot-take votes
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("widget_id", "event", "device_hash", "target_id", name="uq_widget_event_device"),
    )
