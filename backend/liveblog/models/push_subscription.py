"""Web Push subscription for one liveblog. Deleted when the push service reports the endpoint gone (404/410)."""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from liveblog.db.base import Base, JSONType


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    liveblog_id = Column(String(36), ForeignKey("liveblogs.id", ondelete="CASCADE"), nullable=False, index=True)
    endpoint = Column(Text, nullable=False)
    keys = Column(JSONType, nullable=False, default=dict)  # {p256dh, auth}
    expiration_time = Column(DateTime(timezone=True), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_notified_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("liveblog_id", "endpoint", name="uq_push_subscription_endpoint"),)
