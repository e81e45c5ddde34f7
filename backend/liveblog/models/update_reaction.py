"""Engagement ledger: one row per (update, device_hash, reaction). Toggle = delete-if-exists else insert."""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.sql import func

from liveblog.db.base import Base


class UpdateReaction(Base):
    __tablename__ = "update_reactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    liveblog_id = Column(String(36), nullable=False, index=True)
    update_id = Column(String(36), ForeignKey("updates.id", ondelete="CASCADE"), nullable=False, index=True)
    reaction = Column(String(32), nullable=False)
    device_hash = Column(String(64), nullable=False)  # sha256(device_id|user_agent); raw ids never stored
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("update_id", "device_hash", "reaction", name="uq_update_reaction_device"),
    )
