"""Liveblog: parent of updates, sponsor slots and push subscriptions. Edited elsewhere; read-only here.

settings (JSON): discord_webhook_url for the chat fan-out, optional reactions list overriding the
default reaction kinds.
"""
import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from liveblog.db.base import Base, JSONType


class Liveblog(Base):
    __tablename__ = "liveblogs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), nullable=True, index=True)
    title = Column(String(256), nullable=False, server_default="")
    status = Column(String(16), nullable=False, server_default="active")  # active | ended | draft
    privacy = Column(String(16), nullable=False, server_default="public")  # public | unlisted | private
    settings = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
