from liveblog.db.base import Base
from liveblog.db.guards import conditional_update
from liveblog.db.session import get_db, engine, SessionLocal
from liveblog.db.tables import ALL_TABLE_NAMES, ENGAGEMENT_TABLE_NAMES

__all__ = [
    "get_db",
    "engine",
    "SessionLocal",
    "Base",
    "conditional_update",
    "ALL_TABLE_NAMES",
    "ENGAGEMENT_TABLE_NAMES",
]
