"""
Centralized error handling for embed/widget/internal routes.
Error codes, a single exception type routes and services can raise, and a rules table for
classifying storage errors (unique violations are reclassified as duplicates, not failures).
"""
from __future__ import annotations

from typing import Callable

from sqlalchemy.exc import IntegrityError

# ---------------------------------------------------------------------------
# Constants: error codes and HTTP status per code
# ---------------------------------------------------------------------------

BAD_REQUEST = "bad_request"          # malformed / missing required field
INVALID_PAYLOAD = "invalid_payload"  # semantically invalid field (unknown reaction kind, non-numeric vote)
FORBIDDEN = "forbidden"              # visibility gate or cron secret failed
NOT_FOUND = "not_found"              # target absent or not owned by the claimed parent
SERVER_ERROR = "server_error"        # storage / transport failure

STATUS_BY_CODE: dict[str, int] = {
    BAD_REQUEST: 400,
    INVALID_PAYLOAD: 400,
    FORBIDDEN: 403,
    NOT_FOUND: 404,
    SERVER_ERROR: 500,
}


class ApiError(Exception):
    """Raised by services for validation/visibility failures; rendered as {"error": code}."""

    def __init__(self, code: str, status_code: int | None = None):
        super().__init__(code)
        self.code = code
        self.status_code = status_code or STATUS_BY_CODE.get(code, 500)


# ---------------------------------------------------------------------------
# Storage error rules: (predicate, classification). First match wins.
# Add new rules here instead of scattering checks in services.
# ---------------------------------------------------------------------------

UNIQUE_VIOLATION_PGCODE = "23505"


def _has_unique_pgcode(exc: Exception) -> bool:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) == UNIQUE_VIOLATION_PGCODE


def _has_unique_message(exc: Exception) -> bool:
    msg = str(exc).lower()
    return "duplicate key value" in msg or "unique constraint failed" in msg


UNIQUE_VIOLATION_RULES: list[Callable[[Exception], bool]] = [
    _has_unique_pgcode,
    _has_unique_message,
]


def is_unique_violation(exc: Exception) -> bool:
    """True if exc is an IntegrityError caused by a unique constraint (Postgres 23505 or SQLite)."""
    if not isinstance(exc, IntegrityError):
        return False
    return any(rule(exc) for rule in UNIQUE_VIOLATION_RULES)
