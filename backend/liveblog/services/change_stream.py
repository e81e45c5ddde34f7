"""
Change stream relay: push every insert/update/delete on `updates` to open SSE connections.

Capture has two sources and exactly one is active per process:
- Postgres: a row trigger on `updates` sends {eventType, new, old} through pg_notify, and
  PgChangeListener (services/pg_change_listener.py) feeds each notification to the hub. Every
  writer is covered (other services, raw SQL, sweeps run from scripts or other workers).
- SQLite (dev/tests): mapper events on Update stash changes in session.info while flushing;
  after_commit hands them to the hub in order, after_rollback drops them. Guarded bulk writes
  (publish transition) bypass mapper events and call record_update_change() themselves.
  The listener switches this path off (hub.orm_capture = False) once it is running.

Delivery: ChangeHub keeps one ChangeSubscription per open stream (per liveblog). A subscription
owns a bounded asyncio queue bound to the subscriber's event loop, so publish() is safe from any
thread. A consumer that falls queue_maxsize changes behind is closed; its stream ends and the
client reconnects (retry hint) and refetches the feed.
"""
import asyncio
import json
import logging
import threading
from datetime import datetime
from typing import Any, AsyncIterator

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from liveblog.config import settings
from liveblog.core.clock import iso_utc
from liveblog.models.update import Update

logger = logging.getLogger(__name__)

_PENDING_KEY = "update_changes"
_UPDATE_FIELDS = (
    "id",
    "liveblog_id",
    "content",
    "status",
    "pinned",
    "scheduled_at",
    "published_at",
    "deleted_at",
)
_DATETIME_FIELDS = {"scheduled_at", "published_at", "deleted_at"}
_EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")


class ChangeSubscription:
    """Cancellable handle for one stream consumer."""

    def __init__(self, hub: "ChangeHub", liveblog_id: str, loop: asyncio.AbstractEventLoop, maxsize: int = 0):
        self.liveblog_id = liveblog_id
        self._hub = hub
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.overflowed = False

    def deliver(self, change: dict[str, Any]) -> bool:
        """Enqueue from any thread. False if the consumer's loop is gone or it was closed."""
        if self.closed:
            return False
        try:
            self._loop.call_soon_threadsafe(self._enqueue, change)
        except RuntimeError:
            return False
        return True

    def _enqueue(self, change: dict[str, Any]) -> None:
        # Runs on the consumer's loop
        if self.closed:
            return
        try:
            self._queue.put_nowait(change)
        except asyncio.QueueFull:
            logger.warning("Change stream for liveblog %s fell behind; closing subscription", self.liveblog_id)
            self.overflowed = True
            self.close()

    async def next_event(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Wait for the next change; None on timeout."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._hub._discard(self)


class ChangeHub:
    def __init__(self, queue_maxsize: int = 0):
        self._lock = threading.Lock()
        self._subscriptions: dict[str, list[ChangeSubscription]] = {}
        self.queue_maxsize = queue_maxsize
        # False while a database change listener is the capture source
        self.orm_capture = True

    def subscribe(self, liveblog_id: str) -> ChangeSubscription:
        """Must be called from the consumer's running event loop."""
        sub = ChangeSubscription(self, liveblog_id, asyncio.get_running_loop(), maxsize=self.queue_maxsize)
        with self._lock:
            self._subscriptions.setdefault(liveblog_id, []).append(sub)
        return sub

    def publish(self, liveblog_id: str, change: dict[str, Any]) -> int:
        """Fan one change out to every open subscription for the liveblog. Returns deliveries."""
        with self._lock:
            subs = list(self._subscriptions.get(liveblog_id, ()))
        delivered = 0
        for sub in subs:
            if sub.deliver(change):
                delivered += 1
            else:
                sub.close()
        return delivered

    def subscriber_count(self, liveblog_id: str | None = None) -> int:
        with self._lock:
            if liveblog_id is not None:
                return len(self._subscriptions.get(liveblog_id, ()))
            return sum(len(v) for v in self._subscriptions.values())

    def _discard(self, sub: ChangeSubscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(sub.liveblog_id)
            if not subs:
                return
            try:
                subs.remove(sub)
            except ValueError:
                pass
            if not subs:
                del self._subscriptions[sub.liveblog_id]


change_hub = ChangeHub(queue_maxsize=settings.sse_queue_max)


# ---------------------------------------------------------------------------
# Capture: ORM events -> session.info -> hub (on commit only)
# ---------------------------------------------------------------------------


def _jsonable(key: str, value: Any) -> Any:
    if key in _DATETIME_FIELDS:
        return iso_utc(value)
    return value


def update_snapshot(row: Update) -> dict[str, Any]:
    return {key: _jsonable(key, getattr(row, key)) for key in _UPDATE_FIELDS}


def _previous_snapshot(row: Update) -> dict[str, Any]:
    state = inspect(row)
    out = {}
    for key in _UPDATE_FIELDS:
        history = state.attrs[key].history
        value = history.deleted[0] if history.deleted else getattr(row, key)
        out[key] = _jsonable(key, value)
    return out


def record_update_change(
    db: Session,
    event_type: str,
    new: dict[str, Any] | None,
    old: dict[str, Any] | None,
) -> None:
    """Queue a change on the session; published to the hub when the session commits."""
    source = new or old or {}
    liveblog_id = source.get("liveblog_id")
    if not liveblog_id:
        return
    db.info.setdefault(_PENDING_KEY, []).append(
        (str(liveblog_id), {"eventType": event_type, "new": new or {}, "old": old or {}})
    )


@event.listens_for(Update, "after_insert")
def _on_insert(mapper, connection, target: Update) -> None:
    session = Session.object_session(target)
    if session is not None:
        record_update_change(session, "INSERT", update_snapshot(target), None)


@event.listens_for(Update, "after_update")
def _on_update(mapper, connection, target: Update) -> None:
    session = Session.object_session(target)
    if session is not None:
        record_update_change(session, "UPDATE", update_snapshot(target), _previous_snapshot(target))


@event.listens_for(Update, "after_delete")
def _on_delete(mapper, connection, target: Update) -> None:
    session = Session.object_session(target)
    if session is not None:
        record_update_change(session, "DELETE", None, _previous_snapshot(target))


@event.listens_for(Session, "after_commit")
def _publish_committed(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not change_hub.orm_capture:
        return
    for liveblog_id, change in pending or ():
        change_hub.publish(liveblog_id, change)


@event.listens_for(Session, "after_rollback")
def _drop_rolled_back(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


# ---------------------------------------------------------------------------
# Capture: database notifications (pg_notify payloads) -> hub
# ---------------------------------------------------------------------------


def _normalize_timestamp(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    try:
        return iso_utc(datetime.fromisoformat(value))
    except ValueError:
        return value


def _normalize_row(row: Any) -> dict[str, Any]:
    if not isinstance(row, dict):
        return {}
    out = {}
    for key in _UPDATE_FIELDS:
        if key in row:
            out[key] = _normalize_timestamp(row[key]) if key in _DATETIME_FIELDS else row[key]
    return out


def change_from_notification(payload: str) -> tuple[str, dict[str, Any]] | None:
    """
    Parse one trigger notification into (liveblog_id, change), shaped like the changes the ORM
    path records. None for anything malformed.
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or data.get("eventType") not in _EVENT_TYPES:
        return None
    new = _normalize_row(data.get("new"))
    old = _normalize_row(data.get("old"))
    liveblog_id = new.get("liveblog_id") or old.get("liveblog_id")
    if not liveblog_id:
        return None
    return str(liveblog_id), {"eventType": data["eventType"], "new": new, "old": old}


# ---------------------------------------------------------------------------
# SSE framing
# ---------------------------------------------------------------------------


def sse_data(change: dict[str, Any]) -> str:
    payload = {"event": change.get("eventType"), "new": change.get("new"), "old": change.get("old")}
    return f"data: {json.dumps(payload, default=str)}\n\n"


async def stream_changes(
    request,
    hub: ChangeHub,
    liveblog_id: str,
    *,
    retry_ms: int,
    keepalive_seconds: float,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for one connection: retry hint, ': connected' once subscribed, then one
    data frame per change. Idle periods emit keep-alive comments and check for disconnect.
    The subscription is released in finally, so an aborted client (generator cancelled or
    closed by the server) never leaks it.
    """
    yield f"retry: {retry_ms}\n\n"
    subscription = hub.subscribe(liveblog_id)
    logger.debug("Change stream opened for liveblog %s", liveblog_id)
    try:
        yield ": connected\n\n"
        while not subscription.overflowed:
            change = await subscription.next_event(timeout=keepalive_seconds)
            if change is None:
                if await request.is_disconnected():
                    break
                yield ": keep-alive\n\n"
                continue
            yield sse_data(change)
    finally:
        subscription.close()
        logger.debug("Change stream closed for liveblog %s", liveblog_id)
