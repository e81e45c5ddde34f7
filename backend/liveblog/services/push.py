"""
Web Push fan-out to a liveblog's subscribers (VAPID via pywebpush).

Every subscription is attempted independently on a thread pool and all attempts are awaited;
one endpoint's failure never cancels or delays another's outcome. Results are applied afterwards
on the caller's session: success stamps last_notified_at, 404/410 ("gone") deletes the
subscription, anything else is dropped (the next publish is the implicit retry).
If VAPID keys are not configured, push is disabled and fan-out no-ops (log and return).
"""
import json
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Protocol

from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

from liveblog.core.clock import as_utc, utc_now
from liveblog.core.constants import PUSH_BODY_MAX_LENGTH, PUSH_GONE_STATUSES, PUSH_ICON, PUSH_TITLE, USER_AGENT_MAX_LENGTH
from liveblog.core.errors import BAD_REQUEST, INVALID_PAYLOAD, ApiError, is_unique_violation
from liveblog.models.push_subscription import PushSubscription

logger = logging.getLogger(__name__)

DELIVERED = "delivered"
GONE = "gone"
FAILED = "failed"


class PushDeliveryError(Exception):
    def __init__(self, status_code: int, message: str = ""):
        super().__init__(message or f"push delivery failed ({status_code})")
        self.status_code = status_code


class PushSender(Protocol):
    """Delivers one payload to one endpoint; raises PushDeliveryError on failure."""

    def send(self, endpoint: str, keys: dict, data: str) -> None:
        ...


class WebPushSender:
    def __init__(self, vapid_private_key: str, vapid_subject: str, timeout: float = 10.0):
        self._vapid_private_key = vapid_private_key
        self._vapid_claims = {"sub": vapid_subject}
        self._timeout = timeout

    def send(self, endpoint: str, keys: dict, data: str) -> None:
        try:
            webpush(
                subscription_info={"endpoint": endpoint, "keys": keys},
                data=data,
                vapid_private_key=self._vapid_private_key,
                vapid_claims=dict(self._vapid_claims),
                timeout=self._timeout,
            )
        except WebPushException as e:
            status = getattr(e.response, "status_code", 0) if e.response is not None else 0
            raise PushDeliveryError(status or 0, str(e)) from e


def build_push_sender(vapid_public_key: str, vapid_private_key: str, vapid_subject: str) -> WebPushSender | None:
    if not vapid_public_key or not vapid_private_key:
        logger.info("VAPID keys not configured; push fan-out disabled")
        return None
    return WebPushSender(vapid_private_key, vapid_subject)


def build_push_payload(liveblog_id: str, content: Any, site_url: str) -> dict[str, str]:
    """Notification shown by the service worker: title, short body, click-through url."""
    text = "New update"
    if isinstance(content, dict):
        title = content.get("title")
        body = content.get("text")
        if isinstance(title, str) and title.strip():
            text = title.strip()
        elif isinstance(body, str) and body.strip():
            text = body.strip()
    site = (site_url or "").rstrip("/")
    return {
        "title": PUSH_TITLE,
        "body": text[:PUSH_BODY_MAX_LENGTH],
        "url": f"{site}/embed/{liveblog_id}",
        "tag": f"lb-{liveblog_id}",
        "icon": PUSH_ICON,
        "badge": PUSH_ICON,
    }


def _attempt(sender: PushSender, endpoint: str, keys: dict, data: str) -> tuple[str, int]:
    try:
        sender.send(endpoint, keys, data)
        return DELIVERED, 200
    except PushDeliveryError as e:
        if e.status_code in PUSH_GONE_STATUSES:
            return GONE, e.status_code
        return FAILED, e.status_code
    except Exception as e:
        logger.warning("Push delivery to %s... raised: %s", endpoint[:40], e)
        return FAILED, 0


def send_push_to_liveblog(
    db: Session,
    liveblog_id: str,
    payload: dict,
    sender: PushSender,
    *,
    batch_limit: int = 10000,
    max_workers: int = 16,
    now: datetime | None = None,
) -> dict[str, int]:
    """Deliver payload to every subscription of the liveblog. Returns {delivered, failed, removed}."""
    subs = (
        db.query(PushSubscription.id, PushSubscription.endpoint, PushSubscription.keys)
        .filter(PushSubscription.liveblog_id == liveblog_id)
        .limit(batch_limit)
        .all()
    )
    if not subs:
        return {"delivered": 0, "failed": 0, "removed": 0}

    data = json.dumps(payload)
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(subs))), thread_name_prefix="push") as pool:
        futures = {
            pool.submit(_attempt, sender, endpoint, keys or {}, data): sub_id
            for sub_id, endpoint, keys in subs
        }
        done, _ = wait(futures)

    delivered_ids: list[str] = []
    gone_ids: list[str] = []
    failed = 0
    for fut in done:
        outcome, status = fut.result()
        if outcome == DELIVERED:
            delivered_ids.append(futures[fut])
        else:
            failed += 1
            if outcome == GONE:
                gone_ids.append(futures[fut])
            else:
                logger.debug("Push to subscription %s failed with status %s", futures[fut], status)

    stamp = as_utc(now) or utc_now()
    if delivered_ids:
        db.query(PushSubscription).filter(PushSubscription.id.in_(delivered_ids)).update(
            {"last_notified_at": stamp}, synchronize_session=False
        )
    if gone_ids:
        db.query(PushSubscription).filter(PushSubscription.id.in_(gone_ids)).delete(synchronize_session=False)
    db.commit()
    if failed:
        logger.warning(
            "Push for liveblog %s: %s delivered, %s failed (%s gone, removed)",
            liveblog_id, len(delivered_ids), failed, len(gone_ids),
        )
    return {"delivered": len(delivered_ids), "failed": failed, "removed": len(gone_ids)}


# --- Subscribe / unsubscribe ---


def subscribe_push(db: Session, liveblog_id: str, subscription: Any, user_agent: str | None) -> PushSubscription:
    """Upsert on (liveblog_id, endpoint): same browser re-subscribing refreshes keys."""
    if not liveblog_id:
        raise ApiError(BAD_REQUEST)
    if not isinstance(subscription, dict) or not isinstance(subscription.get("endpoint"), str) or not subscription["endpoint"]:
        raise ApiError(INVALID_PAYLOAD)
    endpoint = subscription["endpoint"]
    keys = subscription.get("keys") if isinstance(subscription.get("keys"), dict) else {}
    expiration = subscription.get("expirationTime")
    expiration_time = None
    if isinstance(expiration, (int, float)) and not isinstance(expiration, bool):
        expiration_time = datetime.fromtimestamp(expiration / 1000, tz=timezone.utc)
    ua = (user_agent or "")[:USER_AGENT_MAX_LENGTH]

    values = {"keys": keys, "expiration_time": expiration_time, "user_agent": ua}
    existing = (
        db.query(PushSubscription)
        .filter(PushSubscription.liveblog_id == liveblog_id, PushSubscription.endpoint == endpoint)
        .first()
    )
    if existing is None:
        existing = PushSubscription(liveblog_id=liveblog_id, endpoint=endpoint, **values)
        db.add(existing)
        try:
            db.commit()
            return existing
        except Exception as e:
            db.rollback()
            if not is_unique_violation(e):
                raise
            existing = (
                db.query(PushSubscription)
                .filter(PushSubscription.liveblog_id == liveblog_id, PushSubscription.endpoint == endpoint)
                .one()
            )
    for key, value in values.items():
        setattr(existing, key, value)
    db.commit()
    return existing


def unsubscribe_push(db: Session, liveblog_id: str, endpoint: Any) -> int:
    if not liveblog_id:
        raise ApiError(BAD_REQUEST)
    if not isinstance(endpoint, str) or not endpoint:
        raise ApiError(INVALID_PAYLOAD)
    removed = (
        db.query(PushSubscription)
        .filter(PushSubscription.liveblog_id == liveblog_id, PushSubscription.endpoint == endpoint)
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(removed or 0)
