import pytest

from conftest import CRON_SECRET, make_liveblog, make_update, utc
from liveblog.models import Update
from liveblog.services.publish import FanoutChannels, clamp_publish_limit, run_scheduled_publish


class RecordingFanout(FanoutChannels):
    def __init__(self, fail_chat: bool = False):
        super().__init__()
        self.dispatched: list[tuple[str, dict]] = []
        self.fail_chat = fail_chat
        self.push_calls = 0

    def send_chat(self, liveblog, content):
        if self.fail_chat:
            raise RuntimeError("webhook down")
        self.dispatched.append((liveblog.id, content))
        return True

    def send_push(self, db, liveblog_id, content):
        self.push_calls += 1
        return {"delivered": 0, "failed": 0, "removed": 0}


@pytest.mark.parametrize(
    "raw,expected",
    [(None, 50), ("abc", 50), (0, 50), (True, 50), (-3, 1), (7, 7), ("20", 20), (500, 100)],
)
def test_clamp_publish_limit(raw, expected):
    assert clamp_publish_limit(raw) == expected


def test_due_update_is_published_and_fanned_out_once(db):
    lb = make_liveblog(db)
    u1 = make_update(
        db, lb.id, status="scheduled", published_at=None, scheduled_at=utc(-1),
        content={"type": "text", "text": "Goal!"},
    )
    not_due = make_update(db, lb.id, status="scheduled", published_at=None, scheduled_at=utc(30))
    fanout = RecordingFanout()

    assert run_scheduled_publish(db, fanout=fanout) == 1
    db.expire_all()
    row = db.get(Update, u1.id)
    assert row.status == "published"
    assert row.published_at is not None
    assert db.get(Update, not_due.id).status == "scheduled"
    assert fanout.dispatched == [(lb.id, {"type": "text", "text": "Goal!"})]
    assert fanout.push_calls == 1

    # A second sweep finds nothing due and notifies nobody again
    assert run_scheduled_publish(db, fanout=fanout) == 0
    assert len(fanout.dispatched) == 1


def test_deleted_scheduled_update_is_never_published(db):
    lb = make_liveblog(db)
    row = make_update(db, lb.id, status="scheduled", published_at=None, scheduled_at=utc(-1), deleted_at=utc(-1))
    assert run_scheduled_publish(db, fanout=RecordingFanout()) == 0
    db.expire_all()
    assert db.get(Update, row.id).status == "scheduled"


def test_row_published_by_another_sweep_gets_no_second_notification(db, session_factory, monkeypatch):
    lb = make_liveblog(db)
    row = make_update(db, lb.id, status="scheduled", published_at=None, scheduled_at=utc(-1))
    fanout = RecordingFanout()

    from liveblog.services import publish

    real_select = publish.select_due_updates

    def select_then_race(session, now, limit):
        due = real_select(session, now, limit)
        other = session_factory()
        other.query(Update).filter(Update.id == row.id).update({"status": "published", "published_at": now})
        other.commit()
        other.close()
        return due

    monkeypatch.setattr(publish, "select_due_updates", select_then_race)
    assert run_scheduled_publish(db, fanout=fanout) == 0
    assert fanout.dispatched == []


def test_limit_caps_sweep_oldest_first(db):
    lb = make_liveblog(db)
    rows = [
        make_update(db, lb.id, status="scheduled", published_at=None, scheduled_at=utc(-10 + i))
        for i in range(3)
    ]
    assert run_scheduled_publish(db, limit=2, fanout=RecordingFanout()) == 2
    db.expire_all()
    assert [db.get(Update, r.id).status for r in rows] == ["published", "published", "scheduled"]


def test_chat_failure_does_not_block_push_or_publish(db):
    lb = make_liveblog(db)
    make_update(db, lb.id, status="scheduled", published_at=None, scheduled_at=utc(-1))
    fanout = RecordingFanout(fail_chat=True)
    assert run_scheduled_publish(db, fanout=fanout) == 1
    assert fanout.push_calls == 1


def test_scheduled_update_appears_in_feed_after_publish(client, db, fanout):
    lb = make_liveblog(db)
    u1 = make_update(
        db, lb.id, status="scheduled", published_at=None, scheduled_at=utc(-1),
        content={"type": "text", "text": "Scheduled preview"},
    )
    assert client.get(f"/embed/{lb.id}/feed").json() == {"updates": []}

    resp = client.post("/internal/publish/scheduled", json={"limit": 10}, headers={"X-Cron-Secret": CRON_SECRET})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "published": 1}

    updates = client.get(f"/embed/{lb.id}/feed").json()["updates"]
    assert [u["id"] for u in updates] == [u1.id]


def test_public_media_url():
    channels = FanoutChannels(media_public_base_url="https://cdn.test/media/")
    assert channels.public_media_url("lb/1.png") == "https://cdn.test/media/lb/1.png"
    assert channels.public_media_url("https://elsewhere/x.png") == "https://elsewhere/x.png"
    assert channels.public_media_url(None) is None
    assert FanoutChannels().public_media_url("lb/1.png") is None
