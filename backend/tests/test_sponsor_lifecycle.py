from conftest import CRON_SECRET, UA, make_liveblog, make_sponsor_slot, utc
from liveblog.models import SponsorClick, SponsorImpression, SponsorSlot
from liveblog.services.sponsors import (
    plan_transition,
    record_click,
    record_impression,
    run_sponsor_lifecycle,
    visible_sponsor_slots,
)


def _status(db, slot_id):
    db.expire_all()
    return db.get(SponsorSlot, slot_id).status


def test_plan_transition_archive_wins():
    now = utc()
    assert plan_transition("scheduled", utc(-60), utc(-1), now) == "archive"
    assert plan_transition("scheduled", utc(-1), utc(60), now) == "activate"
    assert plan_transition("scheduled", None, None, now) == "activate"
    assert plan_transition("scheduled", utc(5), None, now) is None
    assert plan_transition("active", utc(-60), utc(-1), now) == "archive"
    assert plan_transition("active", utc(-60), None, now) is None
    assert plan_transition("paused", utc(-60), utc(-1), now) is None


def test_sweep_activates_and_archives(db):
    lb = make_liveblog(db)
    due = make_sponsor_slot(db, lb.id, starts_at=utc(-5), ends_at=utc(60))
    ended = make_sponsor_slot(db, lb.id, status="active", starts_at=utc(-60), ends_at=utc(-1))
    future = make_sponsor_slot(db, lb.id, starts_at=utc(30))

    result = run_sponsor_lifecycle(db)
    assert result == {"activated": 1, "archived": 1}
    assert _status(db, due.id) == "active"
    assert _status(db, ended.id) == "archived"
    assert _status(db, future.id) == "scheduled"


def test_never_activated_slot_past_window_goes_straight_to_archived(db):
    lb = make_liveblog(db)
    missed = make_sponsor_slot(db, lb.id, starts_at=utc(-120), ends_at=utc(-60))
    assert run_sponsor_lifecycle(db) == {"activated": 0, "archived": 1}
    assert _status(db, missed.id) == "archived"


def test_paused_slots_are_untouched(db):
    lb = make_liveblog(db)
    paused = make_sponsor_slot(db, lb.id, status="paused", starts_at=utc(-120), ends_at=utc(-60))
    assert run_sponsor_lifecycle(db) == {"activated": 0, "archived": 0}
    assert _status(db, paused.id) == "paused"


def test_sweep_is_idempotent(db):
    lb = make_liveblog(db)
    make_sponsor_slot(db, lb.id, starts_at=utc(-5), ends_at=utc(60))
    assert run_sponsor_lifecycle(db)["activated"] == 1
    assert run_sponsor_lifecycle(db) == {"activated": 0, "archived": 0}


def test_slot_paused_mid_sweep_is_left_alone(db, session_factory, monkeypatch):
    lb = make_liveblog(db)
    slot = make_sponsor_slot(db, lb.id, starts_at=utc(-5), ends_at=utc(60))

    from liveblog.services import sponsors

    real_plan = sponsors.plan_transition

    def pause_then_plan(status, starts_at, ends_at, now):
        # An editor pauses the slot after the sweep read it
        editor = session_factory()
        editor.query(SponsorSlot).filter(SponsorSlot.id == slot.id).update({"status": "paused"})
        editor.commit()
        editor.close()
        return real_plan(status, starts_at, ends_at, now)

    monkeypatch.setattr(sponsors, "plan_transition", pause_then_plan)
    assert run_sponsor_lifecycle(db) == {"activated": 0, "archived": 0}
    assert _status(db, slot.id) == "paused"


def test_visible_slots_ordering_and_window(db):
    lb = make_liveblog(db)
    low = make_sponsor_slot(db, lb.id, status="active", priority=1, starts_at=utc(-10))
    high = make_sponsor_slot(db, lb.id, status="active", priority=5, starts_at=utc(-10))
    pinned = make_sponsor_slot(db, lb.id, status="active", priority=0, pinned=True)
    make_sponsor_slot(db, lb.id, status="active", starts_at=utc(-10), ends_at=utc(-1))
    make_sponsor_slot(db, lb.id, status="scheduled")
    make_sponsor_slot(db, lb.id, status="paused")

    ids = [s["id"] for s in visible_sponsor_slots(db, lb.id)]
    assert ids == [pinned.id, high.id, low.id]


def test_impression_and_click_tracking(db):
    lb = make_liveblog(db)
    slot = make_sponsor_slot(db, lb.id, status="active")
    record_impression(db, lb.id, {"slotId": slot.id, "deviceId": "d1", "viewMs": 999999, "mode": "inline"}, UA)
    record_click(db, lb.id, {"slotId": slot.id, "targetUrl": "https://acme.test"}, UA)

    impression = db.query(SponsorImpression).one()
    assert impression.view_ms == 60000
    assert impression.device_hash is not None
    click = db.query(SponsorClick).one()
    assert click.target_url == "https://acme.test"
    assert click.device_hash is None


def test_sponsor_endpoints(client, db):
    lb = make_liveblog(db)
    slot = make_sponsor_slot(db, lb.id, starts_at=utc(-5))

    assert client.get(f"/embed/{lb.id}/sponsors").json() == {"slots": []}

    sweep = client.post("/internal/sponsors/lifecycle", headers={"X-Cron-Secret": CRON_SECRET})
    assert sweep.status_code == 200
    assert sweep.json() == {"ok": True, "activated": 1, "archived": 0}

    slots = client.get(f"/embed/{lb.id}/sponsors").json()["slots"]
    assert [s["id"] for s in slots] == [slot.id]

    track = client.post(f"/embed/{lb.id}/sponsors/track", json={"slotId": slot.id, "viewMs": 1200})
    assert track.json() == {"ok": True}
    missing = client.post(f"/embed/{lb.id}/sponsors/click", json={})
    assert missing.status_code == 400
