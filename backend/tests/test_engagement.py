import pytest
from sqlalchemy.exc import IntegrityError

from conftest import UA, make_liveblog, make_update
from liveblog.core.errors import ApiError, is_unique_violation
from liveblog.models import UpdateReaction
from liveblog.services.engagement import (
    allowed_reaction_kinds,
    device_hash,
    reaction_summary,
    toggle_reaction,
)


def test_device_hash_is_sha256_of_device_and_truncated_user_agent():
    import hashlib

    ua = "x" * 600
    expected = hashlib.sha256(("dev-1|" + "x" * 512).encode("utf-8")).hexdigest()
    assert device_hash("dev-1", ua) == expected
    assert device_hash("dev-1", None) == hashlib.sha256(b"dev-1|").hexdigest()


def test_react_then_unreact_reports_counts_and_active(db):
    lb = make_liveblog(db)
    u1 = make_update(db, lb.id)

    state = toggle_reaction(db, lb.id, u1.id, "heart", "d1", UA)
    assert state.counts["heart"] == 1
    assert state.active["heart"] is True

    state = toggle_reaction(db, lb.id, u1.id, "heart", "d1", UA)
    assert state.counts["heart"] == 0
    assert state.active["heart"] is False
    assert db.query(UpdateReaction).count() == 0


def test_toggle_twice_restores_ledger_with_other_devices_present(db):
    lb = make_liveblog(db)
    u1 = make_update(db, lb.id)
    toggle_reaction(db, lb.id, u1.id, "smile", "d2", UA)
    before = sorted((r.device_hash, r.reaction) for r in db.query(UpdateReaction).all())

    toggle_reaction(db, lb.id, u1.id, "smile", "d1", UA)
    state = toggle_reaction(db, lb.id, u1.id, "smile", "d1", UA)

    after = sorted((r.device_hash, r.reaction) for r in db.query(UpdateReaction).all())
    assert after == before
    assert state.counts["smile"] == 1
    assert state.active["smile"] is False


def test_same_device_different_user_agent_is_a_different_viewer(db):
    lb = make_liveblog(db)
    u1 = make_update(db, lb.id)
    toggle_reaction(db, lb.id, u1.id, "heart", "d1", "agent-a")
    state = toggle_reaction(db, lb.id, u1.id, "heart", "d1", "agent-b")
    assert state.counts["heart"] == 2


def test_missing_fields_are_invalid_payload(db):
    lb = make_liveblog(db)
    u1 = make_update(db, lb.id)
    with pytest.raises(ApiError) as exc:
        toggle_reaction(db, lb.id, u1.id, "heart", "", UA)
    assert exc.value.code == "invalid_payload"
    with pytest.raises(ApiError) as exc:
        toggle_reaction(db, "", u1.id, "heart", "d1", UA)
    assert exc.value.code == "bad_request"


def test_unknown_reaction_kind_rejected(db):
    lb = make_liveblog(db)
    u1 = make_update(db, lb.id)
    with pytest.raises(ApiError) as exc:
        toggle_reaction(db, lb.id, u1.id, "angry", "d1", UA)
    assert exc.value.code == "invalid_payload"


@pytest.mark.parametrize(
    "overrides",
    [{"privacy": "private"}, {"status": "ended"}, {"status": "draft"}],
)
def test_visibility_gate(db, overrides):
    lb = make_liveblog(db, **overrides)
    u1 = make_update(db, lb.id)
    with pytest.raises(ApiError) as exc:
        toggle_reaction(db, lb.id, u1.id, "heart", "d1", UA)
    assert exc.value.code == "forbidden"
    assert exc.value.status_code == 403


def test_unlisted_liveblog_accepts_reactions(db):
    lb = make_liveblog(db, privacy="unlisted")
    u1 = make_update(db, lb.id)
    assert toggle_reaction(db, lb.id, u1.id, "heart", "d1", UA).counts["heart"] == 1


def test_update_from_another_liveblog_is_not_found(db):
    lb = make_liveblog(db)
    other = make_liveblog(db)
    foreign = make_update(db, other.id)
    with pytest.raises(ApiError) as exc:
        toggle_reaction(db, lb.id, foreign.id, "heart", "d1", UA)
    assert exc.value.code == "not_found"


def test_per_liveblog_reaction_kinds(db):
    lb = make_liveblog(db, settings={"reactions": [{"id": "fire"}, "clap", {"id": "fire"}]})
    assert allowed_reaction_kinds(lb) == ["fire", "clap"]
    u1 = make_update(db, lb.id)
    state = toggle_reaction(db, lb.id, u1.id, "fire", "d1", UA)
    assert state.counts == {"fire": 1, "clap": 0}
    with pytest.raises(ApiError):
        toggle_reaction(db, lb.id, u1.id, "heart", "d1", UA)


def test_concurrent_duplicate_insert_is_treated_as_reacted(db, monkeypatch):
    lb = make_liveblog(db)
    u1 = make_update(db, lb.id)
    dhash = device_hash("d1", UA)
    # Simulate a racing request: the row appears between our existence check and our insert
    original_commit = db.commit
    calls = {"n": 0}

    def racing_commit():
        calls["n"] += 1
        if calls["n"] == 1:
            db.rollback()
            db.add(UpdateReaction(liveblog_id=lb.id, update_id=u1.id, reaction="heart", device_hash=dhash))
            original_commit()
            db.add(UpdateReaction(liveblog_id=lb.id, update_id=u1.id, reaction="heart", device_hash=dhash))
        return original_commit()

    monkeypatch.setattr(db, "commit", racing_commit)
    state = toggle_reaction(db, lb.id, u1.id, "heart", "d1", UA)
    assert state.counts["heart"] == 1
    assert state.active["heart"] is True


def test_unique_violation_classifier():
    class _Orig(Exception):
        pgcode = "23505"

    assert is_unique_violation(IntegrityError("INSERT", {}, _Orig("dup")))
    assert is_unique_violation(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: x")))
    assert not is_unique_violation(IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed")))
    assert not is_unique_violation(ValueError("duplicate key value"))


def test_reaction_summary_batches_and_drops_foreign_ids(db):
    lb = make_liveblog(db)
    other = make_liveblog(db)
    u1 = make_update(db, lb.id)
    u2 = make_update(db, lb.id)
    foreign = make_update(db, other.id)
    toggle_reaction(db, lb.id, u1.id, "heart", "d1", UA)
    toggle_reaction(db, lb.id, u1.id, "heart", "d2", UA)
    toggle_reaction(db, lb.id, u2.id, "smile", "d2", UA)

    out = reaction_summary(db, lb.id, [u1.id, u2.id, foreign.id], "d1", UA)
    assert set(out["counts"]) == {u1.id, u2.id}
    assert out["counts"][u1.id]["heart"] == 2
    assert out["active"][u1.id]["heart"] is True
    assert out["active"][u2.id]["smile"] is False


def test_reaction_endpoints(client, db):
    lb = make_liveblog(db)
    u1 = make_update(db, lb.id)

    resp = client.post(
        f"/embed/{lb.id}/reactions",
        json={"updateId": u1.id, "type": "heart", "deviceId": "d1"},
        headers={"User-Agent": UA},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["counts"]["heart"] == 1
    assert body["active"]["heart"] is True

    summary = client.get(
        f"/embed/{lb.id}/reactions/summary",
        params={"updateIds": u1.id, "deviceId": "d1"},
        headers={"User-Agent": UA},
    )
    assert summary.status_code == 200
    assert summary.json()["active"][u1.id]["heart"] is True

    bad = client.post(f"/embed/{lb.id}/reactions", json={"updateId": u1.id, "type": "nope", "deviceId": "d1"})
    assert bad.status_code == 400
    assert bad.json() == {"error": "invalid_payload"}
