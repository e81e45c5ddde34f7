import pytest

from conftest import UA, make_widget
from liveblog.core.errors import ApiError
from liveblog.models import WidgetEvent
from liveblog.services.engagement import cast_vote, parse_vote_value, vote_summary


@pytest.mark.parametrize(
    "raw,expected",
    [(50, 50), ("72", 72), (49.5, 50), (49.4, 49), (-5, 0), (140, 100), ("  12 ", 12)],
)
def test_parse_vote_value_rounds_and_clamps(raw, expected):
    assert parse_vote_value(raw) == expected


@pytest.mark.parametrize("raw", ["abc", None, True, "", float("nan")])
def test_parse_vote_value_rejects_non_numeric(raw):
    with pytest.raises(ApiError) as exc:
        parse_vote_value(raw)
    assert exc.value.code == "invalid_payload"


def test_first_vote_counts_repeat_is_duplicate(db):
    widget = make_widget(db)
    first = cast_vote(db, widget.id, 80, "d1", UA)
    assert (first.mean, first.total, first.duplicate) == (80.0, 1, False)

    second = cast_vote(db, widget.id, 20, "d2", UA)
    assert (second.mean, second.total, second.duplicate) == (50.0, 2, False)

    repeat = cast_vote(db, widget.id, 0, "d1", UA)
    assert repeat.duplicate is True
    assert (repeat.mean, repeat.total) == (50.0, 2)
    assert db.query(WidgetEvent).count() == 2


def test_vote_on_inactive_or_wrong_widget_is_not_found(db):
    closed = make_widget(db, status="closed")
    poll = make_widget(db, type="poll")
    for widget_id in (closed.id, poll.id, "missing"):
        with pytest.raises(ApiError) as exc:
            cast_vote(db, widget_id, 50, "d1", UA)
        assert exc.value.code == "not_found"


def test_vote_summary_empty_widget(db):
    widget = make_widget(db)
    result = vote_summary(db, widget.id)
    assert (result.mean, result.total) == (0.0, 0)


def test_vote_endpoints(client, db):
    widget = make_widget(db)
    resp = client.post(f"/widgets/hot-take/{widget.id}/vote", json={"value": 64, "deviceId": "d1"})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "mean": 64.0, "total": 1, "duplicate": False}

    dup = client.post(f"/widgets/hot-take/{widget.id}/vote", json={"value": 10, "deviceId": "d1"})
    assert dup.json()["duplicate"] is True

    summary = client.get(f"/widgets/hot-take/{widget.id}/summary")
    assert summary.json() == {"ok": True, "mean": 64.0, "total": 1}

    bad = client.post(f"/widgets/hot-take/{widget.id}/vote", json={"value": "lots", "deviceId": "d1"})
    assert bad.status_code == 400
    assert bad.json() == {"error": "invalid_payload"}
