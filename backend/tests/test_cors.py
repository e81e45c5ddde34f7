import pytest

from conftest import CRON_SECRET, make_liveblog

ORIGIN = "https://publisher.example"


def test_embed_feed_allows_cross_origin_reads(client, db):
    lb = make_liveblog(db)
    resp = client.get(f"/embed/{lb.id}/feed", headers={"Origin": ORIGIN})
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"


def test_embed_preflight_is_answered(client):
    resp = client.options(
        "/embed/lb-1/track",
        headers={
            "Origin": ORIGIN,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "POST" in resp.headers["access-control-allow-methods"]


@pytest.mark.parametrize("path", ["/internal/sponsors/lifecycle", "/internal/publish/scheduled"])
def test_internal_routes_get_no_cors_headers(client, path):
    resp = client.post(path, headers={"Origin": ORIGIN, "X-Cron-Secret": CRON_SECRET})
    assert resp.status_code == 200
    assert "access-control-allow-origin" not in resp.headers


def test_internal_preflight_is_not_answered(client):
    resp = client.options(
        "/internal/publish/scheduled",
        headers={"Origin": ORIGIN, "Access-Control-Request-Method": "POST"},
    )
    assert "access-control-allow-origin" not in resp.headers


def test_health_gets_no_cors_headers(client):
    resp = client.get("/health", headers={"Origin": ORIGIN})
    assert resp.status_code == 200
    assert "access-control-allow-origin" not in resp.headers
