import pytest

from conftest import CRON_SECRET
from liveblog.config import settings
from liveblog.core.security import check_cron_secret


def test_check_cron_secret():
    assert check_cron_secret("s3cret", "s3cret")
    assert not check_cron_secret("wrong", "s3cret")
    assert not check_cron_secret(None, "s3cret")
    assert not check_cron_secret("", "")


@pytest.mark.parametrize("path", ["/internal/sponsors/lifecycle", "/internal/publish/scheduled"])
def test_sweeps_require_secret(client, path):
    assert client.post(path).status_code == 403
    assert client.post(path, headers={"X-Cron-Secret": "nope"}).json() == {"error": "forbidden"}
    assert client.post(path, headers={"X-Cron-Secret": CRON_SECRET}).status_code == 200


def test_unconfigured_secret_rejects_everything(client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "")
    resp = client.post("/internal/sponsors/lifecycle", headers={"X-Cron-Secret": ""})
    assert resp.status_code == 403


def test_publish_with_invalid_limit_uses_default(client):
    resp = client.post(
        "/internal/publish/scheduled", json={"limit": "lots"}, headers={"X-Cron-Secret": CRON_SECRET}
    )
    assert resp.json() == {"ok": True, "published": 0}


def test_sweep_failure_is_server_error(client, monkeypatch):
    from liveblog.api.routes import internal

    def explode(db):
        raise RuntimeError("db down")

    monkeypatch.setattr(internal, "run_sponsor_lifecycle", explode)
    resp = client.post("/internal/sponsors/lifecycle", headers={"X-Cron-Secret": CRON_SECRET})
    assert resp.status_code == 500
    assert resp.json() == {"error": "server_error"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
