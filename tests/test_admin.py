from __future__ import annotations

from makerspace.routes import machines as machine_routes
from makerspace.utils.version_cache import cache_get, cache_put, get_version


def test_admin_routes_require_token_when_configured(app, client):
    app.config["ADMIN_TOKEN"] = "s3cret"

    assert client.post("/admin/bump-version").status_code == 403
    resp = client.post("/admin/bump-version", headers={"X-Admin-Token": "s3cret"})
    assert resp.status_code == 200
    assert resp.get_json()["version"] == get_version(app)


def test_bump_version(app, client):
    resp = client.post("/admin/bump-version")

    assert resp.get_json()["version"] == get_version(app)
    assert get_version(app) != "0"


def test_clear_cache(app, client):
    cache_put(app, "html_v1_0", "<p>hi</p>", 60)

    resp = client.post("/admin/clear-cache")

    assert resp.get_json() == {"removed": 1}
    assert cache_get(app, "html_v1_0") is None


def test_warm_cache_prerenders_machines(app, client, monkeypatch):
    calls = []

    def fake_get_machines(a):
        calls.append(1)
        return [{"name": "Drill Press", "tags": [], "access_chips": []}]

    monkeypatch.setattr(machine_routes, "get_machines", fake_get_machines)

    resp = client.get("/admin/warm-cache")
    assert resp.get_json() == {"ok": True, "warmed": ["machines"]}

    page = client.get("/machines/")
    assert "Drill Press" in page.get_data(as_text=True)
    assert len(calls) == 1
