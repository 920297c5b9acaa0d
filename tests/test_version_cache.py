from __future__ import annotations

import os

from makerspace.utils import version_cache as vc


def test_version_defaults_to_zero(app):
    assert vc.get_version(app) == "0"


def test_bump_version_sets_epoch_millis(app):
    version = vc.bump_version(app)

    assert version.isdigit()
    assert len(version) >= 13
    assert vc.get_version(app) == version


def test_bump_keeps_other_properties(app):
    vc.set_property(app, "OTHER", "kept")
    vc.bump_version(app)

    assert vc.get_property(app, "OTHER") == "kept"


def test_cache_put_and_get(app):
    assert vc.cache_put(app, "data_v1_0", '{"a": 1}', 60) is True
    assert vc.cache_get(app, "data_v1_0") == '{"a": 1}'


def test_cache_get_missing_key(app):
    assert vc.cache_get(app, "nope") is None


def test_expired_entries_are_misses(app):
    vc.cache_put(app, "short", "value", 0)

    assert vc.cache_get(app, "short") is None


def test_values_over_size_limit_are_refused(app):
    app.config["CACHE_MAX_BYTES"] = 10

    assert vc.cache_put(app, "big", "x" * 11, 60) is False
    assert vc.cache_get(app, "big") is None


def test_cache_clear_keeps_version(app):
    version = vc.bump_version(app)
    vc.cache_put(app, "a", "1", 60)
    vc.cache_put(app, "b", "2", 60)

    assert vc.cache_clear(app) == 2
    assert vc.cache_get(app, "a") is None
    assert vc.get_version(app) == version


def test_run_warmers_reports_failures(app, monkeypatch):
    calls = []

    def ok(a):
        calls.append("ok")

    def broken(a):
        raise RuntimeError("boom")

    monkeypatch.setattr(vc, "WARMERS", {"ok": ok, "broken": broken})

    assert vc.run_warmers(app) == ["ok"]
    assert calls == ["ok"]


def test_malformed_entry_is_a_miss(app):
    import pickle

    with open(vc._cache_path(app, "odd"), "wb") as fh:
        pickle.dump(["not", "a", "dict"], fh)

    assert vc.cache_get(app, "odd") is None


def test_purge_expired_keeps_live_entries(app):
    vc.cache_put(app, "old", "1", 0)
    vc.cache_put(app, "live", "2", 60)

    assert vc.purge_expired(app) == 1
    assert vc.cache_get(app, "live") == "2"


def test_bumping_sweeps_entries_from_earlier_versions(app, client, monkeypatch):
    from makerspace.routes import machines as routes

    monkeypatch.setattr(routes, "get_machines", lambda a: [{"name": "Lathe", "tags": [], "access_chips": []}])
    app.config["MACHINES_CACHE_SECONDS"] = 0
    app.config["MACHINES_HTML_CACHE_SECONDS"] = 0

    for _ in range(3):
        client.get("/machines/?format=json")
        client.get("/machines/")
        client.post("/machines/hooks/edit")

    leftovers = [n for n in os.listdir(vc._cache_dir(app)) if n.endswith(vc.ENTRY_SUFFIX)]
    assert leftovers == []


def test_run_warmers_sweeps_expired_entries(app, monkeypatch):
    monkeypatch.setattr(vc, "WARMERS", {})
    vc.cache_put(app, "stale", "x", 0)

    vc.run_warmers(app)

    assert not os.path.exists(vc._cache_path(app, "stale"))
