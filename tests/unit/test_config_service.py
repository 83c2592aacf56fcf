from __future__ import annotations

from fragcache import config as config_module
from fragcache.services.config_service import apply_config_updates, get_config_snapshot


def _prepare_config(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "CONFIG_DIR", tmp_path / "config")
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config" / "config.json")


def test_apply_config_updates_reports_changes(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)

    result = apply_config_updates(
        default_mode="regex",
        store_path=str(tmp_path / "cache.db"),
        prewarm=True,
        persistence=False,
    )

    assert result.changed
    assert result.mode_set and result.store_path_set
    assert result.prewarm_set and result.persistence_set
    assert not result.fragment_root_set
    snapshot = get_config_snapshot()
    assert snapshot.default_mode == "regex"
    assert snapshot.store_path == str(tmp_path / "cache.db")
    assert snapshot.prewarm is True
    assert snapshot.persistence is False


def test_apply_config_updates_clear_store_path(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    apply_config_updates(store_path=str(tmp_path / "cache.db"))

    result = apply_config_updates(clear_store_path=True)

    assert result.store_path_cleared
    assert get_config_snapshot().store_path is None


def test_apply_config_updates_no_changes(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    result = apply_config_updates()
    assert not result.changed
    assert not (tmp_path / "config" / "config.json").exists()
