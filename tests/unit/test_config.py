import json

import pytest

from fragcache import config as config_module
from fragcache.models import ParsingMode


def _prepare_config(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    config_file = config_dir / "config.json"
    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_file)
    return config_file


def test_load_config_defaults(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)

    cfg = config_module.load_config()

    assert cfg.store_path is None
    assert cfg.default_mode == "ast"
    assert cfg.parsing_mode is ParsingMode.AST
    assert cfg.extensions == (".ps1",)
    assert cfg.exclude_patterns == ()
    assert cfg.persistence is True
    assert cfg.prewarm is False
    assert cfg.write_attempts == config_module.DEFAULT_WRITE_ATTEMPTS


def test_save_and_load_round_trip(tmp_path, monkeypatch):
    config_file = _prepare_config(tmp_path, monkeypatch)
    cfg = config_module.Config(
        store_path=str(tmp_path / "cache.db"),
        default_mode="regex",
        fragment_root=str(tmp_path / "profile.d"),
        extensions=(".ps1", ".psm1"),
        exclude_patterns=("legacy/",),
        persistence=False,
        prewarm=True,
        write_attempts=5,
    )

    config_module.save_config(cfg)

    data = json.loads(config_file.read_text(encoding="utf-8"))
    assert data["default_mode"] == "regex"
    assert data["extensions"] == [".ps1", ".psm1"]
    loaded = config_module.load_config()
    assert loaded == cfg


def test_load_config_ignores_invalid_values(tmp_path, monkeypatch):
    config_file = _prepare_config(tmp_path, monkeypatch)
    config_file.parent.mkdir(parents=True)
    config_file.write_text(
        json.dumps(
            {
                "default_mode": "tokens",
                "store_path": 12,
                "write_attempts": "many",
                "extensions": "ps1, psm1",
            }
        ),
        encoding="utf-8",
    )

    cfg = config_module.load_config()

    assert cfg.default_mode == "ast"
    assert cfg.store_path is None
    assert cfg.write_attempts == config_module.DEFAULT_WRITE_ATTEMPTS
    assert cfg.extensions == ("ps1", "psm1")


def test_load_config_raises_on_malformed_json(tmp_path, monkeypatch):
    config_file = _prepare_config(tmp_path, monkeypatch)
    config_file.parent.mkdir(parents=True)
    config_file.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError):
        config_module.load_config()


def test_setters_update_single_fields(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    root = tmp_path / "fragments"
    root.mkdir()

    config_module.set_default_mode("content")
    config_module.set_store_path(str(tmp_path / "store.db"))
    config_module.set_fragment_root(str(root))
    config_module.set_prewarm(True)
    config_module.set_persistence(False)

    cfg = config_module.load_config()
    assert cfg.default_mode == "regex"
    assert cfg.store_path == str(tmp_path / "store.db")
    assert cfg.fragment_root == str(root.resolve())
    assert cfg.prewarm is True
    assert cfg.persistence is False

    config_module.set_store_path(None)
    assert config_module.load_config().store_path is None


def test_set_default_mode_rejects_unknown(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    with pytest.raises(ValueError):
        config_module.set_default_mode("tokens")


def test_config_dir_context_overrides_location(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    override = tmp_path / "override"

    with config_module.config_dir_context(override):
        config_module.set_default_mode("regex")
        assert config_module.config_file_path() == override / "config.json"

    assert (override / "config.json").exists()
    assert config_module.load_config().default_mode == "ast"


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv(config_module.ENV_DB_PATH, str(tmp_path / "db.sqlite"))
    monkeypatch.setenv(config_module.ENV_CACHE_DIR, "  ")
    assert config_module.resolve_env_store_path() == tmp_path / "db.sqlite"
    assert config_module.resolve_env_cache_dir() is None


def test_set_config_dir_moves_config_file(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    target = tmp_path / "elsewhere"

    config_module.set_config_dir(target)
    try:
        assert config_module.config_file_path() == target.resolve() / "config.json"
        config_module.set_prewarm(True)
        assert (target / "config.json").exists()
    finally:
        config_module.set_config_dir(None)

    assert config_module.CONFIG_DIR == config_module.DEFAULT_CONFIG_DIR
