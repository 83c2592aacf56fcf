from __future__ import annotations

from pathlib import Path

import pytest

from fragcache.config import Config
from fragcache.models import ParsingMode
from fragcache.services import loader_service
from fragcache.services.cache_service import CacheService
from fragcache.services.loader_service import load_fragment_commands


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("FRAGCACHE_DB_PATH", str(tmp_path / "store" / "cache.db"))
    monkeypatch.delenv("FRAGCACHE_CACHE_DIR", raising=False)
    monkeypatch.setattr("fragcache.config.CONFIG_DIR", tmp_path / "config")
    monkeypatch.setattr("fragcache.config.CONFIG_FILE", tmp_path / "config" / "config.json")


@pytest.fixture
def profile_root(tmp_path: Path) -> Path:
    root = tmp_path / "profile.d"
    root.mkdir()
    (root / "00-bootstrap.ps1").write_text("function Set-Foo { }\nfunction Get-Bar { }\n")
    (root / "10-extra.psm1").write_text("function Get-Module-Only { }\n")
    return root


def test_load_uses_configured_extensions(profile_root):
    result = load_fragment_commands(profile_root)

    assert result.ok
    assert result.command_names == ["Set-Foo", "Get-Bar"]
    assert result.statistics.fragments_discovered == 1
    assert result.memory_only is False


def test_load_accepts_explicit_service_and_filters(tmp_path, profile_root):
    service = CacheService(config=Config(default_mode="regex"))

    result = load_fragment_commands(
        profile_root,
        service=service,
        extensions=(".ps1", ".psm1"),
    )

    assert result.command_names == ["Set-Foo", "Get-Bar", "Get-Module-Only"]
    assert service.memory.count(ParsingMode.REGEX) == 2


def test_load_reuses_cache_on_second_call(profile_root):
    service = CacheService.from_config()
    load_fragment_commands(profile_root, service=service)

    result = load_fragment_commands(profile_root, service=service)

    assert result.statistics.memory_hits == 1
    assert result.statistics.extractor_invocations == 0


def test_load_missing_root_returns_empty_result(tmp_path):
    result = load_fragment_commands(tmp_path / "missing")

    assert not result.ok
    assert result.commands == {}
    assert "does not exist" in result.error


def test_load_never_raises_on_unexpected_errors(profile_root, monkeypatch):
    def explode(*_args, **_kwargs):
        raise RuntimeError("service construction failed")

    monkeypatch.setattr(loader_service.CacheService, "from_config", explode)

    result = load_fragment_commands(profile_root)

    assert result.error == "service construction failed"
    assert result.memory_only is True
    assert result.command_names == []


def test_load_survives_malformed_config(tmp_path, profile_root):
    config_file = tmp_path / "config" / "config.json"
    config_file.parent.mkdir(parents=True)
    config_file.write_text("{broken", encoding="utf-8")

    result = load_fragment_commands(profile_root)

    assert not result.ok
    assert result.commands == {}
