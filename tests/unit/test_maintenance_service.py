from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from fragcache.cache import ClearScope, FragmentStore
from fragcache.config import Config
from fragcache.errors import DiscoveryError, ReadError, SchemaError, WriteError
from fragcache.models import ParsingMode
from fragcache.services.cache_service import CacheService
from fragcache.services.maintenance_service import (
    STEP_MEMORY,
    STEP_STORE,
    BuildStatus,
    build_fragment_cache,
    clear_fragment_cache,
    init_fragment_cache,
    prune_fragment_cache,
    verify_fragment_cache,
)
from fragcache.utils import discover_fragments


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    monkeypatch.delenv("FRAGCACHE_DB_PATH", raising=False)
    monkeypatch.delenv("FRAGCACHE_CACHE_DIR", raising=False)


@pytest.fixture
def profile_root(tmp_path: Path) -> Path:
    root = tmp_path / "profile.d"
    root.mkdir()
    (root / "00-bootstrap.ps1").write_text("function Set-Foo { }\nfunction Get-Bar { }\n")
    (root / "10-aliases.ps1").write_text("function Invoke-Baz { }\nSet-Alias ib Invoke-Baz\n")
    return root


def _service(tmp_path: Path, **kwargs) -> CacheService:
    config = Config(store_path=str(tmp_path / "cache.db"), **kwargs)
    return CacheService(config=config)


def test_build_populates_both_modes(tmp_path, profile_root):
    service = _service(tmp_path)

    result = build_fragment_cache(service, profile_root)

    assert result.status == BuildStatus.BUILT
    assert result.root == profile_root.resolve()
    assert result.statistics.fragments_discovered == 2
    assert result.statistics.extractor_invocations == 4
    assert service.store.count_entries(ParsingMode.AST) == 2
    assert service.store.count_entries(ParsingMode.REGEX) == 2


def test_build_is_warm_on_second_run(tmp_path, profile_root):
    build_fragment_cache(_service(tmp_path), profile_root)

    result = build_fragment_cache(_service(tmp_path), profile_root)

    assert result.statistics.store_hits == 4
    assert result.statistics.extractor_invocations == 0


def test_build_force_re_extracts(tmp_path, profile_root):
    service = _service(tmp_path)
    build_fragment_cache(service, profile_root)

    result = build_fragment_cache(service, profile_root, force=True)

    assert result.statistics.cache_hits == 0
    assert result.statistics.extractor_invocations == 4


def test_build_reports_partial_on_broken_fragment(tmp_path, profile_root):
    (profile_root / "20-broken.ps1").write_text("function Broken {\n")
    service = _service(tmp_path)

    result = build_fragment_cache(service, profile_root)

    assert result.status == BuildStatus.PARTIAL
    assert result.statistics.fragments_failed == 1
    assert result.statistics.failed_files[0].endswith("20-broken.ps1")


def test_build_empty_root(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    result = build_fragment_cache(_service(tmp_path), empty)
    assert result.status == BuildStatus.EMPTY
    assert not (tmp_path / "cache.db").exists()


def test_build_missing_root_raises(tmp_path):
    with pytest.raises(DiscoveryError):
        build_fragment_cache(_service(tmp_path), tmp_path / "missing")


def test_clear_all_empties_memory_and_store(tmp_path, profile_root):
    service = _service(tmp_path)
    fragments = discover_fragments(profile_root)
    service.resolve_commands(fragments, force_both_modes=True)

    result = clear_fragment_cache(service, ClearScope.ALL)

    assert result.succeeded
    assert [step.name for step in result.steps] == [STEP_MEMORY, STEP_STORE]
    assert result.memory_entries == 4
    assert result.store.file_removed is True
    assert service.memory.is_empty()
    assert service.store.count_entries(ParsingMode.AST) == 0
    assert service.store.count_entries(ParsingMode.REGEX) == 0
    stats = service.resolve_commands(fragments, force_both_modes=True).statistics
    assert stats.cache_hits == 0


def test_clear_single_mode_keeps_other(tmp_path, profile_root):
    service = _service(tmp_path)
    service.resolve_commands(discover_fragments(profile_root), force_both_modes=True)

    result = clear_fragment_cache(service, "regex")

    assert result.succeeded
    assert result.store.regex_rows == 2
    assert service.memory.count(ParsingMode.AST) == 2
    assert service.memory.count(ParsingMode.REGEX) == 0
    assert service.store.count_entries(ParsingMode.AST) == 2
    assert service.store.count_entries(ParsingMode.REGEX) == 0


def test_clear_dry_run_changes_nothing(tmp_path, profile_root):
    service = _service(tmp_path)
    service.resolve_commands(discover_fragments(profile_root), force_both_modes=True)

    result = clear_fragment_cache(service, dry_run=True)

    assert result.succeeded
    assert result.memory_entries == 4
    assert result.store.rows == 4
    assert service.memory.count() == 4
    assert service.store.count_entries(ParsingMode.AST) == 2


def test_clear_memory_survives_store_failure(tmp_path, profile_root, monkeypatch):
    service = _service(tmp_path)
    service.resolve_commands(discover_fragments(profile_root))

    def failing_clear(*_args, **_kwargs):
        raise WriteError("database is locked")

    monkeypatch.setattr(service.store, "clear", failing_clear)
    result = clear_fragment_cache(service)

    assert not result.succeeded
    assert [step.name for step in result.failed_steps] == [STEP_STORE]
    assert "locked" in result.failed_steps[0].detail
    assert service.memory.is_empty()


def test_clear_store_survives_memory_failure(tmp_path, profile_root, monkeypatch):
    service = _service(tmp_path)
    service.resolve_commands(discover_fragments(profile_root))

    def failing_memory_clear(_modes):
        raise RuntimeError("memory tier broken")

    monkeypatch.setattr(service.memory, "clear", failing_memory_clear)
    result = clear_fragment_cache(service)

    assert [step.name for step in result.failed_steps] == [STEP_MEMORY]
    assert result.store.file_removed is True
    assert not (tmp_path / "cache.db").exists()


def test_clear_skips_store_when_persistence_disabled(tmp_path):
    service = _service(tmp_path, persistence=False)
    result = clear_fragment_cache(service)
    assert result.succeeded
    assert result.steps[-1].skipped is True


def test_clear_repairs_corrupt_database(tmp_path, profile_root):
    db_path = tmp_path / "cache.db"
    db_path.write_bytes(b"garbage" * 100)
    service = _service(tmp_path)
    service.resolve_commands(discover_fragments(profile_root))
    assert service.memory_only is True

    result = clear_fragment_cache(service)

    assert result.succeeded
    assert not db_path.exists()


def test_verify_reports_without_creating_database(tmp_path):
    service = _service(tmp_path)

    report = verify_fragment_cache(service)

    assert report.engine_available is True
    assert report.store_exists is False
    assert report.total_rows == 0
    assert report.is_empty
    assert report.store_path == str((tmp_path / "cache.db").resolve())
    assert not (tmp_path / "cache.db").exists()


def test_verify_counts_rows_and_memory(tmp_path, profile_root):
    service = _service(tmp_path)
    build_fragment_cache(service, profile_root)

    report = verify_fragment_cache(service)

    assert report.store_exists
    assert report.store_size > 0
    assert report.ast_rows == 2
    assert report.regex_rows == 2
    assert report.memory_populated
    assert not report.is_empty
    data = report.as_dict()
    assert data["total_rows"] == 4
    assert json.loads(json.dumps(data))["memory_populated"] is True


def test_verify_records_read_errors(tmp_path, monkeypatch):
    db_path = tmp_path / "cache.db"
    FragmentStore(db_path).ensure_schema()
    service = _service(tmp_path)

    def failing_count(_mode):
        raise ReadError("cannot count")

    monkeypatch.setattr(service.store, "count_entries", failing_count)
    report = verify_fragment_cache(service)

    assert report.errors == ["cannot count"]


def test_verify_leaves_store_directory_untouched(tmp_path, profile_root):
    service = _service(tmp_path)
    build_fragment_cache(service, profile_root)
    before = sorted(os.listdir(tmp_path))

    first = verify_fragment_cache(_service(tmp_path))
    second = verify_fragment_cache(_service(tmp_path))

    assert sorted(os.listdir(tmp_path)) == before
    assert not any(name.endswith(("-wal", "-shm")) for name in os.listdir(tmp_path))
    assert first.store_size == second.store_size
    assert first.store_size == (tmp_path / "cache.db").stat().st_size


def test_verify_reports_sound_database(tmp_path, profile_root):
    service = _service(tmp_path)
    build_fragment_cache(service, profile_root)

    report = verify_fragment_cache(service)

    assert report.integrity_ok is True
    assert report.integrity_messages == []
    assert report.errors == []


def test_verify_reports_integrity_failure(tmp_path, profile_root, monkeypatch):
    service = _service(tmp_path)
    build_fragment_cache(service, profile_root)
    monkeypatch.setattr(
        service.store,
        "check_integrity",
        lambda: ["row 3 missing from index idx_fragment_ast_cache_path"],
    )

    report = verify_fragment_cache(service)

    assert report.integrity_ok is False
    assert report.integrity_messages == ["row 3 missing from index idx_fragment_ast_cache_path"]
    assert len(report.errors) == 1
    assert "integrity check failed" in report.errors[0]


def test_verify_corrupt_database_is_an_error(tmp_path):
    (tmp_path / "cache.db").write_bytes(b"garbage" * 100)

    report = verify_fragment_cache(_service(tmp_path))

    assert report.store_exists
    assert report.integrity_ok is None
    assert report.errors


def test_init_creates_schema_once(tmp_path):
    service = _service(tmp_path)

    first = init_fragment_cache(service)
    second = init_fragment_cache(service)

    assert first.created is True
    assert second.created is False
    assert first.store_path == (tmp_path / "cache.db").resolve()
    assert service.store.count_entries(ParsingMode.AST) == 0
    assert verify_fragment_cache(service).integrity_ok is True


def test_init_skipped_without_persistence(tmp_path):
    result = init_fragment_cache(_service(tmp_path, persistence=False))

    assert result.skipped is True
    assert not (tmp_path / "cache.db").exists()


def test_init_corrupt_database_raises(tmp_path):
    (tmp_path / "cache.db").write_bytes(b"garbage" * 100)

    with pytest.raises(SchemaError):
        init_fragment_cache(_service(tmp_path))


def test_prune_removes_rows_for_deleted_fragments(tmp_path, profile_root):
    service = _service(tmp_path)
    build_fragment_cache(service, profile_root)
    (profile_root / "10-aliases.ps1").unlink()

    result = prune_fragment_cache(service)

    assert result.ast_rows == 1
    assert result.regex_rows == 1
    assert service.store.count_entries(ParsingMode.AST) == 1


def test_prune_without_store_raises(tmp_path):
    service = _service(tmp_path, persistence=False)
    with pytest.raises(ReadError):
        prune_fragment_cache(service)
