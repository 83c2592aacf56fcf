from pathlib import Path

import pytest

from fragcache.errors import DiscoveryError
from fragcache.models import file_ticks
from fragcache.utils import (
    collect_files,
    discover_fragments,
    format_path,
    normalize_exclude_patterns,
    normalize_extensions,
    read_fragment_text,
    resolve_directory,
)


def _tree(root: Path) -> None:
    (root / "profile.d").mkdir()
    (root / "profile.d" / "00-bootstrap.ps1").write_text("function Set-Foo {}\n")
    (root / "profile.d" / "10-git.PS1").write_text("function Get-Bar {}\n")
    (root / "profile.d" / "notes.md").write_text("# notes\n")
    (root / "profile.d" / ".hidden.ps1").write_text("function Hidden {}\n")
    (root / "profile.d" / "legacy").mkdir()
    (root / "profile.d" / "legacy" / "old.ps1").write_text("function Old {}\n")


def test_resolve_directory_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        resolve_directory(tmp_path / "missing")
    file_path = tmp_path / "file.txt"
    file_path.write_text("x")
    with pytest.raises(NotADirectoryError):
        resolve_directory(file_path)


def test_normalize_extensions_and_patterns():
    assert normalize_extensions(["PS1", ".psm1", "ps1", " ", "."]) == (".ps1", ".psm1")
    assert normalize_extensions(None) == ()
    assert normalize_exclude_patterns([" legacy/ ", "", "legacy/", "*.bak"]) == ("legacy/", "*.bak")


def test_collect_files_filters_extensions_hidden_and_excludes(tmp_path):
    _tree(tmp_path)
    root = tmp_path / "profile.d"

    files = collect_files(root, extensions=(".ps1",), exclude_patterns=("legacy/",))

    assert [f.name for f in files] == ["00-bootstrap.ps1", "10-git.PS1"]


def test_collect_files_non_recursive(tmp_path):
    _tree(tmp_path)
    files = collect_files(tmp_path / "profile.d", recursive=False, extensions=(".ps1",))
    assert [f.name for f in files] == ["00-bootstrap.ps1", "10-git.PS1"]


def test_discover_fragments_returns_descriptors(tmp_path):
    _tree(tmp_path)
    fragments = discover_fragments(tmp_path / "profile.d")
    names = [fragment.path.name for fragment in fragments]
    assert names == ["00-bootstrap.ps1", "10-git.PS1", "old.ps1"]
    first = fragments[0]
    assert first.last_write_ticks == file_ticks(first.path)


def test_discover_fragments_missing_root_raises(tmp_path):
    with pytest.raises(DiscoveryError) as excinfo:
        discover_fragments(tmp_path / "nope")
    assert isinstance(excinfo.value, FileNotFoundError)


def test_discover_fragments_skips_vanished_files(tmp_path, monkeypatch):
    _tree(tmp_path)
    root = tmp_path / "profile.d"
    real_collect = collect_files

    def collect_then_delete(*args, **kwargs):
        files = real_collect(*args, **kwargs)
        files[0].unlink()
        return files

    monkeypatch.setattr("fragcache.utils.collect_files", collect_then_delete)
    fragments = discover_fragments(root)
    assert [f.path.name for f in fragments] == ["10-git.PS1", "old.ps1"]


def test_read_fragment_text_decodes_utf8_and_utf16(tmp_path):
    utf8 = tmp_path / "utf8.ps1"
    utf8.write_text("function Get-Café { 'naïve' }\n", encoding="utf-8")
    utf16 = tmp_path / "utf16.ps1"
    utf16.write_text("function Get-Wide { }\n", encoding="utf-16")
    empty = tmp_path / "empty.ps1"
    empty.write_bytes(b"")

    assert "function Get-Caf" in read_fragment_text(utf8)
    assert "Get-Wide" in read_fragment_text(utf16)
    assert read_fragment_text(empty) == ""


def test_read_fragment_text_missing_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_fragment_text(tmp_path / "gone.ps1")


def test_format_path_relative(tmp_path):
    nested = tmp_path / "a" / "b.ps1"
    assert format_path(nested, tmp_path) == "./a/b.ps1"
    assert format_path(nested) == str(nested)
