"""Utility helpers for fragment discovery and path handling."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence
import os

from charset_normalizer import from_path

from .errors import DiscoveryError
from .models import FragmentDescriptor


def resolve_directory(path: Path | str) -> Path:
    """Resolve and validate a user supplied directory path."""
    dir_path = Path(path).expanduser().resolve()
    if not dir_path.exists():
        raise FileNotFoundError(f"Directory does not exist: {dir_path}")
    if not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    return dir_path


def normalize_extensions(values: Iterable[str] | None) -> tuple[str, ...]:
    """Return a sorted, deduplicated tuple of normalized file extensions."""

    if not values:
        return ()

    normalized: list[str] = []
    seen: set[str] = set()
    for raw in values:
        if raw is None:
            continue
        token = raw.strip().lower()
        if not token:
            continue
        if not token.startswith("."):
            token = f".{token}"
        if token == ".":
            continue
        if token not in seen:
            seen.add(token)
            normalized.append(token)
    if not normalized:
        return ()
    return tuple(sorted(normalized))


def normalize_exclude_patterns(values: Iterable[str] | None) -> tuple[str, ...]:
    """Return exclude patterns with blanks and duplicates removed, order kept."""

    if not values:
        return ()
    patterns: list[str] = []
    for raw in values:
        if raw is None:
            continue
        token = raw.strip()
        if token and token not in patterns:
            patterns.append(token)
    return tuple(patterns)


def build_exclude_spec(patterns: Sequence[str] | None):
    """Compile gitignore-style *patterns*, or return None when there are none."""

    if not patterns:
        return None
    from pathspec.gitignore import GitIgnoreSpec

    return GitIgnoreSpec.from_lines(patterns)


def is_excluded_path(spec, rel_path: str, *, is_dir: bool) -> bool:
    if spec is None or not rel_path:
        return False
    candidate = f"{rel_path}/" if is_dir and not rel_path.endswith("/") else rel_path
    return spec.match_file(candidate)


def _relative_posix(path: Path, root: Path) -> str:
    rel = path.relative_to(root)
    if rel == Path("."):
        return ""
    return rel.as_posix()


def collect_files(
    root: Path | str,
    include_hidden: bool = False,
    recursive: bool = True,
    extensions: Sequence[str] | None = None,
    exclude_patterns: Sequence[str] | None = None,
) -> List[Path]:
    """Collect files under *root*; optionally keep hidden entries and recurse."""

    directory = resolve_directory(root)
    files: List[Path] = []
    normalized_exts = normalize_extensions(extensions)
    exclude_spec = build_exclude_spec(normalize_exclude_patterns(exclude_patterns))

    if recursive:
        for dirpath, dirnames, filenames in os.walk(directory, topdown=True):
            current_dir = Path(dirpath)
            if not include_hidden:
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                filenames = [f for f in filenames if not f.startswith(".")]
            if exclude_spec is not None:
                dirnames[:] = [
                    d
                    for d in dirnames
                    if not is_excluded_path(
                        exclude_spec,
                        _relative_posix(current_dir / d, directory),
                        is_dir=True,
                    )
                ]
            dirnames.sort()
            for filename in filenames:
                candidate = current_dir / filename
                if normalized_exts and not _matches_extension(candidate, normalized_exts):
                    continue
                if is_excluded_path(
                    exclude_spec, _relative_posix(candidate, directory), is_dir=False
                ):
                    continue
                files.append(candidate)
    else:
        for entry in directory.iterdir():
            if entry.is_dir():
                continue
            if not include_hidden and entry.name.startswith("."):
                continue
            if normalized_exts and not _matches_extension(entry, normalized_exts):
                continue
            if is_excluded_path(exclude_spec, entry.name, is_dir=False):
                continue
            files.append(entry)

    files.sort()
    return files


def discover_fragments(
    root: Path | str,
    *,
    extensions: Sequence[str] | None = (".ps1",),
    exclude_patterns: Sequence[str] | None = None,
    recursive: bool = True,
    include_hidden: bool = False,
) -> list[FragmentDescriptor]:
    """Enumerate fragment files under *root* with their current last-write ticks.

    Raises ``DiscoveryError`` when *root* is missing or not a directory. Files
    that vanish while being enumerated are skipped.
    """

    try:
        files = collect_files(
            root,
            include_hidden=include_hidden,
            recursive=recursive,
            extensions=extensions,
            exclude_patterns=exclude_patterns,
        )
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise DiscoveryError(str(exc)) from exc
    descriptors: list[FragmentDescriptor] = []
    for file in files:
        try:
            descriptors.append(FragmentDescriptor.from_path(file))
        except OSError:
            continue
    return descriptors


def read_fragment_text(path: Path | str) -> str:
    """Return the decoded text of *path*; raises ``OSError`` when it cannot be read."""

    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(f"Fragment does not exist: {file_path}")
    result = from_path(file_path)
    if result is None or not len(result):
        raw = file_path.read_bytes()
        if not raw:
            return ""
        return raw.decode("utf-8", errors="replace")
    best = result.best()
    if best is None:
        return file_path.read_bytes().decode("utf-8", errors="replace")
    return str(best)


def _matches_extension(path: Path, extensions: Sequence[str]) -> bool:
    """Return True if *path* ends with any of the provided *extensions*."""

    filename = path.name.lower()
    return any(filename.endswith(ext) for ext in extensions)


def format_path(path: Path, base: Path | None = None) -> str:
    """Return a user friendly representation of *path* relative to *base* when possible."""
    if base:
        try:
            relative = path.relative_to(base)
            return f"./{relative.as_posix()}"
        except ValueError:
            return str(path)
    return str(path)
