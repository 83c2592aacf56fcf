"""Cache key model and value types shared by every cache tier."""

from __future__ import annotations

import os
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

# Ticks are 100-nanosecond intervals since 0001-01-01T00:00:00Z, the same
# representation the shell host uses for file modification times.
TICKS_PER_SECOND = 10_000_000
UNIX_EPOCH_TICKS = 621_355_968_000_000_000


class ParsingMode(str, Enum):
    AST = "ast"
    REGEX = "regex"

    @classmethod
    def parse(cls, value: "ParsingMode | str") -> "ParsingMode":
        if isinstance(value, cls):
            return value
        token = str(value or "").strip().lower()
        if token == "content":
            return cls.REGEX
        try:
            return cls(token)
        except ValueError as exc:
            allowed = ", ".join(mode.value for mode in cls)
            raise ValueError(f"Unsupported parsing mode '{value}' (allowed: {allowed})") from exc


ALL_MODES: tuple[ParsingMode, ...] = (ParsingMode.AST, ParsingMode.REGEX)


def normalize_path(path: Path | str) -> str:
    """Return the absolute, case-normalized form of *path* for the host filesystem."""

    return os.path.normcase(os.path.abspath(os.fspath(path)))


def ns_to_ticks(value_ns: int) -> int:
    return UNIX_EPOCH_TICKS + int(value_ns) // 100


def now_ticks() -> int:
    return ns_to_ticks(time.time_ns())


def file_ticks(path: Path | str) -> int:
    """Return the last-write-time of *path* in ticks (raises ``OSError`` if missing)."""

    return ns_to_ticks(os.stat(path).st_mtime_ns)


@dataclass(frozen=True, slots=True)
class CacheKey:
    file_path: str
    last_write_ticks: int
    mode: ParsingMode

    @classmethod
    def build(
        cls,
        path: Path | str,
        last_write_ticks: int,
        mode: ParsingMode | str,
    ) -> "CacheKey":
        return cls(
            file_path=normalize_path(path),
            last_write_ticks=int(last_write_ticks),
            mode=ParsingMode.parse(mode),
        )


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: CacheKey
    commands: tuple[str, ...]
    created_at_ticks: int = 0

    @classmethod
    def create(cls, key: CacheKey, commands: Sequence[str]) -> "CacheEntry":
        return cls(key=key, commands=tuple(commands), created_at_ticks=now_ticks())


@dataclass(frozen=True, slots=True)
class FragmentDescriptor:
    path: Path
    last_write_ticks: int

    @classmethod
    def from_path(cls, path: Path | str) -> "FragmentDescriptor":
        file_path = Path(path)
        return cls(path=file_path, last_write_ticks=file_ticks(file_path))


@dataclass(slots=True)
class ParseStatistics:
    fragments_discovered: int = 0
    fragments_parsed: int = 0
    fragments_failed: int = 0
    commands_discovered: int = 0
    commands_registered: int = 0
    ast_cache_hits: int = 0
    content_cache_hits: int = 0
    ast_cache_misses: int = 0
    content_cache_misses: int = 0
    memory_hits: int = 0
    store_hits: int = 0
    extractor_invocations: int = 0
    failed_files: list[str] = field(default_factory=list)

    def record_hit(self, mode: ParsingMode, *, from_store: bool) -> None:
        if mode is ParsingMode.AST:
            self.ast_cache_hits += 1
        else:
            self.content_cache_hits += 1
        if from_store:
            self.store_hits += 1
        else:
            self.memory_hits += 1

    def record_miss(self, mode: ParsingMode) -> None:
        if mode is ParsingMode.AST:
            self.ast_cache_misses += 1
        else:
            self.content_cache_misses += 1

    @property
    def cache_hits(self) -> int:
        return self.ast_cache_hits + self.content_cache_hits

    @property
    def cache_misses(self) -> int:
        return self.ast_cache_misses + self.content_cache_misses

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


def merge_command_lists(lists: Sequence[Sequence[str]]) -> list[str]:
    """Union *lists* keeping first-seen order; names compare case-insensitively."""

    merged: list[str] = []
    seen: set[str] = set()
    for names in lists:
        for name in names:
            token = name.casefold()
            if token in seen:
                continue
            seen.add(token)
            merged.append(name)
    return merged
