"""Cache orchestration: resolve fragment commands through memory, store and extractors."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from ..cache import FragmentStore, is_available, resolve_store_path
from ..config import Config, load_config
from ..errors import (
    ConfigurationError,
    ExtractionError,
    ReadError,
    StoreUnavailableError,
    WriteError,
)
from ..extractors import CommandExtractor, default_extractors
from ..memory import MemoryTier
from ..models import (
    ALL_MODES,
    CacheEntry,
    CacheKey,
    FragmentDescriptor,
    ParseStatistics,
    ParsingMode,
    file_ticks,
    merge_command_lists,
)
from ..utils import read_fragment_text

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResolveResult:
    commands: dict[Path, list[str]]
    statistics: ParseStatistics
    per_mode: dict[Path, dict[ParsingMode, list[str]]] = field(default_factory=dict)
    memory_only: bool = False

    @property
    def command_names(self) -> list[str]:
        return merge_command_lists(list(self.commands.values()))


class CacheService:
    """Owns the in-memory tier and the persistent store for one session.

    The store path is resolved once at construction. Any configuration or
    engine problem degrades the service to memory-only operation instead of
    failing; ``degraded_reason`` records why.
    """

    def __init__(
        self,
        *,
        config: Config | None = None,
        store: FragmentStore | None = None,
        extractors: Mapping[ParsingMode, CommandExtractor] | None = None,
        default_mode: ParsingMode | str | None = None,
        persistence: bool | None = None,
        prewarm: bool | None = None,
        memory: MemoryTier | None = None,
    ) -> None:
        self._config = config or Config()
        self._memory = memory or MemoryTier()
        self._extractors = default_extractors(extractors)
        self._default_mode = ParsingMode.parse(
            default_mode if default_mode is not None else self._config.default_mode
        )
        self._persistence = self._config.persistence if persistence is None else bool(persistence)
        self._store: FragmentStore | None = None
        self._store_path: Path | None = None
        self._schema_ready = False
        self._degraded_reason: str | None = None
        if store is not None:
            self._store = store
            self._store_path = store.path
        elif self._persistence:
            self._open_store()
        should_prewarm = self._config.prewarm if prewarm is None else bool(prewarm)
        if should_prewarm:
            self.prewarm()

    @classmethod
    def from_config(cls, config: Config | None = None, **kwargs) -> "CacheService":
        return cls(config=config if config is not None else load_config(), **kwargs)

    def _open_store(self) -> None:
        try:
            self._store_path = resolve_store_path(self._config)
            if not is_available():
                raise StoreUnavailableError("SQLite engine is not usable on this host")
        except (ConfigurationError, StoreUnavailableError) as exc:
            self._disable_store(exc)
            return
        self._store = FragmentStore(
            self._store_path,
            write_attempts=self._config.write_attempts,
        )

    def _disable_store(self, exc: Exception) -> None:
        logger.warning("Fragment cache running memory-only for this session: %s", exc)
        self._store = None
        self._degraded_reason = str(exc)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def memory(self) -> MemoryTier:
        return self._memory

    @property
    def store(self) -> FragmentStore | None:
        return self._store

    @property
    def store_path(self) -> Path | None:
        return self._store_path

    @property
    def default_mode(self) -> ParsingMode:
        return self._default_mode

    @property
    def persistence_enabled(self) -> bool:
        return self._persistence

    @property
    def memory_only(self) -> bool:
        return self._store is None

    @property
    def degraded_reason(self) -> str | None:
        return self._degraded_reason

    def maintenance_store(self) -> FragmentStore | None:
        """Return a store handle for maintenance even when the session degraded.

        A store disabled by a schema failure can still be inspected
        or removed, which is how a broken database gets repaired.
        """

        if self._store is not None:
            return self._store
        if self._store_path is None or not is_available():
            return None
        return FragmentStore(self._store_path, write_attempts=self._config.write_attempts)

    def _store_load(self, key: CacheKey) -> CacheEntry | None:
        store = self._store
        if store is None:
            return None
        try:
            return store.load(key)
        except ReadError as exc:
            logger.warning("Fragment cache read failed, treating as miss: %s", exc)
            return None
        except StoreUnavailableError as exc:
            self._disable_store(exc)
            return None

    def _store_save(self, entry: CacheEntry) -> None:
        store = self._store
        if store is None:
            return
        try:
            if not self._schema_ready:
                store.ensure_schema()
                self._schema_ready = True
            store.save(entry)
        except WriteError as exc:
            logger.warning("Fragment cache write dropped: %s", exc)
        except StoreUnavailableError as exc:
            self._disable_store(exc)

    def _extract(self, path: Path, mode: ParsingMode) -> CacheEntry:
        extractor = self._extractors.get(mode)
        if extractor is None:
            raise ExtractionError(str(path), mode.value, "no extractor registered")
        try:
            ticks = file_ticks(path)
            content = read_fragment_text(path)
        except OSError as exc:
            raise ExtractionError(str(path), mode.value, f"cannot read fragment: {exc}") from exc
        try:
            names = extractor(content)
            if names is None or isinstance(names, str):
                raise ExtractionError(str(path), mode.value, "extractor returned no command list")
            commands: list[str] = []
            for name in names:
                if not isinstance(name, str):
                    raise ExtractionError(
                        str(path),
                        mode.value,
                        f"extractor yielded a non-string command: {name!r}",
                    )
                if name.strip():
                    commands.append(name)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(str(path), mode.value, str(exc) or type(exc).__name__) from exc
        return CacheEntry.create(CacheKey.build(path, ticks, mode), commands)

    def _resolve_mode(
        self,
        path: Path,
        mode: ParsingMode,
        stats: ParseStatistics,
        *,
        refresh: bool,
    ) -> list[str]:
        try:
            current_ticks = file_ticks(path)
        except OSError as exc:
            raise ExtractionError(str(path), mode.value, f"fragment is not accessible: {exc}") from exc
        key = CacheKey.build(path, current_ticks, mode)
        if not refresh:
            entry = self._memory.get(key)
            if entry is not None:
                stats.record_hit(mode, from_store=False)
                logger.debug("Memory hit (%s): %s", mode.value, key.file_path)
                return list(entry.commands)
            entry = self._store_load(key)
            if entry is not None:
                self._memory.set(entry)
                stats.record_hit(mode, from_store=True)
                logger.debug("Store hit (%s): %s", mode.value, key.file_path)
                return list(entry.commands)
        stats.record_miss(mode)
        stats.extractor_invocations += 1
        logger.debug("Cache miss (%s): %s", mode.value, key.file_path)
        # keyed by the ticks observed while reading, which may be newer than key
        entry = self._extract(path, mode)
        self._memory.set(entry)
        self._store_save(entry)
        return list(entry.commands)

    def resolve_commands(
        self,
        fragments: Sequence[FragmentDescriptor],
        force_both_modes: bool = False,
        *,
        refresh: bool = False,
    ) -> ResolveResult:
        """Return per-fragment command lists and the statistics of this run.

        A fragment whose extraction fails contributes an empty list for that
        mode and is counted once in ``fragments_failed``; the batch continues.
        With *refresh* both tiers are bypassed and every entry is rewritten.
        """

        modes: tuple[ParsingMode, ...] = ALL_MODES if force_both_modes else (self._default_mode,)
        stats = ParseStatistics(fragments_discovered=len(fragments))
        commands: dict[Path, list[str]] = {}
        per_mode: dict[Path, dict[ParsingMode, list[str]]] = {}
        registered: set[str] = set()
        for fragment in fragments:
            path = Path(fragment.path)
            results: dict[ParsingMode, list[str]] = {}
            failed = False
            for mode in modes:
                try:
                    results[mode] = self._resolve_mode(path, mode, stats, refresh=refresh)
                except ExtractionError as exc:
                    logger.warning("%s", exc)
                    results[mode] = []
                    failed = True
            merged = merge_command_lists([results[mode] for mode in modes])
            if failed:
                stats.fragments_failed += 1
                stats.failed_files.append(str(path))
            else:
                stats.fragments_parsed += 1
            stats.commands_discovered += len(merged)
            for name in merged:
                token = name.casefold()
                if token not in registered:
                    registered.add(token)
                    stats.commands_registered += 1
            commands[path] = merged
            per_mode[path] = results
        return ResolveResult(
            commands=commands,
            statistics=stats,
            per_mode=per_mode,
            memory_only=self.memory_only,
        )

    def prewarm(self, modes: Iterable[ParsingMode] = ALL_MODES) -> int:
        """Load every stored entry into the memory tier, returning how many were loaded."""

        store = self._store
        if store is None:
            return 0
        try:
            entries = store.iter_entries(tuple(modes))
        except ReadError as exc:
            logger.warning("Fragment cache pre-warm skipped: %s", exc)
            return 0
        loaded = self._memory.update(entries)
        logger.debug("Pre-warmed %d fragment cache entries", loaded)
        return loaded
