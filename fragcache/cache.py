"""Fragment cache persistence backed by SQLite."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence

import platformdirs
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config import (
    Config,
    DEFAULT_WRITE_ATTEMPTS,
    resolve_env_cache_dir,
    resolve_env_store_path,
)
from .errors import (
    ConfigurationError,
    ReadError,
    SchemaError,
    WriteError,
)
from .models import ALL_MODES, CacheEntry, CacheKey, ParsingMode, file_ticks

logger = logging.getLogger(__name__)

APP_NAME = "fragcache"
DB_FILENAME = "fragment-cache.db"
CACHE_SUBDIR = "fragments"
HOME_FALLBACK_SUBDIR = Path(".fragcache") / "cache"
BUSY_TIMEOUT_MS = 2000
MIN_SQLITE_VERSION = (3, 7, 0)
TABLES: dict[ParsingMode, str] = {
    ParsingMode.AST: "fragment_ast_cache",
    ParsingMode.REGEX: "fragment_content_cache",
}
_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")
_STORE_PATH_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "fragcache_store_path_override",
    default=None,
)


class ClearScope(str, Enum):
    ALL = "all"
    AST = "ast"
    REGEX = "regex"

    @property
    def modes(self) -> tuple[ParsingMode, ...]:
        if self is ClearScope.AST:
            return (ParsingMode.AST,)
        if self is ClearScope.REGEX:
            return (ParsingMode.REGEX,)
        return ALL_MODES


@dataclass(slots=True)
class StoreClearResult:
    ast_rows: int = 0
    regex_rows: int = 0
    bytes_removed: int = 0
    file_removed: bool = False
    dry_run: bool = False

    @property
    def rows(self) -> int:
        return self.ast_rows + self.regex_rows

    def add_rows(self, mode: ParsingMode, count: int) -> None:
        if mode is ParsingMode.AST:
            self.ast_rows += count
        else:
            self.regex_rows += count


@dataclass(slots=True)
class PruneResult:
    ast_rows: int = 0
    regex_rows: int = 0
    vacuumed: bool = False
    dry_run: bool = False

    @property
    def rows(self) -> int:
        return self.ast_rows + self.regex_rows


@contextmanager
def store_path_context(path: Path | str | None):
    """Temporarily override the store file location for the current context."""

    if path is None:
        yield
        return
    file_path = Path(path).expanduser().resolve()
    if file_path.is_dir():
        raise IsADirectoryError(f"Path is a directory: {file_path}")
    token = _STORE_PATH_OVERRIDE.set(file_path)
    try:
        yield
    finally:
        _STORE_PATH_OVERRIDE.reset(token)


def resolve_store_path(config: Config | None = None) -> Path:
    """Return the on-disk location of the fragment cache database.

    Priority: context override, ``FRAGCACHE_DB_PATH``, the configured
    ``store_path``, ``FRAGCACHE_CACHE_DIR``, the platform per-user cache
    directory, and finally ``~/.fragcache/cache``. Raises
    ``ConfigurationError`` when none of them yields an absolute path.
    """

    override = _STORE_PATH_OVERRIDE.get()
    if override is not None:
        return override
    env_path = resolve_env_store_path()
    if env_path is not None:
        return env_path.resolve()
    if config is not None and config.store_path:
        return Path(config.store_path).expanduser().resolve()
    env_dir = resolve_env_cache_dir()
    if env_dir is not None:
        return env_dir.resolve() / DB_FILENAME
    platform_dir = _platform_cache_dir()
    if platform_dir is not None:
        return platform_dir / CACHE_SUBDIR / DB_FILENAME
    try:
        home = Path.home()
    except (RuntimeError, KeyError, OSError) as exc:
        raise ConfigurationError(f"Unable to resolve a home directory: {exc}") from exc
    if not home.is_absolute():
        raise ConfigurationError(f"Home directory is not absolute: {home}")
    return home / HOME_FALLBACK_SUBDIR / DB_FILENAME


def _platform_cache_dir() -> Path | None:
    try:
        value = platformdirs.user_cache_dir(APP_NAME, appauthor=False)
    except (RuntimeError, KeyError, OSError):
        return None
    if not value:
        return None
    path = Path(value)
    # expanduser leaves "~" untouched when no home can be found
    if not path.is_absolute():
        return None
    return path


def is_available() -> bool:
    """Return True when the SQLite engine can open and query a database."""

    try:
        if sqlite3.sqlite_version_info < MIN_SQLITE_VERSION:
            return False
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("SELECT 1").fetchone()
        finally:
            conn.close()
    except Exception:
        return False
    return True


def serialize_commands(commands: Sequence[str]) -> str:
    return json.dumps(list(commands), ensure_ascii=False)


def deserialize_commands(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    data = json.loads(value)
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ValueError("Serialized commands must be a JSON array of strings")
    return tuple(data)


def _connect(db_path: Path, *, readonly: bool = False) -> sqlite3.Connection:
    if readonly:
        # mode=rw never creates the file; closing the last reader removes WAL sidecars
        db_uri = f"file:{db_path.as_posix()}?mode=rw"
        conn = sqlite3.connect(db_uri, uri=True, timeout=BUSY_TIMEOUT_MS / 1000)
    else:
        conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT_MS / 1000)
    conn.row_factory = sqlite3.Row
    try:
        if not readonly:
            conn.execute("PRAGMA journal_mode = WAL;")
        conn.execute("PRAGMA synchronous = NORMAL;")
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS};")
        if readonly:
            conn.execute("PRAGMA query_only = ON;")
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
        (table,),
    ).fetchone()
    return row is not None


def _ensure_schema(conn: sqlite3.Connection) -> None:
    statements = []
    for table in TABLES.values():
        statements.append(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                file_path TEXT NOT NULL,
                last_write_ticks INTEGER NOT NULL,
                parsing_mode TEXT NOT NULL,
                commands TEXT NOT NULL,
                created_at_ticks INTEGER NOT NULL,
                PRIMARY KEY (file_path, last_write_ticks, parsing_mode)
            );

            CREATE INDEX IF NOT EXISTS idx_{table}_path
                ON {table}(file_path, parsing_mode);
            """
        )
    conn.executescript("\n".join(statements))


def _is_lock_contention(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def _row_to_entry(row: sqlite3.Row, mode: ParsingMode) -> CacheEntry:
    key = CacheKey(
        file_path=row["file_path"],
        last_write_ticks=int(row["last_write_ticks"]),
        mode=mode,
    )
    return CacheEntry(
        key=key,
        commands=deserialize_commands(row["commands"]),
        created_at_ticks=int(row["created_at_ticks"] or 0),
    )


class FragmentStore:
    """Single-file SQLite store holding one table per parsing mode.

    Strict methods (``load``, ``save``, ``delete_rows``, ``ensure_schema``)
    raise the cache error taxonomy. ``get`` and ``put`` wrap them for callers
    that only need best-effort caching.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        write_attempts: int = DEFAULT_WRITE_ATTEMPTS,
    ) -> None:
        self._path = Path(path)
        self._write_attempts = max(int(write_attempts), 1)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def size_bytes(self) -> int:
        total = 0
        for candidate in self._files():
            try:
                total += candidate.stat().st_size
            except OSError:
                continue
        return total

    def _files(self) -> list[Path]:
        return [self._path] + [Path(f"{self._path}{suffix}") for suffix in _SIDECAR_SUFFIXES]

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._write_attempts),
            wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
            retry=retry_if_exception(_is_lock_contention),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

    def ensure_schema(self) -> None:
        """Create both cache tables if they are missing."""

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SchemaError(f"Cannot create cache directory {self._path.parent}: {exc}") from exc
        try:
            for attempt in self._retrying():
                with attempt:
                    conn = _connect(self._path)
                    try:
                        _ensure_schema(conn)
                    finally:
                        conn.close()
        except sqlite3.Error as exc:
            raise SchemaError(f"Cannot create cache tables in {self._path}: {exc}") from exc

    def load(self, key: CacheKey) -> CacheEntry | None:
        """Return the entry stored under exactly *key*, or None."""

        if not self.exists():
            return None
        table = TABLES[key.mode]
        try:
            conn = _connect(self._path, readonly=True)
        except sqlite3.Error as exc:
            raise ReadError(f"Cannot open {self._path}: {exc}") from exc
        try:
            if not _table_exists(conn, table):
                return None
            row = conn.execute(
                f"""
                SELECT file_path, last_write_ticks, commands, created_at_ticks
                FROM {table}
                WHERE file_path = ? AND last_write_ticks = ? AND parsing_mode = ?
                """,
                (key.file_path, int(key.last_write_ticks), key.mode.value),
            ).fetchone()
            if row is None:
                return None
            return _row_to_entry(row, key.mode)
        except (sqlite3.Error, ValueError) as exc:
            raise ReadError(f"Cannot read {key.mode.value} entry for {key.file_path}: {exc}") from exc
        finally:
            conn.close()

    def save(self, entry: CacheEntry) -> None:
        """Insert or replace *entry*, retrying briefly on lock contention."""

        key = entry.key
        table = TABLES[key.mode]
        params = (
            key.file_path,
            int(key.last_write_ticks),
            key.mode.value,
            serialize_commands(entry.commands),
            int(entry.created_at_ticks),
        )
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            for attempt in self._retrying():
                with attempt:
                    conn = _connect(self._path)
                    try:
                        _ensure_schema(conn)
                        with conn:
                            conn.execute(
                                f"""
                                INSERT OR REPLACE INTO {table} (
                                    file_path,
                                    last_write_ticks,
                                    parsing_mode,
                                    commands,
                                    created_at_ticks
                                ) VALUES (?, ?, ?, ?, ?)
                                """,
                                params,
                            )
                    finally:
                        conn.close()
        except (sqlite3.Error, OSError) as exc:
            raise WriteError(f"Cannot write {key.mode.value} entry for {key.file_path}: {exc}") from exc

    def get(self, key: CacheKey) -> CacheEntry | None:
        try:
            return self.load(key)
        except ReadError as exc:
            logger.warning("Treating fragment cache read failure as a miss: %s", exc)
            return None

    def put(self, entry: CacheEntry) -> bool:
        try:
            self.save(entry)
        except WriteError as exc:
            logger.warning("Dropping fragment cache write: %s", exc)
            return False
        return True

    def count_entries(self, mode: ParsingMode | str) -> int:
        parsing_mode = ParsingMode.parse(mode)
        if not self.exists():
            return 0
        table = TABLES[parsing_mode]
        try:
            conn = _connect(self._path, readonly=True)
        except sqlite3.Error as exc:
            raise ReadError(f"Cannot open {self._path}: {exc}") from exc
        try:
            if not _table_exists(conn, table):
                return 0
            row = conn.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()
            return int(row["total"] if row is not None else 0)
        except sqlite3.Error as exc:
            raise ReadError(f"Cannot count {parsing_mode.value} entries: {exc}") from exc
        finally:
            conn.close()

    def check_integrity(self) -> list[str]:
        """Run ``PRAGMA integrity_check``; an empty list means the file is sound."""

        if not self.exists():
            return []
        try:
            conn = _connect(self._path, readonly=True)
        except sqlite3.Error as exc:
            raise ReadError(f"Cannot open {self._path}: {exc}") from exc
        try:
            rows = conn.execute("PRAGMA integrity_check").fetchall()
        except sqlite3.Error as exc:
            raise ReadError(f"Cannot check {self._path}: {exc}") from exc
        finally:
            conn.close()
        messages = [str(row[0]) for row in rows]
        if messages == ["ok"]:
            return []
        return messages

    def iter_entries(self, modes: Iterable[ParsingMode] = ALL_MODES) -> list[CacheEntry]:
        """Return every stored entry for *modes*; rows that fail to decode are skipped."""

        if not self.exists():
            return []
        try:
            conn = _connect(self._path, readonly=True)
        except sqlite3.Error as exc:
            raise ReadError(f"Cannot open {self._path}: {exc}") from exc
        entries: list[CacheEntry] = []
        try:
            for mode in modes:
                table = TABLES[mode]
                if not _table_exists(conn, table):
                    continue
                rows = conn.execute(
                    f"""
                    SELECT file_path, last_write_ticks, commands, created_at_ticks
                    FROM {table}
                    ORDER BY file_path, last_write_ticks
                    """
                ).fetchall()
                for row in rows:
                    try:
                        entries.append(_row_to_entry(row, mode))
                    except ValueError as exc:
                        logger.warning(
                            "Skipping undecodable %s entry for %s: %s",
                            mode.value,
                            row["file_path"],
                            exc,
                        )
            return entries
        except sqlite3.Error as exc:
            raise ReadError(f"Cannot scan {self._path}: {exc}") from exc
        finally:
            conn.close()

    def delete_rows(self, modes: Iterable[ParsingMode]) -> dict[ParsingMode, int]:
        """Delete every row for *modes*, returning the removed count per mode."""

        removed: dict[ParsingMode, int] = {}
        if not self.exists():
            return removed
        try:
            for attempt in self._retrying():
                with attempt:
                    removed = {}
                    conn = _connect(self._path)
                    try:
                        with conn:
                            for mode in modes:
                                table = TABLES[mode]
                                if not _table_exists(conn, table):
                                    removed[mode] = 0
                                    continue
                                cursor = conn.execute(f"DELETE FROM {table}")
                                removed[mode] = max(cursor.rowcount, 0)
                    finally:
                        conn.close()
        except sqlite3.Error as exc:
            raise WriteError(f"Cannot delete rows from {self._path}: {exc}") from exc
        return removed

    def remove_file(self) -> int:
        """Delete the database file and its sidecars, returning bytes removed."""

        removed = 0
        for candidate in self._files():
            try:
                size = candidate.stat().st_size
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise WriteError(f"Cannot inspect {candidate}: {exc}") from exc
            try:
                candidate.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise WriteError(f"Cannot remove {candidate}: {exc}") from exc
            removed += size
        return removed

    def clear(
        self,
        scope: ClearScope | str = ClearScope.ALL,
        *,
        remove_file: bool = False,
        dry_run: bool = False,
    ) -> StoreClearResult:
        """Remove entries in *scope*; with ``ALL`` and *remove_file* delete the file itself."""

        clear_scope = ClearScope(scope)
        result = StoreClearResult(dry_run=dry_run)
        if not self.exists():
            return result
        if dry_run or (clear_scope is ClearScope.ALL and remove_file):
            for mode in clear_scope.modes:
                try:
                    result.add_rows(mode, self.count_entries(mode))
                except ReadError as exc:
                    logger.warning("Unable to count %s rows before clearing: %s", mode.value, exc)
        if dry_run:
            if clear_scope is ClearScope.ALL and remove_file:
                result.bytes_removed = self.size_bytes()
            return result
        if clear_scope is ClearScope.ALL and remove_file:
            result.bytes_removed = self.remove_file()
            result.file_removed = True
            return result
        for mode, count in self.delete_rows(clear_scope.modes).items():
            result.add_rows(mode, count)
        return result

    def prune(self, *, dry_run: bool = False, vacuum: bool = False) -> PruneResult:
        """Delete rows whose fragment is gone or whose ticks no longer match it."""

        result = PruneResult(dry_run=dry_run)
        if not self.exists():
            return result
        stale: dict[ParsingMode, list[tuple[str, int]]] = {}
        current: dict[str, int | None] = {}
        for entry in self.iter_entries():
            path = entry.key.file_path
            if path not in current:
                try:
                    current[path] = file_ticks(path)
                except OSError:
                    current[path] = None
            if current[path] != entry.key.last_write_ticks:
                stale.setdefault(entry.key.mode, []).append(
                    (path, entry.key.last_write_ticks)
                )
        result.ast_rows = len(stale.get(ParsingMode.AST, []))
        result.regex_rows = len(stale.get(ParsingMode.REGEX, []))
        if dry_run:
            return result
        try:
            for attempt in self._retrying():
                with attempt:
                    conn = _connect(self._path)
                    try:
                        with conn:
                            for mode, keys in stale.items():
                                conn.executemany(
                                    f"""
                                    DELETE FROM {TABLES[mode]}
                                    WHERE file_path = ? AND last_write_ticks = ?
                                    """,
                                    keys,
                                )
                        if vacuum:
                            conn.execute("VACUUM")
                    finally:
                        conn.close()
        except sqlite3.Error as exc:
            raise WriteError(f"Cannot prune {self._path}: {exc}") from exc
        result.vacuumed = vacuum
        return result

