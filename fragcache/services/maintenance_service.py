"""Logic helpers for the `fragcache clear`, `build`, `verify`, `prune` and `init` commands."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

from ..cache import ClearScope, PruneResult, StoreClearResult, is_available
from ..errors import CacheError, ReadError, StoreUnavailableError, WriteError
from ..models import ParseStatistics, ParsingMode
from ..utils import discover_fragments
from .cache_service import CacheService

logger = logging.getLogger(__name__)

STEP_MEMORY = "memory"
STEP_STORE = "store"


@dataclass(slots=True)
class ClearStep:
    name: str
    succeeded: bool
    skipped: bool = False
    detail: str = ""


@dataclass(slots=True)
class ClearResult:
    scope: ClearScope
    dry_run: bool = False
    memory_entries: int = 0
    store: StoreClearResult | None = None
    store_path: Path | None = None
    store_existed: bool = False
    steps: list[ClearStep] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(step.succeeded for step in self.steps)

    @property
    def failed_steps(self) -> list[ClearStep]:
        return [step for step in self.steps if not step.succeeded]


def clear_fragment_cache(
    service: CacheService,
    scope: ClearScope | str = ClearScope.ALL,
    *,
    remove_file: bool = True,
    dry_run: bool = False,
) -> ClearResult:
    """Clear the memory tier and the store; each step runs regardless of the other."""

    clear_scope = ClearScope(scope)
    result = ClearResult(scope=clear_scope, dry_run=dry_run, store_path=service.store_path)

    try:
        if dry_run:
            result.memory_entries = sum(service.memory.count(mode) for mode in clear_scope.modes)
        else:
            result.memory_entries = service.memory.clear(clear_scope.modes)
        result.steps.append(ClearStep(name=STEP_MEMORY, succeeded=True))
    except Exception as exc:
        logger.error("Clearing the in-memory fragment cache failed: %s", exc)
        result.steps.append(ClearStep(name=STEP_MEMORY, succeeded=False, detail=str(exc)))

    if not service.persistence_enabled:
        result.steps.append(
            ClearStep(name=STEP_STORE, succeeded=True, skipped=True, detail="persistence disabled")
        )
        return result
    store = service.maintenance_store()
    if store is None:
        reason = service.degraded_reason or "store unavailable"
        result.steps.append(ClearStep(name=STEP_STORE, succeeded=False, detail=reason))
        return result
    result.store_existed = store.exists()
    try:
        result.store = store.clear(clear_scope, remove_file=remove_file, dry_run=dry_run)
        result.steps.append(ClearStep(name=STEP_STORE, succeeded=True))
    except (WriteError, ReadError) as exc:
        logger.error("Clearing the fragment cache database failed: %s", exc)
        result.steps.append(ClearStep(name=STEP_STORE, succeeded=False, detail=str(exc)))
    return result


class BuildStatus(str, Enum):
    EMPTY = "empty"
    BUILT = "built"
    PARTIAL = "partial"


@dataclass(slots=True)
class BuildResult:
    status: BuildStatus
    root: Path
    statistics: ParseStatistics
    elapsed: float = 0.0
    memory_only: bool = False
    degraded_reason: str | None = None


def build_fragment_cache(
    service: CacheService,
    root: Path | str,
    *,
    force: bool = False,
    extensions: Sequence[str] | None = (".ps1",),
    exclude_patterns: Sequence[str] | None = None,
) -> BuildResult:
    """Discover every fragment under *root* and resolve it in both parsing modes.

    Raises ``DiscoveryError`` when *root* cannot be enumerated.
    """

    started = time.perf_counter()
    fragments = discover_fragments(
        root,
        extensions=extensions,
        exclude_patterns=exclude_patterns,
    )
    root_path = Path(root).expanduser().resolve()
    if not fragments:
        return BuildResult(
            status=BuildStatus.EMPTY,
            root=root_path,
            statistics=ParseStatistics(),
            memory_only=service.memory_only,
            degraded_reason=service.degraded_reason,
        )
    resolved = service.resolve_commands(fragments, force_both_modes=True, refresh=force)
    stats = resolved.statistics
    status = BuildStatus.PARTIAL if stats.fragments_failed else BuildStatus.BUILT
    return BuildResult(
        status=status,
        root=root_path,
        statistics=stats,
        elapsed=time.perf_counter() - started,
        memory_only=service.memory_only,
        degraded_reason=service.degraded_reason,
    )


@dataclass(slots=True)
class VerifyReport:
    store_path: str | None
    engine_available: bool
    store_exists: bool = False
    store_size: int = 0
    ast_rows: int = 0
    regex_rows: int = 0
    memory_ast_entries: int = 0
    memory_regex_entries: int = 0
    integrity_ok: bool | None = None
    integrity_messages: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def memory_populated(self) -> bool:
        return (self.memory_ast_entries + self.memory_regex_entries) > 0

    @property
    def total_rows(self) -> int:
        return self.ast_rows + self.regex_rows

    @property
    def is_empty(self) -> bool:
        return self.total_rows == 0 and not self.memory_populated

    def as_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["memory_populated"] = self.memory_populated
        data["total_rows"] = self.total_rows
        return data


def verify_fragment_cache(service: CacheService) -> VerifyReport:
    """Inspect store and memory state without creating or modifying anything."""

    path = service.store_path
    report = VerifyReport(
        store_path=str(path) if path is not None else None,
        engine_available=is_available(),
        memory_ast_entries=service.memory.count(ParsingMode.AST),
        memory_regex_entries=service.memory.count(ParsingMode.REGEX),
    )
    if service.degraded_reason:
        report.errors.append(service.degraded_reason)
    store = service.maintenance_store()
    if store is None:
        return report
    report.store_exists = store.exists()
    if not report.store_exists:
        return report
    report.store_size = store.size_bytes()
    try:
        report.ast_rows = store.count_entries(ParsingMode.AST)
        report.regex_rows = store.count_entries(ParsingMode.REGEX)
    except CacheError as exc:
        report.errors.append(str(exc))
    try:
        report.integrity_messages = store.check_integrity()
    except CacheError as exc:
        report.errors.append(str(exc))
        return report
    report.integrity_ok = not report.integrity_messages
    if not report.integrity_ok:
        report.errors.append(
            "integrity check failed: " + "; ".join(report.integrity_messages[:5])
        )
    return report


@dataclass(slots=True)
class InitResult:
    store_path: Path | None
    created: bool = False
    skipped: bool = False


def init_fragment_cache(service: CacheService) -> InitResult:
    """Create the store file and both tables; raises ``StoreUnavailableError`` when it cannot."""

    if not service.persistence_enabled:
        return InitResult(store_path=None, skipped=True)
    store = service.maintenance_store()
    if store is None:
        raise StoreUnavailableError(
            service.degraded_reason or "fragment cache database is unavailable"
        )
    existed = store.exists()
    store.ensure_schema()
    logger.info("Fragment cache schema ready at %s", store.path)
    return InitResult(store_path=store.path, created=not existed)


def prune_fragment_cache(
    service: CacheService,
    *,
    dry_run: bool = False,
    vacuum: bool = False,
) -> PruneResult:
    """Remove stale rows from the store; raises ``CacheError`` when it cannot."""

    store = service.maintenance_store()
    if store is None:
        raise ReadError(service.degraded_reason or "fragment cache database is unavailable")
    return store.prune(dry_run=dry_run, vacuum=vacuum)
