"""Startup entry point used by a shell profile to obtain fragment commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ..config import Config
from ..models import ParseStatistics, merge_command_lists
from ..utils import discover_fragments
from .cache_service import CacheService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LoadResult:
    commands: dict[Path, list[str]] = field(default_factory=dict)
    statistics: ParseStatistics = field(default_factory=ParseStatistics)
    memory_only: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def command_names(self) -> list[str]:
        return merge_command_lists(list(self.commands.values()))


def load_fragment_commands(
    root: Path | str,
    *,
    service: CacheService | None = None,
    config: Config | None = None,
    force_both_modes: bool = False,
    extensions: Sequence[str] | None = None,
    exclude_patterns: Sequence[str] | None = None,
) -> LoadResult:
    """Resolve the commands defined by the fragments under *root*.

    Profile loading must go on without cached commands, so every failure
    (including an unreadable configuration or a missing root) is logged and
    reported through ``LoadResult.error`` instead of raised.
    """

    try:
        if service is None:
            service = CacheService.from_config(config)
        active = config if config is not None else service.config
        fragments = discover_fragments(
            root,
            extensions=extensions if extensions is not None else active.extensions,
            exclude_patterns=(
                exclude_patterns if exclude_patterns is not None else active.exclude_patterns
            ),
        )
        resolved = service.resolve_commands(fragments, force_both_modes)
    except Exception as exc:
        logger.warning("Fragment commands unavailable, continuing without cache: %s", exc)
        return LoadResult(
            memory_only=service.memory_only if service is not None else True,
            error=str(exc) or type(exc).__name__,
        )
    return LoadResult(
        commands=resolved.commands,
        statistics=resolved.statistics,
        memory_only=resolved.memory_only,
    )