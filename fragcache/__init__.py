"""fragcache package initialization."""

from __future__ import annotations

from .errors import CacheError
from .models import CacheEntry, CacheKey, FragmentDescriptor, ParseStatistics, ParsingMode
from .services.cache_service import CacheService, ResolveResult
from .services.loader_service import LoadResult, load_fragment_commands

__all__ = [
    "__version__",
    "CacheEntry",
    "CacheError",
    "CacheKey",
    "CacheService",
    "FragmentDescriptor",
    "LoadResult",
    "ParseStatistics",
    "ParsingMode",
    "ResolveResult",
    "get_version",
    "load_fragment_commands",
]

__version__ = "0.4.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
