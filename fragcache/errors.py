"""Exception types raised across the fragment cache."""

from __future__ import annotations


class CacheError(RuntimeError):
    """Base class for fragment cache failures."""


class ConfigurationError(CacheError):
    """The store location cannot be determined; run memory-only."""


class StoreUnavailableError(CacheError):
    """The embedded store engine cannot be used; run memory-only."""


class SchemaError(StoreUnavailableError):
    """The cache tables could not be created."""


class ReadError(CacheError):
    """A single store read failed; treated as a miss."""


class WriteError(CacheError):
    """A single store write failed; the write is dropped."""


class ExtractionError(CacheError):
    """An extractor could not produce commands for a fragment."""

    def __init__(self, path: str, mode: str, reason: str) -> None:
        super().__init__(f"{mode} extraction failed for {path}: {reason}")
        self.path = path
        self.mode = mode
        self.reason = reason


class DiscoveryError(CacheError, FileNotFoundError):
    """The fragment root cannot be enumerated."""
