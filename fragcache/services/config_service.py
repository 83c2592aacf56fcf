"""Logic helpers for the `fragcache config` command."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import (
    Config,
    load_config,
    set_default_mode,
    set_fragment_root,
    set_persistence,
    set_prewarm,
    set_store_path,
)


@dataclass(slots=True)
class ConfigUpdateResult:
    mode_set: bool = False
    store_path_set: bool = False
    store_path_cleared: bool = False
    fragment_root_set: bool = False
    prewarm_set: bool = False
    persistence_set: bool = False

    @property
    def changed(self) -> bool:
        return any(
            (
                self.mode_set,
                self.store_path_set,
                self.store_path_cleared,
                self.fragment_root_set,
                self.prewarm_set,
                self.persistence_set,
            )
        )


def apply_config_updates(
    *,
    default_mode: str | None = None,
    store_path: str | None = None,
    clear_store_path: bool = False,
    fragment_root: str | None = None,
    prewarm: bool | None = None,
    persistence: bool | None = None,
) -> ConfigUpdateResult:
    """Apply config mutations and report which fields were updated."""

    result = ConfigUpdateResult()
    if default_mode is not None:
        set_default_mode(default_mode)
        result.mode_set = True
    if store_path is not None:
        set_store_path(store_path)
        result.store_path_set = True
    if clear_store_path:
        set_store_path(None)
        result.store_path_cleared = True
    if fragment_root is not None:
        set_fragment_root(fragment_root)
        result.fragment_root_set = True
    if prewarm is not None:
        set_prewarm(prewarm)
        result.prewarm_set = True
    if persistence is not None:
        set_persistence(persistence)
        result.persistence_set = True
    return result


def get_config_snapshot() -> Config:
    """Return the current configuration dataclass."""

    return load_config()
