"""Global configuration management for fragcache."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from contextlib import contextmanager
from contextvars import ContextVar
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict

from .models import ParsingMode
from .text import Messages

DEFAULT_CONFIG_DIR = Path(os.path.expanduser("~")) / ".fragcache"
CONFIG_DIR = DEFAULT_CONFIG_DIR
CONFIG_FILE = CONFIG_DIR / "config.json"
_CONFIG_DIR_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "fragcache_config_dir_override",
    default=None,
)
DEFAULT_MODE = ParsingMode.AST.value
DEFAULT_EXTENSIONS: tuple[str, ...] = (".ps1",)
DEFAULT_WRITE_ATTEMPTS = 3
SUPPORTED_MODES: tuple[str, ...] = tuple(mode.value for mode in ParsingMode)
ENV_DB_PATH = "FRAGCACHE_DB_PATH"
ENV_CACHE_DIR = "FRAGCACHE_CACHE_DIR"


@dataclass
class Config:
    store_path: str | None = None
    default_mode: str = DEFAULT_MODE
    fragment_root: str | None = None
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    exclude_patterns: tuple[str, ...] = ()
    persistence: bool = True
    prewarm: bool = False
    write_attempts: int = DEFAULT_WRITE_ATTEMPTS

    @property
    def parsing_mode(self) -> ParsingMode:
        return ParsingMode.parse(self.default_mode)


def _resolve_config_dir() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    return override if override is not None else CONFIG_DIR


def _resolve_config_file() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    if override is not None:
        return override / "config.json"
    return CONFIG_FILE


def config_file_path() -> Path:
    return _resolve_config_file()


@contextmanager
def config_dir_context(path: Path | str | None):
    """Temporarily override the config directory for the current context."""

    if path is None:
        yield
        return
    dir_path = Path(path).expanduser().resolve()
    if dir_path.exists() and not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    token = _CONFIG_DIR_OVERRIDE.set(dir_path)
    try:
        yield
    finally:
        _CONFIG_DIR_OVERRIDE.reset(token)


def load_config() -> Config:
    config_file = _resolve_config_file()
    if not config_file.exists():
        return Config()
    raw = json.loads(config_file.read_text(encoding="utf-8"))
    if not isinstance(raw, Mapping):
        return Config()
    config = Config()
    config.store_path = _lenient(_coerce_optional_str, raw.get("store_path"), "store_path", None)
    config.default_mode = _coerce_mode_lenient(raw.get("default_mode"))
    config.fragment_root = _lenient(
        _coerce_optional_str, raw.get("fragment_root"), "fragment_root", None
    )
    config.extensions = _coerce_str_tuple(raw.get("extensions"), DEFAULT_EXTENSIONS)
    config.exclude_patterns = _coerce_str_tuple(raw.get("exclude_patterns"), ())
    config.persistence = bool(raw.get("persistence", True))
    config.prewarm = bool(raw.get("prewarm", False))
    config.write_attempts = max(
        1,
        _lenient(_coerce_int, raw.get("write_attempts"), "write_attempts", DEFAULT_WRITE_ATTEMPTS),
    )
    return config


def save_config(config: Config) -> None:
    config_dir = _resolve_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = {}
    if config.store_path:
        data["store_path"] = config.store_path
    data["default_mode"] = config.default_mode
    if config.fragment_root:
        data["fragment_root"] = config.fragment_root
    data["extensions"] = list(config.extensions)
    if config.exclude_patterns:
        data["exclude_patterns"] = list(config.exclude_patterns)
    data["persistence"] = bool(config.persistence)
    data["prewarm"] = bool(config.prewarm)
    data["write_attempts"] = int(config.write_attempts)
    config_file = _resolve_config_file()
    config_file.write_text(
        json.dumps(data, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def set_config_dir(path: Path | str | None) -> None:
    global CONFIG_DIR, CONFIG_FILE
    if path is None:
        CONFIG_DIR = DEFAULT_CONFIG_DIR
    else:
        dir_path = Path(path).expanduser().resolve()
        if dir_path.exists() and not dir_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {dir_path}")
        CONFIG_DIR = dir_path
    CONFIG_FILE = CONFIG_DIR / "config.json"


def set_default_mode(value: str) -> None:
    config = load_config()
    config.default_mode = _normalize_mode(value)
    save_config(config)


def set_store_path(value: str | None) -> None:
    config = load_config()
    clean_value = (value or "").strip()
    config.store_path = str(Path(clean_value).expanduser()) if clean_value else None
    save_config(config)


def set_fragment_root(value: str | None) -> None:
    config = load_config()
    clean_value = (value or "").strip()
    config.fragment_root = str(Path(clean_value).expanduser().resolve()) if clean_value else None
    save_config(config)


def set_prewarm(value: bool) -> None:
    config = load_config()
    config.prewarm = bool(value)
    save_config(config)


def set_persistence(value: bool) -> None:
    config = load_config()
    config.persistence = bool(value)
    save_config(config)


def resolve_env_store_path() -> Path | None:
    value = (os.getenv(ENV_DB_PATH) or "").strip()
    if not value:
        return None
    return Path(value).expanduser()


def resolve_env_cache_dir() -> Path | None:
    value = (os.getenv(ENV_CACHE_DIR) or "").strip()
    if not value:
        return None
    return Path(value).expanduser()


def _lenient(coerce, value: object, field: str, default):
    try:
        result = coerce(value, field) if default is None else coerce(value, field, default)
    except ValueError:
        return default
    return default if result is None else result


def _coerce_optional_str(value: object, field: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_int(value: object, field: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return default
        try:
            return int(cleaned)
        except ValueError as exc:
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field)) from exc
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_str_tuple(value: object, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        value = [part for part in value.split(",")]
    if not isinstance(value, (list, tuple)):
        return default
    cleaned = tuple(str(item).strip() for item in value if str(item).strip())
    return cleaned or default


def _normalize_mode(value: object) -> str:
    if isinstance(value, (str, ParsingMode)):
        try:
            return ParsingMode.parse(value).value
        except ValueError:
            pass
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field="default_mode"))


def _coerce_mode_lenient(value: object) -> str:
    if value is None:
        return DEFAULT_MODE
    try:
        return _normalize_mode(value)
    except ValueError:
        return DEFAULT_MODE
