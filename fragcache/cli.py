"""Command line interface for fragcache."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config as config_module
from .cache import ClearScope
from .config import Config, load_config
from .errors import CacheError, DiscoveryError
from .models import ParsingMode
from .output import format_status_icon
from .services.cache_service import CacheService
from .services.config_service import apply_config_updates, get_config_snapshot
from .services.maintenance_service import (
    STEP_STORE,
    BuildStatus,
    ClearResult,
    build_fragment_cache,
    clear_fragment_cache,
    init_fragment_cache,
    prune_fragment_cache,
    verify_fragment_cache,
)
from .text import Messages, Styles
from .utils import (
    format_path,
    normalize_exclude_patterns,
    normalize_extensions,
    resolve_directory,
)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_SETUP = 3

console = Console()

app = typer.Typer(
    help=Messages.APP_HELP,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"fragcache v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=verbose,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


def _parse_boolean(value: str) -> bool:
    token = value.strip().lower()
    if token in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if token in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ValueError(Messages.ERROR_BOOLEAN_INVALID.format(value=value))


def _validate_scope(value: str) -> ClearScope:
    try:
        return ClearScope(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(scope.value for scope in ClearScope)
        raise typer.BadParameter(
            Messages.ERROR_SCOPE_INVALID.format(value=value, allowed=allowed)
        ) from exc


def _validate_mode(value: str) -> str:
    try:
        return ParsingMode.parse(value).value
    except ValueError as exc:
        allowed = ", ".join(mode.value for mode in ParsingMode)
        raise typer.BadParameter(
            Messages.ERROR_MODE_INVALID.format(value=value, allowed=allowed)
        ) from exc


def _load_config_or_exit() -> Config:
    try:
        return load_config()
    except (OSError, ValueError) as exc:
        console.print(
            _styled(
                Messages.ERROR_CONFIG_LOAD.format(
                    path=config_module.config_file_path(),
                    reason=exc,
                ),
                Styles.ERROR,
            )
        )
        raise typer.Exit(code=EXIT_SETUP)


def _make_service(config: Config) -> CacheService:
    # maintenance commands inspect the store directly and never pre-warm
    return CacheService.from_config(config, prewarm=False)


def _format_list_display(values: Sequence[str] | None) -> str:
    if not values:
        return "none"
    return ", ".join(values)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help=Messages.HELP_VERSION,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help=Messages.HELP_VERBOSE,
    ),
) -> None:
    """Global Typer callback for shared options."""
    _configure_logging(verbose)


@app.command(help=Messages.HELP_CLEAR)
def clear(
    scope: str = typer.Option(
        ClearScope.ALL.value,
        "--scope",
        "-s",
        help=Messages.HELP_CLEAR_SCOPE,
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help=Messages.HELP_CLEAR_DRY_RUN,
    ),
    keep_file: bool = typer.Option(
        False,
        "--keep-file",
        help=Messages.HELP_CLEAR_KEEP_FILE,
    ),
) -> None:
    clear_scope = _validate_scope(scope)
    service = _make_service(_load_config_or_exit())
    console.print(
        _styled(Messages.INFO_CLEAR_RUNNING.format(scope=clear_scope.value), Styles.INFO)
    )
    result = clear_fragment_cache(
        service,
        clear_scope,
        remove_file=not keep_file,
        dry_run=dry_run,
    )
    _print_clear_result(result)
    if not result.succeeded:
        for step in result.failed_steps:
            console.print(
                _styled(
                    Messages.WARNING_CLEAR_STEP_FAILED.format(
                        step=step.name.capitalize(),
                        reason=step.detail,
                    ),
                    Styles.WARNING,
                )
            )
        console.print(_styled(Messages.WARNING_COMPLETED_WITH_ERRORS, Styles.WARNING))
        raise typer.Exit(code=EXIT_PARTIAL)
    if dry_run:
        console.print(_styled(Messages.INFO_CLEAR_DRY_RUN, Styles.INFO))
        return
    console.print(_styled(Messages.INFO_CLEAR_DONE, Styles.SUCCESS))


def _print_clear_result(result: ClearResult) -> None:
    count = result.memory_entries
    console.print(
        _styled(
            Messages.INFO_CLEAR_MEMORY.format(count=count, plural="y" if count == 1 else "ies"),
            Styles.INFO,
        )
    )
    store_step = next((step for step in result.steps if step.name == STEP_STORE), None)
    if store_step is not None and store_step.skipped:
        console.print(_styled(Messages.INFO_CLEAR_STORE_SKIPPED, Styles.INFO))
        return
    store = result.store
    if store is None:
        return
    if not result.store_existed:
        console.print(
            _styled(Messages.INFO_CLEAR_STORE_ABSENT.format(path=result.store_path), Styles.INFO)
        )
        return
    console.print(
        _styled(
            Messages.INFO_CLEAR_STORE_ROWS.format(ast=store.ast_rows, regex=store.regex_rows),
            Styles.INFO,
        )
    )
    if store.file_removed:
        console.print(
            _styled(
                Messages.INFO_CLEAR_STORE_FILE.format(
                    path=result.store_path,
                    size=store.bytes_removed,
                ),
                Styles.SUCCESS,
            )
        )
    elif store.dry_run and store.bytes_removed:
        console.print(
            _styled(
                Messages.INFO_CLEAR_STORE_WOULD_REMOVE.format(
                    path=result.store_path,
                    size=store.bytes_removed,
                ),
                Styles.INFO,
            )
        )


@app.command(help=Messages.HELP_BUILD)
def build(
    path: Path | None = typer.Option(
        None,
        "--path",
        "-p",
        help=Messages.HELP_BUILD_PATH,
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help=Messages.HELP_BUILD_FORCE,
    ),
    extensions: list[str] | None = typer.Option(
        None,
        "--ext",
        "-e",
        help=Messages.HELP_BUILD_EXT,
    ),
    exclude_patterns: list[str] | None = typer.Option(
        None,
        "--exclude-pattern",
        help=Messages.HELP_BUILD_EXCLUDE,
    ),
) -> None:
    config = _load_config_or_exit()
    root = path if path is not None else config.fragment_root
    if not root:
        console.print(_styled(Messages.ERROR_ROOT_MISSING, Styles.ERROR))
        raise typer.Exit(code=EXIT_SETUP)
    normalized_exts = normalize_extensions(extensions) or normalize_extensions(config.extensions)
    normalized_excludes = normalize_exclude_patterns(
        exclude_patterns if exclude_patterns else config.exclude_patterns
    )
    service = _make_service(config)
    console.print(_styled(Messages.INFO_BUILD_RUNNING.format(path=root), Styles.INFO))
    try:
        result = build_fragment_cache(
            service,
            root,
            force=force,
            extensions=normalized_exts,
            exclude_patterns=normalized_excludes,
        )
    except DiscoveryError as exc:
        console.print(_styled(Messages.ERROR_ROOT_INVALID.format(reason=exc), Styles.ERROR))
        raise typer.Exit(code=EXIT_SETUP)
    if result.status == BuildStatus.EMPTY:
        console.print(
            _styled(Messages.INFO_BUILD_EMPTY.format(path=result.root), Styles.WARNING)
        )
        return

    stats = result.statistics
    table = Table(
        title=Messages.INFO_BUILD_STATS_TITLE,
        show_header=True,
        header_style=Styles.TABLE_HEADER,
    )
    table.add_column(Messages.TABLE_HEADER_METRIC)
    table.add_column(Messages.TABLE_HEADER_COUNT, justify="right")
    for name, value in stats.as_dict().items():
        if isinstance(value, list):
            continue
        table.add_row(name.replace("_", " "), str(value))
    console.print(table)

    if result.memory_only and service.persistence_enabled:
        console.print(
            _styled(
                Messages.WARNING_MEMORY_ONLY.format(reason=result.degraded_reason or "unknown"),
                Styles.WARNING,
            )
        )
    if result.status == BuildStatus.PARTIAL:
        console.print(
            _styled(
                Messages.WARNING_BUILD_FAILED_FILES.format(count=stats.fragments_failed),
                Styles.WARNING,
            )
        )
        for failed in stats.failed_files:
            console.print(f"  {format_path(Path(failed), result.root)}")
        console.print(_styled(Messages.WARNING_COMPLETED_WITH_ERRORS, Styles.WARNING))
        raise typer.Exit(code=EXIT_PARTIAL)
    console.print(
        _styled(Messages.INFO_BUILD_DONE.format(elapsed=result.elapsed), Styles.SUCCESS)
    )


@app.command(help=Messages.HELP_VERIFY)
def verify(
    expect_empty: bool = typer.Option(
        False,
        "--expect-empty",
        help=Messages.HELP_VERIFY_EXPECT_EMPTY,
    ),
    expect_populated: bool = typer.Option(
        False,
        "--expect-populated",
        help=Messages.HELP_VERIFY_EXPECT_POPULATED,
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help=Messages.HELP_VERIFY_JSON,
    ),
) -> None:
    if expect_empty and expect_populated:
        raise typer.BadParameter(Messages.ERROR_EXPECT_CONFLICT)
    service = _make_service(_load_config_or_exit())
    report = verify_fragment_cache(service)

    if as_json:
        typer.echo(json.dumps(report.as_dict(), indent=2))
    else:
        console.print(_styled(Messages.INFO_VERIFY_TITLE, Styles.TITLE))
        table = Table(show_header=True, header_style=Styles.TABLE_HEADER)
        table.add_column(Messages.TABLE_HEADER_ITEM)
        table.add_column(Messages.TABLE_HEADER_VALUE, overflow="fold")
        table.add_row(Messages.INFO_VERIFY_ENGINE, format_status_icon(report.engine_available, console))
        table.add_row(Messages.INFO_VERIFY_STORE_PATH, report.store_path or "none")
        table.add_row(Messages.INFO_VERIFY_STORE_EXISTS, format_status_icon(report.store_exists, console))
        table.add_row(Messages.INFO_VERIFY_STORE_SIZE, str(report.store_size))
        table.add_row(Messages.INFO_VERIFY_AST_ROWS, str(report.ast_rows))
        table.add_row(Messages.INFO_VERIFY_REGEX_ROWS, str(report.regex_rows))
        table.add_row(
            Messages.INFO_VERIFY_INTEGRITY,
            "n/a"
            if report.integrity_ok is None
            else format_status_icon(report.integrity_ok, console),
        )
        table.add_row(Messages.INFO_VERIFY_MEMORY, "yes" if report.memory_populated else "no")
        console.print(table)
        for error in report.errors:
            console.print(_styled(Messages.INFO_VERIFY_ERROR.format(reason=error), Styles.WARNING))

    if expect_empty and not report.is_empty:
        count = report.total_rows + report.memory_ast_entries + report.memory_regex_entries
        console.print(
            _styled(
                Messages.ERROR_VERIFY_NOT_EMPTY.format(
                    count=count,
                    plural="y" if count == 1 else "ies",
                ),
                Styles.ERROR,
            )
        )
        raise typer.Exit(code=EXIT_PARTIAL)
    if expect_populated and report.is_empty:
        console.print(_styled(Messages.ERROR_VERIFY_EMPTY, Styles.ERROR))
        raise typer.Exit(code=EXIT_PARTIAL)
    if report.errors:
        raise typer.Exit(code=EXIT_PARTIAL)


@app.command(help=Messages.HELP_PRUNE)
def prune(
    vacuum: bool = typer.Option(
        False,
        "--vacuum",
        help=Messages.HELP_PRUNE_VACUUM,
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help=Messages.HELP_PRUNE_DRY_RUN,
    ),
) -> None:
    service = _make_service(_load_config_or_exit())
    try:
        result = prune_fragment_cache(service, dry_run=dry_run, vacuum=vacuum)
    except CacheError as exc:
        console.print(_styled(Messages.ERROR_PRUNE_FAILED.format(reason=exc), Styles.ERROR))
        raise typer.Exit(code=EXIT_PARTIAL)
    suffix = " (dry run)" if dry_run else " removed"
    console.print(
        _styled(
            Messages.INFO_PRUNE_RESULT.format(
                ast=result.ast_rows,
                regex=result.regex_rows,
                suffix=suffix,
            ),
            Styles.SUCCESS,
        )
    )
    if result.vacuumed:
        console.print(_styled(Messages.INFO_PRUNE_VACUUMED, Styles.SUCCESS))


@app.command(help=Messages.HELP_INIT)
def init() -> None:
    service = _make_service(_load_config_or_exit())
    try:
        result = init_fragment_cache(service)
    except CacheError as exc:
        console.print(_styled(Messages.ERROR_INIT_FAILED.format(reason=exc), Styles.ERROR))
        raise typer.Exit(code=EXIT_PARTIAL)
    if result.skipped:
        console.print(_styled(Messages.INFO_INIT_SKIPPED, Styles.INFO))
        return
    message = Messages.INFO_INIT_CREATED if result.created else Messages.INFO_INIT_READY
    console.print(_styled(message.format(path=result.store_path), Styles.SUCCESS))


@app.command(help=Messages.HELP_CONFIG)
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help=Messages.HELP_CONFIG_SHOW,
    ),
    set_mode_option: str | None = typer.Option(
        None,
        "--set-mode",
        help=Messages.HELP_SET_MODE,
    ),
    set_store_path_option: str | None = typer.Option(
        None,
        "--set-store-path",
        help=Messages.HELP_SET_STORE_PATH,
    ),
    clear_store_path: bool = typer.Option(
        False,
        "--clear-store-path",
        help=Messages.HELP_CLEAR_STORE_PATH,
    ),
    set_root_option: str | None = typer.Option(
        None,
        "--set-root",
        help=Messages.HELP_SET_ROOT,
    ),
    set_prewarm_option: str | None = typer.Option(
        None,
        "--set-prewarm",
        help=Messages.HELP_SET_PREWARM,
    ),
    set_persistence_option: str | None = typer.Option(
        None,
        "--set-persistence",
        help=Messages.HELP_SET_PERSISTENCE,
    ),
) -> None:
    """Manage fragcache configuration."""
    mode_value = _validate_mode(set_mode_option) if set_mode_option is not None else None
    root_value = None
    if set_root_option is not None:
        try:
            root_value = str(resolve_directory(set_root_option))
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise typer.BadParameter(str(exc)) from exc
    try:
        prewarm_value = (
            _parse_boolean(set_prewarm_option) if set_prewarm_option is not None else None
        )
        persistence_value = (
            _parse_boolean(set_persistence_option)
            if set_persistence_option is not None
            else None
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    _load_config_or_exit()
    updates = apply_config_updates(
        default_mode=mode_value,
        store_path=set_store_path_option,
        clear_store_path=clear_store_path,
        fragment_root=root_value,
        prewarm=prewarm_value,
        persistence=persistence_value,
    )
    if updates.changed:
        console.print(_styled(Messages.INFO_CONFIG_UPDATED, Styles.SUCCESS))
    elif not show:
        console.print(_styled(Messages.INFO_CONFIG_UNCHANGED, Styles.INFO))
        show = True

    if show:
        cfg = get_config_snapshot()
        console.print(
            _styled(
                Messages.INFO_CONFIG_SUMMARY.format(
                    mode=cfg.default_mode,
                    store_path=cfg.store_path or "default",
                    root=cfg.fragment_root or "none",
                    extensions=_format_list_display(cfg.extensions),
                    excludes=_format_list_display(cfg.exclude_patterns),
                    persistence="yes" if cfg.persistence else "no",
                    prewarm="yes" if cfg.prewarm else "no",
                    attempts=cfg.write_attempts,
                ),
                Styles.INFO,
            )
        )


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def run(argv: list[str] | None = None) -> None:
    """Entry point wrapper allowing optional argument override."""
    if argv is None:
        app()
    else:
        app(args=list(argv))
