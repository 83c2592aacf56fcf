"""Centralized user-facing text for the fragcache CLI."""

from __future__ import annotations


class Styles:
    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "dim"
    TITLE = "bold cyan"
    TABLE_HEADER = "bold magenta"


class Messages:
    APP_HELP = "fragcache: maintain the shell-profile fragment parsing cache."
    HELP_VERSION = "Show version and exit."
    HELP_VERBOSE = "Show debug logging on stderr."
    HELP_CLEAR = "Clear the in-memory tier and the persistent fragment cache."
    HELP_CLEAR_SCOPE = "Which entries to clear: all, ast or regex."
    HELP_CLEAR_DRY_RUN = "Report what would be removed without deleting anything."
    HELP_CLEAR_KEEP_FILE = "Keep the database file when clearing everything (delete rows only)."
    HELP_BUILD = "Discover every fragment and pre-populate the cache in both parsing modes."
    HELP_BUILD_PATH = "Fragment root directory to scan."
    HELP_BUILD_FORCE = "Re-parse every fragment even when a valid cache entry exists."
    HELP_BUILD_EXT = "Fragment file extensions to include (repeatable)."
    HELP_BUILD_EXCLUDE = "Gitignore-style patterns to exclude (repeatable)."
    HELP_VERIFY = "Report the state of the fragment cache without modifying it."
    HELP_VERIFY_EXPECT_EMPTY = "Fail when the cache still holds entries."
    HELP_VERIFY_EXPECT_POPULATED = "Fail when the cache holds no entries."
    HELP_VERIFY_JSON = "Print the report as JSON."
    HELP_PRUNE = "Remove stale rows whose fragment changed or no longer exists."
    HELP_PRUNE_VACUUM = "Compact the database file after pruning."
    HELP_PRUNE_DRY_RUN = "Report stale rows without deleting them."
    HELP_INIT = "Create the cache database and its tables ahead of the first run."
    HELP_CONFIG = "Show or update persistent fragcache settings."
    HELP_CONFIG_SHOW = "Show current configuration."
    HELP_SET_MODE = "Set the default parsing mode (ast or regex)."
    HELP_SET_STORE_PATH = "Persist an explicit cache database path."
    HELP_CLEAR_STORE_PATH = "Remove the explicit cache database path."
    HELP_SET_ROOT = "Set the default fragment root used by `build`."
    HELP_SET_PREWARM = "Enable/disable loading every stored entry at startup (true/false)."
    HELP_SET_PERSISTENCE = "Enable/disable the SQLite tier (true/false)."

    ERROR_SCOPE_INVALID = "Unsupported scope '{value}'. Choose from: {allowed}."
    ERROR_MODE_INVALID = "Unsupported parsing mode '{value}'. Choose from: {allowed}."
    ERROR_BOOLEAN_INVALID = "Invalid boolean value '{value}'. Use true/false."
    ERROR_ROOT_MISSING = "No fragment root given. Pass --path or run `fragcache config --set-root <dir>`."
    ERROR_ROOT_INVALID = "Fragment root is not usable: {reason}"
    ERROR_EXPECT_CONFLICT = "--expect-empty and --expect-populated cannot be combined."
    ERROR_CONFIG_VALUE_INVALID = "Config field '{field}' has an invalid value."
    ERROR_CONFIG_LOAD = "Unable to read configuration {path}: {reason}"
    ERROR_PRUNE_FAILED = "Prune failed: {reason}"

    INFO_CLEAR_RUNNING = "Clearing fragment cache ({scope})..."
    INFO_CLEAR_DRY_RUN = "Dry run: nothing was removed."
    INFO_CLEAR_MEMORY = "In-memory tier: {count} entr{plural} removed."
    INFO_CLEAR_STORE_ROWS = "Database rows: {ast} AST, {regex} regex removed."
    INFO_CLEAR_STORE_FILE = "Database file removed: {path} ({size} bytes)."
    INFO_CLEAR_STORE_ABSENT = "No cache database at {path}."
    INFO_CLEAR_STORE_SKIPPED = "Persistence disabled; database left untouched."
    INFO_CLEAR_STORE_WOULD_REMOVE = "Database file would be removed: {path} ({size} bytes)."
    WARNING_CLEAR_STEP_FAILED = "{step} failed: {reason}"
    WARNING_COMPLETED_WITH_ERRORS = "Completed with errors."
    INFO_CLEAR_DONE = "Fragment cache cleared."

    INFO_BUILD_RUNNING = "Building fragment cache for {path}..."
    INFO_BUILD_EMPTY = "No fragments found under {path}."
    INFO_BUILD_DONE = "Fragment cache built in {elapsed:.2f}s."
    INFO_BUILD_STATS_TITLE = "Parse statistics"
    WARNING_BUILD_FAILED_FILES = "{count} fragment(s) failed to parse:"
    WARNING_MEMORY_ONLY = "Persistent cache unavailable ({reason}); results were not saved to disk."

    INFO_VERIFY_TITLE = "Fragment cache status"
    INFO_VERIFY_STORE_PATH = "Database path"
    INFO_VERIFY_STORE_EXISTS = "Database exists"
    INFO_VERIFY_STORE_SIZE = "Database size (bytes)"
    INFO_VERIFY_AST_ROWS = "AST entries"
    INFO_VERIFY_REGEX_ROWS = "Regex entries"
    INFO_VERIFY_MEMORY = "In-memory tier populated"
    INFO_VERIFY_ENGINE = "SQLite engine available"
    INFO_VERIFY_INTEGRITY = "Integrity check"
    INFO_VERIFY_ERROR = "Inspection error: {reason}"
    ERROR_VERIFY_NOT_EMPTY = "Expected an empty cache but {count} entr{plural} remain."
    ERROR_VERIFY_EMPTY = "Expected a populated cache but no entries were found."

    INFO_PRUNE_RESULT = "Stale rows: {ast} AST, {regex} regex{suffix}."
    INFO_PRUNE_VACUUMED = "Database compacted."

    INFO_INIT_CREATED = "Cache database created: {path}"
    INFO_INIT_READY = "Cache database ready: {path}"
    INFO_INIT_SKIPPED = "Persistence disabled; no database created."
    ERROR_INIT_FAILED = "Cannot initialize the cache database: {reason}"

    INFO_CONFIG_SUMMARY = (
        "Default mode: {mode}\n"
        "Store path: {store_path}\n"
        "Fragment root: {root}\n"
        "Extensions: {extensions}\n"
        "Exclude patterns: {excludes}\n"
        "Persistence: {persistence}\n"
        "Pre-warm: {prewarm}\n"
        "Write attempts: {attempts}"
    )
    INFO_CONFIG_UPDATED = "Configuration updated."
    INFO_CONFIG_UNCHANGED = "No configuration changes requested."

    TABLE_HEADER_ITEM = "Item"
    TABLE_HEADER_VALUE = "Value"
    TABLE_HEADER_METRIC = "Metric"
    TABLE_HEADER_COUNT = "Count"
