"""Terminal-safe status markers for CLI tables."""

from __future__ import annotations

import sys

from rich.console import Console

_CHECK_MARKS = "✓✗"


def _can_encode(text: str, encoding: str | None) -> bool:
    if not encoding:
        return False
    try:
        text.encode(encoding)
    except (LookupError, UnicodeEncodeError):
        return False
    return True


def supports_unicode_output(console: Console | None = None) -> bool:
    if console is not None and _can_encode(_CHECK_MARKS, console.encoding):
        return True
    return _can_encode(_CHECK_MARKS, getattr(sys.stdout, "encoding", None))


def format_status_icon(passed: bool, console: Console | None = None) -> str:
    """Return a green check or red cross, falling back to ASCII labels."""
    if supports_unicode_output(console):
        return "[green]✓[/green]" if passed else "[red]✗[/red]"
    return "[green]yes[/green]" if passed else "[red]no[/red]"
