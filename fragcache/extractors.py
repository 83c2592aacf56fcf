"""Command extractors for shell-profile fragments.

Each extractor is a pure function of the fragment text returning the command
names it defines, in first-seen order. The AST extractor walks the syntax
structure (comments, strings, here-strings, script blocks) and reports
function definitions that are not nested in another function body; it
raises ``FragmentSyntaxError`` on unbalanced input. The regex extractor
matches registration idioms in the raw text and never fails on syntax.
"""

from __future__ import annotations

import re
from typing import Dict, Mapping, Protocol, Sequence

from .models import ALL_MODES, ParsingMode, merge_command_lists

FUNCTION_KEYWORDS = frozenset({"function", "filter", "workflow"})
SCOPE_PREFIXES = ("global:", "script:", "local:", "private:")
_NAME_TERMINATORS = frozenset(" \t\r\n{}();|")
_KEYWORD_BOUNDARY = frozenset("$-.:\\/@")


class CommandExtractor(Protocol):
    """Protocol describing a command extractor for one parsing mode."""

    def __call__(self, content: str) -> Sequence[str]:
        ...


class FragmentSyntaxError(ValueError):
    def __init__(self, message: str, offset: int, text: str) -> None:
        line = text.count("\n", 0, offset) + 1
        super().__init__(f"{message} (line {line})")
        self.line = line


def _strip_scope(name: str) -> str:
    lowered = name.lower()
    for prefix in SCOPE_PREFIXES:
        if lowered.startswith(prefix):
            return name[len(prefix) :]
    return name


class _FunctionScanner:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        # one flag per open "{": True when it opened a function body
        self.blocks: list[bool] = []
        self.parens = 0
        self.pending_body: int | None = None
        self.names: list[str] = []

    def error(self, message: str, offset: int | None = None) -> FragmentSyntaxError:
        return FragmentSyntaxError(message, self.pos if offset is None else offset, self.text)

    def run(self) -> list[str]:
        text = self.text
        length = len(text)
        while self.pos < length:
            ch = text[self.pos]
            if ch == "#":
                end = text.find("\n", self.pos)
                self.pos = length if end < 0 else end
                continue
            if text.startswith("<#", self.pos):
                self._skip_block_comment()
                continue
            if ch == "@" and self._at_here_string():
                self._skip_here_string()
                continue
            if ch == "'":
                self._skip_single_quoted()
                continue
            if ch == '"':
                self._skip_double_quoted()
                continue
            if ch == "`":
                self.pos += 2
                continue
            if ch == "$" and text.startswith("${", self.pos):
                end = text.find("}", self.pos + 2)
                if end < 0:
                    raise self.error("Missing closing '}' in variable reference")
                self.pos = end + 1
                continue
            if ch == "(":
                self.parens += 1
            elif ch == ")":
                if self.parens == 0:
                    raise self.error("Unexpected ')'")
                self.parens -= 1
            elif ch == "{":
                is_body = self.pending_body is not None and self.parens == self.pending_body
                if is_body:
                    self.pending_body = None
                self.blocks.append(is_body)
            elif ch == "}":
                if not self.blocks:
                    raise self.error("Unexpected '}'")
                self.blocks.pop()
            elif ch.isalpha() or ch == "_":
                self._read_word()
                continue
            self.pos += 1
        if self.blocks:
            raise self.error("Missing closing '}'", length)
        if self.parens:
            raise self.error("Missing closing ')'", length)
        if self.pending_body is not None:
            raise self.error("Function definition has no body", length)
        return merge_command_lists([self.names])

    def _read_word(self) -> None:
        text = self.text
        start = self.pos
        end = start
        while end < len(text) and (text[end].isalnum() or text[end] in "_-"):
            end += 1
        word = text[start:end]
        self.pos = end
        if word.lower() not in FUNCTION_KEYWORDS:
            return
        if start > 0 and text[start - 1] in _KEYWORD_BOUNDARY:
            return
        if end < len(text) and text[end] not in " \t":
            return
        while self.pos < len(text) and text[self.pos] in " \t":
            self.pos += 1
        name_start = self.pos
        while self.pos < len(text) and text[self.pos] not in _NAME_TERMINATORS:
            self.pos += 1
        name = _strip_scope(text[name_start : self.pos].strip("'\""))
        if not name:
            raise self.error("Missing function name", name_start)
        if self.pending_body is not None:
            raise self.error("Function definition has no body", name_start)
        if not any(self.blocks):
            self.names.append(name)
        self.pending_body = self.parens

    def _skip_block_comment(self) -> None:
        end = self.text.find("#>", self.pos + 2)
        if end < 0:
            raise self.error("Missing closing '#>'")
        self.pos = end + 2

    def _at_here_string(self) -> bool:
        text = self.text
        if self.pos + 1 >= len(text) or text[self.pos + 1] not in "'\"":
            return False
        idx = self.pos + 2
        while idx < len(text) and text[idx] in " \t\r":
            idx += 1
        return idx < len(text) and text[idx] == "\n"

    def _skip_here_string(self) -> None:
        quote = self.text[self.pos + 1]
        terminator = f"\n{quote}@"
        end = self.text.find(terminator, self.pos + 2)
        if end < 0:
            raise self.error("Missing here-string terminator")
        self.pos = end + len(terminator)

    def _skip_single_quoted(self) -> None:
        text = self.text
        start = self.pos
        idx = self.pos + 1
        while True:
            end = text.find("'", idx)
            if end < 0:
                raise self.error("Missing closing quote", start)
            if text.startswith("''", end):
                idx = end + 2
                continue
            self.pos = end + 1
            return

    def _skip_double_quoted(self) -> None:
        text = self.text
        start = self.pos
        self.pos += 1
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "`":
                self.pos += 2
                continue
            if ch == '"':
                if text.startswith('""', self.pos):
                    self.pos += 2
                    continue
                self.pos += 1
                return
            if text.startswith("$(", self.pos):
                self.pos += 2
                self._skip_subexpression()
                continue
            self.pos += 1
        raise self.error("Missing closing quote", start)

    def _skip_subexpression(self) -> None:
        text = self.text
        start = self.pos
        depth = 1
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "'":
                self._skip_single_quoted()
                continue
            if ch == '"':
                self._skip_double_quoted()
                continue
            if ch == "`":
                self.pos += 2
                continue
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    self.pos += 1
                    return
            self.pos += 1
        raise self.error("Missing closing ')' in subexpression", start)


def extract_ast(content: str) -> list[str]:
    """Return functions defined by *content* using a structural walk."""

    text = (content or "").replace("\r\n", "\n")
    if text.startswith("\ufeff"):
        text = text[1:]
    return _FunctionScanner(text).run()


_SCOPE = r"(?:(?:global|script|local|private):)?"
_NAME = r"([A-Za-z_][\w-]*)"
_REGEX_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        rf"^[ \t]*(?:function|filter|workflow)[ \t]+{_SCOPE}{_NAME}",
        re.IGNORECASE | re.MULTILINE,
    ),
    re.compile(rf"\b(?:Set|New)-Alias[ \t]+(?!-)['\"]?{_NAME}", re.IGNORECASE),
    re.compile(rf"\b(?:Set|New)-Alias\b[^\n]*?-Name[ \t]+['\"]?{_NAME}", re.IGNORECASE),
    re.compile(rf"\bFunction:[\\/]?{_SCOPE}{_NAME}", re.IGNORECASE),
    re.compile(rf"\$\{{function:{_SCOPE}{_NAME}\}}\s*=", re.IGNORECASE),
)


def extract_regex(content: str) -> list[str]:
    """Return command names registered by *content* using pattern matching."""

    text = content or ""
    found: list[tuple[int, str]] = []
    for pattern in _REGEX_PATTERNS:
        for match in pattern.finditer(text):
            found.append((match.start(1), match.group(1)))
    found.sort(key=lambda item: item[0])
    return merge_command_lists([[name for _, name in found]])


_EXTRACTORS: Dict[ParsingMode, CommandExtractor] = {
    ParsingMode.AST: extract_ast,
    ParsingMode.REGEX: extract_regex,
}


def get_extractor(mode: ParsingMode | str) -> CommandExtractor:
    return _EXTRACTORS[ParsingMode.parse(mode)]


def default_extractors(
    overrides: Mapping[ParsingMode, CommandExtractor] | None = None,
) -> dict[ParsingMode, CommandExtractor]:
    extractors = {mode: get_extractor(mode) for mode in ALL_MODES}
    if overrides:
        for mode, extractor in overrides.items():
            extractors[ParsingMode.parse(mode)] = extractor
    return extractors
