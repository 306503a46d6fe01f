"""Repair truncated JSON emitted by a streaming model.

The model writes one JSON document token by token. At any moment the text we
hold is a prefix of that document, cut anywhere: inside a string, halfway
through a number, between a key and its value. `mend` turns such a prefix into
the longest valid JSON document that contains only data the final document
will also contain.

The scan runs once over the text and tracks three things:

* whether we are inside a string literal (honouring backslash escapes),
* a stack of open `{` / `[` containers, ignoring brackets inside strings,
* the last *safe cut*: a position right after an opening bracket or right
  after a complete value, where appending the closers of every open
  container yields valid JSON.

Everything after the last safe cut is a dangling fragment: an unterminated
string, a partial number, a key with no value yet, a trailing comma. It is
dropped rather than closed, so a truncated `"price": 12.9` never surfaces as
`12.9` when the final value is `12.99`. Open containers are then closed most
recently opened first.

Besides the repaired text, `mend_prefix` reports the JSON path of every
container it had to close. Callers use that to tell an object that is
complete in the source text from one that only looks complete because we
closed it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field


logger = logging.getLogger(__name__)

JsonPath = tuple[str | int, ...]

_CLOSERS = {"{": "}", "[": "]"}
_NUMBER_CHARS = frozenset("0123456789+-.eE")
_LITERALS = ("true", "false", "null")
_WHITESPACE = frozenset(" \t\r\n")


@dataclass(frozen=True, slots=True)
class MendResult:
    """Repaired JSON text plus what the repair had to invent."""

    text: str
    complete: bool
    open_paths: frozenset[JsonPath] = field(default_factory=frozenset)

    def is_open(self, path: JsonPath) -> bool:
        return path in self.open_paths


@dataclass(slots=True)
class _Frame:
    kind: str  # "{" or "["
    path: JsonPath
    key: str | None = None
    count: int = 0
    # object: key | colon | value | next ; array: value | next
    expect: str = "value"


class _PrefixScanner:
    """Single pass over a JSON prefix recording the last safe cut."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.stack: list[_Frame] = []
        self.root_closed_at: int | None = None
        self.cut: int | None = None
        self.cut_frames: list[tuple[str, JsonPath]] = []

    def _mark_safe(self, pos: int) -> None:
        self.cut = pos
        self.cut_frames = [(f.kind, f.path) for f in self.stack]

    def _child_path(self) -> JsonPath:
        if not self.stack:
            return ()
        frame = self.stack[-1]
        if frame.kind == "{":
            return (*frame.path, frame.key or "")
        return (*frame.path, frame.count)

    def _value_started(self) -> None:
        if self.stack and self.stack[-1].kind == "[":
            self.stack[-1].count += 1

    def _value_finished(self, pos: int) -> None:
        if not self.stack:
            self.root_closed_at = pos
            return
        self.stack[-1].expect = "next"
        self._mark_safe(pos)

    def scan(self) -> None:  # noqa: C901 - one state machine reads best in one place
        text = self.text
        n = len(text)
        i = 0
        while i < n:
            ch = text[i]
            if ch in _WHITESPACE:
                i += 1
                continue

            frame = self.stack[-1] if self.stack else None
            expect = frame.expect if frame else "value"

            if ch == '"':
                end = _string_end(text, i)
                if end is None:
                    return  # unterminated string: dangling
                if frame is not None and frame.kind == "{" and expect == "key":
                    try:
                        frame.key = json.loads(text[i : end + 1])
                    except ValueError:
                        return
                    frame.count += 1
                    frame.expect = "colon"
                elif expect == "value":
                    self._value_started()
                    self._value_finished(end + 1)
                else:
                    return
                i = end + 1
            elif ch in "{[":
                if expect != "value":
                    return
                path = self._child_path()
                self._value_started()
                self.stack.append(
                    _Frame(kind=ch, path=path, expect="key" if ch == "{" else "value")
                )
                self._mark_safe(i + 1)
                i += 1
            elif ch in "}]":
                if frame is None or _CLOSERS[frame.kind] != ch:
                    return
                # `{"a": }` or `[1, ]` are structural errors, not truncation
                opening = "key" if frame.kind == "{" else "value"
                if expect != "next" and not (expect == opening and frame.count == 0):
                    return
                self.stack.pop()
                self._value_finished(i + 1)
                i += 1
                if self.root_closed_at is not None:
                    return
            elif ch == ":":
                if frame is None or frame.kind != "{" or expect != "colon":
                    return
                frame.expect = "value"
                i += 1
            elif ch == ",":
                if frame is None or expect != "next":
                    return
                frame.expect = "key" if frame.kind == "{" else "value"
                i += 1
            elif ch in _NUMBER_CHARS:
                if expect != "value":
                    return
                j = i
                while j < n and text[j] in _NUMBER_CHARS:
                    j += 1
                if j == n:
                    return  # the number may still grow
                try:
                    json.loads(text[i:j])
                except ValueError:
                    return
                self._value_started()
                self._value_finished(j)
                i = j
            else:
                if expect != "value":
                    return
                literal = next((lit for lit in _LITERALS if lit.startswith(ch)), None)
                if literal is None or not text.startswith(literal, i):
                    return  # garbage, or a literal cut short
                self._value_started()
                self._value_finished(i + len(literal))
                i += len(literal)


def _string_end(text: str, start: int) -> int | None:
    """Index of the closing quote of the string opening at `start`."""
    escaped = False
    for j in range(start + 1, len(text)):
        ch = text[j]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            return j
    return None


def mend_prefix(text: str) -> MendResult | None:
    """Repair a truncated JSON prefix.

    Returns None when there is not yet enough text to produce a document;
    that is not an error, the caller just waits for more tokens.
    """
    # Skip a Markdown fence or any preamble the model writes before the JSON
    start = next((i for i, ch in enumerate(text) if ch in "{["), None)
    if start is None:
        return None
    body = text[start:]

    scanner = _PrefixScanner(body)
    scanner.scan()

    if scanner.root_closed_at is not None:
        return MendResult(text=body[: scanner.root_closed_at], complete=True)
    if scanner.cut is None:
        return None

    closers = "".join(_CLOSERS[kind] for kind, _ in reversed(scanner.cut_frames))
    repaired = body[: scanner.cut] + closers
    try:
        json.loads(repaired)
    except ValueError:
        logger.debug("Repaired prefix still unparseable (len=%d)", len(repaired))
        return None
    return MendResult(
        text=repaired,
        complete=False,
        open_paths=frozenset(path for _, path in scanner.cut_frames),
    )


def mend(text: str) -> str | None:
    """Return the repaired JSON text for `text`, or None if insufficient data."""
    result = mend_prefix(text)
    return result.text if result is not None else None
