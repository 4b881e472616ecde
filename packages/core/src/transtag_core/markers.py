"""
Inline identifier markers.

A tagged fragment carries exactly one marker of the form `{t:XXXXXXXXXX}`. Readers also accept the
angle-bracket form `<t:XXXXXXXXXX>`, whitespace inside the delimiters and the HTML-entity escaped
delimiters editors tend to produce. Everything that recognises a marker goes through this module so the
tagger, the traversal and mapping garbage collection agree on what "tagged" means.
"""

from __future__ import annotations

import re

from transtag_core.identity import IDENTIFIER_LENGTH

_ID = rf"[A-Za-z0-9]{{{IDENTIFIER_LENGTH}}}"
_BRACE_OPEN = r"(?:\{|&\#123;|&\#x7[bB];)"
_BRACE_CLOSE = r"(?:\}|&\#125;|&\#x7[dD];)"
_ANGLE_OPEN = r"(?:<|&lt;)"
_ANGLE_CLOSE = r"(?:>|&gt;)"

MARKER_RE = re.compile(
    rf"{_BRACE_OPEN}\s*t:\s*(?P<brace>{_ID})\s*{_BRACE_CLOSE}"
    rf"|{_ANGLE_OPEN}\s*t:\s*(?P<angle>{_ID})\s*{_ANGLE_CLOSE}"
)
_MARKER_WITH_SPACE = re.compile(r"[ \t]*(?:" + MARKER_RE.pattern + ")")

# Closing tag an HTML field ends with; the marker goes in front of it so it stays inside the block.
_TRAILING_CLOSE_TAG = re.compile(r"^(?P<body>.*?)(?P<close>\s*</(?:p|div|li|span|td|h[1-6])>\s*)$", re.S | re.I)
_CLOSE_TAG = re.compile(r"\s*</(?:p|div|li|span|td|h[1-6])>", re.I)


def identifier_of(match: re.Match[str]) -> str:
    return match.group("brace") or match.group("angle")


def find_identifiers(text: str | None) -> list[str]:
    """All identifiers present in `text`, in order of first appearance."""
    if not text:
        return []
    seen: list[str] = []
    for match in MARKER_RE.finditer(text):
        identifier = identifier_of(match)
        if identifier not in seen:
            seen.append(identifier)
    return seen


def extract_identifier(text: str | None) -> str | None:
    if not text:
        return None
    match = MARKER_RE.search(text)
    return identifier_of(match) if match else None


def is_tagged(text: str | None) -> bool:
    return extract_identifier(text) is not None


def strip_markers(text: str) -> str:
    return _MARKER_WITH_SPACE.sub("", text).strip()


def render_marker(identifier: str) -> str:
    return "{t:" + identifier + "}"


def append_marker(text: str, identifier: str, *, html: bool = False) -> str:
    body = text.strip()
    marker = render_marker(identifier)
    if html:
        match = _TRAILING_CLOSE_TAG.match(body)
        if match and match.group("body").strip():
            return f"{match.group('body').rstrip()} {marker}{match.group('close').strip()}"
    return f"{body} {marker}"


def replace_identifier(text: str, old: str, new: str) -> str:
    """Swap every marker for `old` with the canonical marker for `new`."""

    def _swap(match: re.Match[str]) -> str:
        return render_marker(new) if identifier_of(match) == old else match.group(0)

    return MARKER_RE.sub(_swap, text)


def like_pattern(identifier: str) -> str:
    return f"%{identifier}%"


def segments(text: str) -> list[tuple[int, int, str]]:
    """
    (start, end, identifier) spans of the tagged fragments in `text`.

    A fragment runs from the end of the previous one up to its marker, plus the closing block tag
    `append_marker` may have left right after it.
    """
    spans: list[tuple[int, int, str]] = []
    start = 0
    for match in MARKER_RE.finditer(text):
        end = match.end()
        close = _CLOSE_TAG.match(text, end)
        if close:
            end = close.end()
        spans.append((start, end, identifier_of(match)))
        start = end
    return spans
