from __future__ import annotations

import re
from transtag_core.hashing import base62, sha256_digest

IDENTIFIER_LENGTH = 10

_NEWLINES = re.compile(r"\r\n?")


def normalize_source_text(text: str) -> str:
    return _NEWLINES.sub("\n", text).strip()


def identifier_for(text: str, *, salt: int = 0) -> str:
    """
    Content-addressable identifier for a fragment: base62 over sha256 of the normalized text.

    `salt` re-derives a different identifier for the rare case where the plain derivation is
    already taken by a different source text.
    """
    name = normalize_source_text(text)
    if salt:
        name = f"{salt}:{name}"
    return base62(sha256_digest(name), IDENTIFIER_LENGTH)


_NUMERIC = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def is_numeric(text: str) -> bool:
    return bool(_NUMERIC.match(text.strip()))
