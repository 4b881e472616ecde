from __future__ import annotations

from dataclasses import dataclass

from transtag_core.db.enums import ScopeLevel


@dataclass(frozen=True)
class SourceItem:
    identifier: str
    text: str
    scope_level: ScopeLevel = ScopeLevel.system


# (max item length, max items per batch, max total characters per batch)
TIERS: tuple[tuple[int, int, int], ...] = (
    (200, 10, 2000),
    (400, 5, 1500),
    (600, 3, 1200),
)
# Anything longer is translated alone.
LONG_TEXT_LIMIT = (1, 600)


def limits_for(length: int, batch_size: int) -> tuple[int, int]:
    """(max items, max characters) for a batch accepting an item of `length` characters."""
    for max_len, max_items, max_chars in TIERS:
        if length < max_len:
            return min(max_items, batch_size), max_chars
    return LONG_TEXT_LIMIT


def plan_batches(items: list[SourceItem], batch_size: int) -> list[list[SourceItem]]:
    """
    Group items in order so that short texts share a request while long ones go alone.
    """
    batch_size = max(1, batch_size)
    batches: list[list[SourceItem]] = []
    current: list[SourceItem] = []
    current_chars = 0
    for item in items:
        length = len(item.text)
        max_items, max_chars = limits_for(length, batch_size)
        if current and (len(current) >= max_items or current_chars + length > max_chars):
            batches.append(current)
            current, current_chars = [], 0
        current.append(item)
        current_chars += length
        if len(current) >= max_items:
            batches.append(current)
            current, current_chars = [], 0
    if current:
        batches.append(current)
    return batches
