from __future__ import annotations

import logging
from dataclasses import dataclass

from transtag_core import markers
from transtag_core.db.enums import ScopeLevel
from transtag_core.identity import identifier_for, is_numeric, normalize_source_text
from transtag_core.scopes import ScopeMapper
from transtag_core.translations import TranslationStore
from tagging_service.resolver import ResolvedScope

logger = logging.getLogger(__name__)

MAX_SALT = 100


@dataclass(frozen=True)
class TagResult:
    text: str
    identifier: str | None
    changed: bool


class HashTagger:
    """
    Assigns identifiers to text fragments and appends the inline marker.

    Identical source text always resolves to the same identifier, looked up through the store rather
    than any in-process cache so concurrent runs agree.
    """

    def __init__(self, store: TranslationStore, mapper: ScopeMapper) -> None:
        self.store = store
        self.mapper = mapper

    def tag(self, text: str | None, *, scope: ResolvedScope | None = None, html: bool = False) -> TagResult:
        if text is None:
            return TagResult(text="", identifier=None, changed=False)
        level = scope.level if scope else ScopeLevel.system

        identifier = markers.extract_identifier(text)
        if identifier is not None:
            stripped = markers.strip_markers(text)
            if stripped:
                self.store.ensure_source(identifier, stripped, scope_level=level)
            self._map(identifier, scope)
            return TagResult(text=text, identifier=identifier, changed=False)

        source = normalize_source_text(text)
        if not source or is_numeric(source):
            return TagResult(text=text, identifier=None, changed=False)

        identifier = self.resolve_identifier(source)
        self.store.ensure_source(identifier, source, scope_level=level)
        self._map(identifier, scope)
        return TagResult(text=markers.append_marker(source, identifier, html=html), identifier=identifier, changed=True)

    def resolve_identifier(self, source: str) -> str:
        """Identifier already used for `source`, or a fresh one derived from it."""
        existing = self.store.lookup_identifier_by_source(source)
        if existing is not None:
            return existing
        return self.mint_identifier(source)

    def mint_identifier(self, text: str) -> str:
        normalized = normalize_source_text(text)
        for salt in range(MAX_SALT):
            candidate = identifier_for(normalized, salt=salt)
            record = self.store.get_source(candidate)
            if record is None and not self.store.list_languages(candidate):
                return candidate
            if record is not None and record.text == normalized:
                return candidate
            logger.debug("Identifier %s is taken; re-deriving with salt %d", candidate, salt + 1)
        raise RuntimeError(f"Could not derive a free identifier after {MAX_SALT} attempts")

    def _map(self, identifier: str, scope: ResolvedScope | None) -> None:
        if scope is not None:
            self.mapper.ensure_mapping(identifier, scope.scope_id)
