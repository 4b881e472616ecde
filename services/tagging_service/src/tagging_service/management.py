from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from transtag_core import markers
from transtag_core.content import ContentStore
from transtag_core.db.enums import ConflictPolicy
from transtag_core.db.models import utcnow
from transtag_core.identity import normalize_source_text
from transtag_core.registry import TableRegistry
from transtag_core.scopes import ScopeMapper
from transtag_core.translations import TranslationStore
from tagging_service.resolver import ScopeResolver
from tagging_service.tagger import HashTagger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceEdit:
    old_identifier: str
    new_identifier: str
    rewritten_fields: int


def edit_source(
    session: Session,
    registry: TableRegistry,
    identifier: str,
    new_text: str,
    *,
    policy: ConflictPolicy = ConflictPolicy.reject,
    clock: Callable[[], datetime] = utcnow,
) -> SourceEdit:
    """
    Change a fragment's source text.

    The new text gets its own identifier (reusing an existing one when that text is already known), the
    records and mappings move to it, and every marker in content is rewritten. Translations are flagged
    for review. Does not commit.
    """
    store = TranslationStore(session, clock=clock)
    source = store.get_source(identifier)
    if source is None:
        raise LookupError(f"No source record for {identifier}")
    normalized = normalize_source_text(new_text)
    if not normalized:
        raise ValueError("Source text cannot be empty")
    if normalized == source.text:
        return SourceEdit(old_identifier=identifier, new_identifier=identifier, rewritten_fields=0)

    old_text = source.text
    tagger = HashTagger(store, ScopeMapper(session))
    new_identifier = tagger.resolve_identifier(normalized)
    if new_identifier == identifier:
        store.update_source(identifier, normalized)
        return SourceEdit(old_identifier=identifier, new_identifier=identifier, rewritten_fields=0)

    store.rename_identifier(identifier, new_identifier, policy=policy)
    store.update_source(new_identifier, normalized)
    rewritten = rewrite_markers(session, registry, identifier, new_identifier, old_text=old_text, new_text=normalized)
    logger.info("Source %s re-keyed to %s; %d field(s) rewritten", identifier, new_identifier, rewritten)
    return SourceEdit(old_identifier=identifier, new_identifier=new_identifier, rewritten_fields=rewritten)


def rewrite_markers(
    session: Session,
    registry: TableRegistry,
    old: str,
    new: str,
    *,
    old_text: str | None = None,
    new_text: str | None = None,
) -> int:
    """
    Point every content marker for `old` at `new`. Fields whose visible text is exactly `old_text` get
    `new_text` as well.
    """
    content = ContentStore(session)
    resolver = ScopeResolver(content, registry)
    rewritten = 0
    for spec in registry.ordered():
        if not resolver.is_usable(spec):
            continue
        for row in content.search(spec.name, spec.fields, [old]):
            updates: dict[str, str] = {}
            for name in spec.fields:
                value = row.get(name)
                if not isinstance(value, str) or old not in markers.find_identifiers(value):
                    continue
                if new_text is not None and markers.strip_markers(value) == old_text:
                    updates[name] = markers.append_marker(new_text, new, html=name in spec.html_fields)
                else:
                    updates[name] = markers.replace_identifier(value, old, new)
            if updates:
                content.update_fields(spec.name, row["id"], updates)
                rewritten += len(updates)
    return rewritten
