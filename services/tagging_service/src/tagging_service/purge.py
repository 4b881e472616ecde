from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from transtag_core import markers
from transtag_core.content import ContentStore
from transtag_core.db.models import ScopeMapping
from transtag_core.errors import RelationshipMetadataError, ScopeResolutionError
from transtag_core.registry import ScopeLinkKind, TableRegistry
from transtag_core.scopes import ScopeMapper
from tagging_service.cursor import advance, load_cursor, reset
from tagging_service.resolver import ScopeResolver

logger = logging.getLogger(__name__)

# Identifiers OR-ed into one LIKE prefilter query.
SEARCH_CHUNK = 50


@dataclass
class PurgeResult:
    missing_scope: int = 0
    orphaned: int = 0
    stale: int = 0
    checked: int = 0


class MappingPurger:
    """
    Garbage collection for scope mappings.

    Mappings are created opportunistically while tagging; this removes the ones that no longer hold.
    Translation records are never touched.
    """

    def __init__(
        self,
        session: Session,
        registry: TableRegistry,
        *,
        batch_size: int = 1000,
        cursor_name: str = "purgemappings",
    ) -> None:
        self.session = session
        self.registry = registry
        self.batch_size = batch_size
        self.cursor_name = cursor_name
        self.content = ContentStore(session)
        self.resolver = ScopeResolver(self.content, registry)
        self.mapper = ScopeMapper(session)
        self._misconfigured: set[str] = set()

    def run(self) -> PurgeResult:
        result = PurgeResult()
        result.missing_scope = self.purge_missing_scopes()
        self.session.commit()
        result.orphaned = self.mapper.delete_orphaned()
        self.session.commit()
        result.checked, result.stale = self.purge_stale()
        self.session.commit()
        logger.info(
            "Purged mappings: %d for deleted scopes, %d orphaned, %d stale (%d verified)",
            result.missing_scope,
            result.orphaned,
            result.stale,
            result.checked,
        )
        return result

    def purge_missing_scopes(self) -> int:
        scope_table = self.registry.scope_table
        if not self.content.has_table(scope_table):
            logger.warning("Scope table %s does not exist; skipping deleted-scope pass", scope_table)
            return 0
        mapped = self.mapper.mapped_scope_ids()
        missing = set(mapped) - self.content.existing_ids(scope_table, mapped)
        return self.mapper.delete_for_scopes(sorted(missing))

    def purge_stale(self) -> tuple[int, int]:
        """
        Verify one batch of mappings against content, continuing from where the last run stopped.
        Returns (checked, removed).
        """
        cursor = load_cursor(self.session, self.cursor_name)
        stmt = select(ScopeMapping.scope_id, ScopeMapping.identifier)
        if cursor.last_id:
            stmt = stmt.where(
                or_(
                    ScopeMapping.scope_id > cursor.last_id,
                    and_(ScopeMapping.scope_id == cursor.last_id, ScopeMapping.identifier > (cursor.last_key or "")),
                )
            )
        rows = self.session.execute(
            stmt.order_by(ScopeMapping.scope_id, ScopeMapping.identifier).limit(self.batch_size)
        ).all()

        by_scope: dict[int, set[str]] = defaultdict(set)
        for scope_id, identifier in rows:
            by_scope[scope_id].add(identifier)

        removed = 0
        for scope_id, identifiers in by_scope.items():
            found = self.identifiers_in_scope(scope_id, identifiers)
            stale = identifiers - found
            if stale:
                logger.debug("Scope %d: removing %d stale mapping(s)", scope_id, len(stale))
                removed += self.mapper.remove(scope_id, stale)

        if len(rows) < self.batch_size:
            reset(cursor)
        else:
            last_scope, last_identifier = rows[-1]
            advance(cursor, ScopeMapping.__tablename__, last_scope, key=last_identifier)
        return len(rows), removed

    def identifiers_in_scope(self, scope_id: int, identifiers: set[str]) -> set[str]:
        """The subset of `identifiers` whose marker appears in content owned by `scope_id`."""
        found: set[str] = set()
        for spec in self.registry.ordered():
            if spec.scope.kind is ScopeLinkKind.none or not self.resolver.is_usable(spec):
                continue
            pending = sorted(identifiers - found)
            for start in range(0, len(pending), SEARCH_CHUNK):
                chunk = set(pending[start : start + SEARCH_CHUNK])
                for row in self.content.search(spec.name, spec.fields, chunk):
                    present = {
                        identifier
                        for name in spec.fields
                        for identifier in markers.find_identifiers(row.get(name))
                    } & chunk
                    if not present - found:
                        continue
                    try:
                        resolved = self.resolver.resolve(spec, row)
                    except RelationshipMetadataError as exc:
                        # Mappings that cannot be verified are kept.
                        if spec.name not in self._misconfigured:
                            logger.warning("Cannot verify mappings in table %s: %s", spec.name, exc)
                            self._misconfigured.add(spec.name)
                        found |= present
                        continue
                    except ScopeResolutionError:
                        continue
                    if resolved.scope_id == scope_id:
                        found |= present
            if found == identifiers:
                break
        return found
