from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from transtag_core.content import ContentStore
from transtag_core.db.enums import ScopeLevel
from transtag_core.errors import RelationshipMetadataError, ScopeResolutionError, UnknownTableError
from transtag_core.registry import ScopeLinkKind, TableRegistry, TableSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedScope:
    level: ScopeLevel
    scope_id: int | None = None


class ScopeResolver:
    """Walks a row's relationship chain to the container that owns it."""

    def __init__(self, content: ContentStore, registry: TableRegistry) -> None:
        self.content = content
        self.registry = registry
        self._module_ids: dict[str, int] = {}
        self._usable: dict[str, bool] = {}

    def is_usable(self, spec: TableSpec) -> bool:
        """False (with one warning) when the table or any table its chain needs is missing."""
        cached = self._usable.get(spec.name)
        if cached is not None:
            return cached
        missing = [t for t in spec.referenced_tables(self.registry.module_link) if not self.content.has_table(t)]
        if missing:
            logger.warning("Skipping table %s: missing table(s) %s", spec.name, ", ".join(missing))
        self._usable[spec.name] = not missing
        return not missing

    def resolve(self, spec: TableSpec, row: Mapping[str, Any]) -> ResolvedScope:
        current: Mapping[str, Any] = row
        for hop in spec.chain:
            value = current.get(hop.column)
            if value is None:
                raise ScopeResolutionError(f"{spec.name} id={row.get('id')}: {hop.column} is empty")
            found = self._find(spec, hop.table, {hop.match: value, **hop.where})
            if found is None:
                raise ScopeResolutionError(
                    f"{spec.name} id={row.get('id')}: no {hop.table} row with {hop.match}={value}"
                )
            current = found

        link = spec.scope
        if link.kind is ScopeLinkKind.none:
            return ResolvedScope(level=spec.level)
        if link.kind is ScopeLinkKind.self_:
            scope_id = current.get("id")
        elif link.kind is ScopeLinkKind.column:
            scope_id = current.get(link.column or "")
        else:
            scope_id = self._module_scope(spec, link.module or spec.name, current.get("id"))
        if not scope_id:
            raise ScopeResolutionError(f"{spec.name} id={row.get('id')}: owning scope not found")
        return ResolvedScope(level=spec.level, scope_id=int(scope_id))

    def _module_scope(self, spec: TableSpec, module: str, instance_id: Any) -> int | None:
        link = self.registry.module_link
        module_id = self._module_ids.get(module)
        if module_id is None:
            found = self._find(spec, link.modules_table, {link.name_column: module})
            if found is None:
                raise ScopeResolutionError(f"{spec.name}: module {module!r} is not registered")
            module_id = found["id"]
            self._module_ids[module] = module_id
        instance = self._find(
            spec, link.instances_table, {link.module_column: module_id, link.instance_column: instance_id}
        )
        if instance is None:
            raise ScopeResolutionError(f"{spec.name}: no {module} instance {instance_id} in {link.instances_table}")
        return instance.get(link.scope_column)

    def _find(self, spec: TableSpec, table: str, where: Mapping[str, Any]) -> dict[str, Any] | None:
        try:
            return self.content.find_row(table, where)
        except UnknownTableError as exc:
            raise RelationshipMetadataError(f"{spec.name}: {exc}") from exc
