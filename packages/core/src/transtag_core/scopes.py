from __future__ import annotations

from typing import Iterable

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from transtag_core.db.models import ScopeMapping, Translation


class ScopeMapper:
    """Many-to-many association between identifiers and the top-level scopes they appear in."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def ensure_mapping(self, identifier: str | None, scope_id: int | None) -> bool:
        if not identifier or not scope_id:
            return False
        if self.session.get(ScopeMapping, (identifier, scope_id)) is not None:
            return False
        try:
            with self.session.begin_nested():
                self.session.add(ScopeMapping(identifier=identifier, scope_id=scope_id))
                self.session.flush()
        except IntegrityError:
            return False
        return True

    def identifiers_for_scope(self, scope_id: int) -> list[str]:
        return list(
            self.session.scalars(
                select(ScopeMapping.identifier)
                .where(ScopeMapping.scope_id == scope_id)
                .order_by(ScopeMapping.identifier)
            )
        )

    def scopes_for_identifier(self, identifier: str) -> list[int]:
        return list(
            self.session.scalars(
                select(ScopeMapping.scope_id)
                .where(ScopeMapping.identifier == identifier)
                .order_by(ScopeMapping.scope_id)
            )
        )

    def mapped_scope_ids(self) -> list[int]:
        return list(self.session.scalars(select(ScopeMapping.scope_id).distinct().order_by(ScopeMapping.scope_id)))

    def delete_for_scopes(self, scope_ids: Iterable[int]) -> int:
        ids = list(scope_ids)
        removed = 0
        for start in range(0, len(ids), 500):
            chunk = ids[start : start + 500]
            result = self.session.execute(delete(ScopeMapping).where(ScopeMapping.scope_id.in_(chunk)))
            removed += result.rowcount or 0
        return removed

    def delete_orphaned(self) -> int:
        """Remove mappings whose identifier has no translation records at all."""
        result = self.session.execute(
            delete(ScopeMapping)
            .where(~exists().where(Translation.identifier == ScopeMapping.identifier))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def remove(self, scope_id: int, identifiers: Iterable[str]) -> int:
        ids = list(identifiers)
        if not ids:
            return 0
        result = self.session.execute(
            delete(ScopeMapping).where(ScopeMapping.scope_id == scope_id, ScopeMapping.identifier.in_(ids))
        )
        return result.rowcount or 0
