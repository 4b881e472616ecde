from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping

from sqlalchemy import MetaData, Table, inspect, or_, select, update
from sqlalchemy.orm import Session

from transtag_core.errors import UnknownTableError
from transtag_core.markers import like_pattern

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class ContentStore:
    """
    Read/write access to the host application's content tables.

    Tables are reflected lazily through the session's own connection, so content rewrites share the
    transaction with the translation records they reference. Every content table is expected to carry
    an integer `id` primary key.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}

    def has_table(self, name: str) -> bool:
        if name in self._tables:
            return True
        return inspect(self.session.connection()).has_table(name)

    def table(self, name: str) -> Table:
        table = self._tables.get(name)
        if table is not None:
            return table
        if not inspect(self.session.connection()).has_table(name):
            raise UnknownTableError(f"Content table {name!r} does not exist")
        table = Table(name, self._metadata, autoload_with=self.session.connection())
        if "id" not in table.c:
            raise UnknownTableError(f"Content table {name!r} has no id column")
        self._tables[name] = table
        return table

    def find_row(self, name: str, where: Mapping[str, Any]) -> Row | None:
        table = self.table(name)
        stmt = select(table)
        for column, value in where.items():
            if column not in table.c:
                raise UnknownTableError(f"Content table {name!r} has no column {column!r}")
            stmt = stmt.where(table.c[column] == value)
        row = self.session.execute(stmt.order_by(table.c.id).limit(1)).first()
        return dict(row._mapping) if row is not None else None

    def scan(self, name: str, *, after_id: int, limit: int) -> list[Row]:
        table = self.table(name)
        rows = self.session.execute(
            select(table).where(table.c.id > after_id).order_by(table.c.id).limit(limit)
        ).all()
        return [dict(row._mapping) for row in rows]

    def iter_rows(self, name: str, *, page_size: int = 500) -> Iterator[Row]:
        last_id = 0
        while True:
            rows = self.scan(name, after_id=last_id, limit=page_size)
            if not rows:
                return
            yield from rows
            last_id = rows[-1]["id"]

    def existing_ids(self, name: str, ids: Iterable[int]) -> set[int]:
        table = self.table(name)
        wanted = list(ids)
        found: set[int] = set()
        for start in range(0, len(wanted), 500):
            chunk = wanted[start : start + 500]
            found.update(self.session.scalars(select(table.c.id).where(table.c.id.in_(chunk))))
        return found

    def search(self, name: str, fields: Iterable[str], needles: Iterable[str]) -> list[Row]:
        """Rows where any of `fields` contains any of `needles` as a substring."""
        table = self.table(name)
        present = [f for f in fields if f in table.c]
        needles = list(needles)
        if not present or not needles:
            return []
        clauses = [table.c[f].like(like_pattern(n)) for f in present for n in needles]
        rows = self.session.execute(select(table).where(or_(*clauses)).order_by(table.c.id)).all()
        return [dict(row._mapping) for row in rows]

    def update_fields(self, name: str, row_id: int, values: Mapping[str, Any]) -> None:
        if not values:
            return
        table = self.table(name)
        self.session.execute(update(table).where(table.c.id == row_id).values(**values))
