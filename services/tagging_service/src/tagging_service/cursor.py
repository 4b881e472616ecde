from __future__ import annotations

from sqlalchemy.orm import Session

from transtag_core.db.models import ScanCursor, utcnow


def load_cursor(session: Session, name: str) -> ScanCursor:
    cursor = session.get(ScanCursor, name)
    if cursor is None:
        cursor = ScanCursor(name=name, current_table=None, last_id=0)
        session.add(cursor)
        session.flush()
    return cursor


def advance(cursor: ScanCursor, table: str | None, last_id: int, *, key: str | None = None) -> None:
    cursor.current_table = table
    cursor.last_id = last_id
    cursor.last_key = key
    cursor.updated_at = utcnow()


def reset(cursor: ScanCursor) -> None:
    advance(cursor, None, 0)


def is_idle(cursor: ScanCursor) -> bool:
    return not cursor.current_table and not cursor.last_id
