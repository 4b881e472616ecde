from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from transtag_core import markers
from transtag_core.db.enums import ConflictPolicy, ScopeLevel
from transtag_core.db.models import SOURCE_LANG, ScopeMapping, Translation, utcnow
from transtag_core.errors import IdentifierConflictError
from transtag_core.identity import is_numeric, normalize_source_text

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "identifier": Translation.identifier,
    "lang": Translation.lang,
    "text": Translation.text,
    "human": Translation.human,
    "scope_level": Translation.scope_level,
    "reviewed_at": Translation.reviewed_at,
    "modified_at": Translation.modified_at,
}


@dataclass(frozen=True)
class Page:
    items: list[Translation]
    total: int
    page: int
    per_page: int


class TranslationStore:
    """
    Per-language text records keyed by (identifier, lang).

    The store never commits; callers own the transaction boundary.
    """

    def __init__(self, session: Session, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.session = session
        self.clock = clock

    def get(self, identifier: str, lang: str) -> Translation | None:
        return self.session.scalar(
            select(Translation).where(Translation.identifier == identifier, Translation.lang == lang)
        )

    def get_source(self, identifier: str) -> Translation | None:
        return self.get(identifier, SOURCE_LANG)

    def list_languages(self, identifier: str) -> list[str]:
        return list(
            self.session.scalars(
                select(Translation.lang).where(Translation.identifier == identifier).order_by(Translation.lang)
            )
        )

    def missing_languages(self, identifier: str, target_langs: Iterable[str]) -> list[str]:
        present = set(self.list_languages(identifier))
        return [lang for lang in target_langs if lang not in present]

    def display_text(self, identifier: str, lang: str) -> str | None:
        """Text for `lang`, falling back to the source text; None for an unknown identifier."""
        for record in (self.get(identifier, lang), self.get_source(identifier)):
            if record is not None and record.text.strip():
                return record.text
        return None

    def render(self, text: str | None, lang: str) -> str | None:
        """
        Replace each tagged fragment in `text` with its text for `lang`.

        Untagged text between fragments is kept. A fragment whose identifier has no record at all keeps
        its own text with the marker removed. Empty and numeric text is returned as is.
        """
        if not text or is_numeric(text):
            return text
        spans = markers.segments(text)
        if not spans:
            return text
        pieces: list[str] = []
        for start, end, identifier in spans:
            fragment = text[start:end]
            leading = fragment[: len(fragment) - len(fragment.lstrip())]
            shown = self.display_text(identifier, lang)
            pieces.append(leading + (shown if shown is not None else markers.strip_markers(fragment)))
        pieces.append(text[spans[-1][1] :])
        return "".join(pieces)

    def lookup_identifier_by_source(self, text: str) -> str | None:
        return self.session.scalar(
            select(Translation.identifier)
            .where(Translation.lang == SOURCE_LANG, Translation.text == normalize_source_text(text))
            .order_by(Translation.translation_id)
            .limit(1)
        )

    def insert_if_absent(
        self,
        identifier: str,
        lang: str,
        text: str,
        *,
        scope_level: ScopeLevel = ScopeLevel.system,
        human: bool = False,
    ) -> tuple[Translation, bool]:
        existing = self.get(identifier, lang)
        if existing is not None:
            return existing, False
        now = self.clock()
        record = Translation(
            identifier=identifier,
            lang=lang,
            text=text,
            scope_level=scope_level,
            human=human,
            created_at=now,
            modified_at=now,
            reviewed_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(record)
                self.session.flush()
        except IntegrityError:
            # A concurrent writer created the same (identifier, lang) first.
            existing = self.get(identifier, lang)
            if existing is None:
                raise
            return existing, False
        return record, True

    def ensure_source(self, identifier: str, text: str, *, scope_level: ScopeLevel = ScopeLevel.system) -> Translation:
        record, _ = self.insert_if_absent(
            identifier, SOURCE_LANG, normalize_source_text(text), scope_level=scope_level, human=True
        )
        return record

    def upsert(
        self,
        identifier: str,
        lang: str,
        text: str,
        *,
        human: bool,
        scope_level: ScopeLevel | None = None,
    ) -> Translation:
        record, created = self.insert_if_absent(
            identifier, lang, text, scope_level=scope_level or ScopeLevel.system, human=human
        )
        if created:
            return record
        now = self.clock()
        record.text = text
        record.human = human
        record.modified_at = now
        if human:
            record.reviewed_at = now
        if scope_level is not None:
            record.scope_level = scope_level
        self.session.flush()
        return record

    def set_human(self, identifier: str, lang: str, human: bool) -> Translation:
        record = self.get(identifier, lang)
        if record is None:
            raise LookupError(f"No translation {identifier}/{lang}")
        now = self.clock()
        record.human = human
        record.modified_at = now
        if human:
            record.reviewed_at = now
        self.session.flush()
        return record

    def mark_for_revision(self, identifier: str) -> int:
        result = self.session.execute(
            update(Translation)
            .where(Translation.identifier == identifier, Translation.lang != SOURCE_LANG)
            .values(modified_at=self.clock())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def update_source(self, identifier: str, text: str) -> Translation:
        source = self.get_source(identifier)
        if source is None:
            raise LookupError(f"No source record for {identifier}")
        normalized = normalize_source_text(text)
        if source.text == normalized:
            return source
        now = self.clock()
        source.text = normalized
        source.modified_at = now
        source.reviewed_at = now
        self.session.flush()
        flagged = self.mark_for_revision(identifier)
        logger.info("Source of %s changed; %d translation(s) flagged for review", identifier, flagged)
        return source

    def list_untranslated(
        self,
        target_langs: list[str],
        *,
        limit: int | None = None,
        scope_id: int | None = None,
    ) -> list[Translation]:
        """Source records lacking at least one of `target_langs`, oldest first."""
        if not target_langs:
            return []
        other = aliased(Translation)
        present = (
            select(func.count(other.translation_id))
            .where(other.identifier == Translation.identifier, other.lang.in_(target_langs))
            .scalar_subquery()
        )
        stmt = (
            select(Translation)
            .where(Translation.lang == SOURCE_LANG, present < len(target_langs))
            .order_by(Translation.translation_id)
        )
        if scope_id:
            stmt = stmt.where(
                Translation.identifier.in_(select(ScopeMapping.identifier).where(ScopeMapping.scope_id == scope_id))
            )
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def paginate(
        self,
        *,
        page: int = 0,
        per_page: int = 20,
        lang: str | None = None,
        human: bool | None = None,
        needs_review: bool | None = None,
        scope_id: int | None = None,
        sort: str = "identifier",
        descending: bool = False,
    ) -> Page:
        if sort not in SORT_COLUMNS:
            raise ValueError(f"Unsupported sort column {sort!r}; expected one of {sorted(SORT_COLUMNS)}")
        stmt = select(Translation)
        if lang:
            stmt = stmt.where(Translation.lang == lang)
        if human is not None:
            stmt = stmt.where(Translation.human == human)
        if needs_review is not None:
            stmt = stmt.where(Translation.needs_review if needs_review else ~Translation.needs_review)
        if scope_id:
            stmt = stmt.where(
                Translation.identifier.in_(select(ScopeMapping.identifier).where(ScopeMapping.scope_id == scope_id))
            )
        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        column = SORT_COLUMNS[sort]
        stmt = stmt.order_by(column.desc() if descending else column.asc(), Translation.translation_id)
        items = list(self.session.scalars(stmt.offset(page * per_page).limit(per_page)))
        return Page(items=items, total=total, page=page, per_page=per_page)

    def rename_identifier(
        self,
        old: str,
        new: str,
        *,
        policy: ConflictPolicy = ConflictPolicy.reject,
    ) -> int:
        """
        Move every record and scope mapping of `old` to `new`.

        With `reject`, any existing record under `new` aborts the rename. With `merge`, records already
        present under `new` win and the colliding `old` records are dropped. Returns the number of
        records moved.
        """
        if old == new:
            return 0
        occupied = set(self.list_languages(new))
        if occupied and policy is ConflictPolicy.reject:
            raise IdentifierConflictError(old, new, sorted(occupied))

        now = self.clock()
        moved = 0
        with self.session.begin_nested():
            for record in self.session.scalars(select(Translation).where(Translation.identifier == old)).all():
                if record.lang in occupied:
                    self.session.delete(record)
                    continue
                record.identifier = new
                record.modified_at = now
                if record.lang == SOURCE_LANG:
                    record.reviewed_at = now
                moved += 1

            mapped = set(self.session.scalars(select(ScopeMapping.scope_id).where(ScopeMapping.identifier == new)))
            old_scopes = list(self.session.scalars(select(ScopeMapping.scope_id).where(ScopeMapping.identifier == old)))
            self.session.execute(delete(ScopeMapping).where(ScopeMapping.identifier == old))
            for scope_id in old_scopes:
                if scope_id not in mapped:
                    self.session.add(ScopeMapping(identifier=new, scope_id=scope_id))
            self.session.flush()
        logger.info("Renamed %s -> %s (%d record(s) moved, policy=%s)", old, new, moved, policy.value)
        return moved
