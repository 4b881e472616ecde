from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from transtag_core.content import ContentStore
from transtag_core.db.models import utcnow
from transtag_core.errors import ScopeResolutionError
from transtag_core.registry import ScopeLinkKind, TableRegistry, TableSpec
from transtag_core.scopes import ScopeMapper
from transtag_core.settings import parse_languages
from transtag_core.translations import TranslationStore
from tagging_service.cursor import advance, load_cursor, reset
from tagging_service.extractor import MarkupExtractor
from tagging_service.fragments import FragmentProcessor
from tagging_service.resolver import ScopeResolver
from tagging_service.tagger import HashTagger

logger = logging.getLogger(__name__)


@dataclass
class TagRunResult:
    processed: int = 0
    updated_rows: int = 0
    skipped: int = 0
    errors: int = 0
    completed_pass: bool = False
    stopped_at: tuple[str, int] | None = None


def build_processor(
    session: Session,
    *,
    site_language: str,
    languages: str | list[str],
    interface_language: str | None = None,
    extract_markup: bool = True,
    clock: Callable[[], datetime] = utcnow,
) -> FragmentProcessor:
    store = TranslationStore(session, clock=clock)
    tagger = HashTagger(store, ScopeMapper(session))
    extractor = None
    if extract_markup:
        extractor = MarkupExtractor(
            store,
            tagger,
            site_language=site_language,
            languages=parse_languages(languages),
            interface_language=interface_language,
        )
    return FragmentProcessor(tagger, extractor)


class ContentTagger:
    """
    Resumable tagging pass over every registry table.

    Tables are visited in name order and rows in ascending id. A persisted cursor remembers where the
    previous run stopped, so successive budget-limited runs eventually cover the whole store and then
    start over.
    """

    def __init__(
        self,
        session: Session,
        registry: TableRegistry,
        processor: FragmentProcessor,
        *,
        records_per_run: int = 1000,
        page_size: int = 20,
        cursor_name: str = "tagcontent",
    ) -> None:
        if records_per_run <= 0 or page_size <= 0:
            raise ValueError("records_per_run and page_size must be positive")
        self.session = session
        self.registry = registry
        self.processor = processor
        self.records_per_run = records_per_run
        self.page_size = page_size
        self.cursor_name = cursor_name
        self.content = ContentStore(session)
        self.resolver = ScopeResolver(self.content, registry)

    def usable_tables(self) -> list[TableSpec]:
        return [spec for spec in self.registry.ordered() if self.resolver.is_usable(spec)]

    def run(self) -> TagRunResult:
        result = TagRunResult()
        specs = self.usable_tables()
        cursor = load_cursor(self.session, self.cursor_name)
        if not specs:
            logger.warning("No registry tables exist in the content store; nothing to tag")
            self.session.commit()
            return result

        names = [spec.name for spec in specs]
        if cursor.current_table in names:
            start = names.index(cursor.current_table)
            last_id = cursor.last_id
        else:
            if cursor.current_table:
                logger.warning("Cursor table %s is no longer scanned; restarting pass", cursor.current_table)
            start, last_id = 0, 0
        logger.info("Tagging from %s id>%d (budget %d)", names[start], last_id, self.records_per_run)

        for idx in range(start, len(specs)):
            spec = specs[idx]
            while True:
                remaining = self.records_per_run - result.processed
                if remaining <= 0:
                    advance(cursor, spec.name, last_id)
                    self.session.commit()
                    result.stopped_at = (spec.name, last_id)
                    logger.info("Budget exhausted; paused at %s id=%d", spec.name, last_id)
                    return result
                rows = self.content.scan(spec.name, after_id=last_id, limit=min(self.page_size, remaining))
                if not rows:
                    next_table = names[idx + 1] if idx + 1 < len(names) else None
                    advance(cursor, next_table, 0)
                    self.session.commit()
                    last_id = 0
                    break
                for row in rows:
                    self._process_row(spec, row, result)
                    last_id = row["id"]
                    result.processed += 1
                advance(cursor, spec.name, last_id)
                self.session.commit()

        reset(cursor)
        self.session.commit()
        result.completed_pass = True
        logger.info(
            "Tagging pass complete: %d processed, %d updated, %d skipped, %d errors",
            result.processed,
            result.updated_rows,
            result.skipped,
            result.errors,
        )
        return result

    def rebuild_scope(self, scope_id: int) -> TagRunResult:
        """Re-tag every registry row owned by `scope_id`, regardless of the cursor."""
        result = TagRunResult()
        for spec in self.usable_tables():
            if spec.scope.kind is ScopeLinkKind.none:
                continue
            for row in self.content.iter_rows(spec.name, page_size=max(self.page_size, 100)):
                try:
                    resolved = self.resolver.resolve(spec, row)
                except ScopeResolutionError:
                    continue
                if resolved.scope_id != scope_id:
                    continue
                self._process_row(spec, row, result)
                result.processed += 1
            self.session.commit()
        result.completed_pass = True
        logger.info("Rebuilt scope %d: %d rows, %d updated", scope_id, result.processed, result.updated_rows)
        return result

    def _process_row(self, spec: TableSpec, row: dict[str, Any], result: TagRunResult) -> None:
        try:
            with self.session.begin_nested():
                scope = self.resolver.resolve(spec, row)
                updates: dict[str, str] = {}
                for name in spec.fields:
                    value = row.get(name)
                    if not isinstance(value, str) or not value.strip():
                        continue
                    tagged = self.processor.process(value, scope=scope, html=name in spec.html_fields)
                    if tagged.changed and tagged.text != value:
                        updates[name] = tagged.text
                if updates:
                    self.content.update_fields(spec.name, row["id"], updates)
                    result.updated_rows += 1
        except ScopeResolutionError as exc:
            logger.warning("Skipping unresolvable row: %s", exc)
            result.skipped += 1
        except SQLAlchemyError as exc:
            logger.error("Failed to tag %s id=%s: %s", spec.name, row.get("id"), exc)
            result.errors += 1
