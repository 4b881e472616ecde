"""
Registry of host content tables eligible for tagging.

Each entry names the text fields to tag, the scope level its records live at, and how to walk from a
row to the top-level scope (container) that owns it. Relationship chains are data: each hop reads a
column on the current row and looks up the row in another table whose `match` column equals it.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from transtag_core.db.enums import ScopeLevel


class ScopeLinkKind(str, Enum):
    # Rows are not owned by any container; tagged without a scope mapping.
    none = "none"
    # The (final) row is itself the container.
    self_ = "self"
    # A column on the (final) row holds the container id.
    column = "column"
    # The (final) row is a module instance; the container comes from the module-instance table.
    module = "module"


class Hop(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    table: str
    match: str = "id"
    where: dict[str, Any] = Field(default_factory=dict)


class ScopeLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ScopeLinkKind = ScopeLinkKind.none
    column: str | None = None
    module: str | None = None


class ModuleLink(BaseModel):
    """Where module instances are registered against their container."""

    model_config = ConfigDict(frozen=True)

    instances_table: str = "course_modules"
    instance_column: str = "instance"
    module_column: str = "module"
    scope_column: str = "course"
    modules_table: str = "modules"
    name_column: str = "name"


class TableSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    fields: tuple[str, ...]
    level: ScopeLevel
    chain: tuple[Hop, ...] = ()
    scope: ScopeLink = ScopeLink()
    html_fields: frozenset[str] = frozenset()

    def referenced_tables(self, module_link: ModuleLink) -> list[str]:
        tables = [self.name, *(hop.table for hop in self.chain)]
        if self.scope.kind is ScopeLinkKind.module:
            tables += [module_link.instances_table, module_link.modules_table]
        return tables


class TableRegistry(BaseModel):
    model_config = ConfigDict(frozen=True)

    scope_table: str = "course"
    module_link: ModuleLink = ModuleLink()
    tables: tuple[TableSpec, ...] = ()

    def ordered(self) -> list[TableSpec]:
        return sorted(self.tables, key=lambda spec: spec.name)

    def get(self, name: str) -> TableSpec | None:
        for spec in self.tables:
            if spec.name == name:
                return spec
        return None

    @classmethod
    def from_json_file(cls, path: Path) -> "TableRegistry":
        return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))


def _module(name: str, fields: tuple[str, ...], *, chain: tuple[Hop, ...] = (), module: str | None = None,
            level: ScopeLevel = ScopeLevel.sub_unit, html: tuple[str, ...] = ("intro",)) -> TableSpec:
    return TableSpec(
        name=name,
        fields=fields,
        level=level,
        chain=chain,
        scope=ScopeLink(kind=ScopeLinkKind.module, module=module or name),
        html_fields=frozenset(html),
    )


# question -> quiz goes through the question bank: version -> bank entry reference -> quiz slot.
_QUESTION_TO_QUIZ = (
    Hop(column="id", table="question_versions", match="questionid"),
    Hop(
        column="questionbankentryid",
        table="question_references",
        match="questionbankentryid",
        where={"component": "mod_quiz", "questionarea": "slot"},
    ),
    Hop(column="itemid", table="quiz_slots"),
    Hop(column="quizid", table="quiz"),
)

DEFAULT_REGISTRY = TableRegistry(
    tables=(
        TableSpec(
            name="course",
            fields=("fullname", "shortname", "summary"),
            level=ScopeLevel.container,
            scope=ScopeLink(kind=ScopeLinkKind.self_),
            html_fields=frozenset({"summary"}),
        ),
        TableSpec(
            name="course_sections",
            fields=("name", "summary"),
            level=ScopeLevel.container,
            scope=ScopeLink(kind=ScopeLinkKind.column, column="course"),
            html_fields=frozenset({"summary"}),
        ),
        TableSpec(
            name="course_categories",
            fields=("name", "description"),
            level=ScopeLevel.category,
            html_fields=frozenset({"description"}),
        ),
        _module("assign", ("name", "intro")),
        _module("book", ("name", "intro")),
        _module("book_chapters", ("title", "content"), chain=(Hop(column="bookid", table="book"),), module="book",
                html=("content",)),
        _module("choice", ("name", "intro")),
        _module("choice_options", ("text",), chain=(Hop(column="choiceid", table="choice"),), module="choice",
                html=()),
        _module("forum", ("name", "intro")),
        _module("forum_discussions", ("name",), chain=(Hop(column="forum", table="forum"),), module="forum",
                html=()),
        _module(
            "forum_posts",
            ("subject", "message"),
            chain=(Hop(column="discussion", table="forum_discussions"), Hop(column="forum", table="forum")),
            module="forum",
            html=("message",),
        ),
        _module("glossary", ("name", "intro")),
        _module("glossary_entries", ("concept", "definition"), chain=(Hop(column="glossaryid", table="glossary"),),
                module="glossary", html=("definition",)),
        _module("label", ("name", "intro")),
        _module("lesson", ("name", "intro")),
        _module("lesson_pages", ("title", "contents"), chain=(Hop(column="lessonid", table="lesson"),),
                module="lesson", html=("contents",)),
        _module(
            "lesson_answers",
            ("answer", "response"),
            chain=(Hop(column="pageid", table="lesson_pages"), Hop(column="lessonid", table="lesson")),
            module="lesson",
            html=("answer", "response"),
        ),
        _module("page", ("name", "intro", "content"), html=("intro", "content")),
        _module("quiz", ("name", "intro")),
        _module("quiz_sections", ("heading",), chain=(Hop(column="quizid", table="quiz"),), module="quiz", html=()),
        _module("question", ("name", "questiontext", "generalfeedback"), chain=_QUESTION_TO_QUIZ, module="quiz",
                html=("questiontext", "generalfeedback")),
        _module(
            "question_answers",
            ("answer", "feedback"),
            chain=(Hop(column="question", table="question"), *_QUESTION_TO_QUIZ),
            module="quiz",
            html=("answer", "feedback"),
        ),
        _module("resource", ("name", "intro")),
        _module("url", ("name", "intro")),
        _module("wiki", ("name", "intro")),
        _module(
            "wiki_pages",
            ("title", "cachedcontent"),
            chain=(Hop(column="subwikiid", table="wiki_subwikis"), Hop(column="wikiid", table="wiki")),
            module="wiki",
            html=("cachedcontent",),
        ),
        _module("workshop", ("name", "intro")),
        _module("workshop_submissions", ("title", "content"), chain=(Hop(column="workshopid", table="workshop"),),
                module="workshop", html=("content",)),
    )
)
