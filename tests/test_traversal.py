from __future__ import annotations

import pytest

from conftest import add_rows, host_row
from transtag_core import markers
from transtag_core.db.enums import ScopeLevel
from transtag_core.db.models import ScanCursor
from transtag_core.registry import DEFAULT_REGISTRY, ModuleLink, TableRegistry, TableSpec
from tagging_service.cursor import is_idle, load_cursor
from tagging_service.traversal import ContentTagger, build_processor

SMALL_REGISTRY = TableRegistry(
    tables=(
        TableSpec(name="forum_discussions", fields=("name",), level=ScopeLevel.sub_unit),
        TableSpec(name="course_categories", fields=("name", "description"), level=ScopeLevel.category),
        TableSpec(name="not_installed", fields=("name",), level=ScopeLevel.sub_unit),
    )
)


def _tagger(session, clock, registry, **kwargs) -> ContentTagger:
    processor = build_processor(session, site_language="en", languages="en,es,fr", clock=clock)
    return ContentTagger(session, registry, processor, **kwargs)


def _seed_course(session) -> None:
    add_rows(session, "course", {"id": 1, "fullname": "Course One", "shortname": "C1", "summary": "<p>About</p>"})
    add_rows(session, "course_sections", {"id": 5, "course": 1, "name": "Week 1", "summary": None})
    add_rows(session, "course_categories", {"id": 3, "name": "Science", "description": ""})
    add_rows(session, "modules", {"id": 1, "name": "forum"}, {"id": 2, "name": "quiz"})
    add_rows(
        session,
        "course_modules",
        {"id": 100, "course": 1, "module": 1, "instance": 10},
        {"id": 101, "course": 1, "module": 2, "instance": 20},
    )
    add_rows(session, "forum", {"id": 10, "course": 1, "name": "General forum", "intro": ""})
    add_rows(session, "forum_discussions", {"id": 30, "forum": 10, "name": "Welcome thread"})
    add_rows(
        session,
        "forum_posts",
        {"id": 40, "discussion": 30, "subject": "Hi", "message": "<p>Hello all</p>"},
        {"id": 41, "discussion": 999, "subject": "Lost", "message": "Orphan post"},
    )
    add_rows(session, "quiz", {"id": 20, "course": 1, "name": "Quiz", "intro": ""})
    add_rows(session, "quiz_slots", {"id": 50, "quizid": 20, "slot": 1})
    add_rows(session, "question", {"id": 60, "name": "Q1", "questiontext": "<p>What is two plus two?</p>",
                                   "generalfeedback": ""})
    add_rows(session, "question_versions", {"id": 70, "questionid": 60, "questionbankentryid": 80})
    add_rows(
        session,
        "question_references",
        {"id": 90, "questionbankentryid": 80, "component": "mod_quiz", "questionarea": "slot", "itemid": 50},
    )
    add_rows(session, "question_answers", {"id": 95, "question": 60, "answer": "Four", "feedback": ""})


def test_resume_continues_where_budget_ran_out(session, clock) -> None:
    add_rows(session, "course_categories", *({"id": i, "name": f"Category {i}", "description": ""} for i in range(1, 101)))
    add_rows(session, "forum_discussions", *({"id": i, "forum": 1, "name": f"Thread {i}"} for i in range(1, 11)))

    first = _tagger(session, clock, SMALL_REGISTRY, records_per_run=50, page_size=20).run()
    assert first.processed == 50
    assert first.stopped_at == ("course_categories", 50)
    assert markers.is_tagged(host_row(session, "course_categories", 50)["name"])
    assert not markers.is_tagged(host_row(session, "course_categories", 51)["name"])
    cursor = session.get(ScanCursor, "tagcontent")
    assert (cursor.current_table, cursor.last_id) == ("course_categories", 50)

    second = _tagger(session, clock, SMALL_REGISTRY, records_per_run=100, page_size=20).run()
    assert second.processed == 60
    assert second.completed_pass
    assert all(markers.is_tagged(host_row(session, "course_categories", i)["name"]) for i in range(1, 101))
    assert all(markers.is_tagged(host_row(session, "forum_discussions", i)["name"]) for i in range(1, 11))
    assert is_idle(load_cursor(session, "tagcontent"))


def test_budget_ending_on_table_boundary_moves_to_next_table(session, clock) -> None:
    add_rows(session, "course_categories", *({"id": i, "name": f"Category {i}", "description": ""} for i in range(1, 11)))
    add_rows(session, "forum_discussions", {"id": 1, "forum": 1, "name": "Thread"})

    first = _tagger(session, clock, SMALL_REGISTRY, records_per_run=10, page_size=4).run()
    assert first.stopped_at == ("course_categories", 10)

    second = _tagger(session, clock, SMALL_REGISTRY, records_per_run=10, page_size=4).run()
    assert second.processed == 1
    assert second.completed_pass


def test_second_pass_changes_nothing(session, clock) -> None:
    add_rows(session, "course_categories", {"id": 1, "name": "Science", "description": "<p>All about it</p>"})
    _tagger(session, clock, SMALL_REGISTRY).run()
    before = host_row(session, "course_categories", 1)
    again = _tagger(session, clock, SMALL_REGISTRY).run()
    assert again.updated_rows == 0
    assert host_row(session, "course_categories", 1) == before


def test_unknown_cursor_table_restarts_pass(session, clock) -> None:
    add_rows(session, "course_categories", {"id": 1, "name": "Science", "description": ""})
    session.add(ScanCursor(name="tagcontent", current_table="dropped_table", last_id=77))
    session.commit()
    result = _tagger(session, clock, SMALL_REGISTRY).run()
    assert result.completed_pass
    assert markers.is_tagged(host_row(session, "course_categories", 1)["name"])


def test_default_registry_resolves_scopes(session, clock, mapper) -> None:
    _seed_course(session)
    result = _tagger(session, clock, DEFAULT_REGISTRY).run()
    assert result.completed_pass
    assert result.skipped == 1

    post = host_row(session, "forum_posts", 40)
    post_id = markers.extract_identifier(post["message"])
    assert post["message"] == f"<p>Hello all {{t:{post_id}}}</p>"
    assert mapper.scopes_for_identifier(post_id) == [1]

    question_id = markers.extract_identifier(host_row(session, "question", 60)["questiontext"])
    assert mapper.scopes_for_identifier(question_id) == [1]
    answer_id = markers.extract_identifier(host_row(session, "question_answers", 95)["answer"])
    assert mapper.scopes_for_identifier(answer_id) == [1]

    section_id = markers.extract_identifier(host_row(session, "course_sections", 5)["name"])
    assert mapper.scopes_for_identifier(section_id) == [1]
    course_id = markers.extract_identifier(host_row(session, "course", 1)["fullname"])
    assert mapper.scopes_for_identifier(course_id) == [1]

    category_id = markers.extract_identifier(host_row(session, "course_categories", 3)["name"])
    assert category_id is not None
    assert mapper.scopes_for_identifier(category_id) == []

    orphan = host_row(session, "forum_posts", 41)
    assert orphan["message"] == "Orphan post"


def test_rebuild_scope_only_touches_that_scope(session, clock, mapper) -> None:
    _seed_course(session)
    add_rows(session, "course", {"id": 2, "fullname": "Course Two", "shortname": "C2", "summary": ""})
    add_rows(session, "forum", {"id": 11, "course": 2, "name": "Other forum", "intro": ""})
    add_rows(session, "course_modules", {"id": 102, "course": 2, "module": 1, "instance": 11})

    result = _tagger(session, clock, DEFAULT_REGISTRY).rebuild_scope(1)
    assert result.updated_rows > 0
    assert markers.is_tagged(host_row(session, "forum", 10)["name"])
    assert not markers.is_tagged(host_row(session, "forum", 11)["name"])
    assert not markers.is_tagged(host_row(session, "course", 2)["fullname"])
    assert not markers.is_tagged(host_row(session, "course_categories", 3)["name"])


def test_rejects_non_positive_budget(session, clock) -> None:
    with pytest.raises(ValueError):
        _tagger(session, clock, SMALL_REGISTRY, records_per_run=0)


def test_row_with_empty_chain_column_is_skipped(session, clock) -> None:
    _seed_course(session)
    add_rows(session, "forum_posts", {"id": 42, "discussion": None, "subject": "Loose", "message": "No thread"})

    result = _tagger(session, clock, DEFAULT_REGISTRY).run()
    assert result.completed_pass
    assert result.skipped == 2
    assert host_row(session, "forum_posts", 42)["message"] == "No thread"
    assert markers.is_tagged(host_row(session, "forum_posts", 40)["message"])
    assert markers.is_tagged(host_row(session, "question_answers", 95)["answer"])


def test_bad_module_link_skips_module_rows_without_aborting(session, clock, caplog) -> None:
    _seed_course(session)
    registry = DEFAULT_REGISTRY.model_copy(update={"module_link": ModuleLink(name_column="modname")})

    with caplog.at_level("WARNING"):
        result = _tagger(session, clock, registry).run()
    assert result.completed_pass
    assert result.skipped > 0
    assert "modname" in caplog.text
    assert not markers.is_tagged(host_row(session, "forum", 10)["name"])
    assert markers.is_tagged(host_row(session, "course", 1)["fullname"])
    assert markers.is_tagged(host_row(session, "course_sections", 5)["name"])
