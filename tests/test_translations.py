from __future__ import annotations

import pytest

from transtag_core.db.enums import ConflictPolicy, ScopeLevel
from transtag_core.db.models import SOURCE_LANG, ScopeMapping, Translation
from transtag_core.errors import IdentifierConflictError
from sqlalchemy import select


def test_new_records_start_reviewed(store) -> None:
    record = store.upsert("AAAAAAAAAA", "es", "Hola", human=False)
    assert record.modified_at == record.reviewed_at
    assert record.needs_review is False


def test_upsert_preserves_created_at(store) -> None:
    first = store.upsert("AAAAAAAAAA", "es", "Hola", human=False)
    created = first.created_at
    second = store.upsert("AAAAAAAAAA", "es", "Hola!", human=False)
    assert second.translation_id == first.translation_id
    assert second.created_at == created
    assert second.text == "Hola!"


def test_machine_update_needs_review_and_human_update_clears_it(store) -> None:
    store.upsert("AAAAAAAAAA", "es", "Hola", human=False)
    record = store.upsert("AAAAAAAAAA", "es", "Hola de nuevo", human=False)
    assert record.needs_review is True
    record = store.upsert("AAAAAAAAAA", "es", "Hola otra vez", human=True)
    assert record.needs_review is False
    assert record.human is True


def test_needs_review_is_sql_filterable(session, store) -> None:
    store.upsert("AAAAAAAAAA", "es", "Hola", human=False)
    store.upsert("BBBBBBBBBB", "es", "Adios", human=False)
    store.upsert("BBBBBBBBBB", "es", "Adios!", human=False)
    flagged = session.scalars(select(Translation.identifier).where(Translation.needs_review)).all()
    assert flagged == ["BBBBBBBBBB"]


def test_update_source_marks_translations_for_revision(store) -> None:
    store.ensure_source("AAAAAAAAAA", "Submit")
    store.upsert("AAAAAAAAAA", "es", "Enviar", human=True)
    store.update_source("AAAAAAAAAA", "Send")
    assert store.get_source("AAAAAAAAAA").text == "Send"
    assert store.get_source("AAAAAAAAAA").needs_review is False
    assert store.get("AAAAAAAAAA", "es").needs_review is True


def test_set_human_refreshes_review(store) -> None:
    store.upsert("AAAAAAAAAA", "es", "Hola", human=False)
    store.mark_for_revision("AAAAAAAAAA")
    record = store.set_human("AAAAAAAAAA", "es", True)
    assert record.human is True
    assert record.needs_review is False


def test_set_human_unknown_record(store) -> None:
    with pytest.raises(LookupError):
        store.set_human("AAAAAAAAAA", "es", True)


def test_list_untranslated(store, mapper) -> None:
    store.ensure_source("AAAAAAAAAA", "one")
    store.ensure_source("BBBBBBBBBB", "two")
    store.ensure_source("CCCCCCCCCC", "three")
    store.upsert("AAAAAAAAAA", "es", "uno", human=False)
    store.upsert("AAAAAAAAAA", "fr", "un", human=False)
    store.upsert("BBBBBBBBBB", "es", "dos", human=False)
    mapper.ensure_mapping("CCCCCCCCCC", 5)

    assert [r.identifier for r in store.list_untranslated(["es", "fr"])] == ["BBBBBBBBBB", "CCCCCCCCCC"]
    assert [r.identifier for r in store.list_untranslated(["es"])] == ["CCCCCCCCCC"]
    assert [r.identifier for r in store.list_untranslated(["es", "fr"], limit=1)] == ["BBBBBBBBBB"]
    assert [r.identifier for r in store.list_untranslated(["es", "fr"], scope_id=5)] == ["CCCCCCCCCC"]
    assert store.list_untranslated([]) == []


def test_lookup_identifier_by_source(store) -> None:
    store.ensure_source("AAAAAAAAAA", "Submit")
    store.upsert("BBBBBBBBBB", "es", "Submit", human=False)
    assert store.lookup_identifier_by_source(" Submit ") == "AAAAAAAAAA"
    assert store.lookup_identifier_by_source("Other") is None


def test_rename_moves_records_and_mappings(session, store, mapper) -> None:
    store.ensure_source("AAAAAAAAAA", "Submit", scope_level=ScopeLevel.container)
    store.upsert("AAAAAAAAAA", "es", "Enviar", human=True)
    mapper.ensure_mapping("AAAAAAAAAA", 4)

    moved = store.rename_identifier("AAAAAAAAAA", "NNNNNNNNNN")
    assert moved == 2
    assert store.list_languages("AAAAAAAAAA") == []
    assert store.list_languages("NNNNNNNNNN") == ["es", SOURCE_LANG]
    assert mapper.scopes_for_identifier("NNNNNNNNNN") == [4]
    assert session.scalars(select(ScopeMapping).where(ScopeMapping.identifier == "AAAAAAAAAA")).all() == []


def test_rename_rejects_conflict_by_default(store) -> None:
    store.ensure_source("AAAAAAAAAA", "Submit")
    store.ensure_source("NNNNNNNNNN", "Send")
    with pytest.raises(IdentifierConflictError) as excinfo:
        store.rename_identifier("AAAAAAAAAA", "NNNNNNNNNN")
    assert excinfo.value.languages == [SOURCE_LANG]
    assert store.get_source("AAAAAAAAAA").text == "Submit"


def test_rename_merge_keeps_existing_records(store, mapper) -> None:
    store.ensure_source("AAAAAAAAAA", "Submit")
    store.upsert("AAAAAAAAAA", "es", "Enviar", human=True)
    store.upsert("AAAAAAAAAA", "fr", "Envoyer", human=True)
    store.ensure_source("NNNNNNNNNN", "Send")
    store.upsert("NNNNNNNNNN", "es", "Mandar", human=True)
    mapper.ensure_mapping("AAAAAAAAAA", 1)
    mapper.ensure_mapping("NNNNNNNNNN", 1)
    mapper.ensure_mapping("AAAAAAAAAA", 2)

    moved = store.rename_identifier("AAAAAAAAAA", "NNNNNNNNNN", policy=ConflictPolicy.merge)
    assert moved == 1
    assert store.get_source("NNNNNNNNNN").text == "Send"
    assert store.get("NNNNNNNNNN", "es").text == "Mandar"
    assert store.get("NNNNNNNNNN", "fr").text == "Envoyer"
    assert store.list_languages("AAAAAAAAAA") == []
    assert mapper.scopes_for_identifier("NNNNNNNNNN") == [1, 2]


def test_paginate_filters_and_sorts(store, mapper) -> None:
    store.ensure_source("AAAAAAAAAA", "one")
    store.upsert("AAAAAAAAAA", "es", "uno", human=False)
    store.upsert("BBBBBBBBBB", "es", "dos", human=True)
    store.upsert("CCCCCCCCCC", "fr", "trois", human=False)
    store.upsert("CCCCCCCCCC", "fr", "trois!", human=False)
    mapper.ensure_mapping("BBBBBBBBBB", 9)

    page = store.paginate(lang="es", sort="text", descending=True)
    assert [r.text for r in page.items] == ["uno", "dos"]
    assert page.total == 2
    assert [r.identifier for r in store.paginate(human=True).items] == ["AAAAAAAAAA", "BBBBBBBBBB"]
    assert [r.identifier for r in store.paginate(needs_review=True).items] == ["CCCCCCCCCC"]
    assert [r.identifier for r in store.paginate(scope_id=9).items] == ["BBBBBBBBBB"]

    second = store.paginate(per_page=2, page=1)
    assert second.total == 4
    assert len(second.items) == 2


def test_paginate_rejects_unknown_sort(store) -> None:
    with pytest.raises(ValueError):
        store.paginate(sort="translation_id; drop table")


def test_render_uses_language_then_source(store) -> None:
    store.ensure_source("AAAAAAAAAA", "Submit")
    store.upsert("AAAAAAAAAA", "es", "Enviar", human=False)
    assert store.render("Submit {t:AAAAAAAAAA}", "es") == "Enviar"
    assert store.render("Submit {t:AAAAAAAAAA}", "fr") == "Submit"
    assert store.render("Submit &lt;t:AAAAAAAAAA&gt;", "es") == "Enviar"


def test_render_replaces_every_marker(store) -> None:
    store.ensure_source("AAAAAAAAAA", "Hello")
    store.ensure_source("BBBBBBBBBB", "<p>World</p>")
    store.upsert("AAAAAAAAAA", "es", "Hola", human=True)
    store.upsert("BBBBBBBBBB", "es", "<p>Mundo</p>", human=True)
    text = "Hello {t:AAAAAAAAAA} <p>World {t:BBBBBBBBBB}</p> tail"
    assert store.render(text, "es") == "Hola <p>Mundo</p> tail"


def test_render_leaves_untagged_empty_and_numeric_text(store) -> None:
    assert store.render("Plain words", "es") == "Plain words"
    assert store.render("", "es") == ""
    assert store.render(None, "es") is None
    assert store.render("42", "es") == "42"


def test_render_unknown_identifier_keeps_own_text(store) -> None:
    assert store.render("Submit {t:ZZZZZZZZZZ}", "es") == "Submit"
