from __future__ import annotations

import pytest

from transtag_core import markers
from transtag_core.db.enums import ScopeLevel
from transtag_core.db.models import SOURCE_LANG
from transtag_core.identity import identifier_for
from tagging_service.extractor import MarkupExtractor, find_blocks
from tagging_service.fragments import FragmentProcessor
from tagging_service.resolver import ResolvedScope
from tagging_service.tagger import HashTagger


@pytest.fixture()
def tagger(store, mapper) -> HashTagger:
    return HashTagger(store, mapper)


@pytest.fixture()
def extractor(store, tagger) -> MarkupExtractor:
    return MarkupExtractor(store, tagger, site_language="en", languages=["en", "es", "fr"])


def test_mlang_blocks_become_records(store, extractor) -> None:
    text = "{mlang other}Hello{mlang}{mlang es}Hola{mlang}{mlang fr}Bonjour{mlang}"
    result = extractor.extract(text)

    assert result.changed
    assert result.languages == ["es", "fr"]
    assert result.text == f"Hello {{t:{result.identifier}}}"
    assert markers.find_identifiers(result.text) == [result.identifier]
    assert store.list_languages(result.identifier) == sorted(["es", "fr", SOURCE_LANG])
    assert store.get_source(result.identifier).text == "Hello"
    assert store.get(result.identifier, "es").text == "Hola"
    assert store.get(result.identifier, "fr").human is True


def test_span_syntax_with_site_language_as_default(store, extractor) -> None:
    text = (
        '<span class="multilang" lang="EN">Welcome</span>'
        "<span lang='es' class='multilang'>Bienvenido</span>"
    )
    result = extractor.extract(text)
    assert result.text == f"Welcome {{t:{result.identifier}}}"
    assert store.get(result.identifier, "es").text == "Bienvenido"


def test_default_text_reuses_existing_identifier(store, extractor) -> None:
    store.ensure_source("KnownHello", "Hello")
    result = extractor.extract("{mlang other}Hello{mlang}{mlang es}Hola{mlang}")
    assert result.identifier == "KnownHello"


def test_unknown_language_is_dropped(store, extractor) -> None:
    result = extractor.extract("{mlang other}Hello{mlang}{mlang xx}Zzz{mlang}")
    assert result.languages == []
    assert "Zzz" not in result.text
    assert store.list_languages(result.identifier) == [SOURCE_LANG]


def test_surrounding_text_is_source_without_default_block(store, extractor) -> None:
    text = "Read this {mlang es}Lee esto{mlang}"
    result = extractor.extract(text)
    assert store.get_source(result.identifier).text == "Read this"
    assert result.identifier == identifier_for("Read this")
    assert result.text == f"Read this {{t:{result.identifier}}}"


def test_surrounding_text_reuses_identifier_of_already_tagged_text(store, tagger, extractor) -> None:
    plain = tagger.tag("Read this")
    result = extractor.extract("Read this {mlang es}Lee esto{mlang}")
    assert result.identifier == plain.identifier
    assert store.lookup_identifier_by_source("Read this") == plain.identifier
    assert store.get(plain.identifier, "es").text == "Lee esto"


def test_first_block_source_reuses_existing_identifier(store, tagger) -> None:
    store.ensure_source("KnownHola1", "Hola")
    extractor = MarkupExtractor(store, tagger, site_language="en", languages=["es", "fr"], interface_language="de")
    result = extractor.extract("{mlang es}Hola{mlang}{mlang fr}Bonjour{mlang}")
    assert result.identifier == "KnownHola1"
    assert store.get("KnownHola1", "fr").text == "Bonjour"


def test_first_block_is_source_when_interface_language_differs(store, tagger) -> None:
    extractor = MarkupExtractor(store, tagger, site_language="en", languages=["es", "fr"], interface_language="de")
    result = extractor.extract("Intro {mlang es}Hola{mlang}{mlang fr}Bonjour{mlang}")
    assert store.get_source(result.identifier).text == "Hola"
    assert result.text == f"Intro Hola {{t:{result.identifier}}}"


def test_existing_translation_is_not_overwritten(store, extractor) -> None:
    store.ensure_source("KnownHello", "Hello")
    store.upsert("KnownHello", "es", "Saludos", human=True)
    extractor.extract("{mlang other}Hello{mlang}{mlang es}Hola{mlang}")
    assert store.get("KnownHello", "es").text == "Saludos"


def test_extraction_is_idempotent(store, extractor) -> None:
    first = extractor.extract("{mlang other}Hello{mlang}{mlang es}Hola{mlang}")
    second = extractor.extract(first.text)
    assert not second.changed
    assert second.text == first.text


def test_extraction_maps_scope(store, mapper, extractor) -> None:
    scope = ResolvedScope(level=ScopeLevel.sub_unit, scope_id=3)
    result = extractor.extract("{mlang other}Hello{mlang}{mlang es}Hola{mlang}", scope=scope)
    assert mapper.scopes_for_identifier(result.identifier) == [3]
    assert store.get(result.identifier, "es").scope_level is ScopeLevel.sub_unit


def test_overlapping_blocks_keep_outermost() -> None:
    blocks = find_blocks('{mlang es}<span lang="fr" class="multilang">x</span>{mlang}')
    assert [b.lang for b in blocks] == ["es"]


def test_processor_falls_back_to_tagger(tagger, extractor) -> None:
    processor = FragmentProcessor(tagger, extractor)
    result = processor.process("Plain words")
    assert result.changed
    assert result.text.startswith("Plain words {t:")
