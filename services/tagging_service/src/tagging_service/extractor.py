"""
Multi-language markup extraction.

Authors sometimes write every language variant inline, either as
`<span lang="es" class="multilang">Hola</span>` spans or as `{mlang es}Hola{mlang}` blocks. Extraction
turns each variant into its own translation record and replaces the whole markup with the source text
followed by a single marker. The rewrite is destructive: the spans are gone from the content afterwards.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from transtag_core import markers
from transtag_core.db.enums import ScopeLevel
from transtag_core.identity import normalize_source_text
from transtag_core.translations import TranslationStore
from tagging_service.resolver import ResolvedScope
from tagging_service.tagger import HashTagger

logger = logging.getLogger(__name__)

# Code authors use for "the original text" regardless of what language it is in.
DEFAULT_BLOCK_LANG = "other"

SPAN_RE = re.compile(
    r"<span\b"
    r"(?=[^>]*\bclass\s*=\s*[\"']?multilang\b)"
    r"(?=[^>]*\blang\s*=\s*[\"']?(?P<lang>[A-Za-z_-]+))"
    r"[^>]*>(?P<text>.*?)</span>",
    re.S | re.I,
)
MLANG_RE = re.compile(r"\{mlang\s+(?P<lang>[A-Za-z_-]+)\s*\}(?P<text>.*?)\{mlang\}", re.S | re.I)

_SPACES = re.compile(r"[ \t]{2,}")


@dataclass(frozen=True)
class LanguageBlock:
    lang: str
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class ExtractionResult:
    text: str
    identifier: str | None
    languages: list[str] = field(default_factory=list)
    changed: bool = False


def find_blocks(text: str) -> list[LanguageBlock]:
    found = [
        LanguageBlock(lang=m.group("lang").lower(), text=m.group("text").strip(), start=m.start(), end=m.end())
        for pattern in (SPAN_RE, MLANG_RE)
        for m in pattern.finditer(text)
    ]
    found.sort(key=lambda b: b.start)
    blocks: list[LanguageBlock] = []
    for block in found:
        # Nested or overlapping markup: the outermost (earliest) block wins.
        if blocks and block.start < blocks[-1].end:
            continue
        blocks.append(block)
    return blocks


def has_markup(text: str | None) -> bool:
    return bool(text) and bool(SPAN_RE.search(text) or MLANG_RE.search(text))


class MarkupExtractor:
    def __init__(
        self,
        store: TranslationStore,
        tagger: HashTagger,
        *,
        site_language: str,
        languages: list[str],
        interface_language: str | None = None,
    ) -> None:
        self.store = store
        self.tagger = tagger
        self.site_language = site_language.lower()
        self.languages = {lang.lower() for lang in languages} | {self.site_language}
        self.interface_language = (interface_language or site_language).lower()

    def _is_default(self, lang: str) -> bool:
        return lang in (DEFAULT_BLOCK_LANG, self.site_language)

    def extract(self, text: str, *, scope: ResolvedScope | None = None, html: bool = False) -> ExtractionResult:
        if markers.is_tagged(text):
            return ExtractionResult(text=text, identifier=markers.extract_identifier(text))
        blocks = find_blocks(text)
        if not blocks:
            return ExtractionResult(text=text, identifier=None)

        defaults: list[str] = []
        translations: dict[str, str] = {}
        first_text: str | None = None
        outside: list[str] = []
        cursor = 0
        for block in blocks:
            outside.append(text[cursor : block.start])
            cursor = block.end
            if self._is_default(block.lang):
                if block.text:
                    defaults.append(block.text)
            elif block.lang in self.languages:
                if block.text:
                    translations[block.lang] = f"{translations.get(block.lang, '')} {block.text}".strip()
            else:
                logger.info("Dropping multi-language block with unknown language %r", block.lang)
                continue
            if first_text is None and block.text:
                first_text = block.text
        outside.append(text[cursor:])
        plain = normalize_source_text("".join(outside))

        if defaults:
            source = " ".join(defaults)
            identifier = self.tagger.resolve_identifier(source)
            rewritten = self._rewrite(text, blocks, source)
        elif plain and self.interface_language == self.site_language:
            source = plain
            identifier = self.tagger.resolve_identifier(source)
            rewritten = plain
        elif first_text is not None:
            source = first_text
            identifier = self.tagger.resolve_identifier(source)
            rewritten = self._rewrite(text, blocks, source)
        else:
            return ExtractionResult(text=text, identifier=None)

        level = scope.level if scope else ScopeLevel.system
        self.store.ensure_source(identifier, source, scope_level=level)
        for lang, value in sorted(translations.items()):
            self.store.insert_if_absent(identifier, lang, value, scope_level=level, human=True)
        if scope is not None:
            self.tagger.mapper.ensure_mapping(identifier, scope.scope_id)

        return ExtractionResult(
            text=markers.append_marker(rewritten, identifier, html=html),
            identifier=identifier,
            languages=sorted(translations),
            changed=True,
        )

    @staticmethod
    def _rewrite(text: str, blocks: list[LanguageBlock], source: str) -> str:
        pieces: list[str] = []
        cursor = 0
        for idx, block in enumerate(blocks):
            pieces.append(text[cursor : block.start])
            if idx == 0:
                pieces.append(source)
            cursor = block.end
        pieces.append(text[cursor:])
        return _SPACES.sub(" ", "".join(pieces)).strip()
