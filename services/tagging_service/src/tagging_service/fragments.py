from __future__ import annotations

from transtag_core import markers
from tagging_service.extractor import MarkupExtractor, has_markup
from tagging_service.resolver import ResolvedScope
from tagging_service.tagger import HashTagger, TagResult


class FragmentProcessor:
    """Extractor first (when the fragment carries multi-language markup), tagger otherwise."""

    def __init__(self, tagger: HashTagger, extractor: MarkupExtractor | None = None) -> None:
        self.tagger = tagger
        self.extractor = extractor

    def process(self, text: str, *, scope: ResolvedScope | None = None, html: bool = False) -> TagResult:
        if self.extractor is not None and not markers.is_tagged(text) and has_markup(text):
            result = self.extractor.extract(text, scope=scope, html=html)
            if result.changed:
                return TagResult(text=result.text, identifier=result.identifier, changed=True)
        return self.tagger.tag(text, scope=scope, html=html)
