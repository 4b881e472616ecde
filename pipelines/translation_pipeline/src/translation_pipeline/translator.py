from __future__ import annotations

import logging

from transtag_contracts.schemas import translation_response_schema
from transtag_contracts.validate import ValidationError, assert_translations_complete, validate_json
from transtag_core.errors import TranstagError
from translation_pipeline.llm.client import LLMClient
from translation_pipeline.prompts import render_translation_prompt

logger = logging.getLogger(__name__)


class ResponseValidationError(TranstagError):
    def __init__(self, message: str, *, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class BatchTranslator:
    """One API call translating a batch of texts into every target language."""

    def __init__(self, llm: LLMClient, *, system_instructions: str) -> None:
        self.llm = llm
        self.system_instructions = system_instructions

    def translate(self, texts: list[str], target_langs: list[str]) -> list[dict[str, str]]:
        schema = translation_response_schema(target_langs, len(texts))
        resp = self.llm.complete_json(
            system=self.system_instructions,
            prompt=render_translation_prompt(texts, target_langs),
            schema=schema,
        )
        if resp.json is None:
            raise ResponseValidationError("Response is not valid JSON", raw_text=resp.raw_text)
        try:
            validate_json(resp.json, schema)
            assert_translations_complete(resp.json, target_langs)
        except ValidationError as exc:
            raise ResponseValidationError(f"Response failed validation: {exc.message}", raw_text=resp.raw_text) from exc
        logger.debug(
            "Translated %d text(s) into %s (model=%s, tokens=%s/%s)",
            len(texts),
            ",".join(target_langs),
            resp.model_name,
            resp.prompt_tokens,
            resp.completion_tokens,
        )
        return [{lang: item[lang] for lang in target_langs} for item in resp.json]
