from __future__ import annotations

from typing import Any

SCHEMA_NAME = "translation-schema"


def translation_response_schema(target_langs: list[str], count: int) -> dict[str, Any]:
    """
    JSON schema for a batch response: exactly `count` objects, in input order, each mapping every
    target language code to its translated text.
    """
    return {
        "type": "array",
        "minItems": count,
        "maxItems": count,
        "items": {
            "type": "object",
            "properties": {lang: {"type": "string"} for lang in target_langs},
            "required": list(target_langs),
            "additionalProperties": {"type": "string"},
        },
    }
