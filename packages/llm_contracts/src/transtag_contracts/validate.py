from __future__ import annotations

from typing import Any

import jsonschema


class ValidationError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def validate_json(instance: Any, schema: dict[str, Any]) -> None:
    try:
        jsonschema.validate(instance=instance, schema=schema)
    except jsonschema.ValidationError as exc:
        raise ValidationError(exc.message) from exc


def assert_translations_complete(items: list[dict[str, Any]], target_langs: list[str]) -> None:
    """
    Reject blank translations, which the schema alone cannot rule out.
    """
    for idx, item in enumerate(items):
        for lang in target_langs:
            value = item.get(lang)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"item {idx} has an empty translation for {lang!r}")
