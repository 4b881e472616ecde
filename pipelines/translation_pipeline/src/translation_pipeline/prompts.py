from __future__ import annotations


def render_translation_prompt(texts: list[str], target_langs: list[str]) -> str:
    n = len(texts)
    langs = ", ".join(target_langs)
    lines = [
        f"Translate the following {n} texts into the following languages: {langs}.",
        f"Return the result as a JSON array containing exactly {n} elements, one per input text, in the same order.",
        f"Each element must be an object whose keys are the language codes ({langs}) and whose values are the "
        "translated texts.",
        "Preserve HTML tags, placeholders and inline markers such as {t:...} exactly as they appear.",
        "Do not add explanations or any text outside the JSON array.",
        "",
        "Texts to translate:",
    ]
    for idx, text in enumerate(texts, start=1):
        lines.append(f"{idx}. {text}")
    return "\n".join(lines)
