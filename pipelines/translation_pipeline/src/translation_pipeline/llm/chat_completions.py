from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from transtag_contracts.schemas import SCHEMA_NAME
from transtag_core.errors import TranstagError
from translation_pipeline.llm.client import LLMResponse
from translation_pipeline.settings import settings

logger = logging.getLogger(__name__)


class TranslationApiError(TranstagError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(TranslationApiError):
    def __init__(self, message: str, *, retry_after_s: float | None = None):
        super().__init__(message, status_code=429)
        self.retry_after_s = retry_after_s


class EndpointNotFoundError(TranslationApiError):
    """404 from the API: the endpoint or model is misconfigured, retrying cannot help."""


def _extract_json_value(text: str) -> Any | None:
    """
    Best-effort extraction when providers wrap JSON in additional text (e.g. markdown fences).
    Returns the first parsable JSON array or object found, else None.
    """
    text = text.strip()
    if not text:
        return None

    try:
        return json.loads(text)
    except ValueError:
        pass

    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    opener = text[start]
    closer = "]" if opener == "[" else "}"

    depth = 0
    in_str = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(text[start : i + 1])
                except ValueError:
                    return None
    return None


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:500]
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
    return resp.text[:500]


def _retry_after(resp: httpx.Response) -> float | None:
    value = resp.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


@dataclass
class ChatCompletionsClient:
    """
    OpenAI-compatible chat completions client.

    - POST {base_url}/chat/completions
    - Authorization: Bearer <key>
    - response_format json_schema with the caller's schema

    One request per call; retry policy belongs to the caller.
    """

    api_key: str
    base_url: str = settings.api_endpoint
    model: str = settings.api_model
    timeout_s: float = settings.api_timeout_s
    connect_timeout_s: float = settings.api_connect_timeout_s
    temperature: float | None = settings.llm_temperature
    http2: bool = True
    transport: httpx.BaseTransport | None = None
    _client: httpx.Client | None = field(default=None, init=False, repr=False)

    def _new_client(self) -> httpx.Client:
        timeout = httpx.Timeout(self.timeout_s, connect=self.connect_timeout_s)
        if self.transport is not None:
            return httpx.Client(timeout=timeout, transport=self.transport)
        return httpx.Client(timeout=timeout, http2=self.http2)

    def __enter__(self) -> "ChatCompletionsClient":
        if self._client is None:
            self._client = self._new_client()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def url(self) -> str:
        base = self.base_url.rstrip("/")
        return base if base.endswith("/chat/completions") else base + "/chat/completions"

    def complete_json(self, *, system: str, prompt: str, schema: dict[str, Any]) -> LLMResponse:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": SCHEMA_NAME, "schema": schema},
            },
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature

        client = self._client or self._new_client()
        try:
            resp = client.post(self.url, headers=headers, json=payload)
        except httpx.TransportError as exc:
            raise TranslationApiError(f"Request to {self.url} failed: {exc}") from exc
        finally:
            if client is not self._client:
                client.close()

        if resp.status_code == 429:
            raise RateLimitedError(f"Rate limited by {self.url}: {_error_message(resp)}", retry_after_s=_retry_after(resp))
        if resp.status_code == 404:
            raise EndpointNotFoundError(
                f"{self.url} returned 404; check the endpoint and model ({self.model})", status_code=404
            )
        if resp.status_code != 200:
            raise TranslationApiError(
                f"API error {resp.status_code} from {self.url}: {_error_message(resp)}", status_code=resp.status_code
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise TranslationApiError(f"Non-JSON response body from {self.url}", status_code=200) from exc
        choice0 = (data.get("choices") or [{}])[0]
        message = choice0.get("message") or {}
        content = message.get("content") or ""

        usage = data.get("usage") or {}
        return LLMResponse(
            raw_text=content,
            json=_extract_json_value(content),
            model_name=data.get("model") or self.model,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )
