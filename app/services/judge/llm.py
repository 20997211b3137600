"""OpenAI-backed judge returning JSON verdicts and structured extractions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from openai import APIError as OpenAIAPIError
from openai import OpenAI
from openai import OpenAIError as OpenAIBaseError

from app.config import settings
from app.models.company import ContactExtraction
from app.observability.metrics import metrics
from app.services.leads.errors import (
    ExtractionParseError,
    FatalConfigurationError,
    GathererUnavailableError,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You verify Japanese company information. Answer strictly with a single JSON object "
    "and no surrounding prose."
)


class OpenAIChatClient(Protocol):
    """Minimal contract for OpenAI text generation."""

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
    ) -> str:
        ...


class OpenAIResponseClient(OpenAIChatClient):
    """Thin wrapper around the official OpenAI Responses API."""

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required for the LLM judge.")
        self._client = OpenAI(api_key=api_key)

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
    ) -> str:
        response = self._client.responses.create(
            model=model,
            temperature=temperature,
            input=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )
        return _extract_response_text(response)


@dataclass(frozen=True)
class JudgeContext:
    model: str
    temperature: float
    text_limit: int
    match_text_limit: int


class LLMJudge:
    """Judge that delegates each decision to a chat model."""

    def __init__(
        self,
        client: OpenAIChatClient | None = None,
        *,
        context: JudgeContext | None = None,
    ) -> None:
        if client is None:
            try:
                client = OpenAIResponseClient(settings.openai_api_key or "")
            except ValueError as exc:
                raise FatalConfigurationError(str(exc)) from exc
        self._client = client
        self._context = context or JudgeContext(
            model=settings.judge_model,
            temperature=settings.judge_temperature,
            text_limit=settings.page_text_limit,
            match_text_limit=settings.match_text_limit,
        )

    def is_match(self, text: str, expected_name: str) -> bool:
        prompt = (
            f'Does the following text refer to the company "{expected_name}" specifically '
            '(not a different company with a similar name)? Reply as {"match": true|false}.\n\n'
            f"{text[: self._context.match_text_limit]}"
        )
        payload = self._ask(prompt, operation="is_match")
        return bool(payload.get("match"))

    def is_official_site(self, link_text: str, expected_name: str) -> bool:
        prompt = (
            f'Is the link "{link_text}" the official website of "{expected_name}" '
            '(not a job board, directory, or review site)? Reply as {"official": true|false}.'
        )
        payload = self._ask(prompt, operation="is_official_site")
        return bool(payload.get("official"))

    def extract(self, text: str, expected_name: str) -> ContactExtraction:
        prompt = (
            f'Extract the contact details of "{expected_name}" from the page text below. '
            'Reply as {"phone": str|null, "email": str|null, "website": str|null, '
            '"address": str|null, "confidence": 0-100}. Use null for anything not present.\n\n'
            f"{text[: self._context.text_limit]}"
        )
        payload = self._ask(prompt, operation="extract")
        try:
            return ContactExtraction(
                phone=_optional_str(payload.get("phone")),
                email=_optional_str(payload.get("email")),
                website=_optional_str(payload.get("website")),
                address=_optional_str(payload.get("address")),
                confidence=_clamp(int(payload.get("confidence") or 0), 0, 100),
            )
        except (TypeError, ValueError) as exc:
            raise ExtractionParseError("Extraction payload had unexpected field types.") from exc

    def _ask(self, user_prompt: str, *, operation: str) -> dict[str, Any]:
        try:
            response_text = self._client.generate(
                system_prompt=SYSTEM_PROMPT,
                user_prompt=user_prompt,
                model=self._context.model,
                temperature=self._context.temperature,
            )
        except OpenAIAPIError as exc:
            code = "JUDGE_429" if getattr(exc, "status_code", 500) == 429 else "JUDGE_UPSTREAM"
            raise GathererUnavailableError(f"OpenAI request failed: {exc}", code=code) from exc
        except OpenAIBaseError as exc:
            raise GathererUnavailableError(f"OpenAI request failed: {exc}", code="JUDGE_UPSTREAM") from exc
        metrics.increment("judge.request", tags={"operation": operation})
        try:
            return _parse_json_payload(response_text)
        except ValueError as exc:
            logger.warning("judge.parse_error", extra={"operation": operation})
            raise ExtractionParseError("Judge response was not valid JSON.") from exc


def _extract_response_text(response: Any) -> str:
    """Normalize OpenAI responses across SDK versions."""
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text:
        return output_text.strip()
    text_chunks: list[str] = []
    for item in getattr(response, "output", None) or []:
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "output_text":
                text_chunks.append(getattr(content, "text", ""))
    if text_chunks:
        return "".join(text_chunks).strip()
    raise GathererUnavailableError("OpenAI response did not include text output.", code="JUDGE_UPSTREAM")


def _parse_json_payload(raw_text: str) -> dict[str, Any]:
    """Best-effort JSON decoding that tolerates code fences or prose."""
    candidate = raw_text.strip()
    if candidate.startswith("```"):
        candidate = "\n".join(line for line in candidate.splitlines() if not line.strip().startswith("```")).strip()
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start != -1 and end > start:
        payload = json.loads(candidate[start : end + 1])
        if isinstance(payload, dict):
            return payload
    raise ValueError("Response did not contain JSON object.")


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))
