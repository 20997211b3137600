"""Deterministic judge based on name mentions and regular expressions."""

from __future__ import annotations

import re

from app.models.company import ContactExtraction
from app.models.lead import extract_region
from app.services.leads.normalization import compact, count_mentions, nfkc
from app.services.leads.phone_numbers import extract_phone_numbers, is_valid_phone_format

EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_ASSET_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")
_ADDRESS_TAIL = re.compile(r"[^\s、。|｜/]{2,60}")
_NON_OFFICIAL_MARKERS = ("求人", "口コミ", "評判", "ランキング", "まとめ", "比較", "転職")


class RuleBasedJudge:
    """Judge usable offline; every answer is a pure function of its inputs."""

    def __init__(self, *, min_mentions: int = 1) -> None:
        self._min_mentions = max(1, min_mentions)

    def is_match(self, text: str, expected_name: str) -> bool:
        return count_mentions(text, expected_name) >= self._min_mentions

    def is_official_site(self, link_text: str, expected_name: str) -> bool:
        if count_mentions(link_text, expected_name) == 0:
            return False
        normalized = compact(link_text)
        return not any(marker in normalized for marker in _NON_OFFICIAL_MARKERS)

    def extract(self, text: str, expected_name: str) -> ContactExtraction:  # noqa: ARG002 - signature parity
        phone = next((value for value in extract_phone_numbers(text) if is_valid_phone_format(value)), None)
        email = _first_email(text)
        address = _first_address(text)
        confidence = 0
        if phone and email:
            confidence = 80
        elif phone or email:
            confidence = 50
        if address and confidence:
            confidence += 10
        return ContactExtraction(phone=phone, email=email, address=address, confidence=min(confidence, 100))


def _first_email(text: str) -> str | None:
    for match in EMAIL_PATTERN.finditer(nfkc(text)):
        candidate = match.group(0).rstrip(".")
        if not candidate.lower().endswith(_ASSET_SUFFIXES):
            return candidate
    return None


def _first_address(text: str) -> str | None:
    normalized = nfkc(text)
    region = extract_region(normalized)
    if not region:
        return None
    start = normalized.find(region)
    tail = _ADDRESS_TAIL.match(normalized, start)
    return tail.group(0) if tail else region
