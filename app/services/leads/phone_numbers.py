"""Japanese phone number validation and extraction."""

from __future__ import annotations

import re

from app.services.leads.normalization import nfkc

_VALID_FORMATS = (
    re.compile(r"^0\d{1,4}-\d{1,4}-\d{3,4}$"),
    re.compile(r"^0\d{9,10}$"),
    re.compile(r"^\+81-\d{1,4}-\d{1,4}-\d{3,4}$"),
    re.compile(r"^0\d{2,4} \d{1,4} \d{3,4}$"),
)
_DISALLOWED = re.compile(r"[^\d\-+ ]")
_EXTRACT_PATTERNS = (
    re.compile(r"(?<![\d+])0\d{1,4}[-\s]?\d{1,4}[-\s]?\d{3,4}(?!\d)"),
    re.compile(r"\+81[-\s]?\d{1,4}[-\s]?\d{1,4}[-\s]?\d{3,4}(?!\d)"),
)
_DASH_VARIANTS = str.maketrans({"‐": "-", "‑": "-", "–": "-", "—": "-", "ー": "-", "−": "-"})


def _prepare(value: str) -> str:
    return nfkc(value).translate(_DASH_VARIANTS)


def is_valid_phone_format(phone: str | None) -> bool:
    """Check a number against the accepted Japanese landline/mobile layouts."""
    if not phone:
        return False
    cleaned = _DISALLOWED.sub("", _prepare(phone)).strip()
    return any(pattern.match(cleaned) for pattern in _VALID_FORMATS)


def bare_phone(phone: str) -> str:
    """Digits (and a leading +) only, for reverse lookups and comparisons."""
    return re.sub(r"[^\d+]", "", _prepare(phone))


def extract_phone_numbers(text: str | None) -> list[str]:
    """Return distinct phone-like substrings in order of appearance."""
    if not text:
        return []
    prepared = _prepare(text)
    found: list[tuple[int, str]] = []
    for pattern in _EXTRACT_PATTERNS:
        found.extend((match.start(), match.group(0).strip()) for match in pattern.finditer(prepared))
    ordered: list[str] = []
    for _, value in sorted(found):
        if value not in ordered:
            ordered.append(value)
    return ordered
