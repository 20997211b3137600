"""Shared helpers for normalizing company names, text, and hosts."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from urllib.parse import urlparse

# Japanese corporate forms, removed wherever they appear in a name.
JAPANESE_LEGAL_FORMS = ("株式会社", "有限会社", "合同会社", "合資会社", "合名会社")

# Abbreviated forms occasionally used in listings, e.g. (株) or ㈱ after NFKC.
_ABBREVIATED_LEGAL_FORMS = ("(株)", "(有)", "(同)", "(資)", "(名)")

# Trailing English corporate suffixes, removed only as whole words.
_ENGLISH_SUFFIXES = {
    "inc",
    "incorporated",
    "corp",
    "corporation",
    "co",
    "company",
    "ltd",
    "limited",
    "llc",
    "kk",
    "k.k",
}

_TWO_PART_SUFFIXES = {
    "co.jp",
    "ne.jp",
    "or.jp",
    "ac.jp",
    "go.jp",
    "gr.jp",
    "lg.jp",
    "ed.jp",
    "co.uk",
    "com.au",
}

_WHITESPACE = re.compile(r"\s+")
_TRAILING_PUNCTUATION = re.compile(r"[\s,.、・]+$")


def nfkc(value: str | None) -> str:
    return unicodedata.normalize("NFKC", value or "")


def strip_legal_forms(name: str | None) -> str:
    """Remove corporate-form words from a company name, keeping the original casing."""
    cleaned = nfkc(name)
    for form in JAPANESE_LEGAL_FORMS + _ABBREVIATED_LEGAL_FORMS:
        cleaned = cleaned.replace(form, " ")
    tokens = cleaned.split()
    while tokens and _TRAILING_PUNCTUATION.sub("", tokens[-1]).lower().rstrip(".") in _ENGLISH_SUFFIXES:
        tokens.pop()
        if tokens:
            tokens[-1] = _TRAILING_PUNCTUATION.sub("", tokens[-1])
    return " ".join(tokens).strip()


def compact(value: str | None) -> str:
    """NFKC-normalize, lowercase, and drop all whitespace."""
    return _WHITESPACE.sub("", nfkc(value).lower())


def clean_company_name(name: str | None) -> str:
    """Comparable company token: legal forms stripped, lowercase, no whitespace."""
    return compact(strip_legal_forms(name))


def count_mentions(text: str | None, name: str | None) -> int:
    """Count non-overlapping occurrences of the cleaned company name in text."""
    needle = clean_company_name(name)
    if not needle:
        return 0
    return compact(text).count(needle)


def ascii_slug(name: str | None) -> str:
    """Lowercase ASCII alphanumerics of the cleaned name, or "" for non-Latin names."""
    return re.sub(r"[^a-z0-9]+", "", strip_legal_forms(name).lower())


def normalize_host(url: str | None) -> str:
    """Lowercase host without port or leading www."""
    if not url:
        return ""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    host = (parsed.netloc or "").lower()
    if ":" in host:
        host = host.split(":", 1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host


def registrable_domain(url: str | None) -> str:
    """Collapse hosts into a comparable registrable domain (handles co.jp style suffixes)."""
    host = normalize_host(url)
    parts = [part for part in host.split(".") if part]
    if len(parts) <= 2:
        return host
    suffix = ".".join(parts[-2:])
    if suffix in _TWO_PART_SUFFIXES:
        return ".".join(parts[-3:])
    return suffix


def url_matches_any(url: str | None, patterns: Iterable[str]) -> bool:
    """True when the URL's host (plus path) falls under any of the given host patterns."""
    if not url:
        return False
    host = normalize_host(url)
    location = f"{host}{urlparse(url if '://' in url else f'https://{url}').path}"
    for pattern in patterns:
        if "/" in pattern:
            if location.startswith(pattern) or f".{pattern}" in location:
                return True
        elif host == pattern or host.endswith(f".{pattern}"):
            return True
    return False
