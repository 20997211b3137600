"""Stable duplicate-detection keys for company identities."""

from __future__ import annotations

import re

from app.models.company import CompanyIdentity
from app.services.leads.normalization import clean_company_name, compact

KEY_SEPARATOR = "__"

# Prefecture/city/ward/town/village markers. Removal is character-wise and lossy.
_ADMINISTRATIVE_UNITS = re.compile(r"[都道府県市区町村]")


def normalize_location(location: str | None) -> str:
    return _ADMINISTRATIVE_UNITS.sub("", compact(location))


def fingerprint(name: str | None, location: str | None) -> str:
    """Return the normalized `name__location` key used for exact-match deduplication."""
    return f"{clean_company_name(name)}{KEY_SEPARATOR}{normalize_location(location)}"


def identity_key(identity: CompanyIdentity) -> str:
    return fingerprint(identity.name, identity.location)
