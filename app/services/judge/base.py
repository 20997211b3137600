"""Judge contract shared by rule-based and model-backed implementations."""

from __future__ import annotations

from typing import Protocol

from app.models.company import ContactExtraction


class Judge(Protocol):
    """Boolean and structured oracles consulted by the verification pipeline."""

    def is_match(self, text: str, expected_name: str) -> bool:
        ...

    def is_official_site(self, link_text: str, expected_name: str) -> bool:
        ...

    def extract(self, text: str, expected_name: str) -> ContactExtraction:
        ...
