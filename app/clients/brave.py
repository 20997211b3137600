"""Client for interacting with the Brave Search web API."""

from __future__ import annotations

import os
from typing import Any

import httpx

MAX_RESULTS_PER_REQUEST = 20


class BraveError(RuntimeError):
    """Base error for Brave Search client failures."""

    def __init__(self, message: str, code: str = "BRAVE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class BraveRateLimitError(BraveError):
    """Raised when Brave responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Brave Search") -> None:
        super().__init__(message, code="BRAVE_429")


class BraveTimeoutError(BraveError):
    """Raised when a Brave request times out."""

    def __init__(self, message: str = "Brave Search request timed out") -> None:
        super().__init__(message, code="BRAVE_TIMEOUT")


class BraveSchemaError(BraveError):
    """Raised when the Brave response schema does not match expectations."""

    def __init__(self, message: str = "Unexpected Brave Search response schema") -> None:
        super().__init__(message, code="BRAVE_SCHEMA_ERR")


class BraveSearchClient:
    """Minimal Brave Search API client wrapper."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.search.brave.com",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("BRAVE_API_KEY is required to create a BraveSearchClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_env(cls) -> "BraveSearchClient":
        """Instantiate the client using the BRAVE_API_KEY environment variable."""
        api_key = os.getenv("BRAVE_API_KEY", "")
        return cls(api_key=api_key)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def search(
        self,
        *,
        query: str,
        count: int = 10,
        country: str = "JP",
        search_lang: str = "ja",
    ) -> list[dict[str, Any]]:
        """Execute a web search and return the raw `web.results` entries."""
        if count <= 0:
            raise ValueError("count must be a positive integer.")

        params = {
            "q": query,
            "count": min(count, MAX_RESULTS_PER_REQUEST),
            "country": country,
            "search_lang": search_lang,
        }
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self._api_key,
        }

        try:
            response = self._http.get("/res/v1/web/search", params=params, headers=headers)
        except httpx.TimeoutException as exc:  # pragma: no cover - network failures
            raise BraveTimeoutError() from exc
        except httpx.HTTPError as exc:  # pragma: no cover - network failures
            raise BraveError(f"HTTP error calling Brave Search: {exc}") from exc

        if response.status_code == 429:
            raise BraveRateLimitError()
        if response.status_code in (408, 504):
            raise BraveTimeoutError()
        if response.status_code >= 400:
            raise BraveError(
                f"Brave Search request failed: {response.status_code} - {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise BraveSchemaError("Failed to decode Brave Search response JSON.") from exc
        if not isinstance(data, dict):
            raise BraveSchemaError("Brave Search response must be a JSON object.")

        web = data.get("web")
        if web is None:
            return []
        results = web.get("results") if isinstance(web, dict) else None
        if not isinstance(results, list):
            raise BraveSchemaError("`web.results` missing from Brave Search response.")
        if not all(isinstance(item, dict) for item in results):
            raise BraveSchemaError("Entries in `web.results` must be JSON objects.")
        return results

    def __enter__(self) -> "BraveSearchClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
