from __future__ import annotations

import httpx
import pytest

from app.clients.brave import BraveError, BraveRateLimitError, BraveSchemaError, BraveSearchClient, BraveTimeoutError


def _client(handler) -> BraveSearchClient:
    http_client = httpx.Client(transport=httpx.MockTransport(handler), base_url="https://api.search.brave.com")
    return BraveSearchClient(api_key="test-key", http_client=http_client)


def test_search_sends_token_and_params():
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["token"] = request.headers.get("X-Subscription-Token")
        return httpx.Response(
            200,
            json={"web": {"results": [{"url": "https://example.co.jp", "title": "Example", "description": "desc"}]}},
        )

    with _client(handler) as client:
        results = client.search(query="株式会社サンプル 求人", count=50)

    assert results[0]["url"] == "https://example.co.jp"
    assert seen["path"] == "/res/v1/web/search"
    assert seen["token"] == "test-key"
    assert seen["params"] == {"q": "株式会社サンプル 求人", "count": "20", "country": "JP", "search_lang": "ja"}


def test_missing_web_section_means_no_results():
    client = _client(lambda request: httpx.Response(200, json={"type": "search"}))

    assert client.search(query="nothing") == []


@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [(429, BraveRateLimitError), (504, BraveTimeoutError), (408, BraveTimeoutError), (500, BraveError)],
)
def test_status_codes_map_to_errors(status_code, error_type):
    client = _client(lambda request: httpx.Response(status_code, text="upstream"))

    with pytest.raises(error_type):
        client.search(query="x")


def test_invalid_json_is_schema_error():
    client = _client(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(BraveSchemaError):
        client.search(query="x")


def test_results_must_be_a_list():
    client = _client(lambda request: httpx.Response(200, json={"web": {"results": "bad"}}))

    with pytest.raises(BraveSchemaError) as excinfo:
        client.search(query="x")
    assert excinfo.value.code == "BRAVE_SCHEMA_ERR"


def test_missing_api_key_is_rejected(monkeypatch):
    monkeypatch.delenv("BRAVE_API_KEY", raising=False)

    with pytest.raises(ValueError):
        BraveSearchClient.from_env()
