from __future__ import annotations

import httpx
import pytest

from app.clients.web_page import WebPageClient, WebPageError, WebPageTimeoutError, html_to_text

PAGE = """
<html>
  <head><title>会社概要</title><style>.x { color: red }</style><script>var secret = 1;</script></head>
  <body>
    <!-- tracking comment -->
    <h1>株式会社サンプル</h1>
    <p>TEL:   03-1234-5678</p>
    <noscript>enable javascript</noscript>
  </body>
</html>
"""


def _client(handler) -> WebPageClient:
    return WebPageClient(http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_html_to_text_drops_noise_and_collapses_whitespace():
    text = html_to_text(PAGE)

    assert "secret" not in text
    assert "color" not in text
    assert "tracking" not in text
    assert "enable javascript" not in text
    assert "株式会社サンプル TEL: 03-1234-5678" in text


def test_html_to_text_truncates():
    assert len(html_to_text(PAGE, limit=5)) == 5
    assert html_to_text("") == ""


def test_fetch_text_returns_clean_text():
    client = _client(lambda request: httpx.Response(200, text=PAGE))

    assert "03-1234-5678" in client.fetch_text("https://example.co.jp/company")


def test_http_errors_carry_status_code():
    client = _client(lambda request: httpx.Response(404, text="missing"))

    with pytest.raises(WebPageError) as excinfo:
        client.fetch_html("https://example.co.jp/none")
    assert excinfo.value.code == "PAGE_404"


def test_gateway_timeout_maps_to_timeout_error():
    client = _client(lambda request: httpx.Response(504))

    with pytest.raises(WebPageTimeoutError):
        client.fetch_html("https://example.co.jp/slow")


def test_transport_timeout_maps_to_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(WebPageTimeoutError):
        _client(handler).fetch_html("https://example.co.jp/slow")
