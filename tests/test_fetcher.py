from __future__ import annotations

import asyncio

import httpx
import pytest

from sheetrelay.errors import ConfigurationError, UpstreamError, ValidationError
from sheetrelay.fetcher import SheetFetcher
from sheetrelay.sources import ArbitrarySource, SourceTarget
from tests.conftest import SHEET_URL, csv_responder, make_fetcher, timeout_responder


def run(coro):
    return asyncio.run(coro)


def test_fetch_returns_body_text():
    fetcher = make_fetcher(csv_responder("Name,Value\nA,1\n"))

    document = run(fetcher.fetch(SourceTarget(url=SHEET_URL)))

    assert document.status_code == 200
    assert document.text == "Name,Value\nA,1\n"
    assert document.size == len("Name,Value\nA,1\n")


def test_fetch_accepts_plain_url_string():
    fetcher = make_fetcher(csv_responder("a\n1\n"))

    assert run(fetcher.fetch(SHEET_URL)).text == "a\n1\n"


def test_empty_body_is_not_an_error():
    fetcher = make_fetcher(csv_responder(""))

    document = run(fetcher.fetch(SHEET_URL))

    assert document.text == ""
    assert document.is_blank


@pytest.mark.parametrize("source", [None, "", "   ", SourceTarget(url="")])
def test_unset_source_raises_configuration_error(source):
    def responder(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    fetcher = make_fetcher(responder)

    with pytest.raises(ConfigurationError):
        run(fetcher.fetch(source))


@pytest.mark.parametrize(
    "url",
    [
        "https://evil.example.com/steal?output=csv",
        "https://docs.google.com/spreadsheets/d/e/abc/pubhtml",
        "javascript:alert('<script>')",
        "ftp://docs.google.com/spreadsheets/d/e/abc/pub?output=csv",
    ],
)
def test_caller_url_with_wrong_shape_raises_validation_error(url):
    def responder(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    fetcher = make_fetcher(responder)
    target = ArbitrarySource().resolve(url=url)

    with pytest.raises(ValidationError) as e:
        run(fetcher.fetch(target))

    assert url not in str(e.value)
    assert url not in e.value.message
    assert e.value.status_code == 400


def test_caller_url_with_expected_shape_is_fetched():
    seen = {}

    def responder(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, text="a,b\n1,2\n")

    fetcher = make_fetcher(responder)

    document = run(fetcher.fetch(ArbitrarySource().resolve(url=SHEET_URL)))

    assert document.text == "a,b\n1,2\n"
    assert seen["url"] == SHEET_URL


def test_request_sends_no_credentials():
    seen = {}

    def responder(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        return httpx.Response(200, text="")

    fetcher = make_fetcher(responder, user_agent="relay-test/1.0")
    run(fetcher.fetch(SHEET_URL))

    assert seen["headers"]["user-agent"] == "relay-test/1.0"
    assert "authorization" not in seen["headers"]
    assert "cookie" not in seen["headers"]


def test_timeout_raises_upstream_error():
    fetcher = make_fetcher(timeout_responder)

    with pytest.raises(UpstreamError) as e:
        run(fetcher.fetch(SHEET_URL))

    assert e.value.status_code == 500
    assert not e.value.not_found
    assert SHEET_URL not in e.value.message


def test_connection_error_raises_upstream_error():
    def responder(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fetcher = make_fetcher(responder)

    with pytest.raises(UpstreamError) as e:
        run(fetcher.fetch(SHEET_URL))

    assert e.value.status_code == 500


@pytest.mark.parametrize("status_code", [403, 404, 410])
def test_not_found_statuses_map_to_404(status_code):
    fetcher = make_fetcher(csv_responder("nope", status_code=status_code))

    with pytest.raises(UpstreamError) as e:
        run(fetcher.fetch(SHEET_URL))

    assert e.value.not_found
    assert e.value.status_code == 404
    assert e.value.upstream_status == status_code


def test_server_error_status_maps_to_500():
    fetcher = make_fetcher(csv_responder("boom", status_code=503))

    with pytest.raises(UpstreamError) as e:
        run(fetcher.fetch(SHEET_URL))

    assert e.value.status_code == 500
    assert e.value.upstream_status == 503


def test_redirect_is_followed():
    def responder(request: httpx.Request) -> httpx.Response:
        if request.url.host == "docs.google.com":
            return httpx.Response(307, headers={"location": "https://doc-0s-sheets.googleusercontent.com/pub/abc"})
        return httpx.Response(200, text="a\n1\n")

    fetcher = make_fetcher(responder)

    assert run(fetcher.fetch(SHEET_URL)).text == "a\n1\n"


def test_oversized_body_raises_upstream_error():
    fetcher = make_fetcher(csv_responder("x" * 64), max_response_size=16)

    with pytest.raises(UpstreamError) as e:
        run(fetcher.fetch(SHEET_URL))

    assert "too large" in e.value.message


def test_declared_charset_is_used_for_decoding():
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content="Name\ncafé\n".encode("latin-1"),
            headers={"content-type": "text/csv; charset=iso-8859-1"},
        )

    fetcher = make_fetcher(responder)

    assert run(fetcher.fetch(SHEET_URL)).text == "Name\ncafé\n"


def test_default_fetcher_settings():
    fetcher = SheetFetcher()

    assert fetcher.timeout == 10.0
    assert fetcher.max_response_size == 10 * 1024 * 1024


class TrickleStream(httpx.AsyncByteStream):
    def __init__(self, chunks: int, delay: float):
        self.chunks = chunks
        self.delay = delay

    async def __aiter__(self):
        for _ in range(self.chunks):
            await asyncio.sleep(self.delay)
            yield b"a\n"


def test_slow_trickling_body_is_bounded_by_total_timeout():
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=TrickleStream(chunks=20, delay=0.1))

    fetcher = make_fetcher(responder, timeout=0.3)

    with pytest.raises(UpstreamError) as e:
        run(fetcher.fetch(SHEET_URL))

    assert e.value.message == "Timed out fetching sheet data."
    assert e.value.status_code == 500


def test_trickling_body_within_timeout_is_returned():
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=TrickleStream(chunks=3, delay=0.01))

    fetcher = make_fetcher(responder, timeout=5.0)

    assert run(fetcher.fetch(SHEET_URL)).text == "a\na\na\n"


def test_document_keeps_content_type():
    fetcher = make_fetcher(csv_responder("a\n1\n"))

    assert run(fetcher.fetch(SHEET_URL)).content_type == "text/csv; charset=utf-8"


def test_body_read_in_many_chunks_is_joined():
    body = "Name,Value\n" + "".join(f"row{i},{i}\n" for i in range(5000))

    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body.encode("utf-8"))

    fetcher = make_fetcher(responder)

    document = run(fetcher.fetch(SHEET_URL))

    assert isinstance(document.content, bytes)
    assert document.text == body
