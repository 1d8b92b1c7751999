from __future__ import annotations

from typing import Callable

import httpx
import pytest

from sheetrelay.config import RelayConfig
from sheetrelay.fetcher import SheetFetcher
from sheetrelay.sources import FixedSource

SHEET_URL = "https://docs.google.com/spreadsheets/d/e/2PACX-1vAbc_123/pub?gid=0&single=true&output=csv"


def make_fetcher(responder: Callable[[httpx.Request], httpx.Response], **kwargs) -> SheetFetcher:
    return SheetFetcher(transport=httpx.MockTransport(responder), **kwargs)


def csv_responder(body: str, status_code: int = 200):
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=body, headers={"content-type": "text/csv; charset=utf-8"})

    return responder


def timeout_responder(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


@pytest.fixture()
def sheet_url() -> str:
    return SHEET_URL


@pytest.fixture()
def fixed_config() -> RelayConfig:
    return RelayConfig(source=FixedSource(url=SHEET_URL))
