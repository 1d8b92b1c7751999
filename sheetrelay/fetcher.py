import asyncio
import time
from typing import Dict, Optional, Union
from urllib.parse import urlparse

import httpx
import structlog

from .errors import ConfigurationError, UpstreamError, ValidationError
from .sources import SourceTarget
from .url_validator import validate_sheet_url

logger = structlog.get_logger(__name__)

NOT_FOUND_STATUSES = (403, 404, 410)


class RawDocument:
    def __init__(
        self,
        status_code: int,
        content: bytes = b'',
        content_type: str = None,
        encoding: str = None,
        fetch_time: float = 0.0,
    ):
        """Unparsed body of one upstream response."""
        self.status_code = status_code
        self.content = content
        self.content_type = content_type
        self.encoding = encoding
        self.fetch_time = fetch_time

    @property
    def text(self) -> str:
        """Decode the body using the declared charset, falling back to utf-8."""
        if not self.content:
            return ""
        encoding = self.encoding or 'utf-8'
        try:
            return self.content.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return self.content.decode('utf-8', errors='replace')

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


class SheetFetcher:
    def __init__(
        self,
        timeout: float = 10.0,
        max_response_size: int = 10 * 1024 * 1024,
        user_agent: str = 'sheetrelay/1.0',
        transport: httpx.AsyncBaseTransport = None,
    ):
        """Fetch sheet CSV exports with a bounded timeout and no retries."""
        self.timeout = timeout
        self.max_response_size = max_response_size
        self.max_redirects = 5
        self.headers = {
            'User-Agent': user_agent,
            'Accept': 'text/csv,text/plain;q=0.9,*/*;q=0.5',
        }
        self._transport = transport

    async def fetch(self, source: Union[SourceTarget, str, None]) -> RawDocument:
        """Fetch the raw text behind a resolved source.

        Raises:
            ConfigurationError: the source URL is unset.
            ValidationError: a caller-supplied URL has the wrong shape.
            UpstreamError: network failure, timeout or non-success status.
        """
        if not isinstance(source, SourceTarget):
            source = SourceTarget(url=source or "")

        if not source.url or not source.url.strip():
            logger.error("sheet_source_not_configured")
            raise ConfigurationError()

        if source.caller_supplied:
            validation = validate_sheet_url(source.url, source.pattern)
            if not validation['valid']:
                raise ValidationError(validation['reason'] + ".")

        host = urlparse(source.url).hostname
        logger.info("sheet_fetch_started", host=host)
        start_time = time.time()

        try:
            document = await asyncio.wait_for(self._get(source.url), timeout=self.timeout)

        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            logger.warning("sheet_fetch_timeout", host=host, timeout_seconds=self.timeout, error=type(e).__name__)
            raise UpstreamError("Timed out fetching sheet data.") from e

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("sheet_fetch_failed", host=host, error=type(e).__name__)
            raise UpstreamError("Could not reach the sheet source.") from e

        document.fetch_time = time.time() - start_time
        logger.info(
            "sheet_fetch_completed",
            host=host,
            status_code=document.status_code,
            size=document.size,
            content_type=document.content_type,
            fetch_time=round(document.fetch_time, 3),
        )
        return document

    async def _get(self, url: str) -> RawDocument:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            max_redirects=self.max_redirects,
            headers=self.headers,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url) as response:
                return await self._read_response(response)

    async def _read_response(self, response: httpx.Response) -> RawDocument:
        if not response.is_success:
            not_found = response.status_code in NOT_FOUND_STATUSES
            logger.warning("sheet_upstream_status", status_code=response.status_code, not_found=not_found)
            if not_found:
                raise UpstreamError(
                    "Sheet not found or not published.",
                    not_found=True,
                    upstream_status=response.status_code,
                )
            raise UpstreamError(
                f"Sheet source responded with status {response.status_code}.",
                upstream_status=response.status_code,
            )

        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_response_size:
            logger.warning("sheet_response_too_large", content_length=int(content_length))
            raise UpstreamError("Sheet data is too large.")

        content = bytearray()
        async for chunk in response.aiter_bytes(chunk_size=8192):
            content.extend(chunk)
            if len(content) > self.max_response_size:
                logger.warning("sheet_response_too_large", read_bytes=len(content))
                raise UpstreamError("Sheet data is too large.")

        content_type = response.headers.get('content-type', '').lower()
        return RawDocument(
            status_code=response.status_code,
            content=bytes(content),
            content_type=content_type,
            encoding=self._extract_encoding(response.headers),
        )

    def _extract_encoding(self, headers: Dict[str, str]) -> Optional[str]:
        """Extract character encoding from the Content-Type header."""
        content_type = headers.get('content-type', '')
        if 'charset=' in content_type.lower():
            charset = content_type.lower().split('charset=')[1].split(';')[0].strip(' "\'')
            if charset:
                return charset
        return 'utf-8'


def create_fetcher(config, transport: httpx.AsyncBaseTransport = None) -> SheetFetcher:
    """Create a SheetFetcher from a RelayConfig."""
    return SheetFetcher(
        timeout=config.fetch_timeout,
        max_response_size=config.max_response_size,
        user_agent=config.user_agent,
        transport=transport,
    )
