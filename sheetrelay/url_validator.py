import re
import structlog
from typing import Optional, Union
from urllib.parse import urlparse

logger = structlog.get_logger(__name__)

# Published or exported Google Sheet ending in a CSV output indicator, e.g.
# https://docs.google.com/spreadsheets/d/e/<id>/pub?gid=0&single=true&output=csv
DEFAULT_SHEET_URL_PATTERN = (
    r"^https://docs\.google\.com/spreadsheets/d/(?:e/)?[A-Za-z0-9_-]+/(?:pub|export)"
    r"\?(?:[^\s#]*&)?(?:output|format)=csv$"
)

MAX_URL_LENGTH = 2048


def compile_pattern(pattern: Union[str, re.Pattern, None]) -> re.Pattern:
    if pattern is None:
        pattern = DEFAULT_SHEET_URL_PATTERN
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


def validate_sheet_url(url: Optional[str], pattern: Union[str, re.Pattern, None] = None) -> dict:
    """
    Check that a caller-supplied URL looks like a sheet CSV export.

    The returned reason never contains the URL itself.

    Returns:
        dict: {"valid": bool, "reason": str}
    """
    if not url or not isinstance(url, str):
        logger.warning("invalid_url_format")
        return {
            "valid": False,
            "reason": "Empty or invalid URL"
        }

    if len(url) > MAX_URL_LENGTH:
        logger.warning("url_too_long", length=len(url))
        return {
            "valid": False,
            "reason": "URL is too long"
        }

    parsed = urlparse(url)
    if parsed.scheme not in ['http', 'https']:
        logger.warning("invalid_url_scheme", scheme=parsed.scheme[:16])
        return {
            "valid": False,
            "reason": "Invalid URL scheme"
        }

    if not compile_pattern(pattern).fullmatch(url):
        logger.warning("url_pattern_mismatch", host=parsed.hostname)
        return {
            "valid": False,
            "reason": "URL is not a published sheet CSV export"
        }

    return {
        "valid": True,
        "reason": "Valid sheet export URL"
    }
