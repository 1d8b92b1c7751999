"""
Where a request's sheet data comes from.

Exactly one SheetSource variant is configured per process:
- FixedSource: a single configured URL
- PageSource: a URL picked from a small mapping by page identifier
- ArbitrarySource: a caller-supplied URL that must match a pattern

resolve() is a pure lookup; it never touches the network. A missing
configured URL resolves to an empty target so the fetcher can report it.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Union

from .errors import ValidationError
from .url_validator import compile_pattern


@dataclass(frozen=True)
class SourceTarget:
    url: str
    pattern: Optional[re.Pattern] = None

    @property
    def caller_supplied(self) -> bool:
        return self.pattern is not None


@dataclass(frozen=True)
class FixedSource:
    url: Optional[str] = None
    mode = "fixed"

    def resolve(self, page: str = None, url: str = None) -> SourceTarget:
        return SourceTarget(url=self.url or "")


@dataclass(frozen=True)
class PageSource:
    pages: Mapping[str, str] = field(default_factory=dict)
    default_page: Optional[str] = None
    mode = "page"

    def __post_init__(self):
        object.__setattr__(self, "pages", MappingProxyType(dict(self.pages)))

    def resolve(self, page: str = None, url: str = None) -> SourceTarget:
        page_id = page or self.default_page
        if not page_id:
            raise ValidationError("Missing page parameter.")
        if page_id not in self.pages:
            raise ValidationError("Unknown page.")
        return SourceTarget(url=self.pages[page_id] or "")


@dataclass(frozen=True)
class ArbitrarySource:
    pattern: Union[str, re.Pattern, None] = None
    mode = "arbitrary"

    def __post_init__(self):
        object.__setattr__(self, "pattern", compile_pattern(self.pattern))

    def resolve(self, page: str = None, url: str = None) -> SourceTarget:
        if not url or not url.strip():
            raise ValidationError("Missing url parameter.")
        return SourceTarget(url=url, pattern=self.pattern)


SheetSource = Union[FixedSource, PageSource, ArbitrarySource]
