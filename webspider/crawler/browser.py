"""
Page-level facade over the fetcher and the parser.

This is the interface the spider and its plugins use to open pages, read
their links, forms and response headers, and download files.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from .fetcher import WebFetcher
from .parser import ContentParser, FormElement, ParsedPage
from ..exceptions import FetchError


@dataclass
class Page:
    """An opened page."""
    url: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    parsed: Optional[ParsedPage] = None

    def get_links(self) -> Dict[str, List[str]]:
        """Links by category ('href', 'src', 'action'); empty for non-HTML responses."""
        if self.parsed is None:
            return {}
        return self.parsed.links

    def get_forms(self) -> List[FormElement]:
        if self.parsed is None:
            return []
        return self.parsed.forms

    def get_response_header(self, name: str) -> Optional[str]:
        """Case-insensitive response header lookup."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


class Browser:
    """Opens pages through a WebFetcher and parses them with a ContentParser."""

    def __init__(self, fetcher: WebFetcher, parser: Optional[ContentParser] = None):
        self.fetcher = fetcher
        self.parser = parser or ContentParser()
        self.logger = logging.getLogger(__name__)

    async def open(self, url: str, method: str = 'GET') -> Page:
        """
        Fetch and parse a page.

        Raises:
            FetchError: on network errors, timeouts and HTTP error statuses
        """
        result = await self.fetcher.fetch(url, method=method)
        if result.error:
            raise FetchError(url, result.error)

        parsed = None
        if result.content is not None:
            parsed = self.parser.parse(url, result.content)

        return Page(
            url=url,
            status_code=result.status_code,
            headers=result.headers or {},
            parsed=parsed
        )

    async def download(self, url: str, destination: Union[str, Path]) -> bool:
        return await self.fetcher.download(url, destination)

    async def close(self):
        await self.fetcher.close()
