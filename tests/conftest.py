import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import urlsplit

import pytest

from webspider.crawler.browser import Page
from webspider.crawler.parser import FormElement, ParsedPage
from webspider.crawler.scheduler import CrawlerScheduler
from webspider.exceptions import FetchError
from webspider.plugins import PluginRegistry
from webspider.utils.config import SpiderConfig


LinkGraph = Union[Dict[str, object], Callable[[str], Optional[object]]]


class FakeBrowser:
    """
    In-memory stand-in for the Browser.

    `graph` maps a URL to its links: a list (all 'href') or a dict of
    category -> list. A callable graph is called with the URL. URLs missing
    from the graph, or listed in `failures`, raise FetchError.
    """

    def __init__(self, graph: LinkGraph, failures=(), forms=None, headers=None,
                 delay: float = 0.0):
        self.graph = graph
        self.failures = set(failures)
        self.forms: Dict[str, List[FormElement]] = forms or {}
        self.headers: Dict[str, Dict[str, str]] = headers or {}
        self.delay = delay
        self.opened: List[str] = []
        self.head_requests: List[str] = []
        self.downloads: List[str] = []
        self.max_concurrent = 0
        self._concurrent = 0
        self.closed = False

    def _links_for(self, url: str):
        if callable(self.graph):
            return self.graph(url)
        return self.graph.get(url)

    async def open(self, url: str, method: str = 'GET') -> Page:
        if method == 'HEAD':
            self.head_requests.append(url)
        else:
            self.opened.append(url)

        self._concurrent += 1
        self.max_concurrent = max(self.max_concurrent, self._concurrent)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self._concurrent -= 1

        links = self._links_for(url)
        if url in self.failures or links is None:
            raise FetchError(url, "HTTP error 404")

        if isinstance(links, dict):
            categories = {category: list(values) for category, values in links.items()}
        else:
            categories = {'href': list(links)}

        host = urlsplit(url).netloc
        return Page(
            url=url,
            status_code=200,
            headers=dict(self.headers.get(host, {})),
            parsed=ParsedPage(url=url, links=categories, forms=list(self.forms.get(url, [])))
        )

    async def download(self, url: str, destination) -> bool:
        self.downloads.append(url)
        await asyncio.sleep(self.delay)
        if url in self.failures:
            return False
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(url.encode('utf-8'))
        return True

    async def close(self):
        self.closed = True


def make_spider(graph: LinkGraph, start_url: str = "http://example.com/",
                browser: Optional[FakeBrowser] = None,
                registry: Optional[PluginRegistry] = None, **config) -> CrawlerScheduler:
    browser = browser or FakeBrowser(graph)
    config.setdefault('threads', 3)
    config.setdefault('max_pages', 100)
    return CrawlerScheduler(SpiderConfig(start_url=start_url, **config),
                            browser=browser, registry=registry)


@pytest.fixture
def fake_browser_factory():
    return FakeBrowser


@pytest.fixture
def spider_factory():
    return make_spider
