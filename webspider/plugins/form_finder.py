"""
FormFinder: reports pages that contain at least one form.

Options:
    method   only count forms submitted with this method (get or post)
    outfile  file to write matching URLs to, one per line
"""

from typing import Optional

from .base import Plugin, plugin_registry
from ..crawler.policy import parse_url
from ..exceptions import FetchError, MalformedURLError
from ..storage.output import LineWriter


@plugin_registry.register("FormFinder")
class FormFinder(Plugin):
    name = "FormFinder"
    required_options = ()

    def __init__(self, spider):
        super().__init__(spider)
        self.found = []

    def is_page(self, url: str) -> bool:
        """Directory-less URLs (empty path) are treated as index pages."""
        try:
            path = parse_url(url).path
        except MalformedURLError:
            return False
        if not path:
            path = "/index.html"
        return any(path.endswith(ext) for ext in self.spider.extensions)

    async def run(self):
        self.found = []
        method = self.get_option("method")
        if method is not None:
            method = method.lower()
            if method not in ("get", "post"):
                self.error(f"Unknown target method: {method}")
                return

        writer: Optional[LineWriter] = None
        outfile = self.get_option("outfile")
        if outfile:
            try:
                writer = LineWriter(outfile)
            except OSError as e:
                self.error(f"Error opening output file {outfile}: {e}")
                return

        try:
            while True:
                url = await self.get_url()
                if url is None:
                    break
                if not self.is_page(url):
                    continue

                try:
                    page = await self.browser.open(url)
                except FetchError as e:
                    self.warning(f"Could not open {url}: {e.reason}")
                    continue

                forms = page.get_forms()
                if any(method is None or form.method == method for form in forms):
                    self.found.append(url)
                    self.success(f"Form found: {url}")
                    if writer:
                        writer.write_line(url)
        finally:
            if writer:
                writer.close()

        if self.found:
            self.success(f"{len(self.found)} URLs with forms located!")
