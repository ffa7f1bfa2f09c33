"""
MassDumper: downloads every discovered file matching a set of extensions.

Options:
    exts     required; ';'-separated path endings, '*' matches anything
    outdir   required; directory the URL paths are mirrored into
    threads  concurrent downloads (default 5)
    max      stop after this many successful downloads (default 100)
"""

import asyncio
import posixpath
from pathlib import Path
from typing import List, Optional, Set

from .base import Plugin, plugin_registry
from ..crawler.policy import parse_url
from ..exceptions import MalformedURLError
from ..utils.config import split_list


@plugin_registry.register("MassDumper")
class MassDumper(Plugin):
    name = "MassDumper"
    required_options = ("exts", "outdir")

    def __init__(self, spider):
        super().__init__(spider)
        self.downloaded = 0
        self._claimed: Set[Path] = set()

    @staticmethod
    def local_path(url: str, outdir: Path) -> Optional[Path]:
        """
        Map a URL path below outdir. Paths ending in '/' or whose last
        segment has no '.' are stored as index.html inside that directory.
        """
        try:
            path = parse_url(url).path
        except MalformedURLError:
            return None

        path = posixpath.normpath('/' + path.lstrip('/'))
        if path == '/':
            path = '/index.html'
        elif '.' not in path.rsplit('/', 1)[-1]:
            path += '/index.html'

        target = (outdir / path.lstrip('/')).resolve()
        if outdir not in target.parents:
            return None
        return target

    @staticmethod
    def wanted(path: Path, exts: List[str]) -> bool:
        return any(ext == '*' or str(path).endswith(ext) for ext in exts)

    async def run(self):
        # Each crawl gets a fresh download budget
        self.downloaded = 0
        self._claimed = set()
        exts = split_list(self.get_option("exts"), ';')
        outdir = Path(self.get_option("outdir")).resolve()
        try:
            threads = int(self.get_option("threads") or 5)
            max_downloads = int(self.get_option("max") or 100)
        except ValueError:
            self.error("Options 'threads' and 'max' must be integers")
            return

        semaphore = asyncio.Semaphore(max(1, threads))
        downloads: Set[asyncio.Task] = set()

        while self.downloaded < max_downloads:
            url = await self.get_url()
            if url is None:
                break

            path = self.local_path(url, outdir)
            if path is None or not self.wanted(path, exts):
                continue
            if path in self._claimed or path.exists():
                continue
            self._claimed.add(path)

            await semaphore.acquire()
            task = asyncio.create_task(self._download(url, path, semaphore))
            downloads.add(task)
            task.add_done_callback(downloads.discard)

        if downloads:
            await asyncio.gather(*downloads)
        self.success(f"{self.downloaded} files downloaded successfully!")

    async def _download(self, url: str, path: Path, semaphore: asyncio.Semaphore):
        try:
            self.status(f"Downloading {url}...")
            if await self.browser.download(url, path):
                self.downloaded += 1
                self.success(f"{url} downloaded!")
            else:
                self.error(f"Failed to download {url}")
        finally:
            semaphore.release()
