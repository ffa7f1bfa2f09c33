"""
Crawler scheduler: bootstraps a crawl from its start URL, runs the worker
pool and the plugins, and exposes the crawl lifecycle to its callers.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .browser import Browser
from .fetcher import WebFetcher
from .policy import URLPolicy, strip_fragment
from .streams import OutputStream, StatusStream, StreamCursor
from .url_frontier import URLFrontier
from ..exceptions import FetchError, MalformedURLError
from ..plugins import Plugin, PluginOptions, PluginRegistry, load_plugins, plugin_registry
from ..utils.config import SpiderConfig
from ..utils.logger import get_crawler_logger


class CrawlState(Enum):
    """Lifecycle of a crawl."""
    IDLE = "idle"
    BOOTSTRAPPING = "bootstrapping"
    ACTIVE = "active"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class CrawlStats:
    """Statistics for a crawl run."""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    pages_fetched: int = 0
    errors: int = 0

    @property
    def elapsed_time(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_fetched / elapsed_minutes if elapsed_minutes > 0 else 0


class CrawlerScheduler:
    """
    Crawl controller.

    start() fetches the start URL itself to seed the frontier, then spawns
    the workers and one task per loaded plugin. Consumers follow the crawl
    through the output stream (open_cursor()) and is_active().
    """

    def __init__(self, config: SpiderConfig, browser: Optional[Browser] = None,
                 registry: Optional[PluginRegistry] = None):
        self.config = config
        self.logger = get_crawler_logger(__name__)

        # Fails fast on a malformed start URL
        self.policy = self._build_policy()
        self.start_url = self.policy.start_url

        self.browser = browser
        self._owns_browser = browser is None
        self.registry = registry or plugin_registry
        self.plugin_options = PluginOptions()
        self.plugins: List[Plugin] = []

        self.state = CrawlState.IDLE
        self.stats = CrawlStats()
        self.frontier = URLFrontier(self.policy, config.max_pages)
        self.output = OutputStream(self.policy)
        self.status = StatusStream()

        self._started = False
        self._stop_requested = False
        self._running_plugins = 0
        self.workers: List[asyncio.Task] = []
        self.plugin_tasks: List[asyncio.Task] = []

    def _build_policy(self) -> URLPolicy:
        return URLPolicy(
            self.config.start_url,
            extensions=self.config.extensions,
            ignore=self.config.ignore,
            follow_external=self.config.follow_external,
            hide_external=self.config.hide_external
        )

    @property
    def extensions(self) -> List[str]:
        return list(self.policy.extensions)

    @property
    def crawled(self) -> List[str]:
        """URLs fetched (or dispatched for fetching) so far."""
        return self.frontier.visited

    @property
    def url_count(self) -> int:
        """Distinct URLs yielded to the output stream."""
        return len(self.output)

    @property
    def page_count(self) -> int:
        return self.frontier.visited_count

    def is_active(self) -> bool:
        """True while the crawl has been started and at least one worker is live."""
        return self._started and self.frontier.live_workers > 0

    def open_cursor(self) -> StreamCursor:
        """A fresh reader positioned at the start of the current output stream."""
        return self.output.cursor()

    def get_browser(self) -> Browser:
        """The browser shared by workers and plugins."""
        if self.browser is None:
            fetcher = WebFetcher(
                user_agent=self.config.user_agent,
                request_timeout=self.config.timeout,
                max_concurrent_requests=max(1, self.config.threads) * 2,
                headers=self.config.headers,
                cookies=self.config.cookies,
                proxy=self.config.proxy_url
            )
            self.browser = Browser(fetcher)
        return self.browser

    # Plugins

    def set_plugin_option(self, name: str, value: str):
        self.plugin_options[name] = value

    def load_plugins(self, names: Iterable[str]) -> List[Plugin]:
        """
        Load plugins by name. Options must be set beforehand so required
        options can be validated.

        Raises:
            PluginError: if any plugin cannot be loaded; none are kept then
        """
        plugins = load_plugins(names, self, self.registry)
        self.plugins = plugins
        self.logger.info(f"Loaded plugins: {', '.join(p.name for p in plugins) or 'none'}")
        return plugins

    # Lifecycle

    def _reset(self):
        self.policy = self._build_policy()
        self.start_url = self.policy.start_url
        self.frontier = URLFrontier(self.policy, self.config.max_pages)
        self.output = OutputStream(self.policy)
        self.status = StatusStream()
        self.stats = CrawlStats()
        self._started = False
        self._stop_requested = False
        self.workers = []
        self.plugin_tasks = []

    async def start(self) -> bool:
        """
        Seed the crawl and dispatch the workers and plugins.

        Returns:
            True if the crawl is now active; False if the start URL could not
            be fetched, yielded nothing to crawl, or kill() was called while
            the start URL was being fetched
        """
        if self.is_active():
            self.logger.warning("Crawler is already running")
            return False

        self._reset()
        self.state = CrawlState.BOOTSTRAPPING
        self.logger.info(f"Parsing base URL: {self.start_url}...")
        self.logger.debug(f"Policy: {' '.join(self.policy.describe())}")

        try:
            page = await self.get_browser().open(self.start_url)
        except FetchError as e:
            self.logger.error(f"Could not open base URL: {e}")
            await self._abort()
            return False

        await self.frontier.mark_visited(self.start_url)
        self.stats.pages_fetched += 1
        await self.output.publish(self.start_url)

        for link in page.get_links().get('href', []):
            link = strip_fragment(link)
            try:
                await self.frontier.enqueue(link)
                await self.output.publish(link)
            except MalformedURLError:
                await self.status.status(f"[-] Malformed URL: {link}")

        if self._stop_requested:
            self.logger.info("Crawler stopped before workers were dispatched")
            await self._abort()
            self.state = CrawlState.STOPPED
            return False

        if self.frontier.pending_count == 0:
            self.logger.error("No URL to spider!")
            await self._abort()
            return False

        threads = max(1, self.config.threads)
        self.logger.info(f"Starting {threads} workers...")
        self._started = True
        self.state = CrawlState.ACTIVE
        for i in range(threads):
            await self.frontier.worker_started()
            self.workers.append(asyncio.create_task(self._worker(f"worker-{i}")))
        self.logger.info("Workers dispatched, spider is now active!")

        if self.plugins:
            self.logger.info("Starting plugins...")
            self.plugin_options.freeze()
            self._running_plugins = len(self.plugins)
            for plugin in self.plugins:
                self.plugin_tasks.append(asyncio.create_task(self._run_plugin(plugin)))
            self.logger.info("Plugins started!")

        return True

    async def _abort(self):
        self.state = CrawlState.IDLE
        self.stats.end_time = time.time()
        await self.output.close()
        await self.status.close()

    async def _worker(self, worker_id: str):
        """
        Worker coroutine that processes URLs from the frontier until the
        crawl is quiescent or stopped.
        """
        self.logger.debug(f"Worker {worker_id} started")
        try:
            while True:
                url = await self.frontier.next_target()
                if url is None:
                    break
                try:
                    await self._process_url(url)
                finally:
                    await self.frontier.task_done()
        finally:
            remaining = await self.frontier.worker_exited()
            self.logger.debug(f"Worker {worker_id} finished")
            if remaining == 0:
                await self._finish()

    async def _process_url(self, url: str):
        """Fetch one page and feed its links to the frontier and the output stream."""
        await self.status.status(f"[*] Parsing page: {url}...")

        try:
            page = await self.get_browser().open(url)
        except FetchError as e:
            self.stats.errors += 1
            await self.status.status(f"[-] FetchError: {e}")
            self.logger.log_url_event(logging.WARNING, url, f"Failed to fetch {url}: {e.reason}")
            return
        except Exception as e:
            self.stats.errors += 1
            await self.status.status(f"[-] Error processing {url}: {e}")
            self.logger.error(f"Error processing {url}: {e}", exc_info=True)
            return

        self.stats.pages_fetched += 1
        for links in page.get_links().values():
            for link in links:
                link = strip_fragment(link)
                try:
                    await self.frontier.enqueue(link)
                    await self.output.publish(link)
                except MalformedURLError:
                    continue

    async def _finish(self):
        """Called by the last worker to exit."""
        self.state = CrawlState.STOPPED
        self.stats.end_time = time.time()
        await self.output.close()
        await self.status.close()
        self._log_final_stats()

    async def _run_plugin(self, plugin: Plugin):
        try:
            await plugin.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Plugin {plugin.name} crashed: {e}", exc_info=True)
        else:
            self.logger.debug(f"Plugin {plugin.name} finished")
        finally:
            self._running_plugins -= 1
            if self._running_plugins == 0:
                # Options may be changed again before the next start()
                self.plugin_options.unfreeze()

    async def kill(self):
        """
        Stop the workers and wait until all of them have exited.

        Called while start() is still fetching the start URL, it makes
        start() return False instead of dispatching workers.
        """
        if self.state == CrawlState.BOOTSTRAPPING:
            self.logger.info("Stop requested while bootstrapping")
            self._stop_requested = True
            return
        if not self.is_active():
            return
        self.logger.info("Stopping crawler...")
        self.state = CrawlState.DRAINING
        await self.frontier.stop()
        await self.frontier.wait_for_workers()
        self.state = CrawlState.STOPPED

    async def join(self):
        """Wait for the workers to finish, then for the plugins."""
        if self.workers:
            await asyncio.gather(*self.workers, return_exceptions=True)
        if self.plugin_tasks:
            await asyncio.gather(*self.plugin_tasks, return_exceptions=True)

    async def close(self):
        """Stop the crawl if needed and release the browser."""
        await self.kill()
        await self.join()
        self.plugin_options.unfreeze()
        if self.browser is not None and self._owns_browser:
            await self.browser.close()
            self.browser = None
        self.logger.debug("Crawler scheduler closed")

    def _log_final_stats(self):
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"URLs found: {self.url_count}")
        self.logger.info(f"Pages crawled: {self.page_count}")
        self.logger.info(f"Fetch errors: {self.stats.errors}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"URLs remaining in queue: {self.frontier.pending_count}")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'state': self.state.value,
            'urls_found': self.url_count,
            'pages_crawled': self.page_count,
            'pages_fetched': self.stats.pages_fetched,
            'errors': self.stats.errors,
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'is_active': self.is_active(),
            'frontier': self.frontier.get_stats(),
        }
