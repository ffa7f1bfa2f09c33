#!/usr/bin/env python3
"""
Main entry point for the spider.
"""

import asyncio
import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Optional

from webspider import __version__
from webspider.crawler.scheduler import CrawlerScheduler
from webspider.exceptions import ConfigError, PluginError
from webspider.storage.output import LineWriter
from webspider.utils.config import (
    Config, load_config, validate_config, parse_cookies, parse_plugin_options, split_list
)
from webspider.utils.logger import setup_logging, log_system_info


class SpiderApp:
    """Command-line application driving one crawl."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            loop.call_soon_threadsafe(self._shutdown_event.set)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def _watch_shutdown(self):
        await self._shutdown_event.wait()
        self.logger.info("Shutdown requested, stopping crawler...")
        await self.scheduler.kill()

    async def _print_status(self):
        async for message in self.scheduler.status.cursor():
            print(message)

    async def run(self, config: Config) -> int:
        """Run the spider and report the discovered URLs."""
        setup_logging(config.logging)
        if config.logging.level.upper() == 'DEBUG':
            log_system_info()

        verbose = config.output.verbose
        if config.plugins.names:
            # Plugin reports would be drowned by the URL listing
            verbose = False

        self.scheduler = CrawlerScheduler(config.spider)

        # Options first, so loading can validate required options
        for name, value in config.plugins.options.items():
            self.scheduler.set_plugin_option(name, value)
        if config.plugins.names:
            try:
                self.scheduler.load_plugins(config.plugins.names)
            except PluginError as e:
                self.logger.error(str(e))
                return 1

        writer = None
        if config.output.file:
            try:
                writer = LineWriter(config.output.file)
            except OSError as e:
                self.logger.error(f"Cannot open output file {config.output.file}: {e}")
                return 1

        self.setup_signal_handlers()
        watcher = asyncio.create_task(self._watch_shutdown())
        status_printer = None
        start_time = time.time()

        try:
            started = await self.scheduler.start()
            if not started and len(self.scheduler.output) == 0:
                # The start URL itself could not be opened
                return 1

            # A failed start still leaves the seed and its links in the closed stream
            if verbose:
                status_printer = asyncio.create_task(self._print_status())

            async for url in self.scheduler.open_cursor():
                if verbose:
                    print(f"[+]  ==>  {url}")
                if writer:
                    writer.write_line(url)
            elapsed = time.time() - start_time

            if status_printer:
                await status_printer
            await self.scheduler.join()

        finally:
            watcher.cancel()
            if writer:
                writer.close()
            await self.scheduler.close()

        print(f"[+] Crawling completed, {self.scheduler.url_count} URLs found "
              f"in {self.scheduler.page_count} pages!")
        print(f"[*] Time taken: {elapsed:.3f} seconds.")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="webspider - a concurrent web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py -u http://example.com/                      # Crawl with defaults
  python main.py -u http://example.com/ -t 10 -m 500 -o urls.txt
  python main.py -u http://example.com/ -i logout,delete     # Never open matching URLs
  python main.py -u http://example.com/ -pl ServerID -po outfile=servers.tsv
  python main.py -u http://example.com/ -pl MassDumper -po "exts=.pdf;outdir=dump"
  python main.py --config config.yaml                        # Settings from a YAML file
        """
    )

    parser.add_argument('-u', '--url', help='Starting URL')
    parser.add_argument('-ua', '--useragent', help='User agent')
    parser.add_argument('-tout', '--timeout', type=float, help='Read timeout in seconds (default: 5)')
    parser.add_argument('-t', '--threads', type=int, help='Number of workers to use (default: 5)')
    parser.add_argument('-m', '--max', type=int, help='Max number of pages to parse (default: 100)')
    parser.add_argument('-o', '--output', help='Output file')
    parser.add_argument('-c', '--cookie', help='Cookie string to use')
    parser.add_argument('-e', '--external', action=argparse.BooleanOptionalAction, default=None,
                        help='Follow external URLs')
    parser.add_argument('-he', '--hide-external', action=argparse.BooleanOptionalAction, default=None,
                        help='Hide external URLs')
    parser.add_argument('-i', '--ignore', help='Keywords of URLs not to open (comma-separated)')
    parser.add_argument('-p', '--proxy', help='Proxy host and port (host:port)')
    parser.add_argument('-pl', '--plugin', help='Plugin(s) to activate (comma-separated)')
    parser.add_argument('-po', '--plugin-options', help='Plugin options (name=val;name2=val2)')
    parser.add_argument('-v', '--verbose', action=argparse.BooleanOptionalAction, default=None,
                        help='Print status messages and URLs (default: on)')
    parser.add_argument('--config', help='Path to a YAML configuration file')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')
    parser.add_argument('--log-file', help='Also write logs to this file')
    parser.add_argument('--version', action='version', version=f'webspider {__version__}')
    return parser


def build_config(args: argparse.Namespace) -> Config:
    """Merge command-line arguments over the optional configuration file."""
    config = load_config(args.config) if args.config else Config()
    spider = config.spider

    if args.url is not None:
        spider.start_url = args.url
    if args.useragent is not None:
        spider.user_agent = args.useragent
    if args.timeout is not None:
        spider.timeout = args.timeout
    if args.threads is not None:
        spider.threads = args.threads
    if args.max is not None:
        spider.max_pages = args.max
    if args.cookie is not None:
        spider.cookies.update(parse_cookies(args.cookie))
    if args.external is not None:
        spider.follow_external = args.external
    if args.hide_external is not None:
        spider.hide_external = args.hide_external
    if args.ignore is not None:
        spider.ignore = split_list(args.ignore)
    if args.proxy is not None:
        spider.proxy = args.proxy

    if args.plugin is not None:
        config.plugins.names = split_list(args.plugin)
    if args.plugin_options is not None:
        config.plugins.options.update(parse_plugin_options(args.plugin_options))

    if args.output is not None:
        config.output.file = args.output
    if args.verbose is not None:
        config.output.verbose = args.verbose
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_file is not None:
        config.logging.file = args.log_file

    validate_config(config)
    return config


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.config and not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        return 1

    try:
        config = build_config(args)
    except ConfigError as e:
        if args.url is None and not args.config:
            parser.print_help()
        else:
            print(f"Error: {e}")
        return 1

    app = SpiderApp()
    try:
        return asyncio.run(app.run(config))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
