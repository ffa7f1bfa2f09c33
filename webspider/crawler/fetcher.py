"""
HTTP fetcher built on aiohttp, shared by the spider workers and plugins.
"""

import asyncio
import aiohttp
import logging
import time
from pathlib import Path
from typing import Dict, Optional, Union
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None


class WebFetcher:
    """
    Fetches web pages and files with a shared session and error handling.

    Request headers, cookies and an optional HTTP proxy apply to every
    request made through this fetcher.
    """

    def __init__(self, user_agent: str, request_timeout: float = 5.0,
                 max_concurrent_requests: int = 10,
                 headers: Optional[Dict[str, str]] = None,
                 cookies: Optional[Dict[str, str]] = None,
                 proxy: Optional[str] = None):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.headers = dict(headers or {})
        self.cookies = dict(cookies or {})
        self.proxy = proxy

        self.logger = logging.getLogger(__name__)

        # Session management
        self.session: Optional[ClientSession] = None
        self.semaphore = asyncio.Semaphore(max_concurrent_requests)

        # Statistics
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'files_downloaded': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}
            headers.update(self.headers)

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                cookies=self.cookies,
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests * 2,
                    limit_per_host=10,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str, method: str = 'GET') -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch
            method: HTTP method; HEAD requests never read a body

        Returns:
            FetchResult object containing the response data or error information
        """
        start_time = time.time()
        await self.start()

        async with self.semaphore:
            try:
                self.stats['total_requests'] += 1

                async with self.session.request(method, url, proxy=self.proxy) as response:
                    fetch_time = time.time() - start_time

                    # Get response headers
                    headers = dict(response.headers)
                    content_type = response.headers.get('content-type', '').lower()

                    if response.status >= 400:
                        self.stats['failed_requests'] += 1
                        self.logger.debug(f"HTTP {response.status} for {url}")
                        return FetchResult(
                            url=url,
                            status_code=response.status,
                            headers=headers,
                            content_type=content_type,
                            error=f"HTTP error {response.status}",
                            fetch_time=fetch_time
                        )

                    content = None
                    if method.upper() != 'HEAD' and self._is_text_content(content_type):
                        content = await self._read_content_safely(response)
                    elif method.upper() != 'HEAD':
                        self.logger.debug(f"Skipping non-text content: {url} ({content_type})")

                    self.stats['successful_requests'] += 1
                    if content:
                        self.stats['total_bytes_downloaded'] += len(content)

                    result = FetchResult(
                        url=url,
                        status_code=response.status,
                        content=content,
                        headers=headers,
                        content_type=content_type,
                        encoding=response.charset,
                        fetch_time=fetch_time
                    )

                    self.logger.debug(f"Fetched {url}: {response.status} ({len(content) if content else 0} bytes)")
                    return result

            except asyncio.TimeoutError:
                self.stats['failed_requests'] += 1
                error_msg = "Request timeout"
                self.logger.debug(f"Timeout fetching {url}")

            except (ClientError, ValueError) as e:
                self.stats['failed_requests'] += 1
                error_msg = f"Client error: {str(e)}"
                self.logger.debug(f"Client error fetching {url}: {e}")

            return FetchResult(
                url=url,
                status_code=0,
                error=error_msg,
                fetch_time=time.time() - start_time
            )

    async def download(self, url: str, destination: Union[str, Path]) -> bool:
        """
        Stream a URL to a file.

        Returns:
            True if the file was written, False on any failure
        """
        destination = Path(destination)
        await self.start()

        async with self.semaphore:
            try:
                self.stats['total_requests'] += 1
                async with self.session.get(url, proxy=self.proxy) as response:
                    if response.status >= 400:
                        self.stats['failed_requests'] += 1
                        self.logger.warning(f"HTTP {response.status} downloading {url}")
                        return False

                    destination.parent.mkdir(parents=True, exist_ok=True)
                    size = 0
                    with open(destination, 'wb') as f:
                        async for chunk in response.content.iter_chunked(8192):
                            f.write(chunk)
                            size += len(chunk)

                self.stats['successful_requests'] += 1
                self.stats['files_downloaded'] += 1
                self.stats['total_bytes_downloaded'] += size
                self.logger.debug(f"Downloaded {url} to {destination} ({size} bytes)")
                return True

            except asyncio.TimeoutError:
                self.stats['failed_requests'] += 1
                self.logger.warning(f"Timeout downloading {url}")
            except (ClientError, ValueError, OSError) as e:
                self.stats['failed_requests'] += 1
                self.logger.warning(f"Error downloading {url}: {e}")

            # Do not leave a truncated file behind
            if destination.exists():
                destination.unlink()
            return False

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        text_types = [
            'text/html',
            'text/plain',
            'text/xml',
            'application/xml',
            'application/xhtml+xml',
        ]

        return any(text_type in content_type for text_type in text_types)

    async def _read_content_safely(self, response, max_size: int = 10 * 1024 * 1024) -> Optional[str]:
        """
        Safely read response content with size limit.

        Args:
            response: aiohttp response object
            max_size: Maximum content size in bytes (default 10MB)

        Returns:
            Content string or None if too large
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > max_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        # Read content in chunks to respect size limit
        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > max_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        # Decode content
        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            # Try common encodings
            for fallback_encoding in ['utf-8', 'latin-1', 'cp1252']:
                try:
                    return content_bytes.decode(fallback_encoding)
                except UnicodeDecodeError:
                    continue

            # If all else fails, decode with errors ignored
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
