"""
URL admission policy for the frontier and the output stream.
"""

import logging
from typing import Iterable, List, Optional, Sequence
from urllib.parse import SplitResult, urlsplit

from ..exceptions import MalformedURLError


# Path endings considered to be web pages rather than assets.
DEFAULT_EXTENSIONS = (
    "/", ".html", ".htm", ".htmls", ".dhtml", ".xhtml",
    ".php", ".php3", ".asp", ".aspx", ".ece",
)


def strip_fragment(url: str) -> str:
    """Discard everything after the first '#'."""
    return url.split('#', 1)[0]


def parse_url(url: str) -> SplitResult:
    """
    Split an absolute URL.

    Raises:
        MalformedURLError: if the URL has no scheme or network location
    """
    try:
        parts = urlsplit(url)
        # Accessing hostname/port validates the netloc (bad ports, brackets)
        parts.port
    except ValueError:
        raise MalformedURLError(url)

    if not parts.scheme or not parts.netloc or not parts.hostname:
        raise MalformedURLError(url)
    return parts


class URLPolicy:
    """
    Decides whether a URL may enter the frontier and whether it may be
    yielded to consumers. The two decisions are independent.
    """

    def __init__(self, start_url: str, extensions: Optional[Iterable[str]] = None,
                 ignore: Optional[Iterable[str]] = None,
                 follow_external: bool = False, hide_external: bool = False):
        self.start_url = strip_fragment(start_url)
        self.base_host = parse_url(self.start_url).hostname
        self.extensions: List[str] = []
        for ext in (DEFAULT_EXTENSIONS if extensions is None else extensions):
            if ext not in self.extensions:
                self.extensions.append(ext)
        self.ignore = [keyword.lower() for keyword in (ignore or []) if keyword]
        self.follow_external = follow_external
        self.hide_external = hide_external
        self.logger = logging.getLogger(__name__)

    def is_internal(self, parts: SplitResult) -> bool:
        """Suffix match against the start host, so subdomains count as internal."""
        return parts.hostname.endswith(self.base_host)

    def is_page(self, url: str) -> bool:
        """Check whether the URL path ends with a page extension."""
        return self._has_page_extension(parse_url(url).path)

    def _has_page_extension(self, path: str) -> bool:
        return any(path.endswith(ext) for ext in self.extensions)

    def is_ignored(self, url: str) -> bool:
        lowered = url.lower()
        return any(keyword in lowered for keyword in self.ignore)

    def admit_to_frontier(self, url: str) -> bool:
        """
        Decide whether a URL may be scheduled for fetching.

        Raises:
            MalformedURLError: if the URL is not absolute
        """
        parts = parse_url(url)

        if not self.follow_external and not self.is_internal(parts):
            return False

        if not self._has_page_extension(parts.path):
            return False

        if self.is_ignored(url):
            self.logger.debug(f"Ignoring URL by keyword: {url}")
            return False

        return True

    def admit_to_output(self, url: str) -> bool:
        """
        Decide whether a URL may be yielded to consumers.

        Host checks here use only the hide-external flag, independently of
        follow-external. Unparsable URLs and ignored keywords are never yielded.
        """
        try:
            parts = parse_url(url)
        except MalformedURLError:
            return False

        if self.hide_external and not self.is_internal(parts):
            return False
        return not self.is_ignored(url)

    def describe(self) -> Sequence[str]:
        return (
            f"host={self.base_host}",
            f"follow_external={self.follow_external}",
            f"hide_external={self.hide_external}",
            f"ignore={','.join(self.ignore) or '-'}",
        )
