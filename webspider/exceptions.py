"""
Exceptions raised by the spider.
"""


class SpiderError(Exception):
    """Base exception for spider operations."""
    pass


class MalformedURLError(SpiderError):
    """Raised when a URL cannot be parsed as an absolute URL."""

    def __init__(self, url: str):
        super().__init__(f"Malformed URL: {url}")
        self.url = url


class FetchError(SpiderError):
    """Raised when a page cannot be opened or downloaded."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


class PluginError(SpiderError):
    """Raised when plugins cannot be resolved, configured or loaded."""
    pass


class ConfigError(SpiderError, ValueError):
    """Raised for invalid configuration files or values."""
    pass
