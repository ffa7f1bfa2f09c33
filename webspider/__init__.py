"""
webspider

A concurrent web-link crawler with a plugin system for consuming the
discovered URLs while the crawl runs.
"""

__version__ = "1.1.0"
__description__ = "A concurrent web crawler that streams discovered URLs to plugins and callers"
