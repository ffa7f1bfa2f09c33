"""
Web crawler core components.
"""

from .policy import URLPolicy, DEFAULT_EXTENSIONS, parse_url, strip_fragment
from .url_frontier import URLFrontier
from .streams import Stream, StreamCursor, OutputStream, StatusStream
from .fetcher import WebFetcher, FetchResult
from .parser import ContentParser, ParsedPage, FormElement
from .browser import Browser, Page

__all__ = [
    'URLPolicy', 'DEFAULT_EXTENSIONS', 'parse_url', 'strip_fragment',
    'URLFrontier',
    'Stream', 'StreamCursor', 'OutputStream', 'StatusStream',
    'WebFetcher', 'FetchResult',
    'ContentParser', 'ParsedPage', 'FormElement',
    'Browser', 'Page'
]
