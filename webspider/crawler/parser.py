"""
Web page parser for extracting categorized links and forms.
"""

import logging
from typing import List, Dict, Optional
from urllib.parse import urljoin
from dataclasses import dataclass, field
from bs4 import BeautifulSoup


# Link category -> (tag, attribute) pairs the category is collected from.
LINK_SOURCES = {
    'href': [('a', 'href'), ('area', 'href'), ('link', 'href')],
    'src': [('img', 'src'), ('script', 'src'), ('iframe', 'src'), ('frame', 'src'),
            ('embed', 'src'), ('source', 'src'), ('audio', 'src'), ('video', 'src')],
    'action': [('form', 'action')],
}

# Schemes that never lead to a fetchable document.
SKIPPED_SCHEMES = ('javascript:', 'mailto:', 'tel:', 'data:')


@dataclass
class FormElement:
    """A <form> found on a page."""
    action: str
    method: str = 'get'
    attributes: Dict[str, str] = field(default_factory=dict)
    inputs: List[str] = field(default_factory=list)

    def attr(self, name: str) -> str:
        return self.attributes.get(name.lower(), '')


@dataclass
class ParsedPage:
    """Container for the parts of a page the spider uses."""
    url: str
    title: Optional[str] = None
    links: Dict[str, List[str]] = field(default_factory=dict)
    forms: List[FormElement] = field(default_factory=list)

    def __post_init__(self):
        for category in LINK_SOURCES:
            self.links.setdefault(category, [])


class ContentParser:
    """
    Parses HTML content to extract links by category and forms.
    """

    def __init__(self, features: str = 'lxml'):
        self.features = features
        self.logger = logging.getLogger(__name__)

    def parse(self, url: str, html_content: str) -> ParsedPage:
        """
        Parse HTML content.

        Args:
            url: The URL of the page
            html_content: Raw HTML content

        Returns:
            ParsedPage with absolute links in document order
        """
        soup = BeautifulSoup(html_content, self.features)
        base_url = self._base_url(soup, url)

        parsed_page = ParsedPage(url=url)
        title_tag = soup.find('title')
        if title_tag:
            parsed_page.title = title_tag.get_text(strip=True)

        for category in LINK_SOURCES:
            parsed_page.links[category] = self._extract_links(soup, category, base_url)
        parsed_page.forms = self._extract_forms(soup, base_url)

        self.logger.debug(f"Parsed {url}: "
                          f"{sum(len(links) for links in parsed_page.links.values())} links, "
                          f"{len(parsed_page.forms)} forms")
        return parsed_page

    def _base_url(self, soup: BeautifulSoup, url: str) -> str:
        """Honour <base href> when resolving relative links."""
        base = soup.find('base', href=True)
        if base and base['href'].strip():
            return urljoin(url, base['href'].strip())
        return url

    def _extract_links(self, soup: BeautifulSoup, category: str, base_url: str) -> List[str]:
        """Extract absolute links of one category, deduplicated, in document order."""
        links: Dict[str, None] = {}
        wanted = dict(LINK_SOURCES[category])

        for tag in soup.find_all(list(wanted)):
            value = tag.get(wanted[tag.name])
            if not value:
                continue
            value = value.strip()
            if not value or value.lower().startswith(SKIPPED_SCHEMES):
                continue
            try:
                links[urljoin(base_url, value)] = None
            except ValueError:
                self.logger.debug(f"Unresolvable link on {base_url}: {value}")

        return list(links)

    def _extract_forms(self, soup: BeautifulSoup, base_url: str) -> List[FormElement]:
        forms = []
        for form in soup.find_all('form'):
            attributes = {
                name.lower(): ' '.join(value) if isinstance(value, list) else value
                for name, value in form.attrs.items()
            }
            action = attributes.get('action', '').strip()
            forms.append(FormElement(
                action=urljoin(base_url, action) if action else base_url,
                method=(attributes.get('method') or 'get').strip().lower(),
                attributes=attributes,
                inputs=[element.get('name') for element in form.find_all(['input', 'select', 'textarea'])
                        if element.get('name')]
            ))
        return forms
