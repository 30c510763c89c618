"""
HTML Content Cleaning Module

This module prepares fetched HTML for offline storage by removing active
content (scripts, event handlers, embedded frames) and extracts the
readable part of a page for long-form export.
"""

from bs4 import BeautifulSoup, Comment
import re
import logging
from typing import Dict, Optional


class HTMLCleaner:
    """
    Cleans HTML content for offline archives.

    An archived page must render without network access and must not run
    code when served back out of the archive, so the cleaner removes:
    - <script> elements and javascript: URLs
    - inline event handler attributes (onclick, onload, ...)
    - embedded frames and <base> elements
    - HTML comments
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

        self.active_tags = ['script', 'iframe', 'frame', 'frameset', 'object', 'embed', 'base']

        # Elements that never carry article text
        self.boilerplate_selectors = [
            'nav', 'header', 'footer', 'aside', 'form', 'noscript',
            '[role="navigation"]', '[role="banner"]', '[role="contentinfo"]',
            '[aria-hidden="true"]',
        ]

        self.boilerplate_class_pattern = re.compile(
            r'(^|[\s_-])(nav|menu|sidebar|footer|header|comment|share|social|advert|ads|cookie|popup|newsletter)([\s_-]|$)',
            re.I
        )

    def clean_html(self, html_content: str, original_url: str) -> Optional[str]:
        """
        Clean HTML content by removing active content.

        Args:
            html_content: Raw HTML content
            original_url: The original URL of the page (for logging)

        Returns:
            Cleaned HTML content, or None if cleaning fails
        """
        try:
            self.logger.info(f"Cleaning HTML content for: {original_url}")

            soup = BeautifulSoup(html_content, 'lxml')

            self._remove_active_elements(soup)
            self._remove_event_handlers(soup)
            self._remove_comments(soup)

            cleaned_html = self._post_process_html(str(soup))

            self.logger.debug(f"Original size: {len(html_content)}, Cleaned size: {len(cleaned_html)}")

            return cleaned_html

        except Exception as e:
            self.logger.error(f"Failed to clean HTML for {original_url}: {e}")
            return None

    def _remove_active_elements(self, soup: BeautifulSoup) -> None:
        """Remove scripts, frames and other active elements."""
        removed_count = 0

        for element in soup.find_all(self.active_tags):
            element.decompose()
            removed_count += 1

        # Preloads and module preloads point at scripts we just removed
        for link in soup.find_all('link', rel=True):
            rel = [r.lower() for r in link.get('rel', [])]
            if 'preload' in rel or 'modulepreload' in rel or 'prefetch' in rel:
                link.decompose()
                removed_count += 1

        if removed_count > 0:
            self.logger.debug(f"Removed {removed_count} active elements")

    def _remove_event_handlers(self, soup: BeautifulSoup) -> None:
        """Strip on* attributes and javascript: URLs."""
        for element in soup.find_all(True):
            if not element.attrs:
                continue
            for attr in list(element.attrs.keys()):
                value = element.attrs[attr]
                if attr.lower().startswith('on'):
                    del element.attrs[attr]
                elif isinstance(value, str) and value.strip().lower().startswith('javascript:'):
                    del element.attrs[attr]

    def _remove_comments(self, soup: BeautifulSoup) -> None:
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

    def _post_process_html(self, html: str) -> str:
        """
        Perform final text-based cleaning on the HTML string.

        Args:
            html: HTML content as string

        Returns:
            Post-processed HTML content
        """
        html = re.sub(r'<style[^>]*>\s*</style>', '', html, flags=re.IGNORECASE)
        html = re.sub(r'\n\s*\n\s*\n', '\n\n', html)
        return html

    def get_metadata(self, html_content: str) -> Dict[str, str]:
        """
        Extract title and description from HTML content.

        Args:
            html_content: HTML content to analyze

        Returns:
            Dictionary with 'title' and 'description' (possibly empty)
        """
        soup = BeautifulSoup(html_content, 'lxml')

        metadata = {'title': '', 'description': ''}

        og_title = soup.find('meta', attrs={'property': 'og:title'})
        title_tag = soup.find('title')
        if title_tag and title_tag.get_text().strip():
            metadata['title'] = title_tag.get_text().strip()
        elif og_title and og_title.get('content'):
            metadata['title'] = og_title['content'].strip()

        for attrs in ({'name': 'description'}, {'property': 'og:description'}):
            desc_tag = soup.find('meta', attrs=attrs)
            if desc_tag and desc_tag.get('content', '').strip():
                metadata['description'] = desc_tag['content'].strip()
                break

        if not metadata['description']:
            first_paragraph = soup.find('p')
            if first_paragraph:
                text = ' '.join(first_paragraph.get_text().split())
                metadata['description'] = text[:300]

        return metadata

    def extract_readable(self, html_content: str) -> str:
        """
        Extract the readable body of a page as an HTML fragment.

        Prefers <article>, then <main>, then <body>; boilerplate such as
        navigation, footers and forms is removed, along with images since
        archive-internal asset paths do not resolve inside an export.

        Returns:
            HTML fragment; empty string when the page has no text
        """
        soup = BeautifulSoup(html_content, 'lxml')

        self._remove_active_elements(soup)
        self._remove_comments(soup)
        for tag in soup.find_all(['style', 'link', 'meta', 'img', 'picture', 'svg', 'video', 'audio']):
            tag.decompose()

        root = soup.find('article') or soup.find('main') or soup.body or soup

        for selector in self.boilerplate_selectors:
            for element in root.select(selector):
                element.decompose()

        for element in root.find_all(True):
            if element.decomposed or element.attrs is None:
                continue
            marker = ' '.join(element.get('class', [])) + ' ' + (element.get('id') or '')
            if self.boilerplate_class_pattern.search(marker):
                element.decompose()

        for element in root.find_all(True):
            if element.decomposed or element.attrs is None:
                continue
            element.attrs = {k: v for k, v in element.attrs.items() if k in ('href', 'alt', 'title')}

        if not root.get_text().strip():
            return ''

        return ''.join(str(child) for child in root.children).strip()
