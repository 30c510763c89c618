"""
Asset collection, download, and rewrite utilities.

This module discovers images and stylesheets referenced by a captured page,
downloads them through the fetcher, and rewrites the page to point at the
copies stored inside the archive.
"""

from __future__ import annotations

import hashlib
import mimetypes
import posixpath
import re
import logging
from dataclasses import dataclass
from typing import List, Dict, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from .errors import FetchFailed


ASSET_DIR = "assets"
CSS_URL_RE = re.compile(r"url\(([^)]+)\)", re.I)
CSS_IMPORT_RE = re.compile(r"@import\s+(?:url\()?['\"]?([^'\")\s;]+)", re.I)
SKIP_SCHEMES = ('data:', 'javascript:', 'mailto:', 'about:', '#')


@dataclass
class Asset:
    url: str              # Absolute URL of the resource
    type: str             # 'image' | 'stylesheet'
    attr: str             # Attribute containing the URL ('src', 'srcset', 'href' or 'style')
    archive_path: Optional[str] = None
    content: Optional[bytes] = None
    content_type: Optional[str] = None


def _fetchable(url: str) -> bool:
    return bool(url) and not url.strip().lower().startswith(SKIP_SCHEMES)


def extract_css_urls(css_text: str) -> List[str]:
    urls = []
    for match in CSS_URL_RE.finditer(css_text):
        raw = match.group(1).strip().strip('"\'')
        if _fetchable(raw):
            urls.append(raw)
    for match in CSS_IMPORT_RE.finditer(css_text):
        raw = match.group(1).strip()
        if _fetchable(raw):
            urls.append(raw)
    return urls


def parse_srcset(srcset: str) -> List[str]:
    # srcset entries are comma-separated; each entry has URL + descriptor
    candidates = []
    for part in srcset.split(','):
        item = part.strip()
        if not item:
            continue
        candidates.append(item.split()[0])
    return candidates


class AssetCollector:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def collect(self, html: str, page_url: str) -> List[Asset]:
        soup = BeautifulSoup(html, 'lxml')
        assets: List[Asset] = []

        def add(raw: str, asset_type: str, attr: str):
            if _fetchable(raw):
                assets.append(Asset(url=urljoin(page_url, raw.strip()), type=asset_type, attr=attr))

        for img in soup.find_all('img'):
            add(img.get('src', ''), 'image', 'src')
            if img.get('srcset'):
                for candidate in parse_srcset(img['srcset']):
                    add(candidate, 'image', 'srcset')

        for source in soup.find_all('source'):
            if source.get('srcset'):
                for candidate in parse_srcset(source['srcset']):
                    add(candidate, 'image', 'srcset')

        for link in soup.find_all('link', rel=lambda v: v and 'stylesheet' in v):
            add(link.get('href', ''), 'stylesheet', 'href')

        for link in soup.find_all('link', rel=lambda v: v and 'icon' in v.lower()):
            add(link.get('href', ''), 'image', 'href')

        for el in soup.find_all(style=True):
            for css_url in extract_css_urls(el.get('style', '')):
                add(css_url, 'image', 'style')

        for style_tag in soup.find_all('style'):
            for css_url in extract_css_urls(style_tag.get_text() or ''):
                add(css_url, 'image', 'style')

        # De-duplicate by URL, keeping the first occurrence
        dedup: Dict[str, Asset] = {}
        for a in assets:
            if urlparse(a.url).scheme in ('http', 'https'):
                dedup.setdefault(a.url, a)
        return list(dedup.values())


class AssetDownloader:
    """Downloads assets through a Fetcher into memory."""

    def __init__(self, fetcher, max_asset_bytes: int = 5 * 1024 * 1024):
        self.logger = logging.getLogger(__name__)
        self.fetcher = fetcher
        self.max_asset_bytes = max_asset_bytes

    def download(self, assets: List[Asset]) -> Dict[str, Asset]:
        """
        Download assets, skipping any that fail.

        Returns a mapping of original URL -> downloaded Asset with
        archive_path, content and content_type filled in.
        """
        mapping: Dict[str, Asset] = {}
        for a in assets:
            if a.url in mapping:
                continue
            try:
                with self.fetcher.fetch_bytes(a.url, max_bytes=self.max_asset_bytes) as stream:
                    a.content = stream.read()
                    a.content_type = stream.media_type
            except FetchFailed as e:
                self.logger.warning(f"Failed to download asset: {a.url} ({e})")
                continue
            a.archive_path = self.archive_name(a.url, a.content_type)
            mapping[a.url] = a
        return mapping

    def archive_name(self, url: str, content_type: Optional[str] = None) -> str:
        """
        Stable archive-internal name for an asset URL.

        A short hash of the full URL keeps names unique across hosts and
        query strings; the original basename keeps them readable.
        """
        parsed = urlparse(url)
        base = posixpath.basename(parsed.path) or 'index'
        base = re.sub(r'[^\w\-.]', '_', base)[:80]
        stem, ext = posixpath.splitext(base)
        if not ext and content_type:
            ext = mimetypes.guess_extension(content_type) or ''
        digest = hashlib.sha1(url.encode('utf-8')).hexdigest()[:10]
        return f"{ASSET_DIR}/{digest}-{stem}{ext}"


class AssetRewriter:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def rewrite_html(self, html: str, page_url: str, mapping: Dict[str, Asset]) -> str:
        """
        Rewrite asset references to archive-internal paths.

        References are resolved against page_url before lookup, so relative
        and absolute spellings of the same asset both match.
        """
        soup = BeautifulSoup(html, 'lxml')

        def local(raw: Optional[str]) -> Optional[str]:
            if not raw or not _fetchable(raw):
                return None
            asset = mapping.get(urljoin(page_url, raw.strip()))
            return asset.archive_path if asset else None

        for img in soup.find_all('img'):
            target = local(img.get('src'))
            if target:
                img['src'] = target

        for link in soup.find_all('link', href=True):
            target = local(link.get('href'))
            if target:
                link['href'] = target

        for el in soup.find_all(style=True):
            style = el.get('style', '')
            new_style = self.rewrite_css(style, page_url, mapping)
            if new_style != style:
                el['style'] = new_style

        for style_tag in soup.find_all('style'):
            css_text = style_tag.get_text() or ''
            new_css = self.rewrite_css(css_text, page_url, mapping)
            if new_css != css_text:
                style_tag.string = new_css

        for tag in soup.find_all(['img', 'source']):
            srcset = tag.get('srcset')
            if not srcset:
                continue
            parts = []
            for part in srcset.split(','):
                item = part.strip()
                if not item:
                    continue
                tokens = item.split()
                target = local(tokens[0])
                if target:
                    parts.append(' '.join([target] + tokens[1:]))
                else:
                    parts.append(item)
            tag['srcset'] = ', '.join(parts)

        return str(soup)

    def rewrite_css(self, css_text: str, base_url: str, mapping: Dict[str, Asset],
                    relative_to: str = '') -> str:
        """
        Rewrite url(...) and @import references in CSS.

        relative_to is the archive directory of the stylesheet itself, so
        references from assets/x.css to assets/y.png become 'y.png'.
        """
        def target_for(raw: str) -> Optional[str]:
            if not _fetchable(raw):
                return None
            asset = mapping.get(urljoin(base_url, raw))
            if not asset:
                return None
            if relative_to:
                return posixpath.relpath(asset.archive_path, relative_to)
            return asset.archive_path

        def repl_url(m):
            raw = m.group(1).strip().strip('"\'')
            target = target_for(raw)
            return f"url({target})" if target else m.group(0)

        def repl_import(m):
            raw = m.group(1).strip()
            target = target_for(raw)
            return m.group(0).replace(raw, target) if target else m.group(0)

        css_text = CSS_URL_RE.sub(repl_url, css_text)
        return CSS_IMPORT_RE.sub(repl_import, css_text)
