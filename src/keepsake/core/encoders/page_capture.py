"""
Page capture encoder.

Stores an HTML page as a zip archive holding the cleaned page
(``index.html``), the images and stylesheets it references (``assets/``)
and a ``manifest.json`` describing the capture.
"""

from __future__ import annotations

import json
import mimetypes
import posixpath
import zipfile
import zlib
from datetime import datetime, timezone
from typing import Dict, Optional
from urllib.parse import urljoin

from bs4 import UnicodeDammit

from .base import ArchiveEncoder, ROOT_PATHS
from ..assets import Asset, AssetCollector, AssetDownloader, AssetRewriter, extract_css_urls
from ..errors import ArchiveCorrupt, EncodeFailed, ResourceNotFound
from ..html_cleaner import HTMLCleaner
from ..models import ArchiveFile, BookmarkRecord, ContentStream


INDEX_NAME = "index.html"
MANIFEST_NAME = "manifest.json"


class PageCaptureEncoder(ArchiveEncoder):
    name = "page-capture"
    content_types = ("text/html", "text/htm", "application/xhtml+xml")
    extension = "zip"

    def __init__(self, file_manager, fetcher=None, cleaner: Optional[HTMLCleaner] = None,
                 download_assets: bool = True, max_asset_bytes: int = 5 * 1024 * 1024):
        super().__init__(file_manager)
        self.cleaner = cleaner or HTMLCleaner()
        self.collector = AssetCollector()
        self.rewriter = AssetRewriter()
        self.downloader = None
        if fetcher is not None and download_assets:
            self.downloader = AssetDownloader(fetcher, max_asset_bytes=max_asset_bytes)

    def encode(self, stream: ContentStream, bookmark: BookmarkRecord) -> BookmarkRecord:
        body = stream.read()
        if not body.strip():
            raise EncodeFailed("empty HTML document", url=bookmark.url,
                               bookmark_id=bookmark.id, encoder=self.name)

        html = self._decode(body, stream.charset)
        if html is None:
            raise EncodeFailed("could not decode HTML document", url=bookmark.url,
                               bookmark_id=bookmark.id, encoder=self.name)

        page_url = stream.url or bookmark.url
        cleaned = self.cleaner.clean_html(html, page_url)
        if not cleaned:
            raise EncodeFailed("could not clean HTML document", url=bookmark.url,
                               bookmark_id=bookmark.id, encoder=self.name)

        metadata = self.cleaner.get_metadata(cleaned)

        mapping: Dict[str, Asset] = {}
        if self.downloader is not None:
            mapping = self._download_assets(cleaned, page_url)

        final_html = self.rewriter.rewrite_html(cleaned, page_url, mapping) if mapping else cleaned

        resources = {INDEX_NAME: "text/html; charset=utf-8"}
        for asset in mapping.values():
            resources[asset.archive_path] = asset.content_type or "application/octet-stream"

        manifest = {
            'url': bookmark.url,
            'captured_at': datetime.now(timezone.utc).isoformat(timespec='seconds'),
            'title': metadata['title'],
            'resources': resources,
        }

        with self.files.atomic_write(self.archive_path(bookmark)) as tmp_path:
            with zipfile.ZipFile(tmp_path, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
                archive.writestr(INDEX_NAME, final_html.encode('utf-8'))
                for asset in mapping.values():
                    archive.writestr(asset.archive_path, asset.content)
                archive.writestr(MANIFEST_NAME, json.dumps(manifest, ensure_ascii=False, indent=2))

        self.logger.info(f"Captured bookmark {bookmark.id} with {len(mapping)} assets")

        return self._archived(bookmark,
                              title=bookmark.title or metadata['title'],
                              excerpt=bookmark.excerpt or metadata['description'])

    def get_archive_file(self, bookmark: BookmarkRecord, resource_path: str) -> ArchiveFile:
        member = self._member_name(resource_path)
        if member is None:
            raise ResourceNotFound(f"invalid resource path {resource_path!r}",
                                   resource_path=resource_path, bookmark_id=bookmark.id,
                                   url=bookmark.url, encoder=self.name)

        path = self._require_archive(bookmark, resource_path)

        try:
            with zipfile.ZipFile(path) as archive:
                try:
                    content = archive.read(member)
                except KeyError:
                    raise ResourceNotFound(f"{member} not found in archive of bookmark {bookmark.id}",
                                           resource_path=resource_path, bookmark_id=bookmark.id,
                                           url=bookmark.url, encoder=self.name) from None
                content_type = self._content_type(archive, member)
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise ArchiveCorrupt(f"archive of bookmark {bookmark.id} is unreadable: {e}",
                                 bookmark_id=bookmark.id, url=bookmark.url, encoder=self.name) from e

        return ArchiveFile(name=member, content=content, content_type=content_type)

    def _member_name(self, resource_path: str) -> Optional[str]:
        """Map a request path onto a zip member name; None when it escapes the archive."""
        path = (resource_path or "").strip()
        if path in ROOT_PATHS:
            return INDEX_NAME
        if "\x00" in path or "\\" in path:
            return None
        path = posixpath.normpath(path.lstrip("/"))
        if path in (".", "") or path == ".." or path.startswith("../"):
            return None
        return path

    def _content_type(self, archive: zipfile.ZipFile, member: str) -> str:
        try:
            manifest = json.loads(archive.read(MANIFEST_NAME))
            content_type = manifest.get('resources', {}).get(member)
        except (KeyError, ValueError, AttributeError):
            content_type = None
        if content_type:
            return content_type
        guessed, _ = mimetypes.guess_type(member)
        return guessed or "application/octet-stream"

    def _decode(self, body: bytes, charset: Optional[str]) -> Optional[str]:
        encodings = [charset] if charset else []
        return UnicodeDammit(body, encodings, is_html=True).unicode_markup

    def _download_assets(self, html: str, page_url: str) -> Dict[str, Asset]:
        assets = self.collector.collect(html, page_url)
        mapping = self.downloader.download(assets)

        # Stylesheets pull in their own images, fonts and imports
        for css_url, css_asset in list(mapping.items()):
            if css_asset.type != 'stylesheet' or not css_asset.content:
                continue
            css_text = css_asset.content.decode('utf-8', errors='ignore')
            deps = [Asset(url=urljoin(css_url, d), type='image', attr='css')
                    for d in extract_css_urls(css_text)]
            mapping.update(self.downloader.download([d for d in deps if d.url not in mapping]))
            rewritten = self.rewriter.rewrite_css(css_text, css_url, mapping,
                                                  relative_to=posixpath.dirname(css_asset.archive_path))
            css_asset.content = rewritten.encode('utf-8')

        return mapping
