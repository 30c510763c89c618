"""
Long-form export: folds several bookmarks into one reading document.

Each bookmark becomes a chapter rendered from its archived root document,
or from its title and excerpt when it has no archive. The combined HTML is
written as a PDF through PDFGenerator.
"""

from __future__ import annotations

import html
import logging
import os
import tempfile
from typing import List, Optional

from .errors import ExportFailed, KeepsakeError
from .html_cleaner import HTMLCleaner
from .logger import ErrorTracker
from .models import BookmarkRecord, EbookExportRequest, EbookExportResult
from .pdf_generator import PDFGenerator


DOCUMENT_CSS = """
body { font-family: Georgia, serif; line-height: 1.5; margin: 0 2em; }
h1.chapter-title { page-break-before: always; font-size: 1.6em; }
section:first-of-type h1.chapter-title { page-break-before: avoid; }
p.source { color: #666; font-size: 0.8em; word-break: break-all; }
pre { white-space: pre-wrap; }
"""

EMPTY_CHAPTER = '<section><p class="empty">None of the requested bookmarks could be rendered.</p></section>'


class EbookExporter:
    def __init__(self, store, resolver, pdf_generator: Optional[PDFGenerator] = None,
                 cleaner: Optional[HTMLCleaner] = None):
        """
        Args:
            store: Bookmark store providing get(bookmark_id)
            resolver: Object providing resolve_archive_file(bookmark, path)
            pdf_generator: PDF writer (defaults to PDFGenerator())
            cleaner: HTML cleaner used to extract readable content
        """
        self.store = store
        self.resolver = resolver
        self.pdf = pdf_generator or PDFGenerator()
        self.cleaner = cleaner or HTMLCleaner()
        self.logger = logging.getLogger(__name__)
        self.errors = ErrorTracker(self.logger)

    def export(self, request: EbookExportRequest) -> EbookExportResult:
        """
        Render the requested bookmarks into request.output_path.

        Bookmarks that are missing or fail to render are logged and skipped.

        Raises:
            ExportFailed: the PDF could not be written
        """
        result = EbookExportResult(output_path=request.output_path)

        if request.skip_existing and os.path.exists(request.output_path):
            self.logger.info(f"Export exists, skipping: {request.output_path}")
            return result

        chapters: List[str] = []
        for bookmark_id in request.bookmark_ids:
            bookmark = self.store.get(bookmark_id)
            if bookmark is None:
                self.errors.log_warning(f"Bookmark {bookmark_id} not found", context="export")
                result.skipped.append(bookmark_id)
                continue
            try:
                chapters.append(self.render_chapter(bookmark))
            except Exception as e:
                self.errors.log_error(e, context="export", url=bookmark.url,
                                      additional_info={'bookmark_id': bookmark.id})
                result.skipped.append(bookmark_id)
                continue
            result.included.append(bookmark_id)

        if not chapters:
            self.errors.log_warning("No bookmark could be rendered; writing an empty export",
                                    context="export")
            chapters.append(EMPTY_CHAPTER)

        document = self.build_document(request.title, chapters)
        self._write(document, request)

        self.logger.info(f"Exported {len(result.included)} bookmarks to {request.output_path} "
                         f"({len(result.skipped)} skipped)")
        return result

    def render_chapter(self, bookmark: BookmarkRecord) -> str:
        title = html.escape(bookmark.title or bookmark.url)
        url = html.escape(bookmark.url, quote=True)

        body = ""
        if bookmark.archiver:
            archive_file = self.resolver.resolve_archive_file(bookmark, "")
            if archive_file.content_type.startswith(("text/html", "application/xhtml+xml")):
                text = archive_file.content.decode('utf-8', errors='replace')
                body = self.cleaner.extract_readable(text)
            else:
                body = f'<p>Archived document ({html.escape(archive_file.content_type)}): ' \
                       f'<a href="{url}">{url}</a></p>'

        if not body:
            if not bookmark.excerpt:
                raise KeepsakeError(f"bookmark {bookmark.id} has no readable content",
                                    bookmark_id=bookmark.id, url=bookmark.url)
            body = f"<p>{html.escape(bookmark.excerpt)}</p>"

        return (f'<section id="bookmark-{bookmark.id}">\n'
                f'<h1 class="chapter-title">{title}</h1>\n'
                f'<p class="source"><a href="{url}">{url}</a></p>\n'
                f'{body}\n'
                f'</section>')

    def build_document(self, title: str, chapters: List[str]) -> str:
        return ("<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
                f"<title>{html.escape(title)}</title>\n<style>{DOCUMENT_CSS}</style>\n"
                "</head>\n<body>\n" + "\n".join(chapters) + "\n</body>\n</html>\n")

    def _write(self, document: str, request: EbookExportRequest) -> None:
        output_path = os.path.abspath(request.output_path)
        output_dir = os.path.dirname(output_path)
        try:
            os.makedirs(output_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".export.", suffix=".pdf", dir=output_dir)
            os.close(fd)
        except OSError as e:
            raise ExportFailed(f"cannot write export to {request.output_path}: {e}") from e

        try:
            if not self.pdf.generate_pdf(document, tmp_path, title=request.title, base_url=output_dir):
                raise ExportFailed(f"PDF rendering failed for {request.output_path}")
            os.replace(tmp_path, output_path)
        except OSError as e:
            raise ExportFailed(f"cannot write export to {request.output_path}: {e}") from e
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
