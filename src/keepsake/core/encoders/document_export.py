"""
Document export encoder.

Stores PDF documents as-is. The archive holds a single resource: the
document itself, served for the root path.
"""

from __future__ import annotations

import posixpath

from .base import ArchiveEncoder, ROOT_PATHS
from ..errors import ArchiveCorrupt, EncodeFailed, ResourceNotFound
from ..models import ArchiveFile, BookmarkRecord, ContentStream
from ...utils.validators import get_validator


PDF_MAGIC = b"%PDF-"
COPY_CHUNK = 64 * 1024


class DocumentExportEncoder(ArchiveEncoder):
    name = "document-export"
    content_types = ("application/pdf", "application/x-pdf")
    extension = "pdf"

    def encode(self, stream: ContentStream, bookmark: BookmarkRecord) -> BookmarkRecord:
        head = stream.read(len(PDF_MAGIC))
        if head != PDF_MAGIC:
            raise EncodeFailed("content is not a PDF document", url=bookmark.url,
                               bookmark_id=bookmark.id, encoder=self.name)

        with self.files.atomic_write(self.archive_path(bookmark)) as tmp_path:
            with open(tmp_path, 'wb') as f:
                f.write(head)
                while True:
                    chunk = stream.read(COPY_CHUNK)
                    if not chunk:
                        break
                    f.write(chunk)

        title = bookmark.title
        if not title:
            filename = get_validator().filename_from_url(bookmark.url)
            title = posixpath.splitext(filename)[0] if filename else ""

        return self._archived(bookmark, title=title)

    def get_archive_file(self, bookmark: BookmarkRecord, resource_path: str) -> ArchiveFile:
        if (resource_path or "").strip() not in ROOT_PATHS:
            raise ResourceNotFound(f"{resource_path} not found in document archive of bookmark {bookmark.id}",
                                   resource_path=resource_path, bookmark_id=bookmark.id,
                                   url=bookmark.url, encoder=self.name)

        path = self._require_archive(bookmark, resource_path)
        content = path.read_bytes()
        if not content.startswith(PDF_MAGIC):
            raise ArchiveCorrupt(f"document archive of bookmark {bookmark.id} is not a PDF",
                                 bookmark_id=bookmark.id, url=bookmark.url, encoder=self.name)

        filename = f"{bookmark.id}.pdf"
        return ArchiveFile(name=filename, content=content, content_type="application/pdf")
