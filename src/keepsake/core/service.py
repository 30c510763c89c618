"""
Entry points used by the rest of the application.

These take and return bookmark DTOs (plain dicts) and persist updated
records to the bookmark store after a successful archive.
"""

from __future__ import annotations

import threading
from typing import Any, BinaryIO, Dict, Optional, Union

from .dispatcher import ArchiveDispatcher
from .models import ArchiveFile, BookmarkRecord, ContentStream, EbookExportRequest, EbookExportResult


class ArchiveService:
    def __init__(self, dispatcher: ArchiveDispatcher, store):
        self.dispatcher = dispatcher
        self.store = store

    @classmethod
    def from_config(cls, config) -> "ArchiveService":
        from ..utils.store import BookmarkStore

        store = BookmarkStore(config.store_path)
        return cls(ArchiveDispatcher.from_config(config, store=store), store)

    def generate_bookmark_archive(self,
                                  bookmark: Dict[str, Any],
                                  timeout: Optional[float] = None,
                                  cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        record = BookmarkRecord.from_dict(bookmark)
        updated = self.dispatcher.generate_archive(record, timeout=timeout, cancel_event=cancel_event)
        return self.store.save(updated).to_dict()

    def process_bookmark_archive(self,
                                 content: Union[ContentStream, BinaryIO, bytes],
                                 content_type: str,
                                 bookmark: Dict[str, Any]) -> Dict[str, Any]:
        """
        Archive content the caller already holds.

        content may be a ContentStream, any readable binary file object or
        plain bytes. Streams and file objects are closed before returning.
        """
        record = BookmarkRecord.from_dict(bookmark)
        if isinstance(content, ContentStream):
            stream = content
            if content_type:
                stream.content_type = content_type
        elif hasattr(content, "read"):
            try:
                stream = ContentStream(content.read(), content_type, url=record.url)
            finally:
                content.close()
        else:
            stream = ContentStream(content, content_type, url=record.url)
        updated = self.dispatcher.process_archive(stream, record)
        return self.store.save(updated).to_dict()

    def get_bookmark_archive_file(self, bookmark: Dict[str, Any], resource_path: str = "") -> ArchiveFile:
        return self.dispatcher.resolve_archive_file(BookmarkRecord.from_dict(bookmark), resource_path)

    def generate_bookmark_ebook(self, request: EbookExportRequest) -> EbookExportResult:
        return self.dispatcher.export_to_document(request)

    def close(self) -> None:
        self.dispatcher.fetcher.close()
