"""
Archive Dispatcher: fetch -> match -> encode, plus archive file lookup
and the long-form export entry point.

Each call moves through Idle -> Fetching -> Matching -> Encoding and ends
either Archived (an updated copy of the bookmark is returned) or Failed
(a KeepsakeError is raised).
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from .ebook import EbookExporter
from .encoders import ArchiveEncoder
from .errors import ArchiveCancelled, ExportFailed, FetchFailed, NoEncoderAvailable, UnknownEncoder
from .fetcher import Fetcher
from .logger import ErrorTracker
from .models import ArchiveFile, BookmarkRecord, ContentStream, EbookExportRequest, EbookExportResult
from .registry import EncoderRegistry, build_default_registry


class ArchiveDispatcher:
    """
    Routes bookmarks to archive encoders.

    Encode failures are a tolerated partial failure: the error is logged
    and the next matching encoder is tried. Every other failure propagates
    to the caller. The dispatcher never persists bookmark records; callers
    store the returned copy themselves.
    """

    def __init__(self,
                 registry: EncoderRegistry,
                 fetcher: Fetcher,
                 store=None,
                 pdf_generator=None,
                 error_tracker: Optional[ErrorTracker] = None,
                 logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.fetcher = fetcher
        self.logger = logger or logging.getLogger(__name__)
        self.errors = error_tracker or ErrorTracker(self.logger)
        self.exporter = None
        if store is not None:
            self.exporter = EbookExporter(store, self, pdf_generator=pdf_generator)
        # bookmark id -> [lock, number of callers holding or waiting on it]
        self._locks: Dict[int, list] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, config, store=None) -> "ArchiveDispatcher":
        fetcher = Fetcher.from_config(config)
        return cls(build_default_registry(config, fetcher=fetcher), fetcher, store=store)

    @contextmanager
    def _writer_lock(self, bookmark_id: int):
        """Serialize archive writes for one bookmark id."""
        with self._locks_guard:
            entry = self._locks.setdefault(bookmark_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[bookmark_id]

    def generate_archive(self,
                         bookmark: BookmarkRecord,
                         timeout: Optional[float] = None,
                         cancel_event: Optional[threading.Event] = None) -> BookmarkRecord:
        """
        Fetch bookmark.url and archive it with the first encoder that succeeds.

        Raises:
            FetchFailed: the URL could not be fetched; no encoder was tried
            NoEncoderAvailable: nothing matched, or every match failed
            ArchiveCancelled: cancel_event was set before an archive was kept
        """
        try:
            stream = self.fetcher.fetch(bookmark.url, timeout=timeout, cancel_event=cancel_event)
        except FetchFailed as e:
            if e.bookmark_id is None:
                e.bookmark_id = bookmark.id
            self.logger.error(f"Fetch failed for bookmark {bookmark.id} ({bookmark.url}): {e}")
            raise

        return self.process_archive(stream, bookmark, cancel_event=cancel_event)

    def process_archive(self,
                        stream: ContentStream,
                        bookmark: BookmarkRecord,
                        cancel_event: Optional[threading.Event] = None) -> BookmarkRecord:
        """
        Archive an already fetched stream. The stream is closed on return.

        Returns:
            A copy of bookmark with ``archiver`` set to the winning encoder
        """
        try:
            with self._writer_lock(bookmark.id):
                return self._encode_first(stream, bookmark, cancel_event)
        finally:
            stream.close()

    def _encode_first(self,
                      stream: ContentStream,
                      bookmark: BookmarkRecord,
                      cancel_event: Optional[threading.Event]) -> BookmarkRecord:
        content_type = stream.content_type
        candidates = self.registry.match(content_type)
        attempted: List[str] = []

        for encoder in candidates:
            self._check_cancelled(cancel_event, bookmark, encoder.name)

            stream.rewind()
            try:
                # Any exception in the block, a cancel included, puts back the
                # artifact this encoder held for the bookmark before the call
                with encoder.rollback_point(bookmark):
                    updated = encoder.encode(stream, dataclasses.replace(bookmark))
                    self._check_cancelled(cancel_event, bookmark, encoder.name)
            except ArchiveCancelled:
                raise
            except Exception as e:
                attempted.append(encoder.name)
                self.errors.log_error(e, context="encode", url=bookmark.url,
                                      additional_info={'bookmark_id': bookmark.id, 'encoder': encoder.name})
                continue

            if updated.archiver != encoder.name:
                updated = dataclasses.replace(updated, archiver=encoder.name)

            self._drop_superseded(bookmark, encoder)
            self.logger.info(f"Archived bookmark {bookmark.id} with {encoder.name}")
            return updated

        if attempted:
            self.logger.error(f"All matching encoders failed for bookmark {bookmark.id} "
                              f"({content_type}): tried {', '.join(attempted)}")
            message = f"every archiver for content type {content_type} failed: {', '.join(attempted)}"
        else:
            self.logger.warning(f"No archiver matches content type {content_type} "
                                f"for bookmark {bookmark.id}")
            message = f"no archiver found for content type: {content_type}"

        raise NoEncoderAvailable(message, content_type=content_type, attempted=attempted,
                                 url=bookmark.url, bookmark_id=bookmark.id)

    def _check_cancelled(self, cancel_event, bookmark: BookmarkRecord, encoder_name: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ArchiveCancelled(f"archiving bookmark {bookmark.id} cancelled",
                                   url=bookmark.url, bookmark_id=bookmark.id, encoder=encoder_name)

    def _drop_superseded(self, bookmark: BookmarkRecord, winner: ArchiveEncoder) -> None:
        """Remove the artifact of a previous, different archiver for this bookmark."""
        previous = bookmark.archiver
        if not previous or previous == winner.name or previous not in self.registry:
            return
        try:
            self.registry.get(previous).delete_archive(bookmark)
        except OSError as e:
            self.errors.log_warning(f"Could not remove superseded {previous} archive: {e}",
                                    context="encode", url=bookmark.url)

    def resolve_archive_file(self, bookmark: BookmarkRecord, resource_path: str = "") -> ArchiveFile:
        """
        Resolve a resource inside the bookmark's archive.

        Raises:
            UnknownEncoder: bookmark.archiver is empty or not registered
            ResourceNotFound, ArchiveCorrupt: from the encoder
        """
        if not bookmark.archiver:
            raise UnknownEncoder("", bookmark_id=bookmark.id, url=bookmark.url)
        try:
            encoder = self.get_encoder(bookmark.archiver)
        except UnknownEncoder as e:
            e.bookmark_id = bookmark.id
            e.url = bookmark.url
            raise
        return encoder.get_archive_file(bookmark, resource_path)

    def get_encoder(self, name: str) -> ArchiveEncoder:
        return self.registry.get(name)

    def delete_archive(self, bookmark: BookmarkRecord) -> BookmarkRecord:
        """Remove every archive artifact of a bookmark and clear its archiver."""
        with self._writer_lock(bookmark.id):
            for encoder in self.registry:
                encoder.delete_archive(bookmark)
        return dataclasses.replace(bookmark, archiver="")

    def export_to_document(self, request: EbookExportRequest) -> EbookExportResult:
        """Fold the requested bookmarks into one long-form PDF."""
        if self.exporter is None:
            raise ExportFailed("no bookmark store configured for export")
        return self.exporter.export(request)
