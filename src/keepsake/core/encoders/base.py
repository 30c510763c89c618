"""
Archive encoder contract.

An encoder turns a fetched content stream into a persisted archive and
serves named resources back out of it. Encoders are selected by content
type, never by file extension or user choice.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Tuple

from ..errors import ResourceNotFound
from ..models import ArchiveFile, BookmarkRecord, ContentStream, normalize_media_type


ROOT_PATHS = ("", "/")


class ArchiveEncoder:
    """
    Base class for archive encoders.

    Subclasses set ``name`` (the stable archiver kind stored on
    bookmarks) and ``content_types``, and implement ``encode`` and
    ``get_archive_file``. Encoders hold no per-request state, so a single
    instance is shared by all worker threads.
    """

    name: str = ""
    content_types: Tuple[str, ...] = ()
    extension: str = "bin"

    def __init__(self, file_manager):
        self.files = file_manager
        self.logger = logging.getLogger(f"{__name__}.{self.name or type(self).__name__}")

    def matches(self, content_type: str) -> bool:
        """True when this encoder handles content_type. Parameters and case are ignored."""
        return normalize_media_type(content_type) in self.content_types

    def encode(self, stream: ContentStream, bookmark: BookmarkRecord) -> BookmarkRecord:
        """
        Consume stream and persist an archive keyed by bookmark.id.

        Returns a copy of bookmark with ``archiver`` set to this encoder's
        name. Raises EncodeFailed (or any other exception) on failure, in
        which case nothing is left under the artifact path.
        """
        raise NotImplementedError

    def get_archive_file(self, bookmark: BookmarkRecord, resource_path: str) -> ArchiveFile:
        """
        Resolve resource_path inside this bookmark's archive.

        Raises ResourceNotFound or ArchiveCorrupt.
        """
        raise NotImplementedError

    def archive_path(self, bookmark: BookmarkRecord):
        return self.files.archive_path(bookmark.id, self.name, self.extension)

    def has_archive(self, bookmark: BookmarkRecord) -> bool:
        return self.archive_path(bookmark).exists()

    def delete_archive(self, bookmark: BookmarkRecord) -> bool:
        return self.files.remove(self.archive_path(bookmark))

    def rollback_point(self, bookmark: BookmarkRecord):
        """Restore this bookmark's artifact if the enclosed block raises."""
        return self.files.rollback_point(self.archive_path(bookmark))

    def _require_archive(self, bookmark: BookmarkRecord, resource_path: str):
        path = self.archive_path(bookmark)
        if not path.exists():
            raise ResourceNotFound(f"no {self.name} archive for bookmark {bookmark.id}",
                                   resource_path=resource_path, bookmark_id=bookmark.id,
                                   url=bookmark.url, encoder=self.name)
        return path

    def _archived(self, bookmark: BookmarkRecord, **changes) -> BookmarkRecord:
        return dataclasses.replace(bookmark, archiver=self.name, **changes)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"
