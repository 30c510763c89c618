"""
Shared fixtures for the Keepsake test suite.
"""

import sys
from pathlib import Path

import pytest

# Add the src directory to the path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from keepsake.core.encoders import ArchiveEncoder
from keepsake.core.errors import EncodeFailed, FetchFailed, ResourceNotFound
from keepsake.core.models import ArchiveFile, BookmarkRecord, ContentStream
from keepsake.utils.file_manager import FileManager


class CountingStream(ContentStream):
    """ContentStream that records every close() call."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.close_calls = 0

    def close(self):
        self.close_calls += 1
        super().close()


class RecordingEncoder(ArchiveEncoder):
    """
    Test encoder: stores the raw body, or fails after reading part of it
    when ``fail`` is set.
    """

    extension = "raw"

    def __init__(self, file_manager, name, content_types, fail=False):
        self.name = name
        self.content_types = tuple(content_types)
        super().__init__(file_manager)
        self.fail = fail
        self.seen = []

    def encode(self, stream, bookmark):
        if self.fail:
            stream.read(3)
            raise EncodeFailed(f"{self.name} refused", encoder=self.name)
        body = stream.read()
        self.seen.append(body)
        with self.files.atomic_write(self.archive_path(bookmark)) as tmp:
            tmp.write_bytes(body)
        return self._archived(bookmark)

    def get_archive_file(self, bookmark, resource_path):
        path = self._require_archive(bookmark, resource_path)
        return ArchiveFile(name=path.name, content=path.read_bytes(), content_type="application/octet-stream")


class FakeFetcher:
    """Serves canned responses keyed by URL."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.requested = []
        self.closed = False

    def fetch(self, url, timeout=None, cancel_event=None, max_bytes=None):
        self.requested.append(url)
        if url not in self.responses:
            raise FetchFailed(f"HTTP 404 fetching {url}", url=url, status_code=404)
        body, content_type = self.responses[url]
        return CountingStream(body, content_type, url=url)

    def fetch_bytes(self, url, max_bytes=None):
        return self.fetch(url, max_bytes=max_bytes)

    def close(self):
        self.closed = True


@pytest.fixture
def file_manager(tmp_path):
    return FileManager(str(tmp_path / "archive"))


@pytest.fixture
def bookmark():
    return BookmarkRecord(id=7, url="https://example.com/page.html", title="Example page")
