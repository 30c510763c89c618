"""
Long-form export tests. PDF rendering is replaced by a stub generator so
the tests exercise chapter assembly and failure handling only.
"""

import os

import pytest

from keepsake.core.dispatcher import ArchiveDispatcher
from keepsake.core.encoders import DocumentExportEncoder, PageCaptureEncoder
from keepsake.core.errors import ExportFailed
from keepsake.core.models import BookmarkRecord, ContentStream, EbookExportRequest
from keepsake.core.registry import EncoderRegistry
from keepsake.utils.store import BookmarkStore
from conftest import FakeFetcher


ARTICLE = b"""<html><head><title>Long Read</title></head><body>
<nav>Home | About</nav>
<article><h2>Chapter one</h2><p>It was a quiet morning.</p></article>
<footer>Copyright</footer>
</body></html>"""


class StubPDF:
    def __init__(self, ok=True):
        self.ok = ok
        self.documents = []

    def generate_pdf(self, html_content, output_path, title=None, base_url=None):
        self.documents.append(html_content)
        if not self.ok:
            return False
        with open(output_path, "wb") as f:
            f.write(b"%PDF-1.4 stub")
        return True


@pytest.fixture
def store(tmp_path):
    return BookmarkStore(str(tmp_path / "bookmarks.jsonl"))


def make_dispatcher(file_manager, store, pdf):
    registry = EncoderRegistry([PageCaptureEncoder(file_manager), DocumentExportEncoder(file_manager)])
    return ArchiveDispatcher(registry, FakeFetcher(), store=store, pdf_generator=pdf)


def archive_page(dispatcher, store, url, body, content_type="text/html"):
    bookmark = store.create(url)
    updated = dispatcher.process_archive(ContentStream(body, content_type, url=url), bookmark)
    return store.save(updated)


def test_export_combines_chapters(file_manager, store, tmp_path):
    pdf = StubPDF()
    dispatcher = make_dispatcher(file_manager, store, pdf)
    page = archive_page(dispatcher, store, "https://example.com/long-read", ARTICLE)
    doc = archive_page(dispatcher, store, "https://example.com/paper.pdf", b"%PDF-1.5 data", "application/pdf")
    plain = store.save(BookmarkRecord(id=store.next_id(), url="https://example.com/later",
                                      title="Read later", excerpt="Saved for the weekend"))
    output = tmp_path / "out" / "reading.pdf"

    result = dispatcher.export_to_document(EbookExportRequest(
        bookmark_ids=[page.id, doc.id, plain.id], output_path=str(output), title="Weekend"))

    assert result.included == [page.id, doc.id, plain.id]
    assert result.skipped == []
    assert output.read_bytes().startswith(b"%PDF")

    document = pdf.documents[0]
    assert "<title>Weekend</title>" in document
    assert "It was a quiet morning." in document
    assert "Home | About" not in document
    assert "Archived document (application/pdf)" in document
    assert "Saved for the weekend" in document
    assert document.index("Long Read") < document.index("paper") < document.index("Read later")


def test_export_skips_missing_and_broken_bookmarks(file_manager, store, tmp_path):
    dispatcher = make_dispatcher(file_manager, store, StubPDF())
    good = archive_page(dispatcher, store, "https://example.com/long-read", ARTICLE)
    # Archiver recorded but artifact gone
    broken = store.save(BookmarkRecord(id=store.next_id(), url="https://example.com/gone",
                                       archiver="page-capture"))
    # Archiver no longer registered
    retired = store.save(BookmarkRecord(id=store.next_id(), url="https://example.com/old",
                                        archiver="retired-format"))

    result = dispatcher.export_to_document(EbookExportRequest(
        bookmark_ids=[good.id, broken.id, 999, retired.id], output_path=str(tmp_path / "r.pdf")))

    assert result.included == [good.id]
    assert result.skipped == [broken.id, 999, retired.id]


def test_export_with_nothing_renderable_still_writes_document(file_manager, store, tmp_path):
    pdf = StubPDF()
    dispatcher = make_dispatcher(file_manager, store, pdf)
    output = tmp_path / "r.pdf"

    result = dispatcher.export_to_document(EbookExportRequest(bookmark_ids=[42], output_path=str(output),
                                                              title="Empty shelf"))

    assert result.included == []
    assert result.skipped == [42]
    assert output.read_bytes().startswith(b"%PDF")
    assert "<title>Empty shelf</title>" in pdf.documents[0]
    assert "could be rendered" in pdf.documents[0]


def test_export_fails_when_pdf_cannot_be_written(file_manager, store, tmp_path):
    dispatcher = make_dispatcher(file_manager, store, StubPDF(ok=False))
    good = archive_page(dispatcher, store, "https://example.com/long-read", ARTICLE)

    with pytest.raises(ExportFailed):
        dispatcher.export_to_document(EbookExportRequest(bookmark_ids=[good.id],
                                                         output_path=str(tmp_path / "r.pdf")))

    assert not (tmp_path / "r.pdf").exists()
    assert not any(name.startswith(".export.") for name in os.listdir(tmp_path))


def test_skip_existing_leaves_output_untouched(file_manager, store, tmp_path):
    pdf = StubPDF()
    dispatcher = make_dispatcher(file_manager, store, pdf)
    output = tmp_path / "r.pdf"
    output.write_bytes(b"old")

    result = dispatcher.export_to_document(EbookExportRequest(bookmark_ids=[1], output_path=str(output),
                                                              skip_existing=True))

    assert result.included == []
    assert output.read_bytes() == b"old"
    assert pdf.documents == []
